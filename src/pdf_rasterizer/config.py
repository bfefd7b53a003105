from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


CONFIG_FILE = Path("config.toml")


@dataclass(slots=True)
class DefaultsConfig:
    format: str = "jpg"
    scale: float = 2.0
    quality: int = 90
    page_range: str = ""
    merge: bool = False


@dataclass(slots=True)
class RuntimeConfig:
    log_dir: Path = Path("runs")
    log_file: str = "log.jsonl"
    summary_csv: str = "summary.csv"
    parallelism: int = 0
    keep_partials: bool = True
    enable_local_api: bool = False


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @property
    def log_path(self) -> Path:
        return self.runtime.log_dir / self.runtime.log_file

    @property
    def summary_path(self) -> Path:
        return self.runtime.log_dir / self.runtime.summary_csv


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _build_runtime(data: Mapping[str, object] | None) -> RuntimeConfig:
    if not data:
        return RuntimeConfig()
    return RuntimeConfig(
        log_dir=Path(str(data.get("log_dir", "runs"))),
        log_file=str(data.get("log_file", "log.jsonl")),
        summary_csv=str(data.get("summary_csv", "summary.csv")),
        parallelism=int(data.get("parallelism", 0)),
        keep_partials=bool(data.get("keep_partials", True)),
        enable_local_api=bool(data.get("enable_local_api", False)),
    )


def _build_defaults(data: Mapping[str, object] | None) -> DefaultsConfig:
    if not data:
        return DefaultsConfig()
    return DefaultsConfig(
        format=str(data.get("format", "jpg")),
        scale=float(data.get("scale", 2.0)),
        quality=int(data.get("quality", 90)),
        page_range=str(data.get("page_range", "")),
        merge=bool(data.get("merge", False)),
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "127.0.0.1")), port=int(data.get("port", 8000)))


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object] | None:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else None


def load_config(path: Path | None = None) -> AppConfig:
    path = path or CONFIG_FILE
    raw = _read_toml(path)
    return AppConfig(
        runtime=_build_runtime(_section(raw, "runtime")),
        defaults=_build_defaults(_section(raw, "defaults")),
        api=_build_api(_section(raw, "api")),
    )


def dump_config(config: AppConfig) -> str:
    payload = {
        "runtime": {
            "log_dir": str(config.runtime.log_dir),
            "log_file": config.runtime.log_file,
            "summary_csv": config.runtime.summary_csv,
            "parallelism": config.runtime.parallelism,
            "keep_partials": config.runtime.keep_partials,
            "enable_local_api": config.runtime.enable_local_api,
        },
        "defaults": {
            "format": config.defaults.format,
            "scale": config.defaults.scale,
            "quality": config.defaults.quality,
            "page_range": config.defaults.page_range,
            "merge": config.defaults.merge,
        },
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)
