from __future__ import annotations

from fastapi import FastAPI

from pdf_rasterizer.config import AppConfig, load_config
from pdf_rasterizer.core import ConversionService
from pdf_rasterizer.jobs import BatchRegistry
from pdf_rasterizer.settings import Settings, get_settings

from .routers import batches, health


def create_app(
    config: AppConfig | None = None,
    *,
    service: ConversionService | None = None,
    require_enabled: bool = True,
) -> FastAPI:
    config = config or _prepare_config(get_settings())
    if require_enabled and not config.runtime.enable_local_api:
        raise RuntimeError("Local API is disabled. Enable it via configuration or environment.")

    app = FastAPI(title="Local PDF Rasterizer", version="0.1.0")
    app.state.config = config
    app.state.service = service or ConversionService(config)
    app.state.batches = BatchRegistry()

    app.include_router(health.router)
    app.include_router(batches.router)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI lifecycle
        registry: BatchRegistry = app.state.batches
        registry.cancel_all()

    return app


def _prepare_config(settings: Settings) -> AppConfig:
    config = load_config(settings.config_path)
    if settings.enable_local_api is not None:
        config.runtime.enable_local_api = settings.enable_local_api
    return config


__all__ = ["create_app"]
