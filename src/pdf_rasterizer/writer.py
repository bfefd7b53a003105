from __future__ import annotations

from pathlib import Path
from typing import Sequence

from PIL import Image

from .errors import WriteError
from .models import OutputFormat
from .utils import atomic_write_bytes

MERGE_BACKGROUND = (255, 255, 255)


def allocate_stems(stems: Sequence[str]) -> list[str]:
    """Make output stems unique within a batch by suffixing repeats with ``-2``, ``-3``...

    Stems are compared case-insensitively so outputs stay distinct on
    case-insensitive filesystems.
    """

    taken: set[str] = set()
    counts: dict[str, int] = {}
    allocated: list[str] = []
    for stem in stems:
        key = stem.casefold()
        candidate = stem
        if candidate.casefold() in taken:
            index = counts.get(key, 1)
            while candidate.casefold() in taken:
                index += 1
                candidate = f"{stem}-{index}"
            counts[key] = index
        taken.add(candidate.casefold())
        allocated.append(candidate)
    return allocated


def compose_vertical(images: Sequence[Image.Image]) -> Image.Image:
    """Stack *images* top to bottom, left aligned, on a white canvas."""

    if not images:
        raise ValueError("compose_vertical requires at least one image")
    width = max(image.width for image in images)
    height = sum(image.height for image in images)
    canvas = Image.new("RGB", (width, height), MERGE_BACKGROUND)
    offset = 0
    for image in images:
        if image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            canvas.paste(rgba, (0, offset), rgba)
        else:
            canvas.paste(image.convert("RGB"), (0, offset))
        offset += image.height
    return canvas


class OutputWriter:
    def __init__(self, output_dir: Path, format: OutputFormat) -> None:
        self._output_dir = Path(output_dir)
        self._format = format

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def ensure_directory(self) -> Path:
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WriteError(f"Cannot create output directory {self._output_dir}: {exc}") from exc
        if not self._output_dir.is_dir():
            raise WriteError(f"Output path is not a directory: {self._output_dir}")
        return self._output_dir

    def page_path(self, stem: str, page_number: int) -> Path:
        return self._output_dir / f"{stem}_{page_number:03d}.{self._format.extension}"

    def merged_path(self, stem: str) -> Path:
        return self._output_dir / f"{stem}.{self._format.extension}"

    def write(self, path: Path, data: bytes) -> Path:
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise WriteError(f"Failed to write {path.name}: {exc.strerror or exc}") from exc
        return path

    def discard(self, paths: Sequence[Path]) -> None:
        for path in paths:
            path.unlink(missing_ok=True)


__all__ = ["OutputWriter", "allocate_stems", "compose_vertical"]
