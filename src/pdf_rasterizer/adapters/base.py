from __future__ import annotations

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol

from PIL import Image


class DocumentHandle(Protocol):
    @property
    def page_count(self) -> int:  # pragma: no cover - interface
        ...

    def render_page(self, page_number: int, scale: float) -> Image.Image:  # pragma: no cover - interface
        """Rasterize the 1-based *page_number* at *scale* (1.0 = 72 dpi)."""
        ...


class RenderAdapter(Protocol):
    def open(self, path: Path) -> AbstractContextManager[DocumentHandle]:  # pragma: no cover - interface
        ...
