from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import pypdfium2 as pdfium
from PIL import Image

from ..errors import OpenError, RenderError

# PDFium keeps global state and is not safe for concurrent calls.
_ENGINE_LOCK = threading.RLock()


class PdfiumDocument:
    def __init__(self, document: pdfium.PdfDocument, source: Path) -> None:
        self._document = document
        self._source = source

    @property
    def page_count(self) -> int:
        with _ENGINE_LOCK:
            return len(self._document)

    def render_page(self, page_number: int, scale: float) -> Image.Image:
        with _ENGINE_LOCK:
            if not 1 <= page_number <= len(self._document):
                raise RenderError(f"Page {page_number} is out of range for {self._source.name}")
            try:
                page = self._document[page_number - 1]
                try:
                    bitmap = page.render(scale=scale)
                    try:
                        image = bitmap.to_pil().copy()
                    finally:
                        bitmap.close()
                finally:
                    page.close()
            except pdfium.PdfiumError as exc:
                raise RenderError(f"Failed to render page {page_number} of {self._source.name}: {exc}") from exc
        return image

    def close(self) -> None:
        with _ENGINE_LOCK:
            self._document.close()


class PdfiumAdapter:
    """Render adapter backed by PDFium through pypdfium2."""

    def __init__(self, password: str | None = None) -> None:
        self._password = password

    @contextmanager
    def open(self, path: Path) -> Iterator[PdfiumDocument]:
        path = Path(path)
        if not path.is_file():
            raise OpenError(f"Source file does not exist: {path}")
        with _ENGINE_LOCK:
            try:
                document = pdfium.PdfDocument(str(path), password=self._password)
            except pdfium.PdfiumError as exc:
                raise OpenError(f"Failed to open {path.name}: {exc}") from exc
            except OSError as exc:
                raise OpenError(f"Failed to read {path.name}: {exc}") from exc
        handle = PdfiumDocument(document, path)
        try:
            yield handle
        finally:
            handle.close()
