"""Shared test helpers."""

from __future__ import annotations

import io
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

import pypdfium2 as pdfium
from PIL import Image

from pdf_rasterizer.config import AppConfig, RuntimeConfig
from pdf_rasterizer.errors import OpenError, RenderError
from pdf_rasterizer.events import ProgressEvent, StatusEvent


def build_config(tmp_path: Path, *, parallelism: int = 0, keep_partials: bool = True) -> AppConfig:
    runtime = RuntimeConfig(log_dir=tmp_path / "runs", parallelism=parallelism, keep_partials=keep_partials)
    return AppConfig(runtime=runtime)


def make_pdf(path: Path, pages: Sequence[tuple[float, float]] = ((200, 100),)) -> Path:
    """Write a PDF with blank pages of the given (width, height) in points."""
    pdf = pdfium.PdfDocument.new()
    for width, height in pages:
        pdf.new_page(width, height)
    buffer = io.BytesIO()
    pdf.save(buffer)
    pdf.close()
    path.write_bytes(buffer.getvalue())
    return path


class FakeDocument:
    def __init__(self, adapter: "FakeAdapter", sizes: Sequence[tuple[int, int]]) -> None:
        self._adapter = adapter
        self._sizes = list(sizes)

    @property
    def page_count(self) -> int:
        return len(self._sizes)

    def render_page(self, page_number: int, scale: float) -> Image.Image:
        if self._adapter.gate is not None:
            self._adapter.gate.wait(5)
        if page_number in self._adapter.fail_pages:
            raise RenderError(f"Failed to render page {page_number}")
        width, height = self._sizes[page_number - 1]
        return Image.new("RGB", (int(width * scale), int(height * scale)), (200, 30, 30))


class FakeAdapter:
    """In-memory render adapter keyed by file name."""

    def __init__(
        self,
        documents: dict[str, Sequence[tuple[int, int]]],
        *,
        fail_pages: Sequence[int] = (),
        gate: threading.Event | None = None,
    ) -> None:
        self.documents = documents
        self.fail_pages = set(fail_pages)
        self.gate = gate
        self.opened: list[str] = []
        self.closed: list[str] = []
        self._lock = threading.Lock()

    @contextmanager
    def open(self, path: Path) -> Iterator[FakeDocument]:
        name = Path(path).name
        if name not in self.documents:
            raise OpenError(f"Failed to open {name}: not a PDF")
        with self._lock:
            self.opened.append(name)
        try:
            yield FakeDocument(self, self.documents[name])
        finally:
            with self._lock:
                self.closed.append(name)


def events_by_job(events: Sequence[ProgressEvent | StatusEvent]) -> dict[str, list[ProgressEvent | StatusEvent]]:
    grouped: dict[str, list[ProgressEvent | StatusEvent]] = {}
    for event in events:
        grouped.setdefault(event.job_id, []).append(event)
    return grouped


def status_path(events: Sequence[ProgressEvent | StatusEvent]) -> list[str]:
    return [event.status.value for event in events if isinstance(event, StatusEvent)]
