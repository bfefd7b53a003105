"""Domain models for batch PDF rasterization."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from .logging import BatchSummary


class OutputFormat(str, Enum):
    JPG = "jpg"
    PNG = "png"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def pil_format(self) -> str:
        return "JPEG" if self is OutputFormat.JPG else "PNG"

    @classmethod
    def parse(cls, value: "str | OutputFormat") -> "OutputFormat":
        if isinstance(value, OutputFormat):
            return value
        normalized = str(value).strip().lower().lstrip(".")
        if normalized == "jpeg":
            normalized = "jpg"
        return cls(normalized)


class FileStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in {FileStatus.SUCCESS, FileStatus.ERROR}


@dataclass(slots=True)
class ConversionRequest:
    """A batch of PDFs plus the output parameters shared by every file."""

    input_paths: Sequence[Path | str]
    output_dir: Path | str
    format: OutputFormat | str = OutputFormat.JPG
    scale: float = 2.0
    quality: int = 90
    page_range: str | None = ""
    merge: bool = False


@dataclass(slots=True)
class FileResult:
    job_id: str
    source: Path
    filename: str
    status: FileStatus
    pages_total: int = 0
    pages_done: int = 0
    output_paths: list[Path] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None


@dataclass(slots=True)
class BatchResult:
    """Aggregate outcome of a finished batch."""

    batch_id: str
    files: list[FileResult]
    summary: BatchSummary
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> list[FileResult]:
        return [item for item in self.files if item.status is FileStatus.SUCCESS]

    @property
    def failed(self) -> list[FileResult]:
        return [item for item in self.files if item.status is FileStatus.ERROR]


__all__ = [
    "OutputFormat",
    "FileStatus",
    "ConversionRequest",
    "FileResult",
    "BatchResult",
]
