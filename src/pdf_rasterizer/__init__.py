"""Local batch conversion of PDF pages to JPG/PNG images."""

from .config import AppConfig, load_config
from .core import ConversionService
from .errors import ConversionError, RequestError
from .events import ProgressEvent, StatusEvent
from .jobs import BatchHandle
from .models import BatchResult, ConversionRequest, FileStatus, OutputFormat
from .page_range import parse_page_range
from .platform import open_folder

__all__ = [
    "AppConfig",
    "load_config",
    "BatchHandle",
    "BatchResult",
    "ConversionError",
    "ConversionRequest",
    "ConversionService",
    "FileStatus",
    "OutputFormat",
    "ProgressEvent",
    "RequestError",
    "StatusEvent",
    "open_folder",
    "parse_page_range",
]
