from __future__ import annotations


class ConversionError(RuntimeError):
    code = "UNKNOWN"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class RequestError(ConversionError):
    """Raised when a batch request is unusable; no file is processed."""

    code = "INVALID_REQUEST"


class OpenError(ConversionError):
    code = "OPEN_FAILED"


class InvalidRangeError(ConversionError):
    code = "INVALID_RANGE"


class RenderError(ConversionError):
    code = "RENDER_FAILED"


class InvalidQualityError(ConversionError):
    code = "INVALID_QUALITY"


class WriteError(ConversionError):
    code = "WRITE_FAILED"


class CanceledError(ConversionError):
    code = "CANCELED"


__all__ = [
    "ConversionError",
    "RequestError",
    "OpenError",
    "InvalidRangeError",
    "RenderError",
    "InvalidQualityError",
    "WriteError",
    "CanceledError",
]
