from __future__ import annotations

from functools import lru_cache
from typing import Dict, Type

from .base import DocumentHandle, RenderAdapter
from .pdfium import PdfiumAdapter, PdfiumDocument

_ADAPTER_CLASSES: Dict[str, Type[RenderAdapter]] = {
    "pdfium": PdfiumAdapter,
}


@lru_cache(maxsize=len(_ADAPTER_CLASSES))
def get_adapter(engine: str = "pdfium") -> RenderAdapter:
    adapter_cls = _ADAPTER_CLASSES.get(engine)
    if not adapter_cls:
        raise KeyError(f"No render adapter registered for {engine!r}")
    return adapter_cls()


__all__ = [
    "DocumentHandle",
    "RenderAdapter",
    "PdfiumAdapter",
    "PdfiumDocument",
    "get_adapter",
]
