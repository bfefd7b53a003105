"""FastAPI dependency providers for application services."""

from __future__ import annotations

from fastapi import HTTPException, Request

from pdf_rasterizer.config import AppConfig
from pdf_rasterizer.core import ConversionService
from pdf_rasterizer.jobs import BatchRegistry


def get_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise HTTPException(status_code=503, detail="CONFIG_UNAVAILABLE")
    return config


def get_service(request: Request) -> ConversionService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="SERVICE_UNAVAILABLE")
    return service


def get_registry(request: Request) -> BatchRegistry:
    registry = getattr(request.app.state, "batches", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="REGISTRY_UNAVAILABLE")
    return registry


__all__ = ["get_config", "get_service", "get_registry"]
