from __future__ import annotations

import json
from typing import Any, Iterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from api.dependencies import get_registry, get_service
from api.schemas import BatchAccepted, ConvertPayload, JobSummary, OpenFolderPayload
from api.utils import run_sync
from pdf_rasterizer.core import ConversionService
from pdf_rasterizer.errors import RequestError
from pdf_rasterizer.jobs import BatchHandle, BatchRegistry
from pdf_rasterizer.models import ConversionRequest
from pdf_rasterizer.platform import open_folder

router = APIRouter(prefix="/api/v1", tags=["batches"])


def _require_batch(registry: BatchRegistry, batch_id: str) -> BatchHandle:
    handle = registry.get(batch_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="BATCH_NOT_FOUND")
    return handle


@router.post("/convert", summary="Start converting a batch of PDFs", status_code=202)
async def convert(
    payload: ConvertPayload,
    service: ConversionService = Depends(get_service),
    registry: BatchRegistry = Depends(get_registry),
) -> BatchAccepted:
    request = ConversionRequest(
        input_paths=payload.input_paths,
        output_dir=payload.output_dir,
        format=payload.format,
        scale=payload.scale,
        quality=payload.quality,
        page_range=payload.page_range,
        merge=payload.merge,
    )
    try:
        handle = await run_sync(service.convert, request)
    except RequestError as exc:
        raise HTTPException(status_code=400, detail={"code": exc.code, "message": str(exc)}) from exc
    registry.register(handle)
    return BatchAccepted(
        batch_id=handle.batch_id,
        jobs=[JobSummary(job_id=job.job_id, filename=job.filename, source=str(job.source)) for job in handle.jobs],
    )


@router.get("/batches", summary="List recent batches")
def list_batches(registry: BatchRegistry = Depends(get_registry)) -> dict[str, Any]:
    return {"batches": [handle.to_payload() for handle in registry.handles()]}


@router.get("/batches/{batch_id}", summary="Snapshot of a batch")
def get_batch(batch_id: str, registry: BatchRegistry = Depends(get_registry)) -> dict[str, Any]:
    return _require_batch(registry, batch_id).to_payload()


@router.get("/batches/{batch_id}/events", summary="Stream batch events as NDJSON")
def stream_events(batch_id: str, registry: BatchRegistry = Depends(get_registry)) -> StreamingResponse:
    handle = _require_batch(registry, batch_id)

    def _lines() -> Iterator[str]:
        for event in handle.events():
            yield json.dumps(event.to_payload()) + "\n"

    return StreamingResponse(_lines(), media_type="application/x-ndjson")


@router.post("/batches/{batch_id}/cancel", summary="Cancel the remaining work of a batch")
def cancel_batch(batch_id: str, registry: BatchRegistry = Depends(get_registry)) -> dict[str, Any]:
    handle = _require_batch(registry, batch_id)
    if not handle.cancel():
        raise HTTPException(status_code=409, detail="BATCH_FINISHED")
    return handle.to_payload()


@router.post("/open-folder", summary="Open a folder in the host file browser")
def open_output_folder(payload: OpenFolderPayload) -> dict[str, str]:
    try:
        open_folder(payload.path)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="FOLDER_NOT_FOUND") from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail="OPEN_FAILED") from exc
    return {"status": "ok"}


__all__ = ["router"]
