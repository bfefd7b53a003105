from __future__ import annotations

from pydantic import BaseModel, Field


class ConvertPayload(BaseModel):
    input_paths: list[str] = Field(default_factory=list)
    output_dir: str
    format: str = "jpg"
    scale: float = 2.0
    page_range: str = ""
    merge: bool = False
    quality: int = 90


class OpenFolderPayload(BaseModel):
    path: str


class JobSummary(BaseModel):
    job_id: str
    filename: str
    source: str


class BatchAccepted(BaseModel):
    batch_id: str
    jobs: list[JobSummary]
