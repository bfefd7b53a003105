from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .events import EventEmitter, EventListener, ProgressEvent, StatusEvent
from .logging import BatchSummary
from .models import BatchResult, FileResult, FileStatus

_TRANSITIONS: dict[FileStatus, frozenset[FileStatus]] = {
    FileStatus.QUEUED: frozenset({FileStatus.PROCESSING, FileStatus.ERROR}),
    FileStatus.PROCESSING: frozenset({FileStatus.SUCCESS, FileStatus.ERROR}),
    FileStatus.SUCCESS: frozenset(),
    FileStatus.ERROR: frozenset(),
}


@dataclass(slots=True)
class FileJob:
    """Mutable state of one source file inside a batch."""

    job_id: str
    source: Path
    filename: str
    output_stem: str
    status: FileStatus = FileStatus.QUEUED
    pages_total: int = 0
    pages_done: int = 0
    output_paths: list[Path] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None

    def transition(self, status: FileStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise RuntimeError(f"Illegal status change {self.status.value} -> {status.value} for {self.job_id}")
        self.status = status

    def to_result(self) -> FileResult:
        return FileResult(
            job_id=self.job_id,
            source=self.source,
            filename=self.filename,
            status=self.status,
            pages_total=self.pages_total,
            pages_done=self.pages_done,
            output_paths=list(self.output_paths),
            error=self.error,
            error_code=self.error_code,
        )

    def to_payload(self) -> dict[str, object]:
        return {
            "job_id": self.job_id,
            "source": str(self.source),
            "filename": self.filename,
            "status": self.status.value,
            "current": self.pages_done,
            "total": self.pages_total,
            "output_paths": [str(path) for path in self.output_paths],
            "error": self.error,
            "error_code": self.error_code,
        }


class BatchHandle:
    """Caller-side view of a running batch."""

    def __init__(self, batch_id: str, jobs: list[FileJob], emitter: EventEmitter) -> None:
        self.batch_id = batch_id
        self.jobs = jobs
        self.summary = BatchSummary(total=len(jobs))
        self.cancel_event = threading.Event()
        self._emitter = emitter
        self._futures: list[Future[None]] = []
        self._lock = threading.Lock()
        self._warnings: list[str] = []

    def attach(self, future: Future[None]) -> None:
        with self._lock:
            self._futures.append(future)

    def add_warning(self, message: str) -> None:
        with self._lock:
            self._warnings.append(message)

    @property
    def warnings(self) -> list[str]:
        """Problems that did not change any file result, such as a failing listener or run log."""

        with self._lock:
            local = list(self._warnings)
        return self._emitter.listener_errors + local

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    @property
    def done(self) -> bool:
        return self._emitter.channel.closed

    def job(self, job_id: str) -> FileJob:
        for job in self.jobs:
            if job.job_id == job_id:
                return job
        raise KeyError(job_id)

    def events(self, timeout: float | None = None) -> Iterator[ProgressEvent | StatusEvent]:
        """Iterate over every event of the batch; ends once the batch completes."""

        return self._emitter.channel.subscribe(timeout=timeout)

    def add_listener(self, listener: EventListener) -> None:
        self._emitter.add_listener(listener)

    def cancel(self) -> bool:
        if self.done:
            return False
        self.cancel_event.set()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        return self._emitter.channel.wait_closed(timeout)

    def result(self, timeout: float | None = None) -> BatchResult:
        if not self.wait(timeout):
            raise TimeoutError(f"Batch {self.batch_id} did not finish in time")
        return BatchResult(
            batch_id=self.batch_id,
            files=[job.to_result() for job in self.jobs],
            summary=self.summary,
            warnings=self.warnings,
        )

    def to_payload(self) -> dict[str, object]:
        return {
            "batch_id": self.batch_id,
            "done": self.done,
            "canceled": self.cancel_event.is_set(),
            "warnings": self.warnings,
            "jobs": [job.to_payload() for job in self.jobs],
        }


class BatchRegistry:
    """Keeps handles of recent batches addressable by batch id."""

    def __init__(self, limit: int = 200) -> None:
        self._limit = limit
        self._batches: dict[str, BatchHandle] = {}
        self._lock = threading.Lock()

    def register(self, handle: BatchHandle) -> BatchHandle:
        with self._lock:
            self._batches[handle.batch_id] = handle
            finished = [key for key, item in self._batches.items() if item.done]
            overflow = len(self._batches) - self._limit
            for key in finished[: max(overflow, 0)]:
                self._batches.pop(key, None)
        return handle

    def get(self, batch_id: str) -> BatchHandle | None:
        with self._lock:
            return self._batches.get(batch_id)

    def handles(self) -> list[BatchHandle]:
        with self._lock:
            return list(self._batches.values())

    def cancel_all(self) -> None:
        for handle in self.handles():
            handle.cancel()


__all__ = ["FileJob", "BatchHandle", "BatchRegistry"]
