"""Typed progress/status events and their per-batch delivery channel."""

from __future__ import annotations

import threading
from typing import Annotated, Callable, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .models import FileStatus


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: str
    job_id: str
    filename: str

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json")


class ProgressEvent(_Event):
    kind: Literal["progress"] = "progress"
    current: int = Field(ge=0)
    total: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ProgressEvent":
        if self.current > self.total:
            raise ValueError(f"progress {self.current} exceeds total {self.total}")
        return self


class StatusEvent(_Event):
    kind: Literal["status"] = "status"
    status: FileStatus
    error: str | None = None
    output_path: str | None = None
    output_paths: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_consistency(self) -> "StatusEvent":
        if (self.status is FileStatus.ERROR) != (self.error is not None):
            raise ValueError("error message is required for, and only for, error status")
        if (self.status is FileStatus.SUCCESS) != (self.output_path is not None):
            raise ValueError("output_path is required for, and only for, success status")
        if self.output_paths and self.status is not FileStatus.SUCCESS:
            raise ValueError("output_paths are only valid for success status")
        return self


Event = Annotated[Union[ProgressEvent, StatusEvent], Field(discriminator="kind")]
EventListener = Callable[[Union[ProgressEvent, StatusEvent]], None]

_EVENT_ADAPTER: TypeAdapter[Union[ProgressEvent, StatusEvent]] = TypeAdapter(Event)


def parse_event(payload: dict[str, object]) -> ProgressEvent | StatusEvent:
    return _EVENT_ADAPTER.validate_python(payload)


class EventChannel:
    """Append-only event log for one batch.

    Every iterator replays the log from the beginning and blocks for new
    events until the channel is closed.
    """

    def __init__(self) -> None:
        self._events: list[ProgressEvent | StatusEvent] = []
        self._closed = False
        self._condition = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def publish(self, event: ProgressEvent | StatusEvent) -> None:
        with self._condition:
            if self._closed:
                raise RuntimeError("Cannot publish to a closed event channel")
            self._events.append(event)
            self._condition.notify_all()

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def snapshot(self) -> list[ProgressEvent | StatusEvent]:
        with self._condition:
            return list(self._events)

    def wait_closed(self, timeout: float | None = None) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: self._closed, timeout=timeout)

    def subscribe(self, timeout: float | None = None) -> Iterator[ProgressEvent | StatusEvent]:
        index = 0
        while True:
            with self._condition:
                ready = self._condition.wait_for(
                    lambda: index < len(self._events) or self._closed, timeout=timeout
                )
                if not ready:
                    raise TimeoutError("Timed out waiting for batch events")
                pending = self._events[index:]
                closed = self._closed
            for event in pending:
                yield event
            index += len(pending)
            if closed and not pending:
                return

    def __iter__(self) -> Iterator[ProgressEvent | StatusEvent]:
        return self.subscribe()


class EventEmitter:
    """Serializes delivery of one batch's events to its channel and listeners."""

    def __init__(self, batch_id: str, channel: EventChannel | None = None) -> None:
        self.batch_id = batch_id
        self.channel = channel or EventChannel()
        self._listeners: list[EventListener] = []
        self._listener_errors: list[str] = []
        self._lock = threading.RLock()

    @property
    def listener_errors(self) -> list[str]:
        with self._lock:
            return list(self._listener_errors)

    def add_listener(self, listener: EventListener) -> None:
        with self._lock:
            for event in self.channel.snapshot():
                self._notify(listener, event)
            self._listeners.append(listener)

    def progress(self, job_id: str, filename: str, current: int, total: int) -> ProgressEvent:
        event = ProgressEvent(
            batch_id=self.batch_id,
            job_id=job_id,
            filename=filename,
            current=current,
            total=total,
        )
        self._deliver(event)
        return event

    def status(
        self,
        job_id: str,
        filename: str,
        status: FileStatus,
        *,
        error: str | None = None,
        output_paths: list[str] | None = None,
    ) -> StatusEvent:
        paths = list(output_paths or [])
        event = StatusEvent(
            batch_id=self.batch_id,
            job_id=job_id,
            filename=filename,
            status=status,
            error=error,
            output_path=paths[-1] if paths else None,
            output_paths=paths,
        )
        self._deliver(event)
        return event

    def close(self) -> None:
        with self._lock:
            self.channel.close()

    def _deliver(self, event: ProgressEvent | StatusEvent) -> None:
        with self._lock:
            self.channel.publish(event)
            for listener in list(self._listeners):
                self._notify(listener, event)

    def _notify(self, listener: EventListener, event: ProgressEvent | StatusEvent) -> None:
        # listeners observe the batch; their failures never reach the pipeline
        try:
            listener(event)
        except Exception as exc:
            self._listener_errors.append(f"Listener failed on {event.kind} event for {event.job_id}: {exc!r}")


__all__ = [
    "Event",
    "EventChannel",
    "EventEmitter",
    "EventListener",
    "ProgressEvent",
    "StatusEvent",
    "parse_event",
]
