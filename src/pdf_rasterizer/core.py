from __future__ import annotations

import math
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from .adapters import RenderAdapter, get_adapter
from .config import AppConfig
from .encoder import encode_image, validate_quality
from .errors import CanceledError, ConversionError, InvalidQualityError, RequestError, WriteError
from .events import EventEmitter
from .jobs import BatchHandle, FileJob
from .logging import RunLogEntry, RunLogger, StageTimings, append_summary_row
from .models import BatchResult, ConversionRequest, FileStatus, OutputFormat
from .page_range import parse_page_range
from .utils import file_stem, generate_run_id
from .writer import OutputWriter, allocate_stems, compose_vertical


@dataclass(slots=True, frozen=True)
class _ValidatedRequest:
    input_paths: tuple[Path, ...]
    output_dir: Path
    format: OutputFormat
    scale: float
    quality: int
    page_range: str
    merge: bool


@dataclass(slots=True)
class _BatchContext:
    handle: BatchHandle
    request: _ValidatedRequest
    writer: OutputWriter
    logger: RunLogger
    remaining: int
    lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def emitter(self) -> EventEmitter:
        return self.handle.emitter


class ConversionService:
    def __init__(self, config: AppConfig | None = None, *, adapter: RenderAdapter | None = None) -> None:
        self._config = config or AppConfig()
        self._adapter = adapter or get_adapter()

    @property
    def config(self) -> AppConfig:
        return self._config

    def convert(self, request: ConversionRequest) -> BatchHandle:
        """Start converting a batch and return immediately.

        Raises ``RequestError`` when the request as a whole is unusable; in
        that case no file is queued and no event is emitted. Everything else
        is reported through the handle's events.
        """

        validated = self.validate_request(request)
        writer = OutputWriter(validated.output_dir, validated.format)
        batch_id = generate_run_id("batch")
        stems = [file_stem(path) for path in validated.input_paths]
        jobs = [
            FileJob(
                job_id=generate_run_id("job"),
                source=path,
                filename=stem,
                output_stem=output_stem,
            )
            for path, stem, output_stem in zip(validated.input_paths, stems, allocate_stems(stems))
        ]
        handle = BatchHandle(batch_id, jobs, EventEmitter(batch_id))
        context = _BatchContext(
            handle=handle,
            request=validated,
            writer=writer,
            logger=RunLogger(self._config.log_path),
            remaining=len(jobs),
        )
        for job in jobs:
            handle.emitter.status(job.job_id, job.filename, FileStatus.QUEUED)

        executor = ThreadPoolExecutor(
            max_workers=self._pool_size(len(jobs)),
            thread_name_prefix="pdf-worker",
        )
        try:
            for job in jobs:
                handle.attach(executor.submit(self._run_job, context, job))
        finally:
            executor.shutdown(wait=False)
        return handle

    def convert_sync(self, request: ConversionRequest, timeout: float | None = None) -> BatchResult:
        return self.convert(request).result(timeout)

    def validate_request(self, request: ConversionRequest) -> _ValidatedRequest:
        paths = tuple(Path(path) for path in request.input_paths or ())
        if not paths:
            raise RequestError("No input files were given")
        try:
            output_format = OutputFormat.parse(request.format)
        except ValueError as exc:
            raise RequestError(f"Unsupported output format: {request.format!r}") from exc
        scale = self._validate_scale(request.scale)
        quality = request.quality
        if output_format is OutputFormat.JPG:
            try:
                quality = validate_quality(quality)
            except InvalidQualityError as exc:
                raise RequestError(str(exc)) from exc
        page_range = request.page_range or ""
        if not isinstance(page_range, str):
            raise RequestError(f"Page range must be a string, got {page_range!r}")
        if not request.output_dir:
            raise RequestError("No output directory was given")
        output_dir = Path(request.output_dir)
        try:
            OutputWriter(output_dir, output_format).ensure_directory()
        except WriteError as exc:
            raise RequestError(str(exc)) from exc
        return _ValidatedRequest(
            input_paths=paths,
            output_dir=output_dir,
            format=output_format,
            scale=scale,
            quality=quality if isinstance(quality, int) else 0,
            page_range=page_range,
            merge=bool(request.merge),
        )

    def _validate_scale(self, value: object) -> float:
        if isinstance(value, bool):
            raise RequestError(f"Scale must be a number, got {value!r}")
        try:
            scale = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise RequestError(f"Scale must be a number, got {value!r}") from exc
        if not math.isfinite(scale) or scale <= 0:
            raise RequestError(f"Scale must be a positive number, got {value!r}")
        return scale

    def _pool_size(self, batch_size: int) -> int:
        configured = self._config.runtime.parallelism
        if configured > 0:
            return max(1, min(configured, batch_size))
        return max(1, min(os.cpu_count() or 1, batch_size))

    def _run_job(self, context: _BatchContext, job: FileJob) -> None:
        try:
            self._process(context, job)
        finally:
            self._finish(context)

    def _process(self, context: _BatchContext, job: FileJob) -> None:
        request = context.request
        timings = StageTimings()
        written: list[Path] = []
        try:
            self._ensure_not_cancelled(context, "start")
            open_start = time.perf_counter()
            with self._adapter.open(job.source) as document:
                pages = parse_page_range(request.page_range, document.page_count)
                timings.open_ms = (time.perf_counter() - open_start) * 1000
                job.pages_total = len(pages)
                job.transition(FileStatus.PROCESSING)
                context.emitter.status(job.job_id, job.filename, FileStatus.PROCESSING)

                rendered: list[Image.Image] = []
                for page_number in pages:
                    self._ensure_not_cancelled(context, f"page {page_number}")
                    render_start = time.perf_counter()
                    image = document.render_page(page_number, request.scale)
                    timings.render_ms += (time.perf_counter() - render_start) * 1000
                    if request.merge:
                        rendered.append(image)
                    else:
                        target = context.writer.page_path(job.output_stem, page_number)
                        written.append(self._encode_and_write(context, target, image, timings))
                    job.pages_done += 1
                    context.emitter.progress(job.job_id, job.filename, job.pages_done, job.pages_total)

            if request.merge:
                composite = rendered[0] if len(rendered) == 1 else compose_vertical(rendered)
                target = context.writer.merged_path(job.output_stem)
                written.append(self._encode_and_write(context, target, composite, timings))
        except ConversionError as exc:
            self._fail(context, job, exc.code, str(exc), written, timings)
            return
        except Exception as exc:  # engine or imaging bugs must not abort the batch
            self._fail(context, job, "UNKNOWN", f"Unexpected error: {exc}", written, timings)
            return

        job.output_paths = written
        job.transition(FileStatus.SUCCESS)
        context.emitter.status(
            job.job_id,
            job.filename,
            FileStatus.SUCCESS,
            output_paths=[str(path) for path in written],
        )
        with context.lock:
            context.handle.summary.successes += 1
            context.handle.summary.pages_rendered += job.pages_done
        self._log(context, job, timings)

    def _encode_and_write(
        self, context: _BatchContext, target: Path, image: Image.Image, timings: StageTimings
    ) -> Path:
        request = context.request
        encode_start = time.perf_counter()
        data = encode_image(image, request.format, request.quality)
        timings.encode_ms += (time.perf_counter() - encode_start) * 1000
        write_start = time.perf_counter()
        path = context.writer.write(target, data)
        timings.write_ms += (time.perf_counter() - write_start) * 1000
        return path

    def _fail(
        self,
        context: _BatchContext,
        job: FileJob,
        code: str,
        message: str,
        written: list[Path],
        timings: StageTimings,
    ) -> None:
        job.output_paths = []
        job.error = message
        job.error_code = code
        job.transition(FileStatus.ERROR)
        context.emitter.status(job.job_id, job.filename, FileStatus.ERROR, error=message)
        with context.lock:
            context.handle.summary.failures += 1
            context.handle.summary.record_error(code)
        if written and not self._config.runtime.keep_partials:
            try:
                context.writer.discard(written)
            except OSError as exc:
                context.handle.add_warning(f"Could not remove partial output of {job.source.name}: {exc}")
            else:
                written = []
        self._log(context, job, timings, outputs=written)

    def _ensure_not_cancelled(self, context: _BatchContext, stage: str) -> None:
        if context.handle.cancel_event.is_set():
            raise CanceledError(f"Canceled before {stage}")

    def _log(
        self,
        context: _BatchContext,
        job: FileJob,
        timings: StageTimings,
        *,
        outputs: list[Path] | None = None,
    ) -> None:
        paths = job.output_paths if outputs is None else outputs
        try:
            context.logger.append(
                RunLogEntry(
                    batch_id=context.handle.batch_id,
                    job_id=job.job_id,
                    source=str(job.source),
                    status=job.status.value,
                    error_code=job.error_code,
                    error=job.error,
                    pages=job.pages_done,
                    timings=timings,
                    outputs=[str(path) for path in paths],
                    size_bytes=sum(path.stat().st_size for path in paths if path.exists()),
                )
            )
        except OSError as exc:
            context.handle.add_warning(f"Could not append run log entry for {job.source.name}: {exc}")

    def _finish(self, context: _BatchContext) -> None:
        with context.lock:
            context.remaining -= 1
            last = context.remaining == 0
        if not last:
            return
        try:
            append_summary_row(self._config.summary_path, context.handle.batch_id, context.handle.summary)
        except OSError as exc:
            context.handle.add_warning(f"Could not write batch summary: {exc}")
        finally:
            context.emitter.close()


__all__ = ["ConversionService"]
