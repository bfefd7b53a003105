import json
import threading
from pathlib import Path

import pytest
from PIL import Image

from helpers import FakeAdapter, build_config, events_by_job, make_pdf, status_path
from pdf_rasterizer.adapters import PdfiumAdapter
from pdf_rasterizer.core import ConversionService
from pdf_rasterizer.errors import RequestError
from pdf_rasterizer.events import ProgressEvent, StatusEvent
from pdf_rasterizer.models import ConversionRequest, FileStatus
from pdf_rasterizer.writer import OutputWriter

VALID_PATHS = (
    ["queued", "processing", "success"],
    ["queued", "processing", "error"],
    ["queued", "error"],
)


def _request(tmp_path: Path, inputs: list[Path], **overrides) -> ConversionRequest:
    values = dict(input_paths=inputs, output_dir=tmp_path / "out", format="png", scale=1.0, quality=90)
    values.update(overrides)
    return ConversionRequest(**values)


def test_two_file_batch_with_corrupted_document(tmp_path: Path) -> None:
    good = make_pdf(tmp_path / "good.pdf", [(120, 80)] * 5)
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"%PDF-1.7 this is not really a pdf")
    service = ConversionService(build_config(tmp_path))

    handle = service.convert(_request(tmp_path, [good, broken], scale=2.0, page_range=""))
    events = list(handle.events(timeout=30))
    result = handle.result(timeout=30)

    out = tmp_path / "out"
    assert sorted(p.name for p in out.iterdir()) == [f"good_{n:03d}.png" for n in range(1, 6)]
    grouped = events_by_job(events)
    good_job, broken_job = handle.jobs
    assert status_path(grouped[good_job.job_id]) == ["queued", "processing", "success"]
    assert status_path(grouped[broken_job.job_id]) == ["queued", "error"]
    assert not any(isinstance(e, ProgressEvent) for e in grouped[broken_job.job_id])
    assert grouped[broken_job.job_id][-1].error
    assert result.summary.successes == 1
    assert result.summary.failures == 1
    assert result.failed[0].error_code == "OPEN_FAILED"


def test_real_merge_height_equals_sum_of_pages(tmp_path: Path) -> None:
    pdf = make_pdf(tmp_path / "stack.pdf", [(100, 50), (120, 70), (90, 40)])
    adapter = PdfiumAdapter()
    with adapter.open(pdf) as document:
        pages = [document.render_page(n, 2.0) for n in (1, 2, 3)]
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    result = service.convert_sync(_request(tmp_path, [pdf], scale=2.0, merge=True), timeout=30)

    out = tmp_path / "out"
    assert [p.name for p in out.iterdir()] == ["stack.png"]
    with Image.open(out / "stack.png") as merged:
        assert merged.height == sum(page.height for page in pages)
        assert merged.width == max(page.width for page in pages)
    assert result.files[0].output_paths == [out / "stack.png"]


def test_merge_off_writes_one_file_per_page(tmp_path: Path) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10)] * 3})
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    result = service.convert_sync(_request(tmp_path, [tmp_path / "doc.pdf"], format="jpg"), timeout=10)

    names = sorted(p.name for p in (tmp_path / "out").iterdir())
    assert names == ["doc_001.jpg", "doc_002.jpg", "doc_003.jpg"]
    assert [p.name for p in result.files[0].output_paths] == names


def test_merge_on_with_fake_pages(tmp_path: Path) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10), (20, 5), (15, 7)]})
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    service.convert_sync(_request(tmp_path, [tmp_path / "doc.pdf"], merge=True, scale=2.0), timeout=10)

    with Image.open(tmp_path / "out" / "doc.png") as merged:
        assert merged.size == (40, 44)


def test_page_selection_drives_names_and_progress(tmp_path: Path) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10)] * 9})
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    handle = service.convert(_request(tmp_path, [tmp_path / "doc.pdf"], page_range="2-3,8"))
    events = list(handle.events(timeout=10))

    progress = [(e.current, e.total) for e in events if isinstance(e, ProgressEvent)]
    assert progress == [(1, 3), (2, 3), (3, 3)]
    names = sorted(p.name for p in (tmp_path / "out").iterdir())
    assert names == ["doc_002.png", "doc_003.png", "doc_008.png"]
    final = events[-1]
    assert isinstance(final, StatusEvent) and final.status is FileStatus.SUCCESS
    assert final.output_paths == [str(tmp_path / "out" / name) for name in names]


def test_invalid_range_fails_before_processing(tmp_path: Path) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10)] * 2})
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    handle = service.convert(_request(tmp_path, [tmp_path / "doc.pdf"], page_range="5-9"))
    events = list(handle.events(timeout=10))

    assert status_path(events) == ["queued", "error"]
    assert handle.jobs[0].error_code == "INVALID_RANGE"
    assert adapter.closed == ["doc.pdf"]


def test_render_failure_is_isolated(tmp_path: Path) -> None:
    adapter = FakeAdapter({"a.pdf": [(10, 10)] * 3, "b.pdf": [(10, 10)]}, fail_pages=[2])
    service = ConversionService(build_config(tmp_path, parallelism=2), adapter=adapter)

    handle = service.convert(_request(tmp_path, [tmp_path / "a.pdf", tmp_path / "b.pdf"]))
    grouped = events_by_job(list(handle.events(timeout=10)))
    job_a, job_b = handle.jobs

    assert status_path(grouped[job_a.job_id]) == ["queued", "processing", "error"]
    assert status_path(grouped[job_b.job_id]) == ["queued", "processing", "success"]
    assert job_a.error_code == "RENDER_FAILED"
    assert sorted(adapter.closed) == ["a.pdf", "b.pdf"]
    # partial outputs are kept by default
    assert (tmp_path / "out" / "a_001.png").exists()


def test_partials_removed_when_disabled(tmp_path: Path) -> None:
    adapter = FakeAdapter({"a.pdf": [(10, 10)] * 3}, fail_pages=[3])
    service = ConversionService(build_config(tmp_path, keep_partials=False), adapter=adapter)

    service.convert_sync(_request(tmp_path, [tmp_path / "a.pdf"]), timeout=10)

    assert list((tmp_path / "out").iterdir()) == []


def test_event_ordering_per_job(tmp_path: Path) -> None:
    documents = {f"doc{i}.pdf": [(5, 5)] * (i + 1) for i in range(6)}
    adapter = FakeAdapter(documents, fail_pages=[4])
    inputs = [tmp_path / name for name in documents] + [tmp_path / "missing.pdf"]
    service = ConversionService(build_config(tmp_path, parallelism=3), adapter=adapter)

    handle = service.convert(_request(tmp_path, inputs))
    grouped = events_by_job(list(handle.events(timeout=10)))

    assert len(grouped) == len(inputs)
    for job in handle.jobs:
        events = grouped[job.job_id]
        assert status_path(events) in VALID_PATHS
        assert isinstance(events[-1], StatusEvent) and events[-1].status.is_terminal
        progress = [e for e in events if isinstance(e, ProgressEvent)]
        if progress:
            first_progress = events.index(progress[0])
            assert any(
                isinstance(e, StatusEvent) and e.status is FileStatus.PROCESSING for e in events[:first_progress]
            )
            currents = [e.current for e in progress]
            assert currents == sorted(currents)
        if events[-1].status is FileStatus.SUCCESS:
            assert progress[-1].current == progress[-1].total == job.pages_total


def test_duplicate_stems_get_distinct_jobs_and_outputs(tmp_path: Path) -> None:
    first_dir = tmp_path / "one"
    second_dir = tmp_path / "two"
    first_dir.mkdir()
    second_dir.mkdir()
    adapter = FakeAdapter({"report.pdf": [(10, 10)]})
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    handle = service.convert(_request(tmp_path, [first_dir / "report.pdf", second_dir / "report.pdf"]))
    handle.wait(10)

    assert handle.jobs[0].job_id != handle.jobs[1].job_id
    assert {job.filename for job in handle.jobs} == {"report"}
    names = sorted(p.name for p in (tmp_path / "out").iterdir())
    assert names == ["report-2_001.png", "report_001.png"]


def test_cancel_stops_remaining_work(tmp_path: Path) -> None:
    gate = threading.Event()
    adapter = FakeAdapter({"a.pdf": [(10, 10)] * 3, "b.pdf": [(10, 10)] * 3}, gate=gate)
    service = ConversionService(build_config(tmp_path, parallelism=1), adapter=adapter)

    handle = service.convert(_request(tmp_path, [tmp_path / "a.pdf", tmp_path / "b.pdf"]))
    assert handle.cancel()
    gate.set()
    result = handle.result(timeout=10)

    assert not result.succeeded
    assert all(item.error_code == "CANCELED" for item in result.failed)
    assert handle.cancel() is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"input_paths": []},
        {"format": "gif"},
        {"scale": 0},
        {"scale": -1.5},
        {"scale": float("nan")},
        {"format": "jpg", "quality": 150},
    ],
)
def test_request_errors_are_raised_synchronously(tmp_path: Path, overrides) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10)]})
    service = ConversionService(build_config(tmp_path), adapter=adapter)
    values = dict(overrides)
    inputs = values.pop("input_paths", [tmp_path / "doc.pdf"])

    with pytest.raises(RequestError):
        service.convert(_request(tmp_path, inputs, **values))
    assert adapter.opened == []


def test_unusable_output_directory_is_a_request_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    service = ConversionService(build_config(tmp_path), adapter=FakeAdapter({}))

    with pytest.raises(RequestError):
        service.convert(_request(tmp_path, [tmp_path / "doc.pdf"], output_dir=blocker))


def test_png_accepts_any_quality(tmp_path: Path) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10)]})
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    result = service.convert_sync(_request(tmp_path, [tmp_path / "doc.pdf"], quality=150), timeout=10)

    assert result.summary.successes == 1


def test_run_log_and_summary_are_written(tmp_path: Path) -> None:
    adapter = FakeAdapter({"doc.pdf": [(10, 10)] * 2})
    config = build_config(tmp_path)
    service = ConversionService(config, adapter=adapter)

    result = service.convert_sync(_request(tmp_path, [tmp_path / "doc.pdf", tmp_path / "nope.pdf"]), timeout=10)

    lines = config.log_path.read_text(encoding="utf-8").splitlines()
    entries = sorted((json.loads(line) for line in lines), key=lambda entry: entry["status"])
    assert [entry["status"] for entry in entries] == ["error", "success"]
    assert entries[0]["error_code"] == "OPEN_FAILED"
    assert entries[1]["pages"] == 2
    summary_rows = config.summary_path.read_text(encoding="utf-8").splitlines()
    assert summary_rows[0].startswith("batch_id,")
    assert summary_rows[1].startswith(result.batch_id)


def test_cleanup_failure_still_reports_error(tmp_path: Path, monkeypatch) -> None:
    def refuse(self, paths) -> None:
        raise OSError("device busy")

    monkeypatch.setattr(OutputWriter, "discard", refuse)
    adapter = FakeAdapter({"a.pdf": [(10, 10)] * 3}, fail_pages=[3])
    service = ConversionService(build_config(tmp_path, keep_partials=False), adapter=adapter)

    handle = service.convert(_request(tmp_path, [tmp_path / "a.pdf"]))
    events = list(handle.events(timeout=10))
    result = handle.result(timeout=10)

    assert status_path(events) == ["queued", "processing", "error"]
    assert handle.jobs[0].status is FileStatus.ERROR
    assert handle.jobs[0].error_code == "RENDER_FAILED"
    assert any("device busy" in warning for warning in result.warnings)


def test_failing_listener_does_not_change_results(tmp_path: Path) -> None:
    gate = threading.Event()
    adapter = FakeAdapter({"doc.pdf": [(10, 10)] * 2}, gate=gate)
    service = ConversionService(build_config(tmp_path), adapter=adapter)

    def broken_listener(event) -> None:
        if isinstance(event, ProgressEvent):
            raise ValueError("ui bug")

    handle = service.convert(_request(tmp_path, [tmp_path / "doc.pdf"]))
    handle.add_listener(broken_listener)
    gate.set()
    events = list(handle.events(timeout=10))
    result = handle.result(timeout=10)

    assert status_path(events) == ["queued", "processing", "success"]
    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["doc_001.png", "doc_002.png"]
    assert any("ui bug" in warning for warning in result.warnings)


def test_write_failure_is_isolated(tmp_path: Path) -> None:
    out = tmp_path / "out"
    (out / "a_001.png").mkdir(parents=True)
    adapter = FakeAdapter({"a.pdf": [(10, 10)], "b.pdf": [(10, 10)]})
    service = ConversionService(build_config(tmp_path, parallelism=2), adapter=adapter)

    handle = service.convert(_request(tmp_path, [tmp_path / "a.pdf", tmp_path / "b.pdf"]))
    grouped = events_by_job(list(handle.events(timeout=10)))
    job_a, job_b = handle.jobs

    assert status_path(grouped[job_a.job_id]) == ["queued", "processing", "error"]
    assert job_a.error_code == "WRITE_FAILED"
    assert status_path(grouped[job_b.job_id]) == ["queued", "processing", "success"]
    assert (out / "b_001.png").is_file()


def test_unwritable_run_log_is_reported_as_warning(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    config = build_config(tmp_path)
    config.runtime.log_dir = blocker
    service = ConversionService(config, adapter=FakeAdapter({"doc.pdf": [(10, 10)]}))

    result = service.convert_sync(_request(tmp_path, [tmp_path / "doc.pdf"]), timeout=10)

    assert result.summary.successes == 1
    assert any("run log" in warning for warning in result.warnings)
    assert any("batch summary" in warning for warning in result.warnings)
