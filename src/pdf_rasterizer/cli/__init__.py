from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from ..config import AppConfig, load_config
from ..core import ConversionService
from ..errors import RequestError
from ..jobs import BatchHandle
from ..models import ConversionRequest, FileStatus
from ..platform import open_folder as launch_folder
from ..utils import generate_run_id, iter_files

console = Console()

app = typer.Typer(help="Convert PDF pages to JPG/PNG images locally")

_STATUS_STYLES = {
    FileStatus.QUEUED: "dim",
    FileStatus.PROCESSING: "cyan",
    FileStatus.SUCCESS: "green",
    FileStatus.ERROR: "red",
}


def _load_config(path: Path | None) -> AppConfig:
    return load_config(path)


def _render_table(handle: BatchHandle) -> Table:
    table = Table(title=f"Batch {handle.batch_id}")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Progress")
    for job in handle.jobs:
        style = _STATUS_STYLES[job.status]
        if job.status is FileStatus.PROCESSING:
            progress = f"{job.pages_done} / {job.pages_total}"
        elif job.status is FileStatus.SUCCESS:
            progress = "Done"
        elif job.status is FileStatus.ERROR:
            progress = job.error or "Failed"
        else:
            progress = "-"
        table.add_row(job.source.name, f"[{style}]{job.status.value.upper()}[/{style}]", progress)
    return table


@app.command()
def convert(
    inputs: list[Path] = typer.Argument(..., help="PDF files or directories containing PDFs"),
    output_dir: Path = typer.Option(..., "--out", "-o", help="Directory for the rendered images"),
    format: str | None = typer.Option(None, "--format", "-f", help="jpg or png"),
    scale: float | None = typer.Option(None, "--scale", "-s", help="Render scale, 1.0 = 72 dpi"),
    quality: int | None = typer.Option(None, "--quality", "-q", help="JPG quality 0-100"),
    pages: str | None = typer.Option(None, "--pages", "-p", help='Page selection such as "1-3,5"'),
    merge: bool | None = typer.Option(None, "--merge/--no-merge", help="Stack each document's pages into one image"),
    parallel: int | None = typer.Option(None, "--parallel", min=1, help="Parallel workers"),
    open_after: bool = typer.Option(False, "--open", help="Open the output folder when done"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    if parallel is not None:
        cfg.runtime.parallelism = parallel
    defaults = cfg.defaults
    request = ConversionRequest(
        input_paths=list(iter_files(inputs)),
        output_dir=output_dir,
        format=format if format is not None else defaults.format,
        scale=scale if scale is not None else defaults.scale,
        quality=quality if quality is not None else defaults.quality,
        page_range=pages if pages is not None else defaults.page_range,
        merge=merge if merge is not None else defaults.merge,
    )
    service = ConversionService(cfg)
    try:
        handle = service.convert(request)
    except RequestError as exc:
        console.print(f"[red]Invalid request[/red]: {exc}")
        raise typer.Exit(2) from exc

    with Live(_render_table(handle), console=console, refresh_per_second=8) as live:
        for _event in handle.events():
            live.update(_render_table(handle))

    result = handle.result()
    summary = result.summary
    console.print(
        f"Processed {summary.total} files: "
        f"{summary.successes} succeeded, {summary.failures} failed, {summary.pages_rendered} pages rendered."
    )
    for warning in result.warnings:
        console.print(f"[yellow]Warning[/yellow]: {warning}")
    if open_after and result.succeeded:
        launch_folder(output_dir)
    if result.failed:
        raise typer.Exit(1)


@app.command("open-folder")
def open_folder(path: Path) -> None:
    try:
        launch_folder(path)
    except OSError as exc:
        console.print(f"[red]Cannot open folder[/red]: {exc}")
        raise typer.Exit(1) from exc


@app.command()
def new_batch_id() -> None:
    console.print(generate_run_id("batch"))


if __name__ == "__main__":
    app()
