"""命令行入口。"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from image_thumbnailer.core.config import JobConfig
from image_thumbnailer.core.exceptions import (
    EngineNotFound,
    EngineNotInvocable,
    InvalidConfigurationError,
    ProcessingAborted,
    SourcePathInvalid,
)
from image_thumbnailer.core.formats import SUPPORTED_FORMATS, resolve_format
from image_thumbnailer.core.progress import ProgressUpdate
from image_thumbnailer.core.report import BatchReporter
from image_thumbnailer.processing.engine import locate_engine
from image_thumbnailer.processing.pipeline import process_batch
from image_thumbnailer.utils.logging import setup_logging

app = typer.Typer(help="批量生成多尺寸缩略图（基于 ImageMagick）。")

EXIT_FATAL = 1
EXIT_INTERRUPTED = 130


def _build_progress_callback(progress: Progress, reporter: BatchReporter):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.report is not None:
            reporter.image_done(update.report)
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("生成缩略图", total=update.total)
        if update.status == "aborted":
            progress.update(task_id, description="已中断")
        else:
            progress.update(task_id, completed=update.completed)
        if update.status == "done":
            progress.update(task_id, description="已完成")
        if update.message:
            progress.log(update.message)

    return callback


def _console_emitter(progress: Progress):
    def emit(line: str) -> None:
        progress.console.print(line, markup=False, highlight=False, soft_wrap=True)

    return emit


def _fail(message: str) -> typer.Exit:
    typer.echo(f"错误：{message}", err=True)
    return typer.Exit(code=EXIT_FATAL)


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: Path = typer.Argument(..., help="源图片目录（递归扫描）"),
    output_format: str = typer.Argument(..., help=f"输出格式：{'/'.join(SUPPORTED_FORMATS)}"),
    engine: Optional[Path] = typer.Option(
        None,
        "--engine",
        "-e",
        envvar="IMAGE_THUMBNAILER_ENGINE",
        help="ImageMagick 可执行文件路径，默认在 PATH 中查找 magick",
    ),
    max_workers: int = typer.Option(4, "--workers", "-w", help="并发线程数量，1 表示逐张顺序处理"),
    timeout: float = typer.Option(300.0, "--timeout", help="单次引擎调用超时（秒），0 表示不限时"),
    retries: int = typer.Option(0, "--retries", help="单个缩略图失败后的重试次数"),
    retry_backoff: float = typer.Option(1.0, "--retry-backoff", help="首次重试等待秒数，之后每次翻倍"),
    report: Optional[Path] = typer.Option(None, "--report", help="将逐项结果写入 CSV 报告"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """扫描源目录并为每张图片生成缩略图。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    job = JobConfig(
        source_dir=source.expanduser(),
        output_format=output_format,
        engine_path=engine,
        max_workers=max_workers,
        timeout=None if timeout == 0 else timeout,
        retries=retries,
        retry_backoff=retry_backoff,
        report_path=report.expanduser().resolve() if report else None,
    )

    try:
        job.validate()
        resolve_format(job.output_format)
        located = locate_engine(job.engine_path, timeout=job.timeout)
    except (InvalidConfigurationError, EngineNotFound, EngineNotInvocable) as exc:
        raise _fail(str(exc)) from exc

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )
    reporter = BatchReporter(_console_emitter(progress))
    cancel_event = threading.Event()

    try:
        with progress:
            summary = process_batch(
                job,
                engine=located,
                progress_callback=_build_progress_callback(progress, reporter),
                cancel_event=cancel_event,
            )
    except SourcePathInvalid as exc:
        raise _fail(str(exc)) from exc
    except (ProcessingAborted, KeyboardInterrupt) as exc:
        cancel_event.set()
        typer.echo("处理已中断。", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED) from exc

    final_reporter = BatchReporter(typer.echo)
    for item in summary.unsupported:
        final_reporter.unsupported(item)
    final_reporter.finish(summary)
    if job.report_path:
        typer.echo(f"报告文件：{job.report_path}")


if __name__ == "__main__":
    app()
