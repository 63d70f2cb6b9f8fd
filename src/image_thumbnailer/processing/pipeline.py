"""处理流水线：扫描、尺寸规划、并发执行转换与结果汇总。"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Optional

from image_thumbnailer.core.config import JobConfig
from image_thumbnailer.core.exceptions import InvalidDimensions, ProcessingAborted
from image_thumbnailer.core.formats import resolve_format
from image_thumbnailer.core.models import (
    BatchSummary,
    ConversionFailure,
    ConversionJob,
    FailureKind,
    FormatProfile,
    ImageReport,
    SourceImage,
    UnsupportedFile,
)
from image_thumbnailer.core.output_manager import build_output_path
from image_thumbnailer.core.planner import plan_sizes
from image_thumbnailer.core.progress import ProgressUpdate
from image_thumbnailer.core.report import try_write_csv_report
from image_thumbnailer.core.scanner import collect_source_images
from image_thumbnailer.processing.engine import MagickEngine, locate_engine
from image_thumbnailer.processing.worker import build_command, run_job

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def process_batch(
    config: JobConfig,
    engine: Optional[MagickEngine] = None,
    progress_callback: ProgressCallback = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchSummary:
    """批量处理入口：扫描、规划尺寸、执行转换并返回汇总。

    引擎、源目录与配置问题直接抛出异常；单张图片或单个尺寸的失败只记录在
    报告中，不会中断整批任务。
    """

    config.validate()
    profile = resolve_format(config.output_format)
    if engine is None:
        engine = locate_engine(config.engine_path, timeout=config.timeout)

    started = time.perf_counter()
    LOGGER.info("开始扫描输入路径: %s", config.source_dir)
    discovery = collect_source_images(config.source_dir, config.target_sizes, config.legacy_extensions)
    sources = discovery.images
    total = len(sources)

    if total == 0:
        _emit_progress(progress_callback, completed=0, total=0, message="没有需要处理的图片")
        return _finish(config, [], discovery.unsupported, started)

    _emit_progress(progress_callback, 0, total, f"开始生成 {profile.extension} 缩略图")

    try:
        if config.max_workers <= 1:
            reports = _run_sequential(sources, profile, engine, config, progress_callback, cancel_event)
        else:
            reports = _run_parallel(sources, profile, engine, config, progress_callback, cancel_event)
    except ProcessingAborted:
        _emit_progress(progress_callback, 0, total, "处理被中断", status="aborted")
        raise

    return _finish(config, reports, discovery.unsupported, started)


def _prepare_image(
    source: SourceImage,
    profile: FormatProfile,
    engine: MagickEngine,
    config: JobConfig,
) -> tuple[ImageReport, list[ConversionJob]]:
    """查询尺寸（每张图只查一次）并生成该图的转换任务列表。"""

    report = ImageReport(source=source)
    if source.dimensions is None:
        try:
            source.width, source.height = engine.query_dimensions(source.source_path)
        except InvalidDimensions as exc:
            LOGGER.warning("无法获取尺寸：%s (%s)", source.source_path, exc)
            report.error = f"InvalidDimensions: {exc}"
            return report, []

    assert source.width is not None and source.height is not None
    sizes = plan_sizes(source.width, source.height, config.target_sizes)
    jobs = [
        ConversionJob(
            source=source,
            target_size=size,
            profile=profile,
            dest_path=build_output_path(source, profile, size),
        )
        for size in sizes
    ]
    LOGGER.debug("%s (%s) 计划生成尺寸: %s", source.source_path.name, source.describe_dimensions(), sizes)
    return report, jobs


def _run_sequential(
    sources: list[SourceImage],
    profile: FormatProfile,
    engine: MagickEngine,
    config: JobConfig,
    progress_callback: ProgressCallback,
    cancel_event: Optional[threading.Event],
) -> list[ImageReport]:
    reports: list[ImageReport] = []
    total = len(sources)

    for source in sources:
        _raise_if_cancelled(cancel_event)
        report, jobs = _prepare_image(source, profile, engine, config)
        for job in jobs:
            _raise_if_cancelled(cancel_event)
            report.results.append(
                run_job(job, engine, retries=config.retries, retry_backoff=config.retry_backoff)
            )
        reports.append(report)
        _emit_progress(progress_callback, len(reports), total, report=report)

    return reports


def _run_parallel(
    sources: list[SourceImage],
    profile: FormatProfile,
    engine: MagickEngine,
    config: JobConfig,
    progress_callback: ProgressCallback,
    cancel_event: Optional[threading.Event],
) -> list[ImageReport]:
    """线程池版本：先并发查询尺寸，再并发执行全部转换任务。

    结果只在调用线程中汇总，某张图的全部任务结束后才输出其报告。
    """

    total = len(sources)
    cancel_event = cancel_event or threading.Event()
    completed = 0

    with ThreadPoolExecutor(max_workers=config.max_workers, thread_name_prefix="thumbnail") as executor:
        future_map: dict[Future, tuple[ImageReport, ConversionJob]] = {}
        try:
            prepared = list(executor.map(lambda s: _prepare_image(s, profile, engine, config), sources))
            pending: dict[int, int] = {}

            for report, jobs in prepared:
                if not jobs:
                    completed += 1
                    _emit_progress(progress_callback, completed, total, report=report)
                    continue
                pending[id(report)] = len(jobs)
                for job in jobs:
                    future = executor.submit(
                        run_job,
                        job,
                        engine,
                        retries=config.retries,
                        retry_backoff=config.retry_backoff,
                        cancel_event=cancel_event,
                    )
                    future_map[future] = (report, job)

            for future in as_completed(future_map):
                report, job = future_map[future]
                try:
                    result = future.result()
                except Exception as exc:  # noqa: BLE001
                    LOGGER.exception("任务执行异常：%s", exc)
                    result = ConversionFailure(
                        target_size=job.target_size,
                        kind=FailureKind.INVOCATION_ERROR,
                        message=str(exc),
                        command=build_command(job, engine),
                    )
                report.results.append(result)

                pending[id(report)] -= 1
                if pending[id(report)] == 0:
                    report.results.sort(key=lambda r: r.target_size, reverse=True)
                    completed += 1
                    _emit_progress(progress_callback, completed, total, report=report)

                _raise_if_cancelled(cancel_event)
        except (KeyboardInterrupt, ProcessingAborted):
            cancel_event.set()
            for pending_future in future_map:
                pending_future.cancel()
            LOGGER.warning("任务被中断，未开始的转换已取消")
            raise ProcessingAborted("处理被中断") from None

    return [report for report, _ in prepared]


def _raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ProcessingAborted("处理被取消")


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    message: Optional[str] = None,
    report: Optional[ImageReport] = None,
    status: Optional[str] = None,
) -> None:
    if not callback:
        return
    if status is None:
        status = "done" if completed >= total else "running"
    callback(
        ProgressUpdate(total=total, completed=completed, message=message, status=status, report=report)
    )


def _finish(
    config: JobConfig,
    reports: list[ImageReport],
    unsupported: list[UnsupportedFile],
    started: float,
) -> BatchSummary:
    summary = BatchSummary(reports=reports, unsupported=unsupported, elapsed=time.perf_counter() - started)
    try_write_csv_report(summary, config.report_path)
    LOGGER.info(
        "处理完成：%d 张图片，生成 %d 个缩略图，失败 %d 个，用时 %.2f 秒",
        summary.total_images,
        summary.total_thumbnails,
        summary.failed_thumbnails,
        summary.elapsed,
    )
    return summary
