"""报告生成工具：逐图状态输出、汇总与 CSV 报告。"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from image_thumbnailer.core.models import (
    BatchSummary,
    ConversionFailure,
    ConversionSuccess,
    ImageReport,
    ImageStatus,
    UnsupportedFile,
)

LOGGER = logging.getLogger(__name__)

HEADER = ["source_path", "target_size", "status", "output_path", "message", "command"]

Emitter = Callable[[str], None]


def format_image_report(report: ImageReport) -> list[str]:
    """把单张图片的结果格式化成若干行文本。"""

    name = str(report.source.source_path)
    status = report.status

    if status is ImageStatus.DONE:
        return [f"{name}: DONE — created {report.created} thumbnails"]
    if status is ImageStatus.SKIPPED:
        return [f"{name}: SKIPPED — no thumbnails needed ({report.source.describe_dimensions()})"]

    lines = [f"{name}: FAILED"]
    if report.error is not None:
        lines.append(f"    error: {report.error}")
    for failure in report.failures:
        lines.append(f"    [{failure.target_size}px] {failure.kind.value}: {failure.message}")
        lines.append(f"        command: {failure.command_line}")
        if failure.diagnostics:
            for diag_line in failure.diagnostics.strip().splitlines():
                lines.append(f"        | {diag_line}")
    if report.created:
        lines.append(f"    created {report.created} of {len(report.results)} thumbnails")
    lines.append(f"    original dimensions: {report.source.describe_dimensions()}")
    return lines


def format_unsupported(item: UnsupportedFile) -> str:
    return f"{item.source_path}: UNSUPPORTED — {item.reason}"


def format_summary(summary: BatchSummary) -> list[str]:
    if summary.total_images == 0 and not summary.unsupported:
        return ["Nothing to do: no source images found.", f"Elapsed: {summary.elapsed:.2f}s"]

    return [
        f"Elapsed: {summary.elapsed:.2f}s",
        f"Images found: {summary.total_images}"
        f" (done {summary.count(ImageStatus.DONE)},"
        f" skipped {summary.count(ImageStatus.SKIPPED)},"
        f" failed {summary.count(ImageStatus.FAILED)},"
        f" unsupported {len(summary.unsupported)})",
        f"Thumbnails created: {summary.total_thumbnails}",
        f"Thumbnails failed: {summary.failed_thumbnails}",
    ]


class BatchReporter:
    """将结果逐条输出到控制台；只做汇总与展示，不抛出异常。"""

    def __init__(self, emit: Emitter) -> None:
        self._emit = emit

    def image_done(self, report: ImageReport) -> None:
        self._write(format_image_report(report))

    def unsupported(self, item: UnsupportedFile) -> None:
        self._write([format_unsupported(item)])

    def finish(self, summary: BatchSummary) -> None:
        self._write(format_summary(summary))

    def _write(self, lines: Iterable[str]) -> None:
        for line in lines:
            try:
                self._emit(line)
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("输出报告失败：%s", exc)
                return


def _rows(summary: BatchSummary) -> Iterator[list[str]]:
    for report in summary.reports:
        source = str(report.source.source_path)
        if report.error is not None:
            yield [source, "", "error-image", "", report.error, ""]
        elif not report.results:
            yield [source, "", "skipped", "", report.source.describe_dimensions(), ""]
        for result in report.results:
            if isinstance(result, ConversionSuccess):
                yield [source, str(result.target_size), "created", str(result.output_path), "", ""]
            elif isinstance(result, ConversionFailure):
                yield [
                    source,
                    str(result.target_size),
                    result.kind.value,
                    "",
                    result.message,
                    result.command_line,
                ]
    for item in summary.unsupported:
        yield [str(item.source_path), "", "unsupported", "", item.reason, ""]


def write_csv_report(summary: BatchSummary, report_path: Path) -> Path:
    """将处理结果写入 CSV 报告。"""

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        writer.writerows(_rows(summary))
    return report_path


def try_write_csv_report(summary: BatchSummary, report_path: Optional[Path]) -> Optional[Path]:
    if report_path is None:
        return None
    try:
        return write_csv_report(summary, report_path)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
        return None
