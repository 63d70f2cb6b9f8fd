"""单个缩略图转换任务的执行单元。"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import Optional, Union

from image_thumbnailer.core.formats import build_parameters
from image_thumbnailer.core.models import (
    ConversionFailure,
    ConversionJob,
    ConversionResult,
    ConversionSuccess,
    FailureKind,
)
from image_thumbnailer.core.output_manager import ensure_directory
from image_thumbnailer.processing.engine import MagickEngine

LOGGER = logging.getLogger(__name__)


def build_command(job: ConversionJob, engine: MagickEngine) -> tuple[str, ...]:
    """为当前任务生成完整命令行，每个任务单独计算。"""

    parameters = build_parameters(job.profile, job.target_size)
    return engine.transform_command(job.source.source_path, parameters, job.dest_path, job.profile.engine_format)


def run_job(
    job: ConversionJob,
    engine: MagickEngine,
    *,
    retries: int = 0,
    retry_backoff: float = 0.0,
    cancel_event: Optional[threading.Event] = None,
) -> ConversionResult:
    """执行一次转换；任何失败都以 ConversionFailure 返回，不向外抛出。"""

    command = build_command(job, engine)

    if _cancelled(cancel_event):
        return _failure(job, command, FailureKind.CANCELLED, "cancelled before start")

    result = _attempt(job, engine, command)
    attempt = 0
    while isinstance(result, ConversionFailure) and attempt < retries and not _cancelled(cancel_event):
        delay = retry_backoff * (2**attempt)
        attempt += 1
        LOGGER.warning(
            "%s [%dpx] 失败（%s），%.1f 秒后第 %d 次重试",
            job.source.source_path.name,
            job.target_size,
            result.kind.value,
            delay,
            attempt,
        )
        if delay > 0:
            time.sleep(delay)
        result = _attempt(job, engine, command)

    if isinstance(result, ConversionFailure):
        LOGGER.warning(
            "%s [%dpx] 转换失败：%s", job.source.source_path.name, job.target_size, result.message
        )
    return result


def _attempt(job: ConversionJob, engine: MagickEngine, command: tuple[str, ...]) -> ConversionResult:
    try:
        ensure_directory(job.dest_path.parent)
        proc = engine.run(command)
    except subprocess.TimeoutExpired as exc:
        return _failure(
            job,
            command,
            FailureKind.ENGINE_TIMEOUT,
            f"engine did not finish within {exc.timeout}s",
            _text(exc.stderr),
        )
    except Exception as exc:  # noqa: BLE001
        return _failure(job, command, FailureKind.INVOCATION_ERROR, str(exc) or type(exc).__name__)

    if proc.returncode != 0:
        return _failure(
            job,
            command,
            FailureKind.ENGINE_NON_ZERO_EXIT,
            f"engine exited with status {proc.returncode}",
            _text(proc.stderr),
        )
    if not job.dest_path.exists():
        return _failure(
            job,
            command,
            FailureKind.OUTPUT_NOT_CREATED,
            f"engine reported success but {job.dest_path} was not created",
            _text(proc.stderr),
        )

    return ConversionSuccess(target_size=job.target_size, output_path=job.dest_path, command=command)


def _failure(
    job: ConversionJob,
    command: tuple[str, ...],
    kind: FailureKind,
    message: str,
    diagnostics: str = "",
) -> ConversionFailure:
    return ConversionFailure(
        target_size=job.target_size,
        kind=kind,
        message=message,
        command=command,
        diagnostics=diagnostics,
    )


def _text(stream: Union[str, bytes, None]) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()
