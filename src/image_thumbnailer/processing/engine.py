"""外部图像引擎（ImageMagick）的定位与调用。"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from image_thumbnailer.core.exceptions import EngineNotFound, EngineNotInvocable, InvalidDimensions
from image_thumbnailer.core.models import format_command

LOGGER = logging.getLogger(__name__)

DEFAULT_ENGINE_NAMES = ("magick",)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(slots=True)
class MagickEngine:
    """已验证的引擎可执行文件及其调用方式。

    ``runner`` 与 ``subprocess.run`` 签名一致，测试中可替换。
    """

    executable: Path
    timeout: Optional[float] = None
    runner: Runner = field(default=subprocess.run, repr=False)

    def identify_command(self, path: Path) -> tuple[str, ...]:
        return (str(self.executable), "identify", "-ping", "-format", "%w %h\n", str(path))

    def transform_command(
        self,
        source: Path,
        parameters: Sequence[str],
        destination: Path,
        engine_format: str,
    ) -> tuple[str, ...]:
        return (str(self.executable), str(source), *parameters, f"{engine_format}:{destination}")

    def run(self, command: Sequence[str]) -> "subprocess.CompletedProcess[str]":
        """阻塞执行一次引擎调用，超时抛出 ``subprocess.TimeoutExpired``。"""

        LOGGER.debug("执行命令: %s", format_command(command))
        return self.runner(
            list(command),
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    def query_dimensions(self, path: Path) -> tuple[int, int]:
        """查询图片像素宽高，无法得到有效结果时抛出 InvalidDimensions。"""

        command = self.identify_command(path)
        try:
            proc = self.run(command)
        except subprocess.TimeoutExpired as exc:
            raise InvalidDimensions(f"identify timed out after {exc.timeout}s") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise InvalidDimensions(f"identify could not be run: {exc}") from exc

        if proc.returncode != 0:
            detail = (proc.stderr or "").strip()
            raise InvalidDimensions(f"identify exited with status {proc.returncode}: {detail}")
        return parse_dimensions(proc.stdout)


def parse_dimensions(output: Optional[str]) -> tuple[int, int]:
    """解析 ``"<宽> <高>"``；多帧图片只取第一行。"""

    lines = (output or "").strip().splitlines()
    if not lines:
        raise InvalidDimensions("engine returned no dimensions")

    parts = lines[0].split()
    if len(parts) != 2:
        raise InvalidDimensions(f"unexpected dimension output: {lines[0]!r}")
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        raise InvalidDimensions(f"non-numeric dimension output: {lines[0]!r}") from None

    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"invalid dimensions: {width}x{height}")
    return width, height


def _is_invocable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def locate_engine(
    explicit: Optional[Path] = None,
    *,
    timeout: Optional[float] = None,
    runner: Optional[Runner] = None,
) -> MagickEngine:
    """解析引擎路径：优先使用显式路径，否则在 PATH 中查找默认名称。"""

    runner = runner or subprocess.run
    if explicit is not None:
        candidate = Path(explicit).expanduser()
        if not candidate.exists() and candidate.parent == Path("."):
            found = shutil.which(str(candidate))
            if found:
                candidate = Path(found)
        if not candidate.exists():
            raise EngineNotInvocable(f"指定的引擎不存在: {explicit}")
        if not _is_invocable(candidate):
            raise EngineNotInvocable(f"指定的引擎不可执行: {explicit}")
        resolved = candidate.resolve()
        LOGGER.info("使用指定的引擎: %s", resolved)
        return MagickEngine(executable=resolved, timeout=timeout, runner=runner)

    for name in DEFAULT_ENGINE_NAMES:
        found = shutil.which(name)
        if found:
            resolved = Path(found).resolve()
            LOGGER.info("在 PATH 中找到引擎: %s", resolved)
            return MagickEngine(executable=resolved, timeout=timeout, runner=runner)

    raise EngineNotFound(
        f"未找到图像引擎（{', '.join(DEFAULT_ENGINE_NAMES)}），请安装 ImageMagick 或通过 --engine 指定路径"
    )
