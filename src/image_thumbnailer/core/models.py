"""核心数据模型定义。"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union


@dataclass(slots=True)
class SourceImage:
    """扫描阶段得到的源图片信息，尺寸由引擎按需查询一次后缓存。"""

    source_path: Path
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def base_name(self) -> str:
        return self.source_path.stem

    @property
    def directory(self) -> Path:
        return self.source_path.parent

    @property
    def dimensions(self) -> Optional[tuple[int, int]]:
        if self.width is None or self.height is None:
            return None
        return self.width, self.height

    def describe_dimensions(self) -> str:
        dims = self.dimensions
        if dims is None:
            return "unknown"
        return f"{dims[0]}x{dims[1]}"


@dataclass(slots=True)
class UnsupportedFile:
    """被扫描到但不会转换的遗留格式文件。"""

    source_path: Path
    reason: str


@dataclass(slots=True)
class DiscoveryResult:
    """扫描结果：待处理图片与不支持的文件。"""

    images: list[SourceImage]
    unsupported: list[UnsupportedFile] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FormatProfile:
    """输出格式描述：扩展名、引擎格式标识与专属参数。"""

    token: str
    extension: str
    engine_format: str
    parameters: tuple[str, ...]

    @property
    def directory_name(self) -> str:
        return self.extension.upper()


@dataclass(frozen=True, slots=True)
class ConversionJob:
    """单次引擎调用：一张源图、一个目标尺寸、一个输出格式。"""

    source: SourceImage
    target_size: int
    profile: FormatProfile
    dest_path: Path


class FailureKind(str, Enum):
    """单个缩略图失败的分类。"""

    ENGINE_NON_ZERO_EXIT = "engine-non-zero-exit"
    OUTPUT_NOT_CREATED = "output-not-created"
    INVOCATION_ERROR = "invocation-error"
    ENGINE_TIMEOUT = "engine-timeout"
    CANCELLED = "cancelled"


def format_command(command: Sequence[str]) -> str:
    """把参数列表还原成可直接复制执行的命令行。"""

    return shlex.join(command)


@dataclass(frozen=True, slots=True)
class ConversionSuccess:
    target_size: int
    output_path: Path
    command: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ConversionFailure:
    target_size: int
    kind: FailureKind
    message: str
    command: tuple[str, ...]
    diagnostics: str = ""

    @property
    def command_line(self) -> str:
        return format_command(self.command)


ConversionResult = Union[ConversionSuccess, ConversionFailure]


class ImageStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class ImageReport:
    """单张源图的处理汇总。"""

    source: SourceImage
    results: list[ConversionResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def created(self) -> int:
        return sum(1 for result in self.results if isinstance(result, ConversionSuccess))

    @property
    def failures(self) -> list[ConversionFailure]:
        return [result for result in self.results if isinstance(result, ConversionFailure)]

    @property
    def status(self) -> ImageStatus:
        if self.error is not None or self.failures:
            return ImageStatus.FAILED
        if not self.results:
            return ImageStatus.SKIPPED
        return ImageStatus.DONE


@dataclass(slots=True)
class BatchSummary:
    """整批任务的汇总，在报告阶段由各 ImageReport 合并得到。"""

    reports: list[ImageReport]
    unsupported: list[UnsupportedFile]
    elapsed: float

    @property
    def total_images(self) -> int:
        return len(self.reports)

    @property
    def total_thumbnails(self) -> int:
        return sum(report.created for report in self.reports)

    @property
    def failed_thumbnails(self) -> int:
        return sum(len(report.failures) for report in self.reports)

    def count(self, status: ImageStatus) -> int:
        return sum(1 for report in self.reports if report.status is status)
