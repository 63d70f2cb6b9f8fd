"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from image_thumbnailer.core.exceptions import InvalidConfigurationError

# 缩略图长边尺寸，降序排列。属于固定策略，不开放给命令行。
TARGET_SIZES: tuple[int, ...] = (2500, 2000, 1500, 1000, 750, 500, 250)

LEGACY_EXTENSIONS: tuple[str, ...] = (".wmf", ".emf")


@dataclass(slots=True)
class JobConfig:
    """单次批处理任务的配置集合。"""

    source_dir: Path
    output_format: str
    engine_path: Optional[Path] = None
    max_workers: int = 4
    timeout: Optional[float] = 300.0  # None 表示不限时
    retries: int = 0
    retry_backoff: float = 1.0
    target_sizes: Sequence[int] = TARGET_SIZES
    legacy_extensions: Sequence[str] = field(default_factory=lambda: LEGACY_EXTENSIONS)
    report_path: Optional[Path] = None

    def validate(self) -> None:
        """检查数值类参数，非法时抛出 InvalidConfigurationError。"""

        if self.max_workers < 1:
            raise InvalidConfigurationError(f"并发数必须大于 0: {self.max_workers}")
        if self.retries < 0:
            raise InvalidConfigurationError(f"重试次数不能为负数: {self.retries}")
        if self.retry_backoff < 0:
            raise InvalidConfigurationError(f"重试间隔不能为负数: {self.retry_backoff}")
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidConfigurationError(f"超时时间必须大于 0: {self.timeout}")
        if not self.target_sizes or any(size <= 0 for size in self.target_sizes):
            raise InvalidConfigurationError("目标尺寸必须为正整数")
