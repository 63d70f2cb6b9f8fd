"""缩略图输出路径规则与目录创建。"""

from __future__ import annotations

import logging
from pathlib import Path

from image_thumbnailer.core.models import FormatProfile, SourceImage

LOGGER = logging.getLogger(__name__)


def size_label(target_size: int) -> str:
    return f"{target_size}px"


def build_output_path(source: SourceImage, profile: FormatProfile, target_size: int) -> Path:
    """``<源图目录>/<扩展名大写>/<尺寸>px/<文件名>-<尺寸>px.<扩展名>``

    文件名中的 ``-<尺寸>px`` 同时是扫描阶段排除已生成文件的依据。
    """

    label = size_label(target_size)
    filename = f"{source.base_name}-{label}.{profile.extension}"
    return source.directory / profile.directory_name / label / filename


def ensure_directory(path: Path) -> None:
    """创建目录（已存在时忽略，允许多个线程同时创建同一目录）。"""

    path.mkdir(parents=True, exist_ok=True)
