"""根据原图尺寸计算需要生成的缩略图尺寸。"""

from __future__ import annotations

from typing import Sequence

from image_thumbnailer.core.config import TARGET_SIZES


def plan_sizes(width: int, height: int, target_sizes: Sequence[int] = TARGET_SIZES) -> list[int]:
    """返回严格小于原图长边的目标尺寸，保持给定顺序。

    只做缩小：大于等于长边的尺寸要么放大要么原样输出，都没有意义。
    """

    longest = max(width, height)
    return [size for size in target_sizes if size < longest]
