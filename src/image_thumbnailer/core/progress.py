"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from image_thumbnailer.core.models import ImageReport


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息；单张图片完成时附带其报告。

    ``status`` 取值 running / done / aborted。
    """

    total: int
    completed: int
    message: Optional[str] = None
    status: str = "running"
    report: Optional[ImageReport] = None
