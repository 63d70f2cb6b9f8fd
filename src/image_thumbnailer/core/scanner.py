"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator, Sequence

from image_thumbnailer.core.config import LEGACY_EXTENSIONS, TARGET_SIZES
from image_thumbnailer.core.exceptions import SourcePathInvalid
from image_thumbnailer.core.models import DiscoveryResult, SourceImage, UnsupportedFile

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".gif", ".png", ".jpg", ".jpeg", ".webp", ".bmp"}


def derivative_patterns(target_sizes: Sequence[int] = TARGET_SIZES) -> tuple[str, ...]:
    """已生成缩略图的文件名特征，例如 ``*1000px*``。"""

    return tuple(f"*{size}px*" for size in target_sizes)


def _iter_candidate_files(root: Path) -> Iterator[Path]:
    """递归遍历目录下的所有普通文件。

    根目录无法列出时上抛；子目录出错只记录警告并跳过。
    """

    def _on_error(exc: OSError) -> None:
        if exc.filename is None or Path(exc.filename) == root:
            raise exc
        LOGGER.warning("无法读取子目录，已跳过: %s (%s)", exc.filename, exc.strerror or exc)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            candidate = Path(dirpath) / name
            if candidate.is_file():
                yield candidate


def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fnmatch(lowered, pattern.lower()) for pattern in patterns)


def _check_root(root: Path) -> Path:
    if not root.exists():
        raise SourcePathInvalid(f"源目录不存在: {root}")
    if not root.is_dir():
        raise SourcePathInvalid(f"源路径不是目录: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise SourcePathInvalid(f"源目录不可读: {root}")
    return root.resolve()


def collect_source_images(
    root: Path,
    target_sizes: Sequence[int] = TARGET_SIZES,
    legacy_extensions: Sequence[str] = LEGACY_EXTENSIONS,
) -> DiscoveryResult:
    """扫描源目录，返回可处理的图片以及被识别但不支持的遗留格式文件。

    文件名中带有任意目标尺寸标记（如 ``photo-1000px.jpg``）的文件视为
    先前生成的缩略图，直接排除，保证重复运行不会二次处理。
    """

    resolved_root = _check_root(root)
    exclude_patterns = derivative_patterns(target_sizes)
    legacy = {ext.lower() for ext in legacy_extensions}

    images: list[SourceImage] = []
    unsupported: list[UnsupportedFile] = []

    try:
        for candidate in _iter_candidate_files(resolved_root):
            name = candidate.name
            suffix = candidate.suffix.lower()

            if suffix not in IMAGE_EXTENSIONS and suffix not in legacy:
                continue
            if _matches_any(name, exclude_patterns):
                LOGGER.debug("跳过已生成的缩略图: %s", candidate)
                continue

            if suffix in legacy:
                unsupported.append(
                    UnsupportedFile(source_path=candidate, reason=f"legacy format {suffix} is not converted")
                )
                continue

            images.append(SourceImage(source_path=candidate))
    except OSError as exc:
        raise SourcePathInvalid(f"无法遍历源目录 {resolved_root}: {exc}") from exc

    images.sort(key=lambda x: str(x.source_path).lower())
    unsupported.sort(key=lambda x: str(x.source_path).lower())
    LOGGER.info("发现 %d 个候选图片，%d 个不支持的文件", len(images), len(unsupported))
    return DiscoveryResult(images=images, unsupported=unsupported)
