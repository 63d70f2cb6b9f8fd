"""输出格式解析：格式标识 -> 扩展名、引擎格式名与参数。"""

from __future__ import annotations

from image_thumbnailer.core.exceptions import InvalidConfigurationError
from image_thumbnailer.core.models import FormatProfile

_JPEG_PARAMETERS = (
    "-quality", "95",
    "-background", "white",
    "-flatten",
    "-define", "jpeg:optimize-coding=true",
    "-define", "jpeg:dct-method=float",
    "-sampling-factor", "4:4:4",
)

_PROFILES = {
    "png": FormatProfile(
        token="png",
        extension="png",
        engine_format="png",
        parameters=("-define", "png:compression-level=9", "-density", "150"),
    ),
    "jpg": FormatProfile(token="jpg", extension="jpg", engine_format="jpeg", parameters=_JPEG_PARAMETERS),
    "webp": FormatProfile(token="webp", extension="webp", engine_format="webp", parameters=("-quality", "95")),
    "bmp": FormatProfile(token="bmp", extension="bmp", engine_format="bmp", parameters=()),
    "gif": FormatProfile(token="gif", extension="gif", engine_format="gif", parameters=("-colors", "256")),
}

_ALIASES = {"jpeg": "jpg"}

SUPPORTED_FORMATS = tuple(sorted({*_PROFILES, *_ALIASES}))


def resolve_format(token: str) -> FormatProfile:
    """将命令行传入的格式（大小写不敏感）解析为 FormatProfile。"""

    normalized = (token or "").strip().lower()
    normalized = _ALIASES.get(normalized, normalized)
    try:
        return _PROFILES[normalized]
    except KeyError:
        raise InvalidConfigurationError(
            f"不支持的输出格式: {token!r}（可选: {', '.join(SUPPORTED_FORMATS)}）"
        ) from None


def universal_parameters(target_size: int) -> tuple[str, ...]:
    """所有格式共用的参数：去除元数据、Lanczos 采样、只缩小不放大。"""

    return ("-strip", "-filter", "Lanczos", "-resize", f"{target_size}x{target_size}>")


def build_parameters(profile: FormatProfile, target_size: int) -> tuple[str, ...]:
    return universal_parameters(target_size) + profile.parameters
