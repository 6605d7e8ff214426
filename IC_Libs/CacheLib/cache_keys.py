"""
Derivative path construction.

Derivative paths are a pure function of the storage name, the source path
and the operation parameters, so identical requests share one cached file
and different parameters never collide.

Example:
    >>> build_derivative_path("public", "photos/cat.jpg", crop_suffix(10, None, None, None), "jpeg")
    'public/photos/cat-crop-ignore-10xxx.jpeg'
"""

from typing import Any, Optional
import hashlib

from IC_Libs.constants import CROP_MODE_IGNORE, RESIZE_MODE_PAD


def _fragment(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def sanitize_storage_path(path: str) -> str:
    """
    Normalize a storage path.

    Backslashes become '/', and empty, '.' and '..' segments are dropped so a
    path can never climb out of its storage root.
    """
    segments = str(path).replace("\\", "/").split("/")
    return "/".join(segment for segment in segments if segment not in ("", ".", ".."))


def build_derivative_path(disk: str, source: str, suffix: str, extension: str) -> str:
    """
    Build '<disk>/<source without extension><suffix>.<extension>'.

    An empty disk name yields a path relative to the cache root.
    """
    source = sanitize_storage_path(source)
    stem, dot, tail = source.rpartition(".")
    if not dot or "/" in tail:
        stem = source
    name = f"{stem}{suffix}.{extension.lstrip('.')}"
    return sanitize_storage_path(f"{disk}/{name}" if disk else name)


def crop_suffix(
    x1: Any,
    y1: Optional[Any] = None,
    x2: Optional[Any] = None,
    y2: Optional[Any] = None,
    mode: str = CROP_MODE_IGNORE,
) -> str:
    return f"-crop-{mode}-{_fragment(x1)}x{_fragment(y1)}x{_fragment(x2)}x{_fragment(y2)}"


def resize_suffix(width: Any, height: Any = None, mode: str = RESIZE_MODE_PAD) -> str:
    return f"-resize-{mode}-{_fragment(width)}x{_fragment(height)}"


def watermark_suffix(
    overlay_path: Any,
    x_position: Any = None,
    y_position: Any = None,
    x_pad: Any = None,
    y_pad: Any = None,
    opacity: Any = None,
) -> str:
    """Hash the overlay path together with its placement and opacity."""
    key = "|".join(
        _fragment(value)
        for value in (overlay_path, x_position, y_position, x_pad, y_pad, opacity)
    )
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()
    return f"-watermark-{digest}"


def rotate_suffix(degrees: Any) -> str:
    return f"-rotate-{_fragment(degrees)}"
