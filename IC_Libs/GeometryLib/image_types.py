"""
Image type and anchor enumerations.

Classes:
    ImageType: Supported image file types with extension/mime helpers
    XPosition: Horizontal watermark anchors
    YPosition: Vertical watermark anchors
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from IC_Libs.errors import InvalidPosition


_EXTENSIONS = {
    "gif": ("gif",),
    "jpeg": ("jpeg", "jpg", "jpe"),
    "png": ("png",),
    "webp": ("webp",),
}

_MIME_TYPES = {
    "gif": "image/gif",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


class ImageType(Enum):
    """Image file types understood by the backends."""

    GIF = "gif"
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def extensions(self) -> Tuple[str, ...]:
        return _EXTENSIONS[self.value]

    @property
    def extension(self) -> str:
        """Canonical file extension without the dot."""
        return self.extensions[0]

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self.value]

    @property
    def pil_format(self) -> str:
        # PIL uses "JPEG" for every jpeg extension
        return self.value.upper()

    @property
    def has_alpha(self) -> bool:
        return self is not ImageType.JPEG

    @property
    def animated_capable(self) -> bool:
        return self in (ImageType.GIF, ImageType.WEBP)

    @classmethod
    def from_extension(cls, extension: str) -> Optional["ImageType"]:
        """
        Get the image type for a file extension.

        Args:
            extension: Extension with or without the leading dot (case-insensitive)

        Returns:
            Matching ImageType, or None if the extension is unknown
        """
        ext = str(extension).strip().lstrip(".").lower()
        for image_type in cls:
            if ext in image_type.extensions:
                return image_type
        return None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> Optional["ImageType"]:
        return cls.from_extension(Path(path).suffix)

    @classmethod
    def parse(cls, value: Union[str, "ImageType", None]) -> Optional["ImageType"]:
        """Coerce a config value ("png", ".JPG", ImageType.PNG or None)."""
        if value is None or isinstance(value, ImageType):
            return value
        return cls.from_extension(value)


class _Anchor(Enum):
    @classmethod
    def parse(cls, value):
        """
        Coerce an anchor given as enum member or name.

        Returns None for numbers so callers can use them verbatim.

        Raises:
            InvalidPosition: If value is neither an anchor nor numeric
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidPosition(f"Given position '{value}' is wrong")
        if isinstance(value, (int, float)):
            return None
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            try:
                float(value.strip())
                return None
            except ValueError:
                pass
        allowed = ", ".join(cls.__members__)
        raise InvalidPosition(
            f"Given position '{value}' is wrong. Position must be one of {allowed} or a number"
        )


class XPosition(_Anchor):
    """Horizontal anchor. MIDDLE is an alias of CENTER."""

    LEFT = "left"
    CENTER = "center"
    MIDDLE = "center"
    RIGHT = "right"


class YPosition(_Anchor):
    """Vertical anchor. MIDDLE is an alias of CENTER."""

    TOP = "top"
    CENTER = "center"
    MIDDLE = "center"
    BOTTOM = "bottom"
