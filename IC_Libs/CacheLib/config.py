"""
Imaging configuration.

Classes:
    ImagingConfig: Settings consumed by CacheManager and the backends
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional, Union
import tempfile

from IC_Libs.constants import (
    DEFAULT_BACKEND,
    DEFAULT_FALLBACK_BGCOLOR,
    DEFAULT_QUALITY,
    DEFAULT_WATERMARK_OPACITY,
    DEFAULT_WATERMARK_X_POSITION,
    DEFAULT_WATERMARK_Y_POSITION,
)
from IC_Libs.errors import UnsupportedImageType
from IC_Libs.GeometryLib.color_model import HandleSettings, parse_hex_color
from IC_Libs.GeometryLib.image_types import ImageType, XPosition, YPosition


@dataclass
class ImagingConfig:
    """Configuration for derivative generation.

    Attributes:
        default_backend: Registry name of the backend to use (default: pillow)
        output_type: Type of written derivatives (None = same as the source)
        bgcolor: Background hex color for padding/rotation (None = transparent)
        fallback_bgcolor: Background for types without alpha (default: #FFF)
        quality: JPEG/WEBP quality 0-100 (default: 70)
        watermark_opacity: Overlay opacity 0-100 (default: 75)
        temp_dir: Root for scratch files (default: system temp dir)
        debug: Raise on missing sources instead of logging (default: False)
        imagemagick_dir: Folder holding ImageMagick executables (None = PATH)
        watermark_path: Default overlay file for CacheManager.watermark()
        watermark_x_position: Default horizontal anchor or absolute x
        watermark_y_position: Default vertical anchor or absolute y
        watermark_x_pad: Default horizontal padding
        watermark_y_pad: Default vertical padding (None = same as x)
    """
    default_backend: str = DEFAULT_BACKEND
    output_type: Optional[Union[str, ImageType]] = None
    bgcolor: Optional[str] = None
    fallback_bgcolor: str = DEFAULT_FALLBACK_BGCOLOR
    quality: int = DEFAULT_QUALITY
    watermark_opacity: int = DEFAULT_WATERMARK_OPACITY
    temp_dir: str = field(default_factory=tempfile.gettempdir)
    debug: bool = False
    imagemagick_dir: Optional[str] = None
    watermark_path: Optional[str] = None
    watermark_x_position: Union[str, int] = DEFAULT_WATERMARK_X_POSITION
    watermark_y_position: Union[str, int] = DEFAULT_WATERMARK_Y_POSITION
    watermark_x_pad: int = 0
    watermark_y_pad: Optional[int] = None

    def __post_init__(self):
        """Validate configuration and coerce output_type."""
        if not str(self.default_backend).strip():
            raise ValueError("default_backend cannot be empty")

        if self.output_type is not None:
            parsed = ImageType.parse(self.output_type)
            if parsed is None:
                raise UnsupportedImageType(f"Unknown output type '{self.output_type}'")
            self.output_type = parsed

        if not (0 <= self.quality <= 100):
            raise ValueError(f"quality must be 0-100, got {self.quality}")

        if not (0 <= self.watermark_opacity <= 100):
            raise ValueError(f"watermark_opacity must be 0-100, got {self.watermark_opacity}")

        if self.fallback_bgcolor is None:
            raise ValueError("fallback_bgcolor cannot be None")
        parse_hex_color(self.bgcolor)
        parse_hex_color(self.fallback_bgcolor)

        XPosition.parse(self.watermark_x_position)
        YPosition.parse(self.watermark_y_position)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        if isinstance(self.output_type, ImageType):
            data["output_type"] = self.output_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImagingConfig":
        """Create from dictionary, ignoring unknown keys."""
        filtered = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**filtered)

    def handle_settings(self) -> HandleSettings:
        """Settings carried by every handle created with this config."""
        return HandleSettings(
            bgcolor=self.bgcolor,
            fallback_bgcolor=self.fallback_bgcolor,
            quality=self.quality,
            watermark_opacity=self.watermark_opacity,
        )

    def backend_options(self) -> Dict[str, Any]:
        """Keyword options passed to BackendRegistry.create()."""
        return {
            "settings": self.handle_settings(),
            "temp_dir": self.temp_dir,
            "imagemagick_dir": self.imagemagick_dir,
        }
