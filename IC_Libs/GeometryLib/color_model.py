"""
Color model used by padding, rotation and flattening.

Colors keep red/green/blue on the 0-255 scale and alpha on a 0-100 scale
(0 = fully transparent, 100 = opaque).

Classes:
    Color: Immutable RGBA color
    HandleSettings: Per-handle processing settings (background, quality, opacity)

Functions:
    parse_hex_color: Parse "#RGB", "#RGBA", "#RRGGBB" or "#RRGGBBAA"
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

from IC_Libs.constants import (
    DEFAULT_FALLBACK_BGCOLOR,
    DEFAULT_QUALITY,
    DEFAULT_WATERMARK_OPACITY,
)
from IC_Libs.errors import InvalidHexColor
from IC_Libs.GeometryLib.image_types import ImageType

RgbaColor = Tuple[int, int, int, int]

_HEX_DIGITS = set("0123456789abcdefABCDEF")


@dataclass(frozen=True)
class Color:
    """RGBA color with alpha on a 0-100 scale.

    Attributes:
        red: Red channel (0-255)
        green: Green channel (0-255)
        blue: Blue channel (0-255)
        alpha: Opacity (0-100)
    """
    red: int
    green: int
    blue: int
    alpha: int = 100

    def __post_init__(self):
        for channel in ("red", "green", "blue"):
            value = getattr(self, channel)
            if not (0 <= value <= 255):
                raise InvalidHexColor(f"{channel} must be 0-255, got {value}")
        if not (0 <= self.alpha <= 100):
            raise InvalidHexColor(f"alpha must be 0-100, got {self.alpha}")

    @classmethod
    def transparent(cls) -> "Color":
        return cls(0, 0, 0, 0)

    @property
    def is_opaque(self) -> bool:
        return self.alpha == 100

    def with_alpha(self, alpha: int) -> "Color":
        return Color(self.red, self.green, self.blue, alpha)

    def rgba(self) -> RgbaColor:
        """Channels as 0-255 integers, suitable for PIL."""
        return (self.red, self.green, self.blue, round(self.alpha * 255 / 100))

    def to_magick(self) -> str:
        """ImageMagick color string, e.g. 'rgba(255,255,255,1.0)'."""
        return f"rgba({self.red},{self.green},{self.blue},{round(self.alpha / 100, 2)})"


def parse_hex_color(hex_color: Optional[str]) -> Color:
    """
    Parse a hex color specification.

    Accepts 3, 4, 6 or 8 hex digits with an optional leading '#'. Without an
    alpha component the color is opaque. The 0-255 alpha component is mapped
    onto the 0-100 scale with floor(a / 2.55).

    Args:
        hex_color: Hex string, or None for fully transparent black

    Returns:
        Parsed Color

    Raises:
        InvalidHexColor: If the string is malformed

    Example:
        >>> parse_hex_color("#F00")
        Color(red=255, green=0, blue=0, alpha=100)
        >>> parse_hex_color("00000080").alpha
        50
    """
    if hex_color is None:
        return Color.transparent()

    if not isinstance(hex_color, str):
        raise InvalidHexColor(f"The color '{hex_color}' in hex format is not set correctly")

    digits = hex_color.strip()
    if digits.startswith("#"):
        digits = digits[1:]

    if not digits or not set(digits) <= _HEX_DIGITS:
        raise InvalidHexColor(f"The color '{hex_color}' in hex format is not set correctly")

    if len(digits) in (3, 4):
        digits = "".join(ch * 2 for ch in digits)
    elif len(digits) not in (6, 8):
        raise InvalidHexColor(f"The color '{hex_color}' in hex format is not set correctly")

    red = int(digits[0:2], 16)
    green = int(digits[2:4], 16)
    blue = int(digits[4:6], 16)
    alpha_255 = int(digits[6:8], 16) if len(digits) == 8 else 255

    return Color(red, green, blue, alpha_255 * 100 // 255)


@dataclass
class HandleSettings:
    """Processing settings carried by every image handle.

    Attributes:
        bgcolor: Background hex color, or None for transparent
        fallback_bgcolor: Background used for types without alpha when bgcolor is None
        quality: Encode quality 0-100 (JPEG/WEBP)
        watermark_opacity: Overlay opacity 0-100
    """
    bgcolor: Optional[str] = None
    fallback_bgcolor: str = DEFAULT_FALLBACK_BGCOLOR
    quality: int = DEFAULT_QUALITY
    watermark_opacity: int = DEFAULT_WATERMARK_OPACITY

    def __post_init__(self):
        """Validate settings."""
        if self.fallback_bgcolor is None:
            raise ValueError("fallback_bgcolor cannot be None")
        if not (0 <= self.quality <= 100):
            raise ValueError(f"quality must be 0-100, got {self.quality}")
        if not (0 <= self.watermark_opacity <= 100):
            raise ValueError(f"watermark_opacity must be 0-100, got {self.watermark_opacity}")
        # Fail early on malformed colors
        parse_hex_color(self.bgcolor)
        parse_hex_color(self.fallback_bgcolor)

    def background_for(self, image_type: ImageType) -> Color:
        """
        Resolve the fill color for padding and rotation corners.

        The explicit bgcolor wins; types without an alpha channel fall back to
        fallback_bgcolor; everything else is fully transparent.
        """
        if self.bgcolor is not None:
            return parse_hex_color(self.bgcolor)
        if not image_type.has_alpha:
            return parse_hex_color(self.fallback_bgcolor)
        return Color.transparent()

    def flatten_color_for(self, image_type: ImageType) -> Optional[Color]:
        """
        Opaque color to flatten onto before encoding, or None to keep alpha.

        Types without alpha always flatten; alpha types flatten only when an
        explicit bgcolor is configured.
        """
        if not image_type.has_alpha:
            color = parse_hex_color(self.bgcolor or self.fallback_bgcolor)
            return color.with_alpha(100)
        if self.bgcolor is not None:
            return parse_hex_color(self.bgcolor)
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HandleSettings":
        """Create from dictionary, ignoring unknown keys."""
        filtered = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**filtered)
