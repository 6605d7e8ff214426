"""
Geometry resolution for crop, resize, watermark and rotate.

All functions are pure: they turn user-facing coordinate expressions into
absolute pixel values against known dimensions and never touch pixels.

Coordinate expressions:
    10      -> 10 px from the near edge (left / top)
    -10     -> 10 px from the far edge (extent - 10)
    "10%"   -> floor(10 / 100 * extent)
    "-10%"  -> extent - floor(10 / 100 * extent)
    "12,5%" -> comma is accepted as decimal separator
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Optional, Tuple, Union

from IC_Libs.constants import RATIO_PRECISION
from IC_Libs.errors import InvalidDimensions, InvalidPosition
from IC_Libs.GeometryLib.image_types import XPosition, YPosition

Coordinate = Union[int, float, str]
Position = Union[XPosition, YPosition, int, float, str]


@dataclass(frozen=True)
class CropBox:
    """Resolved crop rectangle (x2/y2 exclusive)."""
    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x1, self.y1, self.x2, self.y2)


@dataclass(frozen=True)
class ResizeGeometry:
    """
    Resolved resize parameters.

    The source image is scaled into a window of width x height placed at
    (offset_x, offset_y) on a canvas of canvas_width x canvas_height.

    Attributes:
        width: Window width
        height: Window height
        canvas_width: Output width
        canvas_height: Output height
        offset_x: Window left offset inside the canvas
        offset_y: Window top offset inside the canvas
        source_width: Width of the image being resized
        source_height: Height of the image being resized
    """
    width: int
    height: int
    canvas_width: int
    canvas_height: int
    offset_x: int
    offset_y: int
    source_width: int
    source_height: int

    @property
    def is_padded(self) -> bool:
        return (self.width, self.height) != (self.canvas_width, self.canvas_height)


@dataclass(frozen=True)
class RotationGeometry:
    """
    Resolved clockwise rotation about the image centre.

    The canvas is the bounding box of the rotated corners, floored and ceiled
    outwards. cos and sin describe the inverse mapping used to sample the
    source: for an output point (X, Y) measured from the canvas centre the
    source point measured from the source centre is
    (cos * X + sin * Y, -sin * X + cos * Y).

    Attributes:
        degrees: Clockwise angle in [0, 360)
        source_width: Width of the image being rotated
        source_height: Height of the image being rotated
        canvas_width: Output width
        canvas_height: Output height
        cos: Cosine of the sampling angle, rounded to 15 places
        sin: Sine of the sampling angle, rounded to 15 places
    """
    degrees: int
    source_width: int
    source_height: int
    canvas_width: int
    canvas_height: int
    cos: float
    sin: float

    @property
    def is_right_angle(self) -> bool:
        return self.degrees % 90 == 0


@dataclass(frozen=True)
class OverlayRegion:
    """
    Visible part of an overlay placed on a canvas.

    Attributes:
        source_x: Left offset inside the overlay
        source_y: Top offset inside the overlay
        dest_x: Left offset on the canvas (never negative)
        dest_y: Top offset on the canvas (never negative)
        width: Width of the visible part
        height: Height of the visible part
    """
    source_x: int
    source_y: int
    dest_x: int
    dest_y: int
    width: int
    height: int

    @property
    def is_whole(self) -> bool:
        return self.source_x == 0 and self.source_y == 0


def _parse_number(value: Coordinate) -> float:
    if isinstance(value, bool):
        raise InvalidDimensions(f"Dimension value '{value}' is not a number")
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise InvalidDimensions(f"Dimension value '{value}' is not a number") from None
    if not math.isfinite(number):
        raise InvalidDimensions(f"Dimension value '{value}' is not a finite number")
    return number


def resolve_coordinate(value: Coordinate, extent: int) -> int:
    """
    Resolve a coordinate expression to an absolute pixel value.

    Args:
        value: Integer, float or string expression (see module docstring)
        extent: Length of the axis the value belongs to

    Returns:
        Absolute coordinate measured from the near edge

    Raises:
        InvalidDimensions: If value is not a number or percentage

    Example:
        >>> resolve_coordinate("50%", 200)
        100
        >>> resolve_coordinate(-20, 200)
        180
    """
    if isinstance(value, bool) or value is None:
        raise InvalidDimensions(f"Dimension value '{value}' is not a number")

    if isinstance(value, str):
        expression = value.strip().replace(",", ".")
        if expression.startswith("--"):
            expression = expression[1:]

        if expression.endswith("%"):
            number = _parse_number(expression[:-1])
            resolved = math.floor(number / 100 * extent)
        else:
            number = _parse_number(expression)
            resolved = int(number)
    else:
        number = _parse_number(value)
        resolved = int(number)

    if number < 0:
        resolved = extent + resolved

    return resolved


def _mirror(value: Coordinate) -> Coordinate:
    """Negate a coordinate expression, keeping percentages as strings."""
    if isinstance(value, str):
        expression = value.strip()
        if expression.startswith("-"):
            return expression.lstrip("-")
        return "-" + expression
    return -value


def resolve_crop_box(
    x1: Coordinate,
    y1: Optional[Coordinate],
    x2: Optional[Coordinate],
    y2: Optional[Coordinate],
    width: int,
    height: int,
) -> CropBox:
    """
    Resolve crop coordinates against the image size.

    Omitted values default symmetrically: y1 to x1, x2 to -x1 and y2 to -y1,
    so crop(20) trims 20 px from every edge. The box is not clamped; the
    backend clamps it to the available pixels.

    Args:
        x1: Left coordinate
        y1: Top coordinate (defaults to x1)
        x2: Right coordinate (defaults to -x1)
        y2: Bottom coordinate (defaults to -y1)
        width: Image width
        height: Image height

    Returns:
        CropBox with absolute coordinates
    """
    if y1 is None:
        y1 = x1
    if x2 is None:
        x2 = _mirror(x1)
    if y2 is None:
        y2 = _mirror(y1)

    return CropBox(
        resolve_coordinate(x1, width),
        resolve_coordinate(y1, height),
        resolve_coordinate(x2, width),
        resolve_coordinate(y2, height),
    )


def _is_empty(value: Optional[Coordinate]) -> bool:
    return value is None or value == 0 or value == "" or value == "0"


def _truncated_ratio(numerator: int, denominator: int) -> Decimal:
    quantum = Decimal(1).scaleb(-RATIO_PRECISION)
    return (Decimal(numerator) / Decimal(denominator)).quantize(quantum, rounding=ROUND_DOWN)


def resolve_resize_geometry(
    width: Optional[Coordinate],
    height: Optional[Coordinate],
    keep_ratio: bool,
    pad: bool,
    source_width: int,
    source_height: int,
) -> ResizeGeometry:
    """
    Resolve resize parameters into window and canvas sizes.

    When only one side is given the other is derived from the source aspect
    ratio (or copied verbatim when it is a percentage). With keep_ratio the
    smaller of the two scale ratios is applied so the whole source fits; with
    pad the window is centered on the requested canvas, otherwise the canvas
    shrinks to the window.

    Args:
        width: Target width expression
        height: Target height expression
        keep_ratio: Preserve the source aspect ratio
        pad: Keep the requested canvas and center the window on it
        source_width: Current image width
        source_height: Current image height

    Returns:
        ResizeGeometry satisfying width + 2 * offset_x == canvas_width
        (and likewise for the vertical axis)

    Raises:
        InvalidDimensions: If both sides are empty or a size resolves to <= 0
    """
    if _is_empty(width) and _is_empty(height):
        raise InvalidDimensions(f"Wrong dimensions: width '{width}', height '{height}'")
    if source_width <= 0 or source_height <= 0:
        raise InvalidDimensions(
            f"Wrong source dimensions: width '{source_width}', height '{source_height}'"
        )

    if _is_empty(height):
        if isinstance(width, str) and width.strip().endswith("%"):
            height = width
        else:
            height = int(int(_parse_number(width)) * (source_height / source_width))

    if _is_empty(width):
        if isinstance(height, str) and height.strip().endswith("%"):
            width = height
        else:
            width = int(int(_parse_number(height)) * (source_width / source_height))

    canvas_width = resolve_coordinate(width, source_width)
    canvas_height = resolve_coordinate(height, source_height)
    if canvas_width <= 0 or canvas_height <= 0:
        raise InvalidDimensions(
            f"Wrong dimensions: width '{canvas_width}', height '{canvas_height}'"
        )

    window_width, window_height = canvas_width, canvas_height

    if keep_ratio:
        width_ratio = _truncated_ratio(canvas_width, source_width)
        height_ratio = _truncated_ratio(canvas_height, source_height)
        ratio = height_ratio if width_ratio >= height_ratio else width_ratio
        window_width = math.ceil(Decimal(source_width) * ratio)
        window_height = math.ceil(Decimal(source_height) * ratio)

    if window_width <= 0 or window_height <= 0:
        raise InvalidDimensions(
            f"Wrong dimensions: width '{window_width}', height '{window_height}'"
        )

    offset_x = offset_y = 0
    if pad:
        offset_x = (canvas_width - window_width) // 2
        offset_y = (canvas_height - window_height) // 2
        # An odd remainder goes to the window so the borders stay symmetric
        window_width = canvas_width - 2 * offset_x
        window_height = canvas_height - 2 * offset_y
    else:
        canvas_width, canvas_height = window_width, window_height

    return ResizeGeometry(
        width=window_width,
        height=window_height,
        canvas_width=canvas_width,
        canvas_height=canvas_height,
        offset_x=offset_x,
        offset_y=offset_y,
        source_width=source_width,
        source_height=source_height,
    )


def _resolve_axis(anchor, value, pad, near, center, far, wm_extent, src_extent):
    if anchor is near:
        return pad
    if anchor is center:
        return (src_extent / 2) - (wm_extent / 2)
    if anchor is far:
        return src_extent - wm_extent - pad
    if isinstance(value, str):
        number = float(value.strip())
        return int(number) if number.is_integer() else number
    return value


def resolve_watermark_position(
    x_position: Position,
    y_position: Position,
    x_pad: int,
    y_pad: Optional[int],
    watermark_width: int,
    watermark_height: int,
    source_width: int,
    source_height: int,
) -> Tuple[Union[int, float], Union[int, float]]:
    """
    Resolve the top-left corner of a watermark.

    Anchors may be given as XPosition / YPosition members or their names
    ("left", "Center", "BOTTOM" ...). Numbers are used verbatim. The centered
    position may be fractional; callers truncate it.

    Args:
        x_position: Horizontal anchor or absolute x
        y_position: Vertical anchor or absolute y
        x_pad: Distance from the anchored horizontal edge
        y_pad: Distance from the anchored vertical edge (defaults to x_pad)
        watermark_width: Overlay width
        watermark_height: Overlay height
        source_width: Image width
        source_height: Image height

    Returns:
        (x, y) tuple

    Raises:
        InvalidPosition: If a position is neither an anchor nor numeric
    """
    if y_pad is None:
        y_pad = x_pad

    x_anchor = XPosition.parse(x_position)
    y_anchor = YPosition.parse(y_position)

    x = _resolve_axis(
        x_anchor, x_position, x_pad,
        XPosition.LEFT, XPosition.CENTER, XPosition.RIGHT,
        watermark_width, source_width,
    )
    y = _resolve_axis(
        y_anchor, y_position, y_pad,
        YPosition.TOP, YPosition.CENTER, YPosition.BOTTOM,
        watermark_height, source_height,
    )
    return x, y


def resolve_rotation_degrees(degrees: Union[int, float]) -> int:
    """
    Normalize an angle to the clockwise range [0, 360).

    Negative (counter-clockwise) requests map onto their clockwise equivalent.
    """
    if isinstance(degrees, bool):
        raise InvalidDimensions(f"Rotation angle '{degrees}' is not a number")
    try:
        return int(degrees) % 360
    except (TypeError, ValueError):
        raise InvalidDimensions(f"Rotation angle '{degrees}' is not a number") from None


def resolve_rotation_geometry(
    degrees: Union[int, float],
    source_width: int,
    source_height: int,
) -> RotationGeometry:
    """
    Resolve the expanded canvas for a clockwise rotation.

    Matches PIL.Image.rotate(expand=True): the corners are rotated about the
    centre with the trigonometry rounded to 15 places, then the extents are
    floored and ceiled outwards. Right angles give exact swapped or equal
    dimensions.
    """
    degrees = resolve_rotation_degrees(degrees)

    if degrees in (90, 270):
        canvas_width, canvas_height = source_height, source_width
    else:
        canvas_width, canvas_height = source_width, source_height

    # Sampling runs counter-clockwise from the output back into the source
    angle = -math.radians((360 - degrees) % 360.0)
    cos = round(math.cos(angle), 15)
    sin = round(math.sin(angle), 15)

    if degrees % 90 != 0:
        center_x = source_width / 2.0
        center_y = source_height / 2.0
        # Same operation order as Pillow so ceil/floor agree on exact edges
        shift_x = cos * -center_x + sin * -center_y + center_x
        shift_y = -sin * -center_x + cos * -center_y + center_y
        xs = []
        ys = []
        for x, y in ((0, 0), (source_width, 0), (source_width, source_height), (0, source_height)):
            xs.append(cos * x + sin * y + shift_x)
            ys.append(-sin * x + cos * y + shift_y)
        canvas_width = math.ceil(max(xs)) - math.floor(min(xs))
        canvas_height = math.ceil(max(ys)) - math.floor(min(ys))

    return RotationGeometry(
        degrees, source_width, source_height, canvas_width, canvas_height, cos, sin
    )


def resolve_overlay_region(
    x: int,
    y: int,
    watermark_width: int,
    watermark_height: int,
    canvas_width: int,
    canvas_height: int,
) -> Optional[OverlayRegion]:
    """
    Clip an overlay placed at (x, y) to the canvas.

    Negative offsets move the source window into the overlay instead of
    placing it outside the canvas.

    Returns:
        OverlayRegion, or None when no part of the overlay is visible
    """
    source_x = max(0, -x)
    source_y = max(0, -y)
    dest_x = max(0, x)
    dest_y = max(0, y)

    width = min(watermark_width - source_x, canvas_width - dest_x)
    height = min(watermark_height - source_y, canvas_height - dest_y)

    if width <= 0 or height <= 0:
        return None

    return OverlayRegion(source_x, source_y, dest_x, dest_y, width, height)
