"""
Imaging Cache Geometry Library.

Pure value types and resolvers shared by every backend.

Modules:
    image_types: ImageType, XPosition and YPosition enumerations
    color_model: Color parsing and per-handle background rules
    geometry: Coordinate, crop, resize, watermark and rotation resolvers
"""

from IC_Libs.GeometryLib.image_types import ImageType, XPosition, YPosition
from IC_Libs.GeometryLib.color_model import Color, HandleSettings, parse_hex_color
from IC_Libs.GeometryLib.geometry import (
    CropBox,
    OverlayRegion,
    ResizeGeometry,
    RotationGeometry,
    resolve_coordinate,
    resolve_crop_box,
    resolve_overlay_region,
    resolve_resize_geometry,
    resolve_rotation_degrees,
    resolve_rotation_geometry,
    resolve_watermark_position,
)

__all__ = [
    "ImageType",
    "XPosition",
    "YPosition",
    "Color",
    "HandleSettings",
    "parse_hex_color",
    "CropBox",
    "OverlayRegion",
    "ResizeGeometry",
    "RotationGeometry",
    "resolve_coordinate",
    "resolve_crop_box",
    "resolve_overlay_region",
    "resolve_resize_geometry",
    "resolve_rotation_degrees",
    "resolve_rotation_geometry",
    "resolve_watermark_position",
]
