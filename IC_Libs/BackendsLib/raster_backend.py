"""
Raster-buffer backend.

Images are held as numpy uint8 arrays of shape (height, width, 4) with a
straight (non-premultiplied) alpha channel. Resampling and compositing are
done by hand on float buffers:

- resize: separable area-average weights applied to premultiplied pixels
- watermark: source-over compositing with the overlay alpha scaled by opacity
- rotate: np.rot90 for right angles, otherwise scipy.ndimage.affine_transform
  (bilinear) onto the canvas given by resolve_rotation_geometry

Pillow is used only to decode and encode files.
"""

from pathlib import Path
from typing import Tuple, Union
import logging

import numpy as np
from PIL import Image
from scipy import ndimage

from IC_Libs.constants import BACKEND_RASTER
from IC_Libs.errors import BackendError
from IC_Libs.GeometryLib.geometry import (
    CropBox,
    ResizeGeometry,
    resolve_overlay_region,
    resolve_rotation_geometry,
)
from IC_Libs.GeometryLib.image_types import ImageType
from IC_Libs.BackendsLib.contract import ImageBackend, ImageHandle
from IC_Libs.BackendsLib.encoding import encode_image, open_rgba, probe_size

logger = logging.getLogger(__name__)


def _area_weights(source_size: int, target_size: int) -> np.ndarray:
    """
    Build a (target_size, source_size) matrix of area-average weights.

    Row i holds the fraction of every source pixel covered by target pixel i,
    normalized so each row sums to 1.
    """
    scale = source_size / target_size
    starts = np.arange(target_size, dtype=np.float64)[:, None] * scale
    ends = starts + scale
    pixels = np.arange(source_size, dtype=np.float64)[None, :]

    overlap = np.minimum(ends, pixels + 1) - np.maximum(starts, pixels)
    return np.clip(overlap, 0.0, None) / scale


def _premultiply(pixels: np.ndarray) -> np.ndarray:
    buffer = pixels.astype(np.float64)
    alpha = buffer[..., 3:4] / 255.0
    buffer[..., :3] *= alpha
    return buffer


def _unpremultiply(buffer: np.ndarray) -> np.ndarray:
    result = buffer.copy()
    alpha = result[..., 3:4] / 255.0
    rgb = result[..., :3]
    np.divide(rgb, alpha, out=rgb, where=alpha > 0)
    rgb[np.broadcast_to(alpha <= 0, rgb.shape)] = 0
    return np.clip(np.rint(result), 0, 255).astype(np.uint8)


def _fill(width: int, height: int, color: Tuple[int, int, int, int]) -> np.ndarray:
    canvas = np.empty((height, width, 4), dtype=np.uint8)
    canvas[...] = color
    return canvas


class RasterBackend(ImageBackend):
    """numpy buffer backend with explicit alpha management."""

    name = BACKEND_RASTER

    def _load_native(self, path: Path, image_type: ImageType) -> np.ndarray:
        image = open_rgba(path, reject_animated=(ImageType.WEBP,), image_type=image_type)
        return np.array(image, dtype=np.uint8)

    def dimensions(self, handle: ImageHandle) -> Tuple[int, int]:
        height, width = handle.native.shape[:2]
        return width, height

    def probe_dimensions(self, path: Union[str, Path]) -> Tuple[int, int]:
        return probe_size(path)

    def _background(self, handle: ImageHandle) -> Tuple[int, int, int, int]:
        return handle.settings.background_for(handle.image_type).rgba()

    def crop(self, handle: ImageHandle, box: CropBox, add_padding: bool) -> ImageHandle:
        pixels = handle.native
        height, width = pixels.shape[:2]

        left = min(max(box.x1, 0), width)
        top = min(max(box.y1, 0), height)
        right = min(max(box.x2, 0), width)
        bottom = min(max(box.y2, 0), height)
        region = pixels[top:bottom, left:right]

        if add_padding:
            if box.width <= 0 or box.height <= 0:
                raise BackendError(f"Crop box {box.as_tuple()} is empty")
            canvas = _fill(box.width, box.height, self._background(handle))
            if region.size:
                dest_x = left - box.x1
                dest_y = top - box.y1
                rh, rw = region.shape[:2]
                canvas[dest_y:dest_y + rh, dest_x:dest_x + rw] = region
        else:
            if region.shape[0] == 0 or region.shape[1] == 0:
                raise BackendError(f"Crop box {box.as_tuple()} is outside the image")
            canvas = region.copy()

        handle.native = canvas
        return handle

    def resize(self, handle: ImageHandle, geometry: ResizeGeometry) -> ImageHandle:
        pixels = handle.native
        src_height, src_width = pixels.shape[:2]

        rows = _area_weights(src_height, geometry.height)
        cols = _area_weights(src_width, geometry.width)

        premultiplied = _premultiply(pixels)
        scaled = np.einsum("ij,jkc,lk->ilc", rows, premultiplied, cols, optimize=True)
        window = _unpremultiply(scaled)

        canvas = _fill(geometry.canvas_width, geometry.canvas_height, self._background(handle))
        canvas[
            geometry.offset_y:geometry.offset_y + geometry.height,
            geometry.offset_x:geometry.offset_x + geometry.width,
        ] = window

        handle.native = canvas
        return handle

    def watermark(
        self, handle: ImageHandle, overlay_path: Union[str, Path], x: int, y: int, opacity: int
    ) -> ImageHandle:
        overlay = np.array(open_rgba(overlay_path), dtype=np.uint8)
        canvas = handle.native
        height, width = canvas.shape[:2]

        region = resolve_overlay_region(
            x, y, overlay.shape[1], overlay.shape[0], width, height
        )
        if region is None:
            logger.debug(f"Watermark at ({x}, {y}) lies outside the image, skipped")
            return handle

        top = overlay[
            region.source_y:region.source_y + region.height,
            region.source_x:region.source_x + region.width,
        ].astype(np.float64) / 255.0
        dest = canvas[
            region.dest_y:region.dest_y + region.height,
            region.dest_x:region.dest_x + region.width,
        ].astype(np.float64) / 255.0

        top_alpha = top[..., 3:4] * (opacity / 100.0)
        dest_alpha = dest[..., 3:4]
        out_alpha = top_alpha + dest_alpha * (1.0 - top_alpha)

        out_rgb = top[..., :3] * top_alpha + dest[..., :3] * dest_alpha * (1.0 - top_alpha)
        np.divide(out_rgb, out_alpha, out=out_rgb, where=out_alpha > 0)

        blended = np.concatenate([out_rgb, out_alpha], axis=-1)
        result = canvas.copy()
        result[
            region.dest_y:region.dest_y + region.height,
            region.dest_x:region.dest_x + region.width,
        ] = np.clip(np.rint(blended * 255.0), 0, 255).astype(np.uint8)

        handle.native = result
        return handle

    def rotate(self, handle: ImageHandle, degrees: int) -> ImageHandle:
        if degrees % 360 == 0:
            return handle

        if degrees % 90 == 0:
            # np.rot90 turns counter-clockwise
            turns = (360 - degrees) // 90
            handle.native = np.ascontiguousarray(np.rot90(handle.native, k=turns))
            return handle

        source_height, source_width = handle.native.shape[:2]
        geometry = resolve_rotation_geometry(degrees, source_width, source_height)
        canvas_shape = (geometry.canvas_height, geometry.canvas_width)
        cos, sin = geometry.cos, geometry.sin

        # Output index (row, col) -> source index, sampling at pixel centres
        matrix = np.array([[cos, -sin], [sin, cos]])
        half_out = np.array([geometry.canvas_height, geometry.canvas_width]) / 2.0 - 0.5
        half_in = np.array([source_height, source_width]) / 2.0 - 0.5
        offset = half_in - matrix @ half_out

        rows, cols = np.indices(canvas_shape, dtype=np.float64)
        source_rows = matrix[0, 0] * rows + matrix[0, 1] * cols + offset[0]
        source_cols = matrix[1, 0] * rows + matrix[1, 1] * cols + offset[1]
        inside = (
            (source_rows >= -0.5) & (source_rows < source_height - 0.5)
            & (source_cols >= -0.5) & (source_cols < source_width - 0.5)
        )

        background = np.array(self._background(handle), dtype=np.float64)
        background[:3] *= background[3] / 255.0

        premultiplied = _premultiply(handle.native)
        rotated = np.empty(canvas_shape + (4,), dtype=np.float64)
        for channel in range(4):
            sampled = ndimage.affine_transform(
                premultiplied[..., channel],
                matrix,
                offset=offset,
                output_shape=canvas_shape,
                order=1,
                mode="nearest",
            )
            rotated[..., channel] = np.where(inside, sampled, background[channel])

        handle.native = _unpremultiply(rotated)
        return handle

    def encode(self, handle: ImageHandle, image_type: ImageType) -> bytes:
        if handle.native is None:
            raise BackendError("Cannot encode a released image")
        image = Image.fromarray(handle.native)
        return encode_image(image, image_type, handle.settings)
