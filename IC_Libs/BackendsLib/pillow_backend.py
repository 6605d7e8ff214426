"""
Pillow object-model backend.

Images are held as RGBA PIL.Image objects and transformed with Pillow's own
operators: Resampling.BOX for area-average resize, Image.alpha_composite for
watermarks and Image.rotate with fillcolor for rotation.
"""

from pathlib import Path
from typing import Tuple, Union
import logging

from PIL import Image

from IC_Libs.constants import BACKEND_PILLOW
from IC_Libs.errors import BackendError
from IC_Libs.GeometryLib.geometry import CropBox, ResizeGeometry, resolve_overlay_region
from IC_Libs.GeometryLib.image_types import ImageType
from IC_Libs.BackendsLib.contract import ImageBackend, ImageHandle
from IC_Libs.BackendsLib.encoding import encode_image, open_rgba, probe_size

logger = logging.getLogger(__name__)


class PillowBackend(ImageBackend):
    """PIL.Image backend using built-in compositing operators."""

    name = BACKEND_PILLOW

    def _load_native(self, path: Path, image_type: ImageType) -> Image.Image:
        return open_rgba(path, image_type=image_type)

    def dimensions(self, handle: ImageHandle) -> Tuple[int, int]:
        return handle.native.size

    def probe_dimensions(self, path: Union[str, Path]) -> Tuple[int, int]:
        return probe_size(path)

    def _background(self, handle: ImageHandle) -> Tuple[int, int, int, int]:
        return handle.settings.background_for(handle.image_type).rgba()

    def crop(self, handle: ImageHandle, box: CropBox, add_padding: bool) -> ImageHandle:
        image = handle.native
        width, height = image.size

        left = min(max(box.x1, 0), width)
        top = min(max(box.y1, 0), height)
        right = min(max(box.x2, 0), width)
        bottom = min(max(box.y2, 0), height)

        if add_padding:
            if box.width <= 0 or box.height <= 0:
                raise BackendError(f"Crop box {box.as_tuple()} is empty")
            canvas = Image.new("RGBA", (box.width, box.height), self._background(handle))
            if right > left and bottom > top:
                region = image.crop((left, top, right, bottom))
                canvas.paste(region, (left - box.x1, top - box.y1))
        else:
            if right <= left or bottom <= top:
                raise BackendError(f"Crop box {box.as_tuple()} is outside the image")
            canvas = image.crop((left, top, right, bottom))

        handle.native = canvas
        return handle

    def resize(self, handle: ImageHandle, geometry: ResizeGeometry) -> ImageHandle:
        window = handle.native.resize(
            (geometry.width, geometry.height), Image.Resampling.BOX
        )

        if not geometry.is_padded:
            handle.native = window
            return handle

        canvas = Image.new(
            "RGBA", (geometry.canvas_width, geometry.canvas_height), self._background(handle)
        )
        canvas.paste(window, (geometry.offset_x, geometry.offset_y))
        handle.native = canvas
        return handle

    def watermark(
        self, handle: ImageHandle, overlay_path: Union[str, Path], x: int, y: int, opacity: int
    ) -> ImageHandle:
        overlay = open_rgba(overlay_path)
        image = handle.native

        region = resolve_overlay_region(x, y, overlay.width, overlay.height, image.width, image.height)
        if region is None:
            logger.debug(f"Watermark at ({x}, {y}) lies outside the image, skipped")
            return handle

        overlay = overlay.crop((
            region.source_x,
            region.source_y,
            region.source_x + region.width,
            region.source_y + region.height,
        ))

        if opacity < 100:
            alpha = overlay.getchannel("A").point(lambda value: value * opacity // 100)
            overlay.putalpha(alpha)

        result = image.copy()
        result.alpha_composite(overlay, dest=(region.dest_x, region.dest_y))
        handle.native = result
        return handle

    def rotate(self, handle: ImageHandle, degrees: int) -> ImageHandle:
        if degrees % 360 == 0:
            return handle

        # Image.rotate turns counter-clockwise
        handle.native = handle.native.rotate(
            360 - degrees,
            resample=Image.Resampling.BILINEAR,
            expand=True,
            fillcolor=self._background(handle),
        )
        return handle

    def encode(self, handle: ImageHandle, image_type: ImageType) -> bytes:
        if handle.native is None:
            raise BackendError("Cannot encode a released image")
        return encode_image(handle.native, image_type, handle.settings)

    def _release_native(self, handle: ImageHandle) -> None:
        handle.native.close()
