"""
Shared Pillow decode/encode helpers.

The raster and Pillow backends both read and write files through Pillow; the
helpers here keep frame selection, flattening and save options identical for
the two.
"""

from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from IC_Libs.errors import SourceUnreadable, UnsupportedImageType
from IC_Libs.GeometryLib.color_model import HandleSettings
from IC_Libs.GeometryLib.image_types import ImageType


def get_save_kwargs(image_type: ImageType, quality: int) -> Dict[str, Any]:
    """Get PIL Image.save() kwargs for an image type."""
    kwargs: Dict[str, Any] = {"format": image_type.pil_format}

    if image_type in (ImageType.JPEG, ImageType.WEBP):
        kwargs["quality"] = max(1, min(100, quality))

    return kwargs


def open_rgba(
    path: Union[str, Path],
    reject_animated: Tuple[ImageType, ...] = (),
    image_type: Optional[ImageType] = None,
) -> Image.Image:
    """
    Decode the first frame of an image file as RGBA.

    Args:
        path: File to read
        reject_animated: Types whose animated variants are refused
        image_type: Declared type of the file (used for reject_animated)

    Raises:
        SourceUnreadable: If the file cannot be opened or decoded
        UnsupportedImageType: If the file is animated and its type is refused
    """
    try:
        with Image.open(path) as image:
            if image_type in reject_animated and getattr(image, "is_animated", False):
                raise UnsupportedImageType(
                    f"Animated {image_type.value} images are not supported by this backend"
                )
            image.seek(0)
            return image.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise SourceUnreadable(f"The file '{path}' is unreadable: {exc}") from exc


def probe_size(path: Union[str, Path]) -> Tuple[int, int]:
    """Read image dimensions without decoding pixels."""
    try:
        with Image.open(path) as image:
            return image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise SourceUnreadable(f"The file '{path}' is unreadable: {exc}") from exc


def flatten_for_type(
    image: Image.Image, image_type: ImageType, settings: HandleSettings
) -> Image.Image:
    """
    Prepare an RGBA image for encoding as image_type.

    Types without alpha are composited over the opaque background and
    converted to RGB. Alpha types are composited over an explicit bgcolor
    when one is configured and kept as RGBA.
    """
    color = settings.flatten_color_for(image_type)
    if color is None:
        return image

    background = Image.new("RGBA", image.size, color.rgba())
    flattened = Image.alpha_composite(background, image.convert("RGBA"))

    if not image_type.has_alpha:
        return flattened.convert("RGB")
    return flattened


def encode_image(
    image: Image.Image, image_type: ImageType, settings: HandleSettings
) -> bytes:
    """Encode an RGBA image to bytes of the given type."""
    prepared = flatten_for_type(image, image_type, settings)
    buffer = BytesIO()
    prepared.save(buffer, **get_save_kwargs(image_type, settings.quality))
    return buffer.getvalue()
