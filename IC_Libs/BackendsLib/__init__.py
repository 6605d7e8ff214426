"""
Imaging Cache Backends Library.

Image engines implementing the ImageBackend contract.

Modules:
    contract: ImageBackend base class and ImageHandle
    encoding: Shared Pillow decode/encode helpers
    raster_backend: numpy raster buffers with manual compositing
    pillow_backend: Pillow object model
    magick_backend: ImageMagick command-line tools
    registry: Name -> backend factory registry
"""

from IC_Libs.BackendsLib.contract import ImageBackend, ImageHandle
from IC_Libs.BackendsLib.raster_backend import RasterBackend
from IC_Libs.BackendsLib.pillow_backend import PillowBackend
from IC_Libs.BackendsLib.magick_backend import MagickBackend, locate_toolchain
from IC_Libs.BackendsLib.registry import (
    BackendRegistry,
    create_default_registry,
    register_default_backends,
)

__all__ = [
    "ImageBackend",
    "ImageHandle",
    "RasterBackend",
    "PillowBackend",
    "MagickBackend",
    "locate_toolchain",
    "BackendRegistry",
    "create_default_registry",
    "register_default_backends",
]
