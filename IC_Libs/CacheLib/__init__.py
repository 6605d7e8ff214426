"""
Imaging Cache Library.

Modules:
    config: ImagingConfig
    filesystem: Filesystem contract and LocalFilesystem
    cache_keys: Derivative path builders
    cache_manager: CacheManager and DerivativeReference
"""

from IC_Libs.CacheLib.config import ImagingConfig
from IC_Libs.CacheLib.filesystem import Filesystem, LocalFilesystem
from IC_Libs.CacheLib.cache_keys import (
    build_derivative_path,
    crop_suffix,
    resize_suffix,
    rotate_suffix,
    sanitize_storage_path,
    watermark_suffix,
)
from IC_Libs.CacheLib.cache_manager import CacheManager, DerivativeReference

__all__ = [
    "ImagingConfig",
    "Filesystem",
    "LocalFilesystem",
    "build_derivative_path",
    "crop_suffix",
    "resize_suffix",
    "rotate_suffix",
    "sanitize_storage_path",
    "watermark_suffix",
    "CacheManager",
    "DerivativeReference",
]
