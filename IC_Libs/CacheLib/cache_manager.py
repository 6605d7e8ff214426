"""
On-demand derivative cache.

CacheManager turns a source image on one Filesystem into a transformed
derivative on another. A derivative is rebuilt only when it is missing or not
strictly newer than its source.

Request flow:
    check source -> fresh?  -> return reference
                 -> stale   -> stage scratch copy -> load -> callback
                               -> run queue -> encode -> put -> cleanup

Classes:
    DerivativeReference: Result of a request (path + public URL)
    CacheManager: Freshness check and build orchestration
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union
import logging
import os
import uuid

from IC_Libs.constants import (
    CROP_MODE_ADDPADDING,
    CROP_MODE_IGNORE,
    CROP_MODES,
    RESIZE_MODE_KEEPRATIO,
    RESIZE_MODE_PAD,
    RESIZE_MODE_STRETCH,
    RESIZE_MODES,
    SCRATCH_NAME_ATTEMPTS,
    STAGING_SUBDIR,
)
from IC_Libs.errors import (
    ImagingError,
    PermissionDenied,
    SourceMissing,
    SourceUnreadable,
    UnsupportedImageType,
)
from IC_Libs.GeometryLib.image_types import ImageType
from IC_Libs.BackendsLib.contract import ImageHandle
from IC_Libs.BackendsLib.registry import BackendRegistry, create_default_registry
from IC_Libs.CacheLib.cache_keys import (
    build_derivative_path,
    crop_suffix,
    resize_suffix,
    rotate_suffix,
    sanitize_storage_path,
    watermark_suffix,
)
from IC_Libs.CacheLib.config import ImagingConfig
from IC_Libs.CacheLib.filesystem import Filesystem
from IC_Libs.PipelineLib.pipeline import ImagePipeline

logger = logging.getLogger(__name__)

# Callback receiving the handle and queueing operations on it
TransformCallback = Callable[[ImageHandle], Any]


@dataclass(frozen=True)
class DerivativeReference:
    """
    Location of a derivative on the cache filesystem.

    An empty reference (path == "") is returned when a missing source is
    tolerated; it evaluates to False.
    """
    path: str = ""
    url: str = ""

    def __bool__(self) -> bool:
        return bool(self.path)


class CacheManager:
    """
    Build and cache image derivatives.

    Args:
        source_fs: Filesystem holding the originals
        cache_fs: Filesystem receiving derivatives
        config: ImagingConfig (defaults are used when None)
        registry: BackendRegistry (a new default registry when None)
        disk_name: Prefix for derivative paths, usually the source storage name

    Example:
        >>> manager = CacheManager(LocalFilesystem("media"), LocalFilesystem("public/cache"))
        >>> ref = manager.resize("photos/cat.jpg", 200, 200)
        >>> ref.url
        'file:///.../public/cache/photos/cat-resize-pad-200x200.jpeg'
    """

    def __init__(
        self,
        source_fs: Filesystem,
        cache_fs: Filesystem,
        config: Optional[ImagingConfig] = None,
        registry: Optional[BackendRegistry] = None,
        disk_name: str = "",
    ):
        self.source_fs = source_fs
        self.cache_fs = cache_fs
        self.config = config or ImagingConfig()
        self.registry = registry or create_default_registry()
        self.disk_name = disk_name
        self.staging_dir = Path(self.config.temp_dir) / STAGING_SUBDIR

    # Freshness

    def is_fresh(self, source: str, derivative: str) -> bool:
        """True when the derivative exists and is strictly newer than the source."""
        derivative = sanitize_storage_path(derivative)
        if not self.cache_fs.exists(derivative):
            return False
        return self.cache_fs.last_modified(derivative) > self.source_fs.last_modified(source)

    # Core

    def make(
        self,
        source: str,
        derivative: str,
        callback: TransformCallback,
        force: bool = False,
    ) -> DerivativeReference:
        """
        Return the derivative of source, building it when stale.

        Args:
            source: Path of the original on source_fs
            derivative: Path of the derivative on cache_fs
            callback: Queues operations on the loaded handle
            force: Rebuild even if the derivative is fresh

        Returns:
            DerivativeReference; empty when the source is missing and debug is off

        Raises:
            SourceMissing: Source does not exist and config.debug is set
            HandlerConstructionFailed: Backend could not be created
            BackendOperationFailed: A queued operation failed
            InvalidInputError: Invalid geometry, color or position
        """
        derivative = sanitize_storage_path(derivative)

        if not self.source_fs.exists(source):
            message = f"File '{source}' is missing on disk '{self.disk_name}'"
            if self.config.debug:
                raise SourceMissing(message)
            logger.error(message)
            return DerivativeReference()

        if not force and self.is_fresh(source, derivative):
            logger.debug(f"Cache hit: {derivative}")
            return self._reference(derivative)

        scratch = self._stage(source)
        handle: Optional[ImageHandle] = None
        try:
            backend = self.registry.create(
                self.config.default_backend, **self.config.backend_options()
            )
            handle = backend.load(scratch, ImageType.from_path(source))
            callback(handle)
            handle.run_queue()
            data = handle.blob(self.config.output_type or handle.image_type)
            self.cache_fs.put(derivative, data)
        finally:
            if handle is not None:
                handle.release()
            scratch.unlink(missing_ok=True)

        logger.info(f"Derivative written: {derivative}")
        return self._reference(derivative)

    def pipeline(self, source: str, derivative: str, force: bool = False) -> ImagePipeline:
        """Start a fluent pipeline producing derivative from source."""
        return ImagePipeline(self, source, derivative, force)

    def url(self, path: str) -> str:
        return self.cache_fs.url(sanitize_storage_path(path))

    # Convenience operations

    def crop(
        self,
        source: str,
        x1,
        y1=None,
        x2=None,
        y2=None,
        mode: str = CROP_MODE_IGNORE,
    ) -> DerivativeReference:
        """
        Crop using coordinates or percentages.

        Example:
            crop("image.jpg", 10, "10%")       - 10 px left and right, 10% top and bottom
            crop("image.jpg", 20)              - 20 px from every edge
            crop("image.jpg", 10, 30, "30%")   - 10 px left, 30 px top, 30% right and bottom
        """
        if mode not in CROP_MODES:
            raise ValueError(f"mode must be one of {CROP_MODES}, got {mode!r}")

        derivative = self._derivative_path(source, crop_suffix(x1, y1, x2, y2, mode))
        add_padding = mode == CROP_MODE_ADDPADDING
        return self.make(
            source,
            derivative,
            lambda handle: handle.crop(x1, y1, x2, y2, add_padding),
        )

    def resize(
        self, source: str, width, height=None, mode: str = RESIZE_MODE_PAD
    ) -> DerivativeReference:
        """
        Resize with one of three modes.

        pad: keep the ratio and fill the requested canvas with the background
        keepratio: keep the ratio and shrink the canvas to the scaled image
        stretch: scale to exactly width x height
        """
        if mode not in RESIZE_MODES:
            raise ValueError(f"mode must be one of {RESIZE_MODES}, got {mode!r}")

        if mode == RESIZE_MODE_STRETCH:
            keep_ratio, pad = False, False
        elif mode == RESIZE_MODE_KEEPRATIO:
            keep_ratio, pad = True, False
        else:
            keep_ratio, pad = True, True

        derivative = self._derivative_path(source, resize_suffix(width, height, mode))
        return self.make(
            source,
            derivative,
            lambda handle: handle.resize(width, height, keep_ratio, pad),
        )

    def watermark(
        self, source: str, overlay: Optional[Union[str, Path]] = None
    ) -> DerivativeReference:
        """
        Place an overlay using the configured anchors and paddings.

        Args:
            source: Path of the original on source_fs
            overlay: Local overlay file (defaults to config.watermark_path)

        Raises:
            SourceUnreadable: Overlay unreadable and config.debug is set
        """
        overlay = overlay if overlay is not None else self.config.watermark_path

        if overlay is None or not os.access(overlay, os.R_OK) or not Path(overlay).is_file():
            message = f"The file '{overlay}' is unreadable"
            if self.config.debug:
                raise SourceUnreadable(message)
            logger.error(message)
            return DerivativeReference()

        config = self.config
        derivative = self._derivative_path(
            source,
            watermark_suffix(
                overlay,
                config.watermark_x_position,
                config.watermark_y_position,
                config.watermark_x_pad,
                config.watermark_y_pad,
                config.watermark_opacity,
            ),
        )
        return self.make(
            source,
            derivative,
            lambda handle: handle.watermark(
                overlay,
                config.watermark_x_position,
                config.watermark_y_position,
                config.watermark_x_pad,
                config.watermark_y_pad,
            ),
        )

    def rotate(self, source: str, degrees: int) -> DerivativeReference:
        """Rotate clockwise (positive) or counter-clockwise (negative)."""
        derivative = self._derivative_path(source, rotate_suffix(degrees))
        return self.make(source, derivative, lambda handle: handle.rotate(degrees))

    # Helpers

    def _output_extension(self, source: str) -> str:
        if self.config.output_type is not None:
            return self.config.output_type.extension
        source_type = ImageType.from_path(source)
        if source_type is None:
            raise UnsupportedImageType(f"Unknown image type '{Path(source).suffix}'")
        return source_type.extension

    def _derivative_path(self, source: str, suffix: str) -> str:
        return build_derivative_path(
            self.disk_name, source, suffix, self._output_extension(source)
        )

    def _reference(self, derivative: str) -> DerivativeReference:
        return DerivativeReference(derivative, self.cache_fs.url(derivative))

    def _stage(self, source: str) -> Path:
        """Copy the source bytes to a uniquely named scratch file with its extension."""
        source_type = ImageType.from_path(source)
        if source_type is None:
            raise UnsupportedImageType(f"Unknown image type '{Path(source).suffix}'")
        extension = Path(source).suffix.lstrip(".").lower() or source_type.extension

        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PermissionDenied(
                f"Cannot create scratch folder '{self.staging_dir}': {exc}"
            ) from exc

        data = self.source_fs.get(source)

        for _ in range(SCRATCH_NAME_ATTEMPTS):
            scratch = self.staging_dir / f"{uuid.uuid4().hex}.{extension}"
            try:
                with open(scratch, "xb") as stream:
                    stream.write(data)
            except FileExistsError:
                continue
            except OSError as exc:
                scratch.unlink(missing_ok=True)
                raise PermissionDenied(f"Cannot create scratch file '{scratch}': {exc}") from exc
            return scratch

        raise ImagingError(f"Could not create a scratch file in '{self.staging_dir}'")
