"""
Backend contract and image handle.

An ImageBackend is a stateless engine (it only carries configuration). All
per-image state lives in an ImageHandle returned by ImageBackend.load(); the
handle records operations in its own OperationQueue and executes them on
run_queue().

Classes:
    ImageBackend: Abstract capability set every engine implements
    ImageHandle: Request-scoped decoded image plus its settings and queue
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Tuple, Union
import logging
import os

from IC_Libs.errors import PermissionDenied, SourceUnreadable, UnsupportedImageType
from IC_Libs.GeometryLib.color_model import HandleSettings
from IC_Libs.GeometryLib.geometry import CropBox, ResizeGeometry
from IC_Libs.GeometryLib.image_types import ImageType, XPosition, YPosition
from IC_Libs.PipelineLib.operation_queue import OperationKind, OperationQueue

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ImageBackend(ABC):
    """
    Abstract image engine.

    Subclasses implement decoding plus the five pixel operations. Every
    mutating method updates handle.native in place and returns the handle.
    Rotation follows a clockwise convention; degrees are already normalized
    to [0, 360) by the caller.

    Attributes:
        name: Registry name of the backend
        accepted_types: Image types the backend can load
        settings: Default HandleSettings for handles created by load()
    """

    name = "abstract"
    accepted_types: Tuple[ImageType, ...] = tuple(ImageType)

    def __init__(self, settings: Optional[HandleSettings] = None):
        self.settings = settings or HandleSettings()

    # Loading

    def load(
        self,
        path: PathLike,
        image_type: Union[ImageType, str, None] = None,
        settings: Optional[HandleSettings] = None,
    ) -> "ImageHandle":
        """
        Decode an image file into a new handle.

        Args:
            path: Image file
            image_type: Declared type; derived from the extension when None
            settings: Handle settings (defaults to the backend settings)

        Raises:
            SourceUnreadable: If the file is missing or cannot be decoded
            UnsupportedImageType: If the type is unknown or not accepted
        """
        path = Path(path)
        if not path.is_file() or not os.access(path, os.R_OK):
            raise SourceUnreadable(f"The file '{path}' is unreadable")

        resolved_type = self.resolve_image_type(path, image_type)
        native = self._load_native(path, resolved_type)

        logger.debug(f"{self.name}: loaded {path} as {resolved_type.value}")
        return ImageHandle(self, native, resolved_type, settings or self.settings, path)

    def resolve_image_type(
        self, path: PathLike, image_type: Union[ImageType, str, None] = None
    ) -> ImageType:
        """Resolve the declared or extension-derived type and check it is accepted."""
        if image_type is not None:
            resolved = ImageType.parse(image_type)
            if resolved is None:
                raise UnsupportedImageType(f"Unknown image type '{image_type}'")
        else:
            resolved = ImageType.from_path(path)
            if resolved is None:
                raise UnsupportedImageType(f"Unknown image type '{Path(path).suffix}'")

        if resolved not in self.accepted_types:
            raise UnsupportedImageType(
                f"Image type '{resolved.value}' is not supported by the {self.name} backend"
            )
        return resolved

    @abstractmethod
    def _load_native(self, path: Path, image_type: ImageType) -> Any:
        """Decode path into the backend's native representation."""

    # Inspection

    @abstractmethod
    def dimensions(self, handle: "ImageHandle") -> Tuple[int, int]:
        """Current (width, height) of a handle."""

    @abstractmethod
    def probe_dimensions(self, path: PathLike) -> Tuple[int, int]:
        """(width, height) of an image file, e.g. a watermark overlay."""

    # Operations

    @abstractmethod
    def crop(self, handle: "ImageHandle", box: CropBox, add_padding: bool) -> "ImageHandle":
        """
        Crop to box.

        Pixels outside the image are clamped away. Without add_padding the
        canvas shrinks to the clamped size; with it the canvas keeps the box
        size and the uncovered area is filled with the background.
        """

    @abstractmethod
    def resize(self, handle: "ImageHandle", geometry: ResizeGeometry) -> "ImageHandle":
        """Area-average the image into the geometry window on a background canvas."""

    @abstractmethod
    def watermark(
        self, handle: "ImageHandle", overlay_path: PathLike, x: int, y: int, opacity: int
    ) -> "ImageHandle":
        """Composite an overlay at (x, y) with opacity 0-100."""

    @abstractmethod
    def rotate(self, handle: "ImageHandle", degrees: int) -> "ImageHandle":
        """Rotate clockwise, filling exposed corners with the background."""

    # Output

    @abstractmethod
    def encode(self, handle: "ImageHandle", image_type: ImageType) -> bytes:
        """Encode the current image as image_type."""

    def encode_to_file(
        self, handle: "ImageHandle", path: PathLike, image_type: ImageType
    ) -> Path:
        """Encode and write to path, creating parent directories."""
        path = Path(path)
        data = self.encode(handle, image_type)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except PermissionError as exc:
            raise PermissionDenied(f"Cannot write '{path}': {exc}") from exc
        return path

    # Lifecycle

    def reload(self, handle: "ImageHandle") -> "ImageHandle":
        """Discard pending operations and decode the source again."""
        if handle.source_path is None:
            raise SourceUnreadable("Handle has no source file to reload")
        self._release_native(handle)
        handle.native = self._load_native(handle.source_path, handle.image_type)
        handle.queue.reset()
        return handle

    def release(self, handle: "ImageHandle") -> None:
        """Free native resources. Safe to call more than once."""
        if handle.native is None:
            return
        self._release_native(handle)
        handle.native = None

    def _release_native(self, handle: "ImageHandle") -> None:
        """Backend hook for freeing handle.native."""


class ImageHandle:
    """
    A decoded image being transformed by one request.

    The fluent methods only record operations; run_queue() applies them in
    order.

    Example:
        >>> with backend.load("photo.jpg") as handle:
        ...     handle.crop(10).resize(200, 100, pad=True).rotate(90)
        ...     handle.run_queue()
        ...     data = handle.blob(ImageType.PNG)
    """

    def __init__(
        self,
        backend: ImageBackend,
        native: Any,
        image_type: ImageType,
        settings: Optional[HandleSettings] = None,
        source_path: Optional[PathLike] = None,
    ):
        self.backend = backend
        self.native = native
        self.image_type = image_type
        self.settings = settings or HandleSettings()
        self.source_path = Path(source_path) if source_path is not None else None
        self.queue = OperationQueue()

    def __repr__(self) -> str:
        return (
            f"ImageHandle(backend={self.backend.name!r}, type={self.image_type.value!r}, "
            f"source={str(self.source_path)!r}, pending={len(self.queue)})"
        )

    def __enter__(self) -> "ImageHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def released(self) -> bool:
        return self.native is None

    # Queued operations

    def crop(self, x1, y1=None, x2=None, y2=None, add_padding: bool = False) -> "ImageHandle":
        """
        Queue a crop.

        Positive values count from the top-left corner, negative values from
        the bottom-right corner; both accept percentages ("10%").

        Example:
            crop(20)             - trim 20 px from every edge
            crop(10, "10.5%")    - 10 px left and right, 10.5% top and bottom
            crop(10, 30, "30%")  - 10 px left, 30 px top, 30% right and bottom
        """
        self.queue.enqueue(OperationKind.CROP, x1, y1, x2, y2, add_padding)
        return self

    def resize(self, width, height=None, keep_ratio: bool = True, pad: bool = False) -> "ImageHandle":
        self.queue.enqueue(OperationKind.RESIZE, width, height, keep_ratio, pad)
        return self

    def watermark(
        self,
        overlay_path: PathLike,
        x_position=XPosition.RIGHT,
        y_position=YPosition.BOTTOM,
        x_pad: int = 0,
        y_pad: Optional[int] = None,
    ) -> "ImageHandle":
        self.queue.enqueue(
            OperationKind.WATERMARK, overlay_path, x_position, y_position, x_pad, y_pad
        )
        return self

    def rotate(self, degrees: int) -> "ImageHandle":
        """Queue a rotation; positive is clockwise, negative counter-clockwise."""
        self.queue.enqueue(OperationKind.ROTATE, degrees)
        return self

    def run_queue(self) -> "ImageHandle":
        return self.queue.run(self)

    # Inspection and output

    def size(self) -> Tuple[int, int]:
        return self.backend.dimensions(self)

    def blob(self, image_type: Union[ImageType, str, None] = None) -> bytes:
        """Encode the current image (the original type when image_type is None)."""
        target = self._target_type(image_type)
        return self.backend.encode(self, target)

    def save(
        self,
        path: PathLike,
        image_type: Union[ImageType, str, None] = None,
        permissions: Optional[int] = None,
    ) -> Path:
        """
        Write the current image to path.

        The type comes from image_type (replacing the extension) or from the
        extension of path.

        Raises:
            UnsupportedImageType: If the extension is unknown
            PermissionDenied: If the file cannot be written
        """
        path = Path(path)
        if image_type is not None:
            target = self._target_type(image_type)
            path = path.with_suffix("." + target.extension)
        else:
            target = ImageType.from_path(path)
            if target is None:
                raise UnsupportedImageType(f"Unknown image type '{path.suffix}'")

        written = self.backend.encode_to_file(self, path, target)
        if permissions is not None:
            try:
                os.chmod(written, permissions)
            except PermissionError as exc:
                raise PermissionDenied(f"Cannot set permissions on '{written}': {exc}") from exc
        return written

    def save_in_original_folder(
        self,
        prefix: str = "",
        suffix: str = "",
        image_type: Union[ImageType, str, None] = None,
        permissions: Optional[int] = None,
    ) -> Path:
        """Save next to the source file as <prefix><stem><suffix>.<ext>."""
        if self.source_path is None:
            raise SourceUnreadable("Handle has no source file")
        source = self.source_path
        target = source.with_name(f"{prefix}{source.stem}{suffix}{source.suffix}")
        return self.save(target, image_type, permissions)

    def reload(self) -> "ImageHandle":
        return self.backend.reload(self)

    def release(self) -> None:
        self.backend.release(self)

    def _target_type(self, image_type: Union[ImageType, str, None]) -> ImageType:
        if image_type is None:
            return self.image_type
        target = ImageType.parse(image_type)
        if target is None:
            raise UnsupportedImageType(f"Unknown image type '{image_type}'")
        return target
