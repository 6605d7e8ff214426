"""
Deferred operation queue for image handles.

Operations are recorded on a handle and executed later in insertion order.
Geometry is resolved at execution time against the dimensions the image has
at that point, so crop(10) after resize(50, 50) trims the resized image.

Classes:
    OperationKind: Closed set of queueable operations
    QueuedOperation: One recorded call (kind + arguments)
    QueueState: Lifecycle of a queue
    OperationQueue: Ordered list of operations with explicit dispatch
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Tuple
import logging
import os

from IC_Libs.errors import (
    BackendOperationFailed,
    ImagingError,
    InvalidInputError,
    SourceUnreadable,
    UnsupportedImageType,
)
from IC_Libs.GeometryLib.geometry import (
    resolve_crop_box,
    resolve_resize_geometry,
    resolve_rotation_degrees,
    resolve_watermark_position,
)
from IC_Libs.GeometryLib.image_types import ImageType

logger = logging.getLogger(__name__)


class OperationKind(Enum):
    """Operations a handle can queue."""

    CROP = "crop"
    RESIZE = "resize"
    WATERMARK = "watermark"
    ROTATE = "rotate"


class QueueState(Enum):
    EMPTY = "empty"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class QueuedOperation:
    """
    A recorded operation.

    Attributes:
        kind: Operation kind
        arguments: Positional arguments exactly as supplied by the caller
    """
    kind: OperationKind
    arguments: Tuple[Any, ...] = ()

    @property
    def name(self) -> str:
        return self.kind.value

    def describe(self) -> str:
        """Human-readable call, e.g. "crop(10, None, None, None, False)"."""
        args = ", ".join(repr(arg) for arg in self.arguments)
        return f"{self.name}({args})"


class OperationQueue:
    """
    Ordered operation queue owned by a single image handle.

    State machine:
        EMPTY -> QUEUED -> RUNNING -> COMPLETED | FAILED

    A completed queue is cleared and may be filled again. A failed queue keeps
    its operations for inspection and must be reset() before reuse.

    Example:
        >>> queue = OperationQueue()
        >>> queue.enqueue(OperationKind.CROP, 10, None, None, None, False)
        >>> queue.enqueue(OperationKind.ROTATE, 90)
        >>> queue.run(handle)
    """

    def __init__(self):
        self._operations: List[QueuedOperation] = []
        self._state = QueueState.EMPTY
        self.failed_index: Optional[int] = None
        self.failure: Optional[BaseException] = None

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def operations(self) -> Tuple[QueuedOperation, ...]:
        return tuple(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self):
        return iter(self._operations)

    def enqueue(self, kind: OperationKind, *arguments: Any) -> QueuedOperation:
        """
        Append an operation. Duplicates are allowed and keep their order.

        Raises:
            TypeError: If kind is not an OperationKind
            RuntimeError: If the queue failed and was not reset
        """
        if not isinstance(kind, OperationKind):
            raise TypeError(f"kind must be an OperationKind, got {type(kind)}")
        if self._state is QueueState.FAILED:
            raise RuntimeError("Operation queue failed; call reset() before enqueueing")
        if self._state is QueueState.RUNNING:
            raise RuntimeError("Cannot enqueue while the queue is running")

        operation = QueuedOperation(kind, tuple(arguments))
        self._operations.append(operation)
        self._state = QueueState.QUEUED
        return operation

    def reset(self) -> None:
        """Drop all operations and return to EMPTY."""
        self._operations.clear()
        self._state = QueueState.EMPTY
        self.failed_index = None
        self.failure = None

    def run(self, handle: Any) -> Any:
        """
        Execute all queued operations against a handle.

        Args:
            handle: ImageHandle the operations apply to

        Returns:
            The same handle

        Raises:
            InvalidInputError: Bad geometry, color or position (not wrapped)
            BackendOperationFailed: First failing operation; later ones are skipped
            RuntimeError: If the queue is in the FAILED state
        """
        if self._state is QueueState.FAILED:
            raise RuntimeError("Operation queue failed; call reset() before running")
        if not self._operations:
            return handle

        self._state = QueueState.RUNNING

        for index, operation in enumerate(self._operations):
            logger.debug(f"Running operation {index}: {operation.describe()}")
            try:
                self._dispatch(handle, operation)
            except InvalidInputError as exc:
                self._fail(index, operation, exc)
                raise
            except (ImagingError, OSError) as exc:
                self._fail(index, operation, exc)
                raise BackendOperationFailed(
                    operation.name, str(exc), operation.arguments, index
                ) from exc

        self._operations.clear()
        self._state = QueueState.COMPLETED
        return handle

    def _fail(self, index: int, operation: QueuedOperation, exc: BaseException) -> None:
        self._state = QueueState.FAILED
        self.failed_index = index
        self.failure = exc
        if index > 0:
            logger.warning(
                f"Operation queue aborted at {operation.describe()}; "
                f"{index} earlier operation(s) remain applied"
            )

    def _dispatch(self, handle: Any, operation: QueuedOperation) -> None:
        backend = handle.backend
        kind = operation.kind
        args = operation.arguments

        if kind is OperationKind.CROP:
            x1, y1, x2, y2, add_padding = args
            width, height = backend.dimensions(handle)
            box = resolve_crop_box(x1, y1, x2, y2, width, height)
            backend.crop(handle, box, add_padding)

        elif kind is OperationKind.RESIZE:
            width, height, keep_ratio, pad = args
            src_width, src_height = backend.dimensions(handle)
            geometry = resolve_resize_geometry(
                width, height, keep_ratio, pad, src_width, src_height
            )
            backend.resize(handle, geometry)

        elif kind is OperationKind.WATERMARK:
            overlay_path, x_position, y_position, x_pad, y_pad = args
            overlay = check_overlay_file(overlay_path)
            wm_width, wm_height = backend.probe_dimensions(overlay)
            src_width, src_height = backend.dimensions(handle)
            x, y = resolve_watermark_position(
                x_position, y_position, x_pad, y_pad,
                wm_width, wm_height, src_width, src_height,
            )
            backend.watermark(
                handle, overlay, int(x), int(y), handle.settings.watermark_opacity
            )

        elif kind is OperationKind.ROTATE:
            (degrees,) = args
            backend.rotate(handle, resolve_rotation_degrees(degrees))

        else:
            raise TypeError(f"Unhandled operation kind: {kind}")


def check_overlay_file(path: Any) -> Path:
    """
    Validate an overlay file before it is handed to a backend.

    Raises:
        SourceUnreadable: If the file is missing or not readable
        UnsupportedImageType: If the extension is not a known image type
    """
    overlay = Path(path)
    if not overlay.is_file() or not os.access(overlay, os.R_OK):
        raise SourceUnreadable(f"The file '{overlay}' is unreadable")
    if ImageType.from_path(overlay) is None:
        raise UnsupportedImageType(f"Unknown image type '{overlay.suffix}'")
    return overlay
