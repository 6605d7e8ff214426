"""
Error taxonomy for Imaging Cache.

Every error raised by the library derives from ImagingError. Invalid caller
input additionally derives from ValueError, storage problems from the matching
OSError subclass, so callers can catch either the domain type or the builtin.

Classes:
    ImagingError: Root of the hierarchy
    InvalidInputError: Programmer errors (bad geometry, color, position, type)
    SourceMissing / SourceUnreadable / PermissionDenied: Storage errors
    HandlerConstructionFailed: Backend could not be created
    BackendError: Environment or engine failure inside a backend
    ExternalToolMissing / ExternalToolExecutionFailed: ImageMagick CLI failures
    BackendOperationFailed: First failing operation of a queue run
"""

from typing import Any, Optional, Sequence


class ImagingError(Exception):
    """Base class for all imaging errors."""


class InvalidInputError(ImagingError, ValueError):
    """Invalid arguments supplied by the caller. Never retried."""


class InvalidDimensions(InvalidInputError):
    """Width/height (or a coordinate) cannot be resolved to pixels."""


class InvalidHexColor(InvalidInputError):
    """A hex color string is malformed."""


class InvalidPosition(InvalidInputError):
    """A watermark position is neither an anchor nor a number."""


class UnsupportedImageType(InvalidInputError):
    """The image type is unknown or not handled by the backend."""


class SourceMissing(ImagingError, FileNotFoundError):
    """The source file does not exist on the source filesystem."""


class SourceUnreadable(ImagingError, OSError):
    """A file exists but cannot be read or decoded."""


class PermissionDenied(ImagingError, PermissionError):
    """A path cannot be written or escapes its allowed root."""


class HandlerConstructionFailed(ImagingError):
    """The configured backend could not be constructed."""


class BackendError(ImagingError):
    """A backend failed while manipulating an image."""


class ExternalToolMissing(BackendError):
    """An external executable could not be located."""

    def __init__(self, program: str):
        self.program = program
        super().__init__(f"Executable ImageMagick program '{program}' not found")


class ExternalToolExecutionFailed(BackendError):
    """An external executable exited with a non-zero code."""

    def __init__(self, exit_code: int, command: Sequence[str], stderr: str = ""):
        self.exit_code = exit_code
        self.command = list(command)
        self.stderr = stderr
        message = (
            f"Execution of the ImageMagick command '{self.command_line}' "
            f"failed with code '{exit_code}'"
        )
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)

    @property
    def command_line(self) -> str:
        return " ".join(self.command)


class BackendOperationFailed(ImagingError):
    """
    A queued operation failed; subsequent operations were not executed.

    Attributes:
        operation: Name of the failing operation (e.g. "crop")
        detail: Description of the underlying failure
        arguments: Serialized call arguments
        index: Position of the operation in the queue
    """

    def __init__(
        self,
        operation: str,
        detail: str,
        arguments: Optional[Sequence[Any]] = None,
        index: Optional[int] = None,
    ):
        self.operation = operation
        self.detail = detail
        self.arguments = [repr(arg) for arg in (arguments or [])]
        self.index = index
        super().__init__(
            f"The operation '{operation}' failed with an error '{detail}'. "
            f"Call parameters ({', '.join(self.arguments)})"
        )
