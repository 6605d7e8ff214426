"""
Storage abstraction used by CacheManager.

CacheManager only ever calls the five methods of Filesystem, so sources and
derivatives can live on any storage a subclass wraps.

Classes:
    Filesystem: Abstract storage contract
    LocalFilesystem: Storage rooted in a local directory
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote
import logging

from IC_Libs.errors import PermissionDenied, SourceMissing, SourceUnreadable

logger = logging.getLogger(__name__)


class Filesystem(ABC):
    """Abstract storage holding files under relative, '/'-separated paths."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def last_modified(self, path: str) -> float:
        """Modification time in seconds since the epoch."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        ...

    @abstractmethod
    def put(self, path: str, data: bytes) -> None:
        ...

    @abstractmethod
    def url(self, path: str) -> str:
        ...


class LocalFilesystem(Filesystem):
    """
    Filesystem rooted in a local directory.

    Args:
        root: Directory all paths are relative to
        base_url: Public URL prefix for url(); defaults to a file:// URL

    Example:
        >>> fs = LocalFilesystem("/var/www/media", base_url="https://cdn.example.com/media")
        >>> fs.put("cache/photo-crop.jpg", data)
        >>> fs.url("cache/photo-crop.jpg")
        'https://cdn.example.com/media/cache/photo-crop.jpg'
    """

    def __init__(self, root: Union[str, Path], base_url: Optional[str] = None):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/") if base_url else None

    def path(self, path: str) -> Path:
        """
        Resolve a relative path inside the root.

        Raises:
            PermissionDenied: If the path resolves outside the root
        """
        resolved = (self.root / str(path).lstrip("/\\")).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise PermissionDenied(
                f"Security: path '{path}' resolves to '{resolved}' "
                f"which is outside the storage root '{self.root}'"
            ) from None
        return resolved

    def exists(self, path: str) -> bool:
        return self.path(path).is_file()

    def last_modified(self, path: str) -> float:
        try:
            return self.path(path).stat().st_mtime
        except FileNotFoundError as exc:
            raise SourceMissing(f"File '{path}' does not exist") from exc

    def get(self, path: str) -> bytes:
        target = self.path(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise SourceMissing(f"File '{path}' does not exist") from exc
        except OSError as exc:
            raise SourceUnreadable(f"The file '{path}' is unreadable: {exc}") from exc

    def put(self, path: str, data: bytes) -> None:
        target = self.path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except PermissionError as exc:
            raise PermissionDenied(f"Cannot write '{path}': {exc}") from exc
        logger.debug(f"Wrote {len(data)} bytes to {target}")

    def url(self, path: str) -> str:
        relative = self.path(path).relative_to(self.root).as_posix()
        if self.base_url:
            return f"{self.base_url}/{quote(relative)}"
        return (self.root / relative).as_uri()
