"""
Pytest configuration and shared fixtures for Imaging Cache tests.

This module provides sample image files, an in-memory Filesystem and a
spy backend used across multiple test modules.
"""

import shutil
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Tuple

import pytest
from PIL import Image

from IC_Libs.BackendsLib.pillow_backend import PillowBackend
from IC_Libs.BackendsLib.registry import BackendRegistry
from IC_Libs.CacheLib.filesystem import Filesystem
from IC_Libs.errors import SourceMissing


class MemoryFilesystem(Filesystem):
    """Filesystem fake keeping files and modification times in dictionaries."""

    def __init__(self, base_url: str = "https://cdn.test"):
        self.files: Dict[str, bytes] = {}
        self.mtimes: Dict[str, float] = {}
        self.base_url = base_url
        self.clock = 1000.0
        self.writes: List[str] = []

    def exists(self, path: str) -> bool:
        return path in self.files

    def last_modified(self, path: str) -> float:
        if path not in self.mtimes:
            raise SourceMissing(path)
        return self.mtimes[path]

    def get(self, path: str) -> bytes:
        if path not in self.files:
            raise SourceMissing(path)
        return self.files[path]

    def put(self, path: str, data: bytes) -> None:
        self.clock += 1
        self.files[path] = data
        self.mtimes[path] = self.clock
        self.writes.append(path)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def add(self, path: str, data: bytes, mtime: float) -> None:
        self.files[path] = data
        self.mtimes[path] = mtime


class SpyBackend(PillowBackend):
    """Pillow backend recording every contract call."""

    name = "spy"

    def __init__(self, calls: List[str], settings=None):
        super().__init__(settings)
        self.calls = calls

    def load(self, path, image_type=None, settings=None):
        self.calls.append("load")
        return super().load(path, image_type, settings)

    def crop(self, handle, box, add_padding):
        self.calls.append("crop")
        return super().crop(handle, box, add_padding)

    def resize(self, handle, geometry):
        self.calls.append("resize")
        return super().resize(handle, geometry)

    def watermark(self, handle, overlay_path, x, y, opacity):
        self.calls.append("watermark")
        return super().watermark(handle, overlay_path, x, y, opacity)

    def rotate(self, handle, degrees):
        self.calls.append("rotate")
        return super().rotate(handle, degrees)

    def encode(self, handle, image_type):
        self.calls.append("encode")
        return super().encode(handle, image_type)


@pytest.fixture
def image_factory(tmp_path):
    """
    Provide a function writing solid-color sample images.

    Returns:
        Callable(name, size=(100, 100), color=(255, 0, 0, 255)) -> Path
    """
    def make(
        name: str,
        size: Tuple[int, int] = (100, 100),
        color: Tuple[int, int, int, int] = (255, 0, 0, 255),
    ) -> Path:
        path = tmp_path / name
        image = Image.new("RGBA", size, color)
        if path.suffix.lower() in (".jpg", ".jpeg"):
            image = image.convert("RGB")
        image.save(path)
        return path

    return make


@pytest.fixture
def overlay_path(image_factory):
    """A 20x20 opaque blue PNG overlay."""
    return image_factory("overlay.png", (20, 20), (0, 0, 255, 255))


@pytest.fixture
def memory_fs():
    """Provide a factory for in-memory filesystems."""
    return MemoryFilesystem


@pytest.fixture
def png_bytes():
    """
    Provide a function encoding a solid-color PNG in memory.

    Returns:
        Callable(size, color) -> bytes
    """
    def encode(size=(200, 100), color=(255, 0, 0, 255)) -> bytes:
        buffer = BytesIO()
        Image.new("RGBA", size, color).save(buffer, format="PNG")
        return buffer.getvalue()

    return encode


@pytest.fixture
def spy_registry():
    """
    Provide a registry whose only backend ("spy") records calls.

    Returns:
        (registry, calls) where calls is the shared list of recorded names
    """
    calls: List[str] = []
    registry = BackendRegistry()

    def factory(settings=None, **_):
        calls.append("create")
        return SpyBackend(calls, settings)

    registry.register("spy", factory, description="Recording backend", tags=["test"])
    return registry, calls


@pytest.fixture
def magick_available():
    """Skip the test when ImageMagick is not installed."""
    v6 = all(shutil.which(program) for program in ("convert", "identify", "composite"))
    if not (shutil.which("magick") or v6):
        pytest.skip("ImageMagick is not installed")
    return True
