"""
Tests for LocalFilesystem.
"""

import pytest

from IC_Libs.CacheLib.filesystem import LocalFilesystem
from IC_Libs.errors import PermissionDenied, SourceMissing


@pytest.fixture
def fs(tmp_path):
    return LocalFilesystem(tmp_path / "root", base_url="https://cdn.example.com/media/")


class TestLocalFilesystem:
    """Tests for the local Filesystem implementation."""

    def test_put_creates_folders(self, fs):
        fs.put("a/b/c.png", b"data")

        assert fs.exists("a/b/c.png")
        assert fs.get("a/b/c.png") == b"data"
        assert fs.path("a/b/c.png").is_file()

    def test_exists_is_false_for_folders(self, fs):
        fs.put("a/b.png", b"")
        assert not fs.exists("a")

    def test_last_modified(self, fs):
        fs.put("a.png", b"data")
        assert fs.last_modified("a.png") == fs.path("a.png").stat().st_mtime

    def test_missing_file(self, fs):
        assert not fs.exists("missing.png")
        with pytest.raises(SourceMissing):
            fs.get("missing.png")
        with pytest.raises(SourceMissing):
            fs.last_modified("missing.png")

    def test_leading_slash_stays_inside_root(self, fs, tmp_path):
        assert fs.path("/a.png") == (tmp_path / "root" / "a.png").resolve()

    @pytest.mark.parametrize("path", ["../escape.png", "a/../../escape.png"])
    def test_traversal_is_denied(self, fs, path):
        with pytest.raises(PermissionDenied):
            fs.put(path, b"data")
        with pytest.raises(PermissionDenied):
            fs.exists(path)

    def test_url_with_base_url(self, fs):
        assert fs.url("photos/my cat.png") == "https://cdn.example.com/media/photos/my%20cat.png"

    def test_url_without_base_url(self, tmp_path):
        fs = LocalFilesystem(tmp_path)
        assert fs.url("a.png") == (tmp_path / "a.png").resolve().as_uri()
