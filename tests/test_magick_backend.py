"""
Tests for the ImageMagick backend command construction.

subprocess.run and shutil.which are mocked, so these tests run without
ImageMagick installed.
"""

import subprocess
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest

from IC_Libs.BackendsLib.magick_backend import MagickBackend, MagickToolchain, locate_toolchain
from IC_Libs.errors import (
    BackendError,
    ExternalToolExecutionFailed,
    ExternalToolMissing,
    PermissionDenied,
    SourceUnreadable,
)
from IC_Libs.GeometryLib.color_model import HandleSettings
from IC_Libs.GeometryLib.geometry import CropBox, ResizeGeometry
from IC_Libs.GeometryLib.image_types import ImageType

RUN = "IC_Libs.BackendsLib.magick_backend.subprocess.run"
WHICH = "IC_Libs.BackendsLib.magick_backend.shutil.which"


def completed(stdout=b"", returncode=0, stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestLocateToolchain(unittest.TestCase):
    """Test cases for locate_toolchain."""

    def test_prefers_magick_v7(self):
        with patch(WHICH, side_effect=lambda name, path=None: f"/usr/bin/{name}"):
            toolchain = locate_toolchain()

        self.assertEqual(toolchain.convert, ["/usr/bin/magick"])
        self.assertEqual(toolchain.identify, ["/usr/bin/magick", "identify"])
        self.assertEqual(toolchain.composite, ["/usr/bin/magick", "composite"])

    def test_falls_back_to_v6_programs(self):
        def which(name, path=None):
            return None if name == "magick" else f"/usr/bin/{name}"

        with patch(WHICH, side_effect=which):
            toolchain = locate_toolchain()

        self.assertEqual(toolchain.convert, ["/usr/bin/convert"])
        self.assertEqual(toolchain.identify, ["/usr/bin/identify"])
        self.assertEqual(toolchain.composite, ["/usr/bin/composite"])

    def test_searches_configured_directory(self):
        with patch(WHICH, return_value="/opt/im/magick") as which:
            locate_toolchain("/opt/im")
        which.assert_called_once_with("magick", path="/opt/im")

    def test_missing_executables(self):
        with patch(WHICH, return_value=None):
            with self.assertRaises(ExternalToolMissing) as ctx:
                locate_toolchain("/opt/im")
        self.assertEqual(ctx.exception.program, str(Path("/opt/im") / "convert"))


class TestMagickCommands:
    """Command lines produced for each operation."""

    @pytest.fixture
    def backend(self, tmp_path):
        backend = MagickBackend(HandleSettings(), temp_dir=tmp_path)
        backend._toolchain = MagickToolchain(["convert"], ["identify"], ["composite"])
        return backend

    @pytest.fixture
    def handle(self, backend, image_factory):
        with patch(RUN, return_value=completed()):
            handle = backend.load(image_factory("photo.png"))
        handle.native.size = (100, 100)
        yield handle
        handle.release()

    def test_scratch_dir_is_created(self, backend, tmp_path):
        assert backend.scratch_dir == tmp_path / "imagemagick"
        assert backend.scratch_dir.is_dir()

    def test_unwritable_temp_dir(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(PermissionDenied):
            MagickBackend(temp_dir=blocker)

    def test_load_converts_first_frame_to_scratch(self, backend, image_factory):
        path = image_factory("photo.png")
        with patch(RUN, return_value=completed()) as run:
            handle = backend.load(path)

        scratch = handle.native.path
        assert scratch.parent == backend.scratch_dir
        assert scratch.exists()
        command = run.call_args[0][0]
        assert command == ["convert", f"{path}[0]", f"PNG32:{scratch}"]

    def test_load_failure_is_unreadable_and_cleans_up(self, backend, image_factory):
        with patch(RUN, return_value=completed(returncode=1, stderr=b"corrupt")):
            with pytest.raises(SourceUnreadable):
                backend.load(image_factory("photo.png"))
        assert list(backend.scratch_dir.iterdir()) == []

    def test_dimensions_use_identify(self, backend, handle):
        handle.native.size = None
        with patch(RUN, return_value=completed(b"120 80")) as run:
            assert handle.size() == (120, 80)
            assert handle.size() == (120, 80)

        run.assert_called_once()
        assert run.call_args[0][0] == [
            "identify", "-format", "%w %h", f"{handle.native.path}[0]"
        ]

    def test_crop(self, backend, handle):
        scratch = str(handle.native.path)
        with patch(RUN, return_value=completed()) as run:
            backend.crop(handle, CropBox(10, 20, 90, 80), False)

        assert run.call_args[0][0] == [
            "convert", scratch, "-crop", "80x60+10+20", "+repage", f"PNG32:{scratch}"
        ]
        assert handle.native.size is None

    def test_crop_with_padding(self, backend, handle):
        scratch = str(handle.native.path)
        with patch(RUN, return_value=completed()) as run:
            backend.crop(handle, CropBox(-20, -20, 50, 50), True)

        assert run.call_args[0][0] == [
            "convert", "-size", "70x70", "xc:rgba(0,0,0,0.0)",
            "(", scratch, "-crop", "50x50+0+0", "+repage", ")",
            "-geometry", "+20+20", "-compose", "Copy", "-composite",
            f"PNG32:{scratch}",
        ]

    def test_resize(self, backend, handle):
        scratch = str(handle.native.path)
        geometry = ResizeGeometry(100, 50, 100, 100, 0, 25, 200, 100)
        with patch(RUN, return_value=completed()) as run:
            backend.resize(handle, geometry)

        assert run.call_args[0][0] == [
            "convert", scratch,
            "-filter", "Box", "-resize", "100x50!",
            "-background", "rgba(0,0,0,0.0)",
            "-gravity", "center", "-extent", "100x100", "+gravity",
            f"PNG32:{scratch}",
        ]

    def test_rotate(self, backend, handle):
        scratch = str(handle.native.path)
        with patch(RUN, return_value=completed()) as run:
            backend.rotate(handle, 270)

        assert run.call_args[0][0] == [
            "convert", scratch, "-background", "rgba(0,0,0,0.0)",
            "-rotate", "270", "+repage", f"PNG32:{scratch}",
        ]

    def test_arbitrary_rotation_extends_to_shared_canvas(self, backend, handle):
        scratch = str(handle.native.path)
        with patch(RUN, return_value=completed()) as run:
            backend.rotate(handle, 45)

        run.assert_called_once()
        assert run.call_args[0][0] == [
            "convert", scratch, "-background", "rgba(0,0,0,0.0)",
            "-rotate", "45", "+repage",
            "-gravity", "center", "-extent", "142x142", "+gravity", "+repage",
            f"PNG32:{scratch}",
        ]
        assert handle.native.size is None

    def test_rotate_zero_runs_nothing(self, backend, handle):
        with patch(RUN) as run:
            backend.rotate(handle, 0)
        run.assert_not_called()

    def test_watermark(self, backend, handle, overlay_path):
        scratch = str(handle.native.path)
        with patch(RUN, side_effect=[completed(b"20 20"), completed(), completed()]) as run:
            backend.watermark(handle, overlay_path, -5, 90, 75)

        identify, crop, composite = [call[0][0] for call in run.call_args_list]
        assert identify == ["identify", "-format", "%w %h", f"{overlay_path}[0]"]
        assert crop[:5] == ["convert", f"{overlay_path}[0]", "-crop", "15x10+5+0", "+repage"]
        overlay = crop[5][len("PNG32:"):]
        assert composite == [
            "composite", "-dissolve", "75", "-geometry", "+0+90",
            overlay, scratch, f"PNG32:{scratch}",
        ]
        # Temporary overlay is removed
        assert not Path(overlay).exists()

    def test_watermark_outside_image(self, backend, handle, overlay_path):
        with patch(RUN, return_value=completed(b"20 20")) as run:
            backend.watermark(handle, overlay_path, 200, 200, 75)
        assert run.call_count == 1

    def test_encode_jpeg_flattens(self, backend, handle):
        with patch(RUN, return_value=completed(b"JPEGDATA")) as run:
            data = backend.encode(handle, ImageType.JPEG)

        assert data == b"JPEGDATA"
        assert run.call_args[0][0] == [
            "convert", str(handle.native.path),
            "-background", "rgba(255,255,255,1.0)", "-flatten",
            "-quality", "70", "jpeg:-",
        ]

    def test_encode_png_keeps_alpha(self, backend, handle):
        with patch(RUN, return_value=completed(b"PNGDATA")) as run:
            backend.encode(handle, ImageType.PNG)
        assert run.call_args[0][0] == ["convert", str(handle.native.path), "png:-"]

    def test_release_removes_scratch(self, backend, handle):
        scratch = handle.native.path
        handle.release()
        handle.release()
        assert not scratch.exists()


class TestProcessErrors:
    """Errors raised by the process runner."""

    @pytest.fixture
    def backend(self, tmp_path):
        backend = MagickBackend(temp_dir=tmp_path)
        backend._toolchain = MagickToolchain(["convert"], ["identify"], ["composite"])
        return backend

    def test_non_zero_exit(self, backend):
        with patch(RUN, return_value=completed(returncode=3, stderr=b"no decode delegate")):
            with pytest.raises(ExternalToolExecutionFailed) as info:
                backend._run(["convert", "a.xyz", "b.png"])

        error = info.value
        assert error.exit_code == 3
        assert error.command == ["convert", "a.xyz", "b.png"]
        assert error.stderr == "no decode delegate"

    def test_executable_vanished(self, backend):
        with patch(RUN, side_effect=FileNotFoundError()):
            with pytest.raises(ExternalToolMissing) as info:
                backend._run(["convert", "a.png", "b.png"])
        assert info.value.program == "convert"

    def test_bad_identify_output(self, backend):
        with patch(RUN, return_value=completed(b"garbage")):
            with pytest.raises(BackendError) as info:
                backend.probe_dimensions("a.png")
        assert "identify" in str(info.value)
