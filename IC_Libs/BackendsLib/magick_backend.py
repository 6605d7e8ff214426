"""
ImageMagick command-line backend.

Each handle owns a scratch PNG below <temp_dir>/imagemagick/. Every operation
is one ImageMagick invocation that reads the scratch file and writes it back;
the exit code is the only success signal. Both ImageMagick 7 (a single
``magick`` executable) and ImageMagick 6 (``convert``, ``identify`` and
``composite``) are supported.

Classes:
    MagickToolchain: Resolved executables
    MagickImage: Native handle value (scratch path + cached size)
    MagickBackend: Backend implementation

Functions:
    locate_toolchain: Find the ImageMagick executables
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging
import shutil
import subprocess
import tempfile
import uuid

from IC_Libs.constants import (
    BACKEND_IMAGEMAGICK,
    IMAGEMAGICK_COMPOSITE,
    IMAGEMAGICK_CONVERT,
    IMAGEMAGICK_IDENTIFY,
    IMAGEMAGICK_SUBDIR,
    IMAGEMAGICK_V7_PROGRAM,
    SCRATCH_NAME_ATTEMPTS,
)
from IC_Libs.errors import (
    BackendError,
    ExternalToolExecutionFailed,
    ExternalToolMissing,
    PermissionDenied,
    SourceUnreadable,
)
from IC_Libs.GeometryLib.color_model import HandleSettings
from IC_Libs.GeometryLib.geometry import (
    CropBox,
    ResizeGeometry,
    resolve_overlay_region,
    resolve_rotation_geometry,
)
from IC_Libs.GeometryLib.image_types import ImageType
from IC_Libs.BackendsLib.contract import ImageBackend, ImageHandle

logger = logging.getLogger(__name__)

# Output prefix forcing 8-bit RGBA scratch files
_SCRATCH_FORMAT = "PNG32:"


@dataclass(frozen=True)
class MagickToolchain:
    convert: List[str]
    identify: List[str]
    composite: List[str]


def locate_toolchain(imagemagick_dir: Optional[Union[str, Path]] = None) -> MagickToolchain:
    """
    Find ImageMagick executables in imagemagick_dir, or on PATH when None.

    Raises:
        ExternalToolMissing: If neither ``magick`` nor the v6 trio is found
    """
    search_path = str(imagemagick_dir) if imagemagick_dir else None

    magick = shutil.which(IMAGEMAGICK_V7_PROGRAM, path=search_path)
    if magick:
        return MagickToolchain(
            convert=[magick],
            identify=[magick, IMAGEMAGICK_IDENTIFY],
            composite=[magick, IMAGEMAGICK_COMPOSITE],
        )

    found = {}
    for program in (IMAGEMAGICK_CONVERT, IMAGEMAGICK_IDENTIFY, IMAGEMAGICK_COMPOSITE):
        executable = shutil.which(program, path=search_path)
        if executable is None:
            missing = str(Path(imagemagick_dir) / program) if imagemagick_dir else program
            raise ExternalToolMissing(missing)
        found[program] = [executable]

    return MagickToolchain(
        convert=found[IMAGEMAGICK_CONVERT],
        identify=found[IMAGEMAGICK_IDENTIFY],
        composite=found[IMAGEMAGICK_COMPOSITE],
    )


@dataclass
class MagickImage:
    """Scratch file holding the current pixels, plus its identified size."""
    path: Path
    size: Optional[Tuple[int, int]] = None


class MagickBackend(ImageBackend):
    """Backend shelling out to the ImageMagick CLI."""

    name = BACKEND_IMAGEMAGICK

    def __init__(
        self,
        settings: Optional[HandleSettings] = None,
        temp_dir: Optional[Union[str, Path]] = None,
        imagemagick_dir: Optional[Union[str, Path]] = None,
    ):
        super().__init__(settings)
        self.imagemagick_dir = imagemagick_dir
        self.scratch_dir = Path(temp_dir or tempfile.gettempdir()) / IMAGEMAGICK_SUBDIR
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PermissionDenied(
                f"Cannot create scratch folder '{self.scratch_dir}': {exc}"
            ) from exc
        self._toolchain: Optional[MagickToolchain] = None

    @property
    def toolchain(self) -> MagickToolchain:
        if self._toolchain is None:
            self._toolchain = locate_toolchain(self.imagemagick_dir)
        return self._toolchain

    # Process helpers

    def _run(self, command: List[str]) -> subprocess.CompletedProcess:
        logger.debug(f"Running ImageMagick: {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, check=False)
        except FileNotFoundError as exc:
            raise ExternalToolMissing(command[0]) from exc

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace") if result.stderr else ""
            raise ExternalToolExecutionFailed(result.returncode, command, stderr)
        return result

    def _scratch_file(self, extension: str) -> Path:
        """Reserve an unused scratch file name."""
        for _ in range(SCRATCH_NAME_ATTEMPTS):
            candidate = self.scratch_dir / f"{uuid.uuid4().hex}.{extension}"
            try:
                candidate.touch(exist_ok=False)
            except FileExistsError:
                continue
            return candidate
        raise BackendError(f"Could not create a scratch file in '{self.scratch_dir}'")

    def _identify(self, path: Union[str, Path]) -> Tuple[int, int]:
        result = self._run(self.toolchain.identify + ["-format", "%w %h", f"{path}[0]"])
        output = result.stdout.decode("utf-8", errors="replace").split()
        try:
            return int(output[0]), int(output[1])
        except (IndexError, ValueError) as exc:
            raise BackendError(f"Unexpected identify output for '{path}': {output!r}") from exc

    def _rewrite(self, handle: ImageHandle, *arguments: str) -> ImageHandle:
        """Run convert on the scratch file in place and drop the cached size."""
        scratch = str(handle.native.path)
        self._run(self.toolchain.convert + [scratch, *arguments, _SCRATCH_FORMAT + scratch])
        handle.native.size = None
        return handle

    def _background(self, handle: ImageHandle) -> str:
        return handle.settings.background_for(handle.image_type).to_magick()

    # Contract

    def _load_native(self, path: Path, image_type: ImageType) -> MagickImage:
        scratch = self._scratch_file("png")
        try:
            self._run(self.toolchain.convert + [f"{path}[0]", _SCRATCH_FORMAT + str(scratch)])
        except ExternalToolExecutionFailed as exc:
            scratch.unlink(missing_ok=True)
            raise SourceUnreadable(f"The file '{path}' is unreadable: {exc}") from exc
        except BackendError:
            scratch.unlink(missing_ok=True)
            raise
        return MagickImage(scratch)

    def dimensions(self, handle: ImageHandle) -> Tuple[int, int]:
        native = handle.native
        if native.size is None:
            native.size = self._identify(native.path)
        return native.size

    def probe_dimensions(self, path: Union[str, Path]) -> Tuple[int, int]:
        return self._identify(path)

    def crop(self, handle: ImageHandle, box: CropBox, add_padding: bool) -> ImageHandle:
        width, height = self.dimensions(handle)

        left = min(max(box.x1, 0), width)
        top = min(max(box.y1, 0), height)
        right = min(max(box.x2, 0), width)
        bottom = min(max(box.y2, 0), height)
        geometry = f"{right - left}x{bottom - top}+{left}+{top}"

        if not add_padding:
            if right <= left or bottom <= top:
                raise BackendError(f"Crop box {box.as_tuple()} is outside the image")
            return self._rewrite(handle, "-crop", geometry, "+repage")

        if box.width <= 0 or box.height <= 0:
            raise BackendError(f"Crop box {box.as_tuple()} is empty")

        scratch = str(handle.native.path)
        command = self.toolchain.convert + [
            "-size", f"{box.width}x{box.height}", f"xc:{self._background(handle)}",
        ]
        if right > left and bottom > top:
            command += [
                "(", scratch, "-crop", geometry, "+repage", ")",
                "-geometry", f"+{left - box.x1}+{top - box.y1}",
                "-compose", "Copy", "-composite",
            ]
        self._run(command + [_SCRATCH_FORMAT + scratch])
        handle.native.size = None
        return handle

    def resize(self, handle: ImageHandle, geometry: ResizeGeometry) -> ImageHandle:
        return self._rewrite(
            handle,
            "-filter", "Box",
            "-resize", f"{geometry.width}x{geometry.height}!",
            "-background", self._background(handle),
            "-gravity", "center",
            "-extent", f"{geometry.canvas_width}x{geometry.canvas_height}",
            "+gravity",
        )

    def watermark(
        self, handle: ImageHandle, overlay_path: Union[str, Path], x: int, y: int, opacity: int
    ) -> ImageHandle:
        wm_width, wm_height = self._identify(overlay_path)
        width, height = self.dimensions(handle)

        region = resolve_overlay_region(x, y, wm_width, wm_height, width, height)
        if region is None:
            logger.debug(f"Watermark at ({x}, {y}) lies outside the image, skipped")
            return handle

        # Negative offsets are not accepted by composite; pre-crop the overlay
        overlay = self._scratch_file("png")
        try:
            self._run(self.toolchain.convert + [
                f"{overlay_path}[0]",
                "-crop", f"{region.width}x{region.height}+{region.source_x}+{region.source_y}",
                "+repage",
                _SCRATCH_FORMAT + str(overlay),
            ])
            scratch = str(handle.native.path)
            self._run(self.toolchain.composite + [
                "-dissolve", str(opacity),
                "-geometry", f"+{region.dest_x}+{region.dest_y}",
                str(overlay), scratch, _SCRATCH_FORMAT + scratch,
            ])
        finally:
            overlay.unlink(missing_ok=True)

        handle.native.size = None
        return handle

    def rotate(self, handle: ImageHandle, degrees: int) -> ImageHandle:
        if degrees % 360 == 0:
            return handle
        # -rotate is already clockwise
        arguments = ["-background", self._background(handle), "-rotate", str(degrees), "+repage"]
        if degrees % 90 != 0:
            # ImageMagick sizes the expanded canvas on its own; trim or pad to the shared size
            geometry = resolve_rotation_geometry(degrees, *self.dimensions(handle))
            arguments += [
                "-gravity", "center",
                "-extent", f"{geometry.canvas_width}x{geometry.canvas_height}",
                "+gravity", "+repage",
            ]
        return self._rewrite(handle, *arguments)

    def encode(self, handle: ImageHandle, image_type: ImageType) -> bytes:
        if handle.native is None:
            raise BackendError("Cannot encode a released image")

        command = self.toolchain.convert + [str(handle.native.path)]

        flatten = handle.settings.flatten_color_for(image_type)
        if flatten is not None:
            command += ["-background", flatten.to_magick(), "-flatten"]
        if image_type in (ImageType.JPEG, ImageType.WEBP):
            command += ["-quality", str(max(1, min(100, handle.settings.quality)))]

        command.append(f"{image_type.extension}:-")
        return self._run(command).stdout

    def _release_native(self, handle: ImageHandle) -> None:
        handle.native.path.unlink(missing_ok=True)
