"""
Tests for the deferred operation queue.

Tests cover:
- Queue state machine (EMPTY -> QUEUED -> RUNNING -> COMPLETED | FAILED)
- Insertion-order dispatch with geometry resolved at execution time
- Failure wrapping into BackendOperationFailed
- Overlay file validation
- Error taxonomy helpers
"""

import logging
import unittest
from unittest.mock import Mock, patch

import pytest

from IC_Libs.errors import (
    BackendError,
    BackendOperationFailed,
    ExternalToolExecutionFailed,
    ExternalToolMissing,
    ImagingError,
    InvalidDimensions,
    SourceMissing,
    SourceUnreadable,
    UnsupportedImageType,
)
from IC_Libs.GeometryLib.color_model import HandleSettings
from IC_Libs.GeometryLib.geometry import CropBox
from IC_Libs.PipelineLib.operation_queue import (
    OperationKind,
    OperationQueue,
    QueuedOperation,
    QueueState,
    check_overlay_file,
)


def make_handle(size=(100, 100), opacity=75):
    """Build a handle stand-in whose backend is a Mock reporting a fixed size."""
    backend = Mock()
    backend.dimensions.return_value = size
    handle = Mock()
    handle.backend = backend
    handle.settings = HandleSettings(watermark_opacity=opacity)
    return handle


class TestQueueState(unittest.TestCase):
    """Test cases for the queue lifecycle."""

    def setUp(self):
        self.queue = OperationQueue()
        self.handle = make_handle()

    def test_new_queue_is_empty(self):
        self.assertEqual(self.queue.state, QueueState.EMPTY)
        self.assertEqual(len(self.queue), 0)

    def test_enqueue_moves_to_queued(self):
        operation = self.queue.enqueue(OperationKind.ROTATE, 90)

        self.assertEqual(self.queue.state, QueueState.QUEUED)
        self.assertEqual(operation, QueuedOperation(OperationKind.ROTATE, (90,)))
        self.assertEqual(list(self.queue), [operation])

    def test_running_empty_queue_is_noop(self):
        """Running an empty queue returns the handle without touching the backend."""
        result = self.queue.run(self.handle)

        self.assertIs(result, self.handle)
        self.assertEqual(self.queue.state, QueueState.EMPTY)
        self.handle.backend.dimensions.assert_not_called()

    def test_successful_run_clears_queue(self):
        self.queue.enqueue(OperationKind.ROTATE, 90)
        self.queue.run(self.handle)

        self.assertEqual(self.queue.state, QueueState.COMPLETED)
        self.assertEqual(len(self.queue), 0)

    def test_completed_queue_accepts_new_operations(self):
        self.queue.enqueue(OperationKind.ROTATE, 90)
        self.queue.run(self.handle)
        self.queue.enqueue(OperationKind.ROTATE, 180)

        self.assertEqual(self.queue.state, QueueState.QUEUED)
        self.assertEqual(len(self.queue), 1)

    def test_enqueue_rejects_unknown_kind(self):
        with self.assertRaises(TypeError):
            self.queue.enqueue("crop", 10)

    def test_failed_queue_requires_reset(self):
        self.handle.backend.rotate.side_effect = BackendError("boom")
        self.queue.enqueue(OperationKind.ROTATE, 90)

        with self.assertRaises(BackendOperationFailed):
            self.queue.run(self.handle)

        self.assertEqual(self.queue.state, QueueState.FAILED)
        with self.assertRaises(RuntimeError):
            self.queue.enqueue(OperationKind.ROTATE, 90)
        with self.assertRaises(RuntimeError):
            self.queue.run(self.handle)

        self.queue.reset()
        self.assertEqual(self.queue.state, QueueState.EMPTY)
        self.assertIsNone(self.queue.failed_index)
        self.assertIsNone(self.queue.failure)


class TestDispatch(unittest.TestCase):
    """Test cases for executing operations against a backend."""

    def setUp(self):
        self.queue = OperationQueue()
        self.handle = make_handle()
        self.backend = self.handle.backend

    def test_operations_run_in_insertion_order(self):
        self.queue.enqueue(OperationKind.ROTATE, -90)
        self.queue.enqueue(OperationKind.CROP, 10, 10, -10, -10, False)
        self.queue.enqueue(OperationKind.ROTATE, 450)
        self.queue.run(self.handle)

        names = [
            call[0] for call in self.backend.method_calls if call[0] in ("crop", "rotate")
        ]
        self.assertEqual(names, ["rotate", "crop", "rotate"])
        self.backend.rotate.assert_any_call(self.handle, 270)
        self.backend.rotate.assert_any_call(self.handle, 90)
        self.backend.crop.assert_called_once_with(self.handle, CropBox(10, 10, 90, 90), False)

    def test_geometry_uses_current_dimensions(self):
        """Each operation sees the size produced by the previous one."""
        self.backend.dimensions.side_effect = [(200, 100), (50, 40)]

        self.queue.enqueue(OperationKind.RESIZE, 100, None, True, False)
        self.queue.enqueue(OperationKind.CROP, 5, None, None, None, True)
        self.queue.run(self.handle)

        geometry = self.backend.resize.call_args[0][1]
        self.assertEqual((geometry.canvas_width, geometry.canvas_height), (100, 50))
        self.backend.crop.assert_called_once_with(self.handle, CropBox(5, 5, 45, 35), True)

    def test_watermark_dispatch(self):
        overlay = Mock()
        self.backend.probe_dimensions.return_value = (20, 20)
        self.backend.dimensions.return_value = (200, 100)

        with patch(
            "IC_Libs.PipelineLib.operation_queue.check_overlay_file", return_value=overlay
        ):
            self.queue.enqueue(OperationKind.WATERMARK, "wm.png", "right", "bottom", 5, None)
            self.queue.run(self.handle)

        self.backend.watermark.assert_called_once_with(self.handle, overlay, 175, 75, 75)

    def test_centered_watermark_is_truncated(self):
        overlay = Mock()
        self.backend.probe_dimensions.return_value = (25, 25)
        self.backend.dimensions.return_value = (200, 100)

        with patch(
            "IC_Libs.PipelineLib.operation_queue.check_overlay_file", return_value=overlay
        ):
            self.queue.enqueue(OperationKind.WATERMARK, "wm.png", "center", "center", 0, None)
            self.queue.run(self.handle)

        self.backend.watermark.assert_called_once_with(self.handle, overlay, 87, 37, 75)


class TestFailures(unittest.TestCase):
    """Test cases for failing operations."""

    def setUp(self):
        self.queue = OperationQueue()
        self.handle = make_handle()
        self.backend = self.handle.backend

    def test_backend_failure_is_wrapped(self):
        cause = ExternalToolExecutionFailed(1, ["convert", "x"], "bad")
        self.backend.rotate.side_effect = cause

        self.queue.enqueue(OperationKind.CROP, 10, None, None, None, False)
        self.queue.enqueue(OperationKind.ROTATE, 90)
        self.queue.enqueue(OperationKind.CROP, 5, None, None, None, False)

        with self.assertRaises(BackendOperationFailed) as ctx:
            self.queue.run(self.handle)

        error = ctx.exception
        self.assertEqual(error.operation, "rotate")
        self.assertEqual(error.index, 1)
        self.assertEqual(error.arguments, ["90"])
        self.assertIs(error.__cause__, cause)
        self.assertIn("rotate", str(error))
        # Later operations are skipped
        self.assertEqual(self.backend.crop.call_count, 1)
        self.assertEqual(self.queue.failed_index, 1)
        self.assertIs(self.queue.failure, cause)

    def test_os_error_is_wrapped(self):
        self.backend.crop.side_effect = OSError("disk full")
        self.queue.enqueue(OperationKind.CROP, 10, None, None, None, False)

        with self.assertRaises(BackendOperationFailed) as ctx:
            self.queue.run(self.handle)

        self.assertEqual(ctx.exception.index, 0)
        self.assertEqual(ctx.exception.detail, "disk full")

    def test_invalid_input_is_not_wrapped(self):
        self.queue.enqueue(OperationKind.RESIZE, None, None, True, False)

        with self.assertRaises(InvalidDimensions):
            self.queue.run(self.handle)

        self.assertEqual(self.queue.state, QueueState.FAILED)
        self.backend.resize.assert_not_called()

    def test_partial_failure_logs_warning(self):
        self.backend.rotate.side_effect = BackendError("boom")
        self.queue.enqueue(OperationKind.CROP, 10, None, None, None, False)
        self.queue.enqueue(OperationKind.ROTATE, 90)

        with self.assertLogs("IC_Libs.PipelineLib.operation_queue", level=logging.WARNING) as logs:
            with self.assertRaises(BackendOperationFailed):
                self.queue.run(self.handle)

        self.assertIn("rotate(90)", logs.output[0])


class TestCheckOverlayFile:
    """Tests for check_overlay_file."""

    def test_valid_overlay(self, overlay_path):
        assert check_overlay_file(str(overlay_path)) == overlay_path

    def test_missing_overlay(self, tmp_path):
        with pytest.raises(SourceUnreadable):
            check_overlay_file(tmp_path / "missing.png")

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "overlay.bmp"
        path.write_bytes(b"BM")
        with pytest.raises(UnsupportedImageType):
            check_overlay_file(path)


class TestErrorTaxonomy:
    """Tests for the error hierarchy."""

    def test_builtin_bases(self):
        assert issubclass(SourceMissing, FileNotFoundError)
        assert issubclass(SourceUnreadable, OSError)
        assert issubclass(InvalidDimensions, ValueError)
        assert issubclass(BackendOperationFailed, ImagingError)

    def test_execution_failure_details(self):
        error = ExternalToolExecutionFailed(2, ["identify", "-format", "%w %h", "a.png"], "oops\n")

        assert error.exit_code == 2
        assert error.command_line == "identify -format %w %h a.png"
        assert "failed with code '2'" in str(error)
        assert str(error).endswith("oops")

    def test_missing_tool(self):
        error = ExternalToolMissing("convert")
        assert error.program == "convert"
        assert "convert" in str(error)
