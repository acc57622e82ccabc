"""
==============================================================================
Single-Shot Capture Tests
==============================================================================

Tests for the CaptureController state machine.

==============================================================================
"""

import asyncio

import pytest

from app.core import exceptions
from app.core.exceptions import AppException
from app.scanner.camera import CameraManager
from app.scanner.capture import CaptureController
from app.scanner.deduplication import DeduplicationManager
from app.scanner.models import ScanState, make_result_id
from app.scanner.regions import FULL_FRAME

from tests.conftest import (
    CODE39,
    EAN,
    AsyncFakeDecoder,
    FakeCameraSource,
    FakeDecoder,
    FakeStream,
    HangingDecoder,
    drain,
)


def make_controller(decoder, source=None, **kwargs) -> CaptureController:
    kwargs.setdefault("strategy", FULL_FRAME)
    return CaptureController(
        source or FakeStream(),
        decoder,
        DeduplicationManager(window_seconds=2.0),
        **kwargs,
    )


class TestCaptureOutcomes:
    """Tests for the settled states of a capture."""

    def test_completed(self):
        """Two distinct barcodes settle in COMPLETED with two results."""
        controller = make_controller(FakeDecoder([EAN, CODE39, EAN]))

        state = asyncio.run(controller.capture())

        assert state == ScanState.COMPLETED
        assert controller.state == ScanState.COMPLETED
        assert {r.value for r in controller.results} == {EAN.value, CODE39.value}
        assert all(r.detection_count == 1 for r in controller.results)
        assert controller.error_message is None

    def test_results_limited_to_this_capture(self):
        """Entries already in the store are not reported as captured."""
        controller = make_controller(FakeDecoder([EAN]))
        controller.deduplicator.record(CODE39.stamp(0.0))

        asyncio.run(controller.capture())

        assert [r.id for r in controller.results] == [make_result_id(EAN.value, EAN.format)]

    def test_no_result(self):
        """Zero barcodes is a successful empty outcome."""
        controller = make_controller(FakeDecoder([]))

        assert asyncio.run(controller.capture()) == ScanState.NO_RESULT
        assert controller.results == []
        assert controller.error_message is None

    def test_no_barcode_found_error_is_no_result(self):
        controller = make_controller(FakeDecoder(exceptions.no_barcode_found()))
        assert asyncio.run(controller.capture()) == ScanState.NO_RESULT

    def test_decoder_error(self):
        controller = make_controller(FakeDecoder(exceptions.decode_error("Corrupt image")))

        assert asyncio.run(controller.capture()) == ScanState.ERROR
        assert controller.error_message == "Corrupt image"

    def test_unexpected_decoder_failure(self):
        controller = make_controller(FakeDecoder(RuntimeError("segfault-ish")))

        assert asyncio.run(controller.capture()) == ScanState.ERROR
        assert controller.error_message == "segfault-ish"

    def test_timeout(self):
        """A decoder that never answers settles in ERROR after the timeout."""
        controller = make_controller(HangingDecoder(), timeout_seconds=0.2)

        assert asyncio.run(controller.capture()) == ScanState.ERROR
        assert controller.error_message == "Detection timed out after 0.2s"

    def test_default_timeout_from_settings(self):
        controller = make_controller(FakeDecoder())
        assert controller.timeout_seconds == 5.0

    def test_frame_unavailable(self):
        controller = make_controller(FakeDecoder([EAN]), source=FakeStream(ready=False))

        assert asyncio.run(controller.capture()) == ScanState.ERROR
        assert controller.error_message == "Failed to capture photo"

    def test_camera_not_active(self):
        """Capturing without an acquired camera reports the camera error."""
        camera = CameraManager(FakeCameraSource())
        controller = make_controller(FakeDecoder([EAN]), source=camera)

        assert asyncio.run(controller.capture()) == ScanState.ERROR
        assert controller.error_message == "Camera is not active"


class TestTransitions:
    """Tests for state machine rules."""

    def test_transitions_reported_in_order(self):
        states = []
        controller = make_controller(
            FakeDecoder([EAN]),
            on_state_change=states.append,
        )

        asyncio.run(controller.capture())
        controller.scan_another()

        assert states == [ScanState.PROCESSING, ScanState.COMPLETED, ScanState.IDLE]

    def test_capture_requires_idle(self):
        controller = make_controller(FakeDecoder([EAN]))
        asyncio.run(controller.capture())

        with pytest.raises(AppException) as exc_info:
            asyncio.run(controller.capture())
        assert exc_info.value.code == "INVALID_SCAN_STATE"

    def test_failing_state_callback_is_ignored(self):
        def explode(state):
            raise RuntimeError("ui gone")

        controller = make_controller(FakeDecoder([EAN]), on_state_change=explode)
        assert asyncio.run(controller.capture()) == ScanState.COMPLETED

    def test_settled_states(self):
        assert ScanState.COMPLETED.is_settled
        assert ScanState.NO_RESULT.is_settled
        assert ScanState.ERROR.is_settled
        assert not ScanState.IDLE.is_settled
        assert not ScanState.PROCESSING.is_settled


class TestScanAnother:
    """Tests for returning to idle."""

    def test_clears_results_and_deduplicator(self):
        """The next capture starts from a clean slate."""
        controller = make_controller(FakeDecoder([EAN]))

        asyncio.run(controller.capture())
        controller.scan_another()

        assert controller.state == ScanState.IDLE
        assert controller.results == []
        assert len(controller.deduplicator) == 0

        asyncio.run(controller.capture())
        assert controller.results[0].detection_count == 1

    def test_clears_error(self):
        controller = make_controller(FakeDecoder(exceptions.decode_error("bad")))
        asyncio.run(controller.capture())

        controller.scan_another()

        assert controller.state == ScanState.IDLE
        assert controller.error_message is None

    def test_cancel_during_processing_ignores_late_result(self):
        """Results of a cancelled capture are never applied."""
        async def scenario():
            decoder = AsyncFakeDecoder([EAN], gated=True)
            controller = make_controller(decoder)

            task = asyncio.ensure_future(controller.capture())
            await drain()
            assert controller.state == ScanState.PROCESSING

            controller.scan_another()
            assert controller.state == ScanState.IDLE

            decoder.open_gate()
            returned = await task
            return controller, returned

        controller, returned = asyncio.run(scenario())

        assert returned == ScanState.IDLE
        assert controller.state == ScanState.IDLE
        assert controller.results == []
        assert len(controller.deduplicator) == 0

    def test_task_cancellation_returns_to_idle(self):
        async def scenario():
            controller = make_controller(AsyncFakeDecoder([EAN], gated=True))
            task = asyncio.ensure_future(controller.capture())
            await drain()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return controller

        assert asyncio.run(scenario()).state == ScanState.IDLE

    def test_clear_results_keeps_state(self):
        controller = make_controller(FakeDecoder([EAN]))
        asyncio.run(controller.capture())

        controller.clear_results()

        assert controller.state == ScanState.COMPLETED
        assert controller.results == []
