"""
==============================================================================
Frame Sampler Tests
==============================================================================

Tests for the continuous scan driver: gating, concurrency, error isolation
and cancellation.

==============================================================================
"""

import asyncio
from typing import List

import pytest

from app.core import exceptions
from app.scanner.deduplication import DeduplicationManager
from app.scanner.models import ResultEntry
from app.scanner.regions import FULL_FRAME, QUADRANTS
from app.scanner.sampler import FrameSampler

from tests.conftest import (
    CODE39,
    EAN,
    AsyncFakeDecoder,
    FakeClock,
    FakeDecoder,
    FakeStream,
    drain,
)


# Long enough that the background loop never ticks during a test
NO_LOOP = 3600.0


class Recorder:
    """Collects sampler callbacks."""

    def __init__(self):
        self.detected: List[ResultEntry] = []
        self.results: List[List[ResultEntry]] = []

    def on_detected(self, entry: ResultEntry) -> None:
        self.detected.append(entry)

    def on_results(self, results: List[ResultEntry]) -> None:
        self.results.append(results)


def make_sampler(decoder, source=None, recorder=None, **kwargs) -> FrameSampler:
    kwargs.setdefault("strategy", FULL_FRAME)
    kwargs.setdefault("frame_skip", 1)
    kwargs.setdefault("max_frame_rate_seconds", 0.0)
    kwargs.setdefault("tick_interval_seconds", NO_LOOP)
    recorder = recorder or Recorder()
    return FrameSampler(
        source or FakeStream(),
        decoder,
        DeduplicationManager(window_seconds=2.0),
        on_detected=recorder.on_detected,
        on_results=recorder.on_results,
        **kwargs,
    )


class TestGating:
    """Tests for the per-tick gates."""

    def test_disabled_sampler_never_attempts(self):
        async def scenario():
            sampler = make_sampler(AsyncFakeDecoder([EAN]))
            assert sampler.tick() is False
            assert sampler.ticks == 1
            assert sampler.attempts == 0

        asyncio.run(scenario())

    def test_frame_skip(self):
        """With frame_skip=2 only every second tick is analysed."""
        async def scenario():
            decoder = AsyncFakeDecoder([EAN])
            sampler = make_sampler(decoder, frame_skip=2)
            sampler.enable()

            launched = []
            for _ in range(10):
                launched.append(sampler.tick())
                await drain()

            await sampler.disable()
            return launched, sampler, decoder

        launched, sampler, decoder = asyncio.run(scenario())

        assert launched == [False, True] * 5
        assert sampler.attempts == 5
        assert decoder.calls == 5

    def test_attempts_bounded_by_ticks_over_frame_skip(self):
        async def scenario():
            sampler = make_sampler(AsyncFakeDecoder([]), frame_skip=3)
            sampler.enable()
            for _ in range(31):
                sampler.tick()
                await drain()
            await sampler.disable()
            return sampler

        sampler = asyncio.run(scenario())
        assert sampler.attempts <= sampler.ticks // 3
        assert sampler.attempts == 10

    def test_rate_throttle(self):
        """Attempts are spaced by at least the minimum interval."""
        async def scenario():
            clock = FakeClock(start=100.0)
            sampler = make_sampler(
                AsyncFakeDecoder([EAN]),
                max_frame_rate_seconds=0.1,
                monotonic=clock,
            )
            sampler.enable()

            first = sampler.tick()
            await drain()
            clock.advance(0.06)
            too_soon = sampler.tick()
            await drain()
            clock.advance(0.06)
            later = sampler.tick()
            await drain()

            await sampler.disable()
            return first, too_soon, later

        assert asyncio.run(scenario()) == (True, False, True)

    def test_single_attempt_in_flight(self):
        """No new attempt starts while one is still decoding."""
        async def scenario():
            decoder = AsyncFakeDecoder([EAN], gated=True)
            sampler = make_sampler(decoder)
            sampler.enable()

            assert sampler.tick() is True
            await drain()
            assert sampler.in_flight is True
            assert sampler.tick() is False
            assert sampler.tick() is False

            decoder.open_gate()
            await drain()
            assert sampler.in_flight is False
            assert sampler.tick() is True
            await drain()

            await sampler.disable()
            return sampler, decoder

        sampler, decoder = asyncio.run(scenario())
        assert sampler.attempts == 2
        assert decoder.max_active == 1

    def test_source_not_ready(self):
        """A source without a frame is skipped without consuming the throttle."""
        async def scenario():
            stream = FakeStream(ready=False)
            sampler = make_sampler(
                AsyncFakeDecoder([EAN]),
                source=stream,
                max_frame_rate_seconds=10.0,
            )
            sampler.enable()

            not_ready = sampler.tick()
            stream.ready = True
            ready = sampler.tick()
            await drain()

            await sampler.disable()
            return not_ready, ready, sampler.attempts

        assert asyncio.run(scenario()) == (False, True, 1)

    def test_invalid_frame_skip(self):
        with pytest.raises(ValueError):
            make_sampler(AsyncFakeDecoder(), frame_skip=0)


class TestAnalysis:
    """Tests for what an attempt does with its detections."""

    def test_new_barcode_announced_once(self):
        """Repeated sightings within the window are absorbed."""
        async def scenario():
            recorder = Recorder()
            sampler = make_sampler(AsyncFakeDecoder([EAN]), recorder=recorder)
            sampler.enable()
            for _ in range(3):
                sampler.tick()
                await drain()
            await sampler.disable()
            return recorder

        recorder = asyncio.run(scenario())

        assert [e.id for e in recorder.detected] == [f"EAN_13:{EAN.value}"]
        assert len(recorder.results) == 3
        assert recorder.results[-1][0].detection_count == 3

    def test_regions_merged_within_one_attempt(self):
        """A barcode seen by every region counts once per attempt."""
        async def scenario():
            recorder = Recorder()
            decoder = AsyncFakeDecoder([EAN, CODE39])
            sampler = make_sampler(decoder, recorder=recorder, strategy=QUADRANTS)
            sampler.enable()
            sampler.tick()
            await drain()
            await sampler.disable()
            return recorder, decoder

        recorder, decoder = asyncio.run(scenario())

        assert decoder.calls == len(QUADRANTS)
        assert len(recorder.detected) == 2
        assert all(r.detection_count == 1 for r in recorder.results[-1])

    def test_async_callbacks_awaited(self):
        async def scenario():
            detected = []

            async def on_detected(entry):
                await asyncio.sleep(0)
                detected.append(entry.value)

            sampler = FrameSampler(
                FakeStream(),
                AsyncFakeDecoder([CODE39]),
                DeduplicationManager(window_seconds=2.0),
                strategy=FULL_FRAME,
                frame_skip=1,
                max_frame_rate_seconds=0.0,
                tick_interval_seconds=NO_LOOP,
                on_detected=on_detected,
            )
            sampler.enable()
            sampler.tick()
            await drain()
            await sampler.disable()
            return detected

        assert asyncio.run(scenario()) == ["ABC"]

    def test_decoder_errors_are_not_fatal(self):
        """A failing decoder never stops the loop."""
        async def scenario():
            decoder = FakeDecoder(exceptions.decode_error("corrupt"), RuntimeError("x"), [EAN])
            recorder = Recorder()
            sampler = make_sampler(decoder, recorder=recorder)
            sampler.enable()
            for _ in range(3):
                assert sampler.tick() is True
                while sampler.in_flight:
                    await asyncio.sleep(0.001)
            await sampler.disable()
            return recorder

        recorder = asyncio.run(scenario())
        assert [e.value for e in recorder.detected] == [EAN.value]

    def test_callback_errors_are_not_fatal(self):
        async def scenario():
            def on_results(results):
                raise RuntimeError("display crashed")

            sampler = FrameSampler(
                FakeStream(),
                AsyncFakeDecoder([EAN]),
                DeduplicationManager(window_seconds=2.0),
                strategy=FULL_FRAME,
                frame_skip=1,
                max_frame_rate_seconds=0.0,
                tick_interval_seconds=NO_LOOP,
                on_results=on_results,
            )
            sampler.enable()
            sampler.tick()
            await drain()
            in_flight_after_error = sampler.in_flight
            relaunched = sampler.tick()
            await drain()
            await sampler.disable()
            return in_flight_after_error, relaunched

        assert asyncio.run(scenario()) == (False, True)


class TestLifecycle:
    """Tests for enable/disable."""

    def test_disable_discards_in_flight_result(self):
        """An attempt still decoding when disabled never reaches the store."""
        async def scenario():
            decoder = AsyncFakeDecoder([EAN], gated=True)
            recorder = Recorder()
            sampler = make_sampler(decoder, recorder=recorder)
            sampler.enable()

            sampler.tick()
            await drain()
            await sampler.disable()

            decoder.open_gate()
            await drain()
            return sampler, recorder

        sampler, recorder = asyncio.run(scenario())

        assert recorder.detected == []
        assert recorder.results == []
        assert len(sampler.deduplicator) == 0
        assert sampler.enabled is False
        assert sampler.in_flight is False

    def test_loop_drives_ticks(self):
        """Once enabled the loop ticks on its own until disabled."""
        async def scenario():
            sampler = make_sampler(AsyncFakeDecoder([EAN]), tick_interval_seconds=0.001)
            sampler.enable()
            await asyncio.sleep(0.1)
            await sampler.disable()

            ticks = sampler.ticks
            await asyncio.sleep(0.02)
            return sampler, ticks

        sampler, ticks = asyncio.run(scenario())

        assert sampler.attempts > 0
        assert sampler.ticks == ticks

    def test_enable_is_idempotent(self):
        async def scenario():
            sampler = make_sampler(AsyncFakeDecoder())
            sampler.enable()
            sampler.enable()
            assert sampler.enabled is True
            await sampler.disable()
            await sampler.disable()
            return sampler.enabled

        assert asyncio.run(scenario()) is False
