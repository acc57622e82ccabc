"""
==============================================================================
Frame Sampler Module
==============================================================================

Continuous (live video) scan driver.

The sampler ticks at display-refresh rate and decides on every tick whether a
decode attempt is worth making:

1. Enabled        - the loop only runs while enabled
2. Frame skip     - only every Nth tick is eligible
3. Rate throttle  - at least MAX_FRAME_RATE_MS between two attempts
4. In flight      - at most one decode running at a time
5. Readiness      - the source must have a frame to give

An eligible tick snapshots the frame once and analyses it in a background
task: every region of the scan strategy is decoded, distinct barcodes are
fed to the deduplicator, and the callbacks are notified.

Errors never escape a tick; the loop runs until disabled.

==============================================================================
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

from app.config import get_settings
from app.scanner.decoders import BarcodeDecoder, decode_regions
from app.scanner.deduplication import DeduplicationManager
from app.scanner.models import Frame, ResultEntry
from app.scanner.regions import ScanStrategy, get_strategy


# Module logger
logger = logging.getLogger(__name__)


DetectedCallback = Callable[[ResultEntry], Union[None, Awaitable[None]]]
ResultsCallback = Callable[[List[ResultEntry]], Union[None, Awaitable[None]]]


class FrameProvider(Protocol):
    """Anything that can hand out the current frame (stream or manager)."""

    def is_ready(self) -> bool:
        ...

    def read_frame(self) -> Optional[Frame]:
        ...


async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


class FrameSampler:
    """
    Throttled continuous scanning loop.

    Attributes:
        attempts: Number of decode attempts launched so far
        ticks: Number of ticks observed so far

    Example:
        >>> sampler = FrameSampler(camera, decoder, DeduplicationManager(),
        ...                        on_detected=beep)
        >>> sampler.enable()
        >>> # ... later
        >>> await sampler.disable()
    """

    def __init__(
        self,
        source: FrameProvider,
        decoder: BarcodeDecoder,
        deduplicator: DeduplicationManager,
        strategy: Optional[ScanStrategy] = None,
        frame_skip: Optional[int] = None,
        max_frame_rate_seconds: Optional[float] = None,
        tick_interval_seconds: Optional[float] = None,
        on_detected: Optional[DetectedCallback] = None,
        on_results: Optional[ResultsCallback] = None,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the sampler (disabled).

        Args:
            source: Frame provider (camera manager or stream)
            decoder: Decode capability
            deduplicator: Result store owned by the session
            strategy: Region strategy (uses settings if None)
            frame_skip: Analyze every Nth tick (uses settings if None)
            max_frame_rate_seconds: Minimum spacing between attempts
            tick_interval_seconds: Loop tick interval
            on_detected: Called with each newly announced entry
            on_results: Called with the current result list after each attempt
            monotonic: Clock used for throttling
            wall_clock: Clock used to stamp detections
        """
        settings = get_settings()

        self._source = source
        self._decoder = decoder
        self._deduplicator = deduplicator
        self._strategy = strategy or get_strategy(settings.scan_strategy)
        self._frame_skip = frame_skip if frame_skip is not None else settings.frame_skip
        self._min_interval = (
            max_frame_rate_seconds
            if max_frame_rate_seconds is not None
            else settings.max_frame_rate_seconds
        )
        self._tick_interval = (
            tick_interval_seconds
            if tick_interval_seconds is not None
            else settings.tick_interval_seconds
        )
        if self._frame_skip < 1:
            raise ValueError("frame_skip must be >= 1")

        self._on_detected = on_detected
        self._on_results = on_results
        self._monotonic = monotonic
        self._wall_clock = wall_clock

        self._enabled = False
        self._generation = 0
        self._in_flight = False
        self._last_attempt_at: Optional[float] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._decode_task: Optional[asyncio.Task] = None

        self.ticks = 0
        self.attempts = 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def deduplicator(self) -> DeduplicationManager:
        return self._deduplicator

    def enable(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self._enabled:
            return

        self._enabled = True
        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            f"▶️ Sampler enabled (skip={self._frame_skip}, "
            f"min_interval={self._min_interval:.3f}s, strategy={self._strategy.name})"
        )

    async def disable(self) -> None:
        """
        Stop ticking and abandon any in-flight analysis.

        Results of an analysis started before this call are never applied.
        """
        if not self._enabled and self._loop_task is None and self._decode_task is None:
            return

        self._enabled = False
        self._generation += 1
        self._in_flight = False

        tasks = [t for t in (self._loop_task, self._decode_task) if t is not None]
        self._loop_task = None
        self._decode_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info("⏹️ Sampler disabled")

    async def _run(self) -> None:
        """Tick loop. The first tick fires one interval after enabling."""
        while self._enabled:
            await asyncio.sleep(self._tick_interval)
            if not self._enabled:
                break
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Sampler tick error: {e}")

    # =========================================================================
    # TICK
    # =========================================================================

    def tick(self) -> bool:
        """
        Process one display tick.

        Returns:
            True if a decode attempt was launched
        """
        self.ticks += 1

        if not self._enabled:
            return False

        if self.ticks % self._frame_skip != 0:
            return False

        now = self._monotonic()
        if self._last_attempt_at is not None and now - self._last_attempt_at < self._min_interval:
            return False

        if self._in_flight:
            return False

        if not self._source.is_ready():
            return False

        frame = self._source.read_frame()
        if frame is None:
            return False

        self._last_attempt_at = now
        self._in_flight = True
        self.attempts += 1

        self._decode_task = asyncio.get_running_loop().create_task(
            self._analyze(frame, self._generation)
        )
        return True

    async def _analyze(self, frame: Frame, generation: int) -> None:
        """Decode one frame and forward the detections."""
        try:
            detections = await decode_regions(self._decoder, frame.data, self._strategy)

            if generation != self._generation:
                logger.debug("Discarding results from a cancelled attempt")
                return

            timestamp = self._wall_clock()
            for detection in detections:
                entry = self._deduplicator.record(detection.stamp(timestamp))
                if entry is not None:
                    logger.info(f"📦 Detected {entry.format}: {entry.value}")
                    await _notify(self._on_detected, entry)

            await _notify(self._on_results, self._deduplicator.get_results())

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Frame analysis error: {e}")
        finally:
            if generation == self._generation:
                self._in_flight = False
                self._decode_task = None
