"""
==============================================================================
Single-Shot Capture Module
==============================================================================

Capture-then-analyze scan driver.

    idle ──capture()──▶ processing ──▶ completed | no-result | error
      ▲                                            │
      └──────────────── scan_another() ◀───────────┘

A capture always settles: the analysis is bounded by a hard timeout so the
workflow can never stay in ``processing`` indefinitely. Zero barcodes is a
successful empty outcome (``no-result``), not an error.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from app.config import get_settings
from app.core import exceptions
from app.core.exceptions import AppException
from app.scanner.decoders import BarcodeDecoder, decode_regions
from app.scanner.deduplication import DeduplicationManager
from app.scanner.models import DecodedBarcode, ResultEntry, ScanState, make_result_id
from app.scanner.regions import ScanStrategy, get_strategy
from app.scanner.sampler import FrameProvider


# Module logger
logger = logging.getLogger(__name__)


class CaptureController:
    """
    Single-shot scanning state machine.

    Attributes:
        state: Current ScanState
        error_message: Message for the ERROR state
        results: Deduplicated results of the last capture

    Example:
        >>> controller = CaptureController(camera, decoder, DeduplicationManager())
        >>> await controller.capture()
        <ScanState.COMPLETED: 'completed'>
        >>> controller.scan_another()
    """

    def __init__(
        self,
        source: FrameProvider,
        decoder: BarcodeDecoder,
        deduplicator: DeduplicationManager,
        strategy: Optional[ScanStrategy] = None,
        timeout_seconds: Optional[float] = None,
        on_state_change: Optional[Callable[[ScanState], None]] = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize controller in IDLE.

        Args:
            source: Frame provider (camera manager or stream)
            decoder: Decode capability
            deduplicator: Result store owned by the session
            strategy: Region strategy (uses settings if None)
            timeout_seconds: Analysis timeout (uses settings if None)
            on_state_change: Called after every transition
            wall_clock: Clock used to stamp detections
        """
        settings = get_settings()

        self._source = source
        self._decoder = decoder
        self._deduplicator = deduplicator
        self._strategy = strategy or get_strategy(settings.scan_strategy)
        self._timeout = (
            timeout_seconds if timeout_seconds is not None
            else settings.capture_timeout_seconds
        )
        self._on_state_change = on_state_change
        self._wall_clock = wall_clock

        self._state = ScanState.IDLE
        self._error_message: Optional[str] = None
        self._results: List[ResultEntry] = []
        self._generation = 0

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def results(self) -> List[ResultEntry]:
        return list(self._results)

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def deduplicator(self) -> DeduplicationManager:
        return self._deduplicator

    def _transition(self, state: ScanState, error_message: Optional[str] = None) -> ScanState:
        logger.info(f"State: {self._state.value} → {state.value}")
        self._state = state
        self._error_message = error_message
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.error(f"State change callback error: {e}")
        return state

    # =========================================================================
    # WORKFLOW
    # =========================================================================

    async def capture(self) -> ScanState:
        """
        Capture the current frame and analyse it.

        Returns:
            The settled state (or IDLE if cancelled meanwhile)

        Raises:
            AppException: INVALID_SCAN_STATE if not IDLE
        """
        if self._state != ScanState.IDLE:
            raise exceptions.invalid_scan_state(self._state.value, ScanState.IDLE.value)

        self._generation += 1
        generation = self._generation

        # Snapshot synchronously, before the feed can be paused
        try:
            frame = self._source.read_frame()
        except AppException as e:
            self._transition(ScanState.PROCESSING)
            return self._transition(ScanState.ERROR, e.message)
        except Exception as e:
            logger.error(f"Capture error: {e}")
            self._transition(ScanState.PROCESSING)
            return self._transition(ScanState.ERROR, exceptions.capture_failed().message)

        self._transition(ScanState.PROCESSING)

        if frame is None:
            logger.error("Photo capture failed")
            return self._transition(ScanState.ERROR, exceptions.capture_failed().message)

        logger.debug(f"Photo captured {frame.width}x{frame.height}, starting analysis")

        try:
            detections = await asyncio.wait_for(
                decode_regions(
                    self._decoder,
                    frame.data,
                    self._strategy,
                    raise_if_all_failed=True,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            if generation != self._generation:
                return self._state
            message = exceptions.scan_timeout(self._timeout).message
            logger.warning(message)
            return self._transition(ScanState.ERROR, message)
        except AppException as e:
            if generation != self._generation:
                return self._state
            if e.code == "NO_BARCODE_FOUND":
                detections = []
            else:
                logger.warning(f"Detection failed: {e.code} {e.message}")
                return self._transition(ScanState.ERROR, e.message)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._transition(ScanState.IDLE)
            raise
        except Exception as e:
            if generation != self._generation:
                return self._state
            logger.error(f"Detection failed: {e}")
            return self._transition(ScanState.ERROR, str(e) or "Detection failed")

        if generation != self._generation:
            logger.debug("Discarding results from a cancelled capture")
            return self._state

        return self._settle(detections)

    def _settle(self, detections: List[DecodedBarcode]) -> ScanState:
        timestamp = self._wall_clock()
        captured_ids = set()

        for detection in detections:
            self._deduplicator.record(detection.stamp(timestamp))
            captured_ids.add(make_result_id(detection.value, detection.format))

        self._results = [
            r for r in self._deduplicator.get_results() if r.id in captured_ids
        ]

        logger.info(f"Analysis complete, results: {len(self._results)}")

        if self._results:
            return self._transition(ScanState.COMPLETED)
        return self._transition(ScanState.NO_RESULT)

    def clear_results(self) -> None:
        """Forget the results without leaving the current state."""
        self._results = []
        self._deduplicator.clear()

    def scan_another(self) -> None:
        """
        Return to IDLE for the next capture.

        Clears the accumulated results. Called during PROCESSING this
        cancels the capture; its late result is dropped.
        """
        if self._state == ScanState.PROCESSING:
            logger.info("Capture cancelled")

        self._generation += 1
        self._results = []
        self._deduplicator.clear()

        if self._state != ScanState.IDLE:
            self._transition(ScanState.IDLE)
        else:
            self._error_message = None
