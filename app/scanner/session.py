"""
==============================================================================
Scan Session Module
==============================================================================

One scanning session: camera + deduplicator + scan driver.

The session is the seam the display layer talks to. It receives user intents
(capture now, clear results, toggle camera, retry permission, scan another)
and exposes a snapshot of everything the UI renders.

Modes:
------
- continuous: FrameSampler runs while the camera is on
- single-shot: CaptureController; the camera is released while a capture
  is being analysed or shown, and re-acquired when returning to idle

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from app.config import get_settings
from app.core import exceptions
from app.core.exceptions import AppException
from app.scanner.camera import CameraManager
from app.scanner.capture import CaptureController
from app.scanner.decoders import BarcodeDecoder
from app.scanner.deduplication import DeduplicationManager
from app.scanner.models import ResultEntry, ScanState
from app.scanner.regions import ScanStrategy
from app.scanner.sampler import DetectedCallback, FrameSampler, ResultsCallback


# Module logger
logger = logging.getLogger(__name__)


CONTINUOUS = "continuous"
SINGLE_SHOT = "single-shot"


class ScanSession:
    """
    Scanning session owning its camera and result store.

    Example:
        >>> session = ScanSession(CameraManager(OpenCVCameraSource()), PyzbarDecoder())
        >>> await session.start()
        >>> session.status_text()
        'Ready to scan'
        >>> await session.close()
    """

    def __init__(
        self,
        camera: CameraManager,
        decoder: BarcodeDecoder,
        mode: Optional[str] = None,
        deduplicator: Optional[DeduplicationManager] = None,
        strategy: Optional[ScanStrategy] = None,
        on_detected: Optional[DetectedCallback] = None,
        on_results: Optional[ResultsCallback] = None,
        retry_delay_seconds: Optional[float] = None,
        capture_timeout_seconds: Optional[float] = None,
        sampler: Optional[FrameSampler] = None,
    ) -> None:
        """
        Initialize session (camera not yet acquired).

        Args:
            camera: Camera manager owned by this session
            decoder: Decode capability
            mode: "continuous" or "single-shot" (uses settings if None)
            deduplicator: Result store (a fresh one if None)
            strategy: Region strategy (uses settings if None)
            on_detected: Called for every newly announced barcode
            on_results: Called with the result list after each live attempt
            retry_delay_seconds: Pause before re-acquiring on retry
            capture_timeout_seconds: Single-shot analysis timeout
            sampler: Pre-built continuous driver sharing ``deduplicator``
        """
        settings = get_settings()

        self._camera = camera
        self._mode = (mode or settings.scan_mode).replace("_", "-")
        if self._mode not in (CONTINUOUS, SINGLE_SHOT):
            raise ValueError(f"Unsupported scan mode: {mode}")

        self._deduplicator = (
            deduplicator if deduplicator is not None else DeduplicationManager()
        )
        self._retry_delay = (
            retry_delay_seconds if retry_delay_seconds is not None
            else settings.camera_retry_delay_seconds
        )
        self._camera_enabled = True
        self._error_message: Optional[str] = None

        self._sampler: Optional[FrameSampler] = None
        self._capture: Optional[CaptureController] = None

        if self._mode == CONTINUOUS:
            self._sampler = sampler or FrameSampler(
                camera,
                decoder,
                self._deduplicator,
                strategy=strategy,
                on_detected=on_detected,
                on_results=on_results,
            )
        else:
            self._capture = CaptureController(
                camera,
                decoder,
                self._deduplicator,
                strategy=strategy,
                timeout_seconds=capture_timeout_seconds,
                on_state_change=self._on_capture_state,
            )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def camera(self) -> CameraManager:
        return self._camera

    @property
    def deduplicator(self) -> DeduplicationManager:
        return self._deduplicator

    @property
    def camera_enabled(self) -> bool:
        return self._camera_enabled

    @property
    def state(self) -> ScanState:
        if self._capture is not None:
            return self._capture.state
        return ScanState.IDLE

    @property
    def is_scanning(self) -> bool:
        if self._sampler is not None:
            return self._sampler.enabled
        return self.state == ScanState.PROCESSING

    @property
    def error_message(self) -> Optional[str]:
        if self._capture is not None and self._capture.error_message:
            return self._capture.error_message
        return self._error_message

    def results(self) -> List[ResultEntry]:
        """Current results for display."""
        if self._capture is not None:
            return self._capture.results
        return self._deduplicator.get_results()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Acquire the camera and arm the driver. Never raises on camera errors."""
        logger.info(f"🚀 Starting scan session ({self._mode})")
        await self._activate_camera()

    async def close(self) -> None:
        """Stop scanning and release the camera."""
        if self._sampler is not None:
            await self._sampler.disable()
        if self._capture is not None:
            # Drops the result of a capture still being analysed
            self._capture.scan_another()
        self._camera.release()
        self._deduplicator.clear()
        logger.info("✅ Scan session closed")

    async def _activate_camera(self) -> bool:
        if not self._camera_enabled:
            return False

        try:
            self._camera.acquire()
        except AppException as e:
            self._error_message = e.message
            if self._sampler is not None:
                await self._sampler.disable()
            return False

        self._error_message = None
        if self._sampler is not None:
            self._sampler.enable()
        return True

    async def _deactivate_camera(self) -> None:
        if self._sampler is not None:
            await self._sampler.disable()
        self._camera.release()

    # =========================================================================
    # USER INTENTS
    # =========================================================================

    async def capture_now(self) -> ScanState:
        """
        Single-shot: capture and analyse the current frame.

        The camera is released as soon as the frame is snapshotted.
        """
        if self._capture is None:
            raise exceptions.invalid_scan_state(self._mode, SINGLE_SHOT)

        return await self._capture.capture()

    def _on_capture_state(self, state: ScanState) -> None:
        # Frame is already snapshotted when PROCESSING is entered
        if state != ScanState.IDLE:
            self._camera.release()

    async def scan_another(self) -> None:
        """Single-shot: back to idle, forget results, camera back on."""
        if self._capture is None:
            raise exceptions.invalid_scan_state(self._mode, SINGLE_SHOT)

        self._capture.scan_another()
        self._error_message = None
        await self._activate_camera()

    def clear_results(self) -> None:
        """Forget every result."""
        if self._capture is not None:
            self._capture.clear_results()
        else:
            self._deduplicator.clear()
        logger.info("🗑️ Results cleared")

    async def toggle_camera(self) -> bool:
        """
        Turn the camera on/off.

        Returns:
            The new enabled flag
        """
        self._camera_enabled = not self._camera_enabled
        logger.info(f"Camera toggle: {'ON' if self._camera_enabled else 'OFF'}")

        if self._camera_enabled:
            if self.state == ScanState.IDLE:
                await self._activate_camera()
        else:
            await self._deactivate_camera()

        return self._camera_enabled

    async def retry_permission(self) -> bool:
        """
        Re-request camera access after a failure.

        Returns:
            True if the camera is now active
        """
        logger.info("🔁 Retrying camera access")
        await self._deactivate_camera()
        await asyncio.sleep(self._retry_delay)
        self._camera_enabled = True
        return await self._activate_camera()

    # =========================================================================
    # DISPLAY
    # =========================================================================

    def status_text(self) -> str:
        """One-line status for the display layer."""
        if self._camera.has_permission is False and self.state == ScanState.IDLE:
            return "Camera access denied"
        if self._camera.is_loading:
            return "Initializing camera..."

        count = len(self.results())
        state = self.state

        if state == ScanState.IDLE:
            return f"{count} barcode(s) detected" if count > 0 else "Ready to scan"
        if state == ScanState.PROCESSING:
            return f"Analyzing... ({count} found)"
        if state == ScanState.COMPLETED:
            return f"Found {count} barcode(s)"
        if state == ScanState.NO_RESULT:
            return "No barcodes found"
        return self.error_message or "Error during detection"

    def snapshot(self) -> dict:
        """Everything the display layer renders."""
        results = self.results()
        return {
            "mode": self._mode,
            "state": self.state.value,
            "status": self.status_text(),
            "scanning": self.is_scanning,
            "camera_enabled": self._camera_enabled,
            "camera": self._camera.to_dict(),
            "error": self.error_message,
            "results": [r.to_dict() for r in results],
        }
