"""
==============================================================================
Camera Module
==============================================================================

Camera acquisition and frame access.

Classes:
--------
- CameraStream: Abstract handle on an open video stream
- CameraSource: Abstract factory that acquires/releases streams
- OpenCVCameraSource / OpenCVCameraStream: cv2.VideoCapture backend
- FrameBuffer: Push-fed stream (latest frame wins) for remote clients
- CameraManager: Exclusive owner of the single active stream
- create_camera_manager: Manager for the configured local camera

Resource Policy:
----------------
Only one stream is held per session. Acquiring always releases the previous
handle first, and every exit path (disable, close, error) releases it.

==============================================================================
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

import cv2
import numpy as np

from app.config import Settings, get_settings
from app.core import exceptions
from app.core.exceptions import AppException
from app.scanner.models import CameraConstraints, Frame


# Module logger
logger = logging.getLogger(__name__)


class CameraStream(ABC):
    """
    Open video stream.
    """

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether enough data is buffered to extract a frame."""
        ...

    @abstractmethod
    def read_frame(self) -> Optional[Frame]:
        """Snapshot the current frame. Returns None if unavailable."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop the stream and free the device."""
        ...


class CameraSource(ABC):
    """
    Factory for camera streams.
    """

    @abstractmethod
    def acquire(self, constraints: CameraConstraints) -> CameraStream:
        """
        Open a stream.

        Raises:
            AppException: CAMERA_PERMISSION_DENIED, CAMERA_NOT_SUPPORTED
                or CAMERA_DEVICE_ERROR
        """
        ...

    def release(self, stream: CameraStream) -> None:
        """Release a stream obtained from :meth:`acquire`."""
        stream.close()


# =============================================================================
# OPENCV BACKEND
# =============================================================================

class OpenCVCameraStream(CameraStream):
    """Stream wrapping an opened ``cv2.VideoCapture``."""

    def __init__(self, capture: "cv2.VideoCapture", source: str) -> None:
        self._cap = capture
        self._source = source

    def is_ready(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def read_frame(self) -> Optional[Frame]:
        if not self.is_ready():
            return None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            logger.warning(f"[{self._source}] Failed to read frame")
            return None

        return Frame(data=frame, timestamp=time.time(), source=self._source)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug(f"[{self._source}] Capture released")


class OpenCVCameraSource(CameraSource):
    """
    Local camera via OpenCV.

    OpenCV has no notion of front/rear cameras, so ``facing_mode`` is
    resolved by picking the configured device index.
    """

    def __init__(self, camera_index: int = 0) -> None:
        self._camera_index = camera_index

    def acquire(self, constraints: CameraConstraints) -> CameraStream:
        source = f"camera:{self._camera_index}"

        try:
            cap = cv2.VideoCapture(self._camera_index)
        except cv2.error as e:
            raise exceptions.camera_not_supported(f"Camera backend unavailable: {e}") from e

        if not cap.isOpened():
            cap.release()
            raise exceptions.camera_device_error(f"Cannot open camera {self._camera_index}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

        logger.info(
            f"📷 Camera {self._camera_index} opened "
            f"({constraints.width}x{constraints.height}, {constraints.facing_mode})"
        )
        return OpenCVCameraStream(cap, source)


# =============================================================================
# PUSH-FED STREAM
# =============================================================================

class FrameBuffer(CameraStream):
    """
    Stream fed by an external producer (e.g. frames sent over a WebSocket).

    Holds only the most recent frame.
    """

    def __init__(self, source: str = "remote") -> None:
        self._source = source
        self._lock = threading.Lock()
        self._latest: Optional[Frame] = None
        self._closed = False

    def push(self, image: np.ndarray, timestamp: Optional[float] = None) -> None:
        """Replace the current frame."""
        if self._closed:
            return
        frame = Frame(
            data=image,
            timestamp=timestamp if timestamp is not None else time.time(),
            source=self._source,
        )
        with self._lock:
            self._latest = frame

    def is_ready(self) -> bool:
        with self._lock:
            return not self._closed and self._latest is not None

    def read_frame(self) -> Optional[Frame]:
        with self._lock:
            return None if self._closed else self._latest

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._latest = None


# =============================================================================
# CAMERA MANAGER
# =============================================================================

class CameraManager:
    """
    Exclusive owner of the session's camera stream.

    Tracks the acquisition outcome for the display layer:
    ``has_permission`` is None before the first attempt, False after a
    permission denial (or any acquisition failure) and True once a stream
    was obtained.

    Example:
        >>> manager = CameraManager(OpenCVCameraSource(0))
        >>> with manager:
        ...     frame = manager.read_frame()
    """

    def __init__(
        self,
        source: CameraSource,
        constraints: Optional[CameraConstraints] = None,
    ) -> None:
        self._source = source
        self._constraints = constraints or CameraConstraints()
        self._stream: Optional[CameraStream] = None
        self._error: Optional[AppException] = None
        self._has_permission: Optional[bool] = None
        self._is_loading = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def acquire(self) -> CameraStream:
        """
        Acquire a stream, releasing any previous one first.

        Raises:
            AppException: Acquisition failure (also recorded in ``error``)
        """
        self.release()

        self._is_loading = True
        self._error = None
        try:
            stream = self._source.acquire(self._constraints)
        except AppException as e:
            self._error = e
            self._has_permission = False
            logger.warning(f"Camera acquisition failed: {e.code} {e.message}")
            raise
        except Exception as e:
            self._error = exceptions.camera_device_error(str(e) or "Failed to access camera")
            self._has_permission = False
            logger.error(f"Camera acquisition error: {e}")
            raise self._error from e
        finally:
            self._is_loading = False

        self._stream = stream
        self._has_permission = True
        return stream

    def release(self) -> None:
        """Release the current stream, if any. Idempotent."""
        stream, self._stream = self._stream, None
        if stream is None:
            return

        try:
            self._source.release(stream)
        except Exception as e:
            logger.error(f"Camera release error: {e}")
        else:
            logger.debug("Camera stream released")

    def __enter__(self) -> "CameraManager":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    async def __aenter__(self) -> "CameraManager":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    # =========================================================================
    # FRAME ACCESS
    # =========================================================================

    def is_ready(self) -> bool:
        return self._stream is not None and self._stream.is_ready()

    def read_frame(self) -> Optional[Frame]:
        """
        Snapshot the current frame.

        Raises:
            AppException: The last acquisition error, or CAMERA_UNAVAILABLE,
                when no stream is held
        """
        if self._stream is None:
            raise self._error or exceptions.camera_unavailable()
        return self._stream.read_frame()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def stream(self) -> Optional[CameraStream]:
        return self._stream

    @property
    def constraints(self) -> CameraConstraints:
        return self._constraints

    @property
    def is_active(self) -> bool:
        return self._stream is not None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[AppException]:
        return self._error

    @property
    def has_permission(self) -> Optional[bool]:
        return self._has_permission

    def to_dict(self) -> dict:
        """Camera state for the display layer."""
        return {
            "active": self.is_active,
            "loading": self._is_loading,
            "has_permission": self._has_permission,
            "error": self._error.message if self._error else None,
        }


def create_camera_manager(settings: Optional[Settings] = None) -> CameraManager:
    """
    Build a manager for the local OpenCV camera described by settings.

    Args:
        settings: Settings to use (global settings if None)
    """
    settings = settings or get_settings()
    constraints = CameraConstraints(
        width=settings.camera_width,
        height=settings.camera_height,
        facing_mode=settings.camera_facing_mode,
    )
    return CameraManager(OpenCVCameraSource(settings.camera_index), constraints)
