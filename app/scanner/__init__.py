"""
==============================================================================
Scanner Package - Barcode Detection Orchestration
==============================================================================

Barcode scanning with OpenCV and pyzbar, deduplicated over time.

Classes:
--------
- DeduplicationManager: Time-windowed result store
- FrameSampler: Continuous (live video) scan driver
- CaptureController: Single-shot capture-then-analyze state machine
- ScanSession: Camera + store + driver, driven by user intents
- CameraManager: Exclusive owner of the camera stream
- PyzbarDecoder / RemoteScanDecoder: Decode capabilities

==============================================================================
"""

from .models import (
    CameraConstraints,
    DecodedBarcode,
    Frame,
    RawDetection,
    ResultEntry,
    ScanState,
)
from .deduplication import DeduplicationManager
from .regions import FULL_FRAME, QUADRANTS, ScanRegion, ScanStrategy, get_strategy
from .decoders import (
    BarcodeDecoder,
    PyzbarDecoder,
    RemoteScanDecoder,
    create_decoder,
    decode_regions,
)
from .camera import (
    CameraManager,
    CameraSource,
    CameraStream,
    FrameBuffer,
    OpenCVCameraSource,
    create_camera_manager,
)
from .sampler import FrameSampler
from .capture import CaptureController
from .session import ScanSession

__all__ = [
    # Models
    "CameraConstraints",
    "DecodedBarcode",
    "Frame",
    "RawDetection",
    "ResultEntry",
    "ScanState",
    # Deduplication
    "DeduplicationManager",
    # Regions
    "FULL_FRAME",
    "QUADRANTS",
    "ScanRegion",
    "ScanStrategy",
    "get_strategy",
    # Decoders
    "BarcodeDecoder",
    "PyzbarDecoder",
    "RemoteScanDecoder",
    "create_decoder",
    "decode_regions",
    # Camera
    "CameraManager",
    "CameraSource",
    "CameraStream",
    "FrameBuffer",
    "OpenCVCameraSource",
    "create_camera_manager",
    # Drivers
    "FrameSampler",
    "CaptureController",
    "ScanSession",
]
