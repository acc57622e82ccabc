"""
==============================================================================
Scanner Models Module
==============================================================================

Plain data types shared by the scan drivers and the deduplicator.

Types:
------
- ScanState: Single-shot workflow states
- Frame: Pixel snapshot pulled from a camera stream
- CameraConstraints: Preferred capture settings
- DecodedBarcode: One (value, format) pair from a decoder
- RawDetection: Decoded barcode stamped with its detection time
- ResultEntry: Aggregated, user-facing barcode result

==============================================================================
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np


class ScanState(str, enum.Enum):
    """
    Single-shot scan state enumeration.

    State Machine:

        ┌──────┐  capture()  ┌────────────┐ ──▶ COMPLETED
        │ IDLE │ ──────────▶ │ PROCESSING │ ──▶ NO_RESULT
        └──────┘             └────────────┘ ──▶ ERROR
           ▲                                        │
           └──────────── scan_another() ◀───────────┘

    The enum inherits from str to enable JSON serialization.
    """

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    NO_RESULT = "no-result"
    ERROR = "error"

    def __str__(self) -> str:
        """Return the enum value as string."""
        return self.value

    @property
    def is_settled(self) -> bool:
        """Check if the state is a terminal outcome of a capture."""
        return self in (ScanState.COMPLETED, ScanState.NO_RESULT, ScanState.ERROR)


@dataclass
class Frame:
    """
    Pixel snapshot captured from a camera stream.
    """
    data: np.ndarray   # BGR or greyscale image
    timestamp: float   # capture time (epoch seconds)
    source: str        # camera identifier

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    def to_dict(self) -> dict:
        """Serializable summary (without pixels) for logs."""
        return {
            "timestamp": self.timestamp,
            "source": self.source,
            "shape": self.data.shape if isinstance(self.data, np.ndarray) else None
        }


@dataclass(frozen=True)
class CameraConstraints:
    """Preferred capture settings for barcode detection."""
    width: int = 1280
    height: int = 720
    facing_mode: str = "environment"


@dataclass(frozen=True)
class DecodedBarcode:
    """A single barcode reported by a decoder."""
    value: str
    format: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.format, self.value)

    def stamp(self, timestamp: float) -> "RawDetection":
        """Attach a detection time."""
        return RawDetection(value=self.value, format=self.format, timestamp=timestamp)

    def to_dict(self) -> dict:
        return {"value": self.value, "format": self.format}


@dataclass(frozen=True)
class RawDetection:
    """Transient detection event; consumed immediately by the deduplicator."""
    value: str
    format: str
    timestamp: float


def make_result_id(value: str, format: str) -> str:
    """Composite key used for aggregation: ``format:value``."""
    return f"{format}:{value}"


@dataclass
class ResultEntry:
    """
    Aggregated barcode result shown to the user.

    Attributes:
        id: Composite key ``format:value``
        value: Decoded barcode text
        format: Normalized symbology name (e.g. "EAN_13")
        first_detected: Time of the detection that opened the current window
        last_detected: Time of the most recent detection in the window
        detection_count: Detections accepted into the current window
    """
    id: str
    value: str
    format: str
    first_detected: float
    last_detected: float
    detection_count: int = 1

    @classmethod
    def create(cls, value: str, format: str, timestamp: float) -> "ResultEntry":
        """Create a fresh entry for a first sighting."""
        return cls(
            id=make_result_id(value, format),
            value=value,
            format=format,
            first_detected=timestamp,
            last_detected=timestamp,
            detection_count=1,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict serializable."""
        return {
            "id": self.id,
            "value": self.value,
            "format": self.format,
            "first_detected": self.first_detected,
            "last_detected": self.last_detected,
            "detection_count": self.detection_count,
        }
