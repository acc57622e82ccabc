"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides fake clocks, decoders, cameras and the API test client.

==============================================================================
"""

import asyncio
from typing import Generator, List, Optional, Sequence, Union

import numpy as np
import pytest
from fastapi.testclient import TestClient

from app.core import exceptions
from app.core.dependencies import get_decoder, get_scan_strategy
from app.main import app
from app.scanner.camera import CameraSource, CameraStream
from app.scanner.decoders import BarcodeDecoder
from app.scanner.models import CameraConstraints, DecodedBarcode, Frame
from app.scanner.regions import FULL_FRAME


EAN = DecodedBarcode(value="0123456789012", format="EAN_13")
CODE39 = DecodedBarcode(value="ABC", format="CODE_39")


# ============================================================================
# CLOCK
# ============================================================================

class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# DECODERS
# ============================================================================

Outcome = Union[Sequence[DecodedBarcode], BaseException]


class FakeDecoder(BarcodeDecoder):
    """
    Synchronous decoder returning scripted outcomes.

    Each call pops the next outcome; the last one repeats.
    """

    name = "fake"

    def __init__(self, *outcomes: Outcome):
        self._outcomes: List[Outcome] = list(outcomes) or [[]]
        self.calls = 0

    def decode(self, image: np.ndarray) -> List[DecodedBarcode]:
        self.calls += 1
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return list(outcome)


class AsyncFakeDecoder(BarcodeDecoder):
    """Async decoder that can be held open with a gate."""

    name = "async-fake"

    def __init__(self, *outcomes: Outcome, gated: bool = False):
        self._outcomes: List[Outcome] = list(outcomes) or [[]]
        self._gated = gated
        self._gate: Optional[asyncio.Event] = None
        self.calls = 0
        self.active = 0
        self.max_active = 0

    def open_gate(self) -> None:
        self._gated = False
        if self._gate is not None:
            self._gate.set()

    async def decode(self, image: np.ndarray) -> List[DecodedBarcode]:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self._gated:
                if self._gate is None:
                    self._gate = asyncio.Event()
                await self._gate.wait()
            outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
            if isinstance(outcome, BaseException):
                raise outcome
            return list(outcome)
        finally:
            self.active -= 1


class HangingDecoder(BarcodeDecoder):
    """Async decoder that never resolves."""

    name = "hanging"

    async def decode(self, image: np.ndarray) -> List[DecodedBarcode]:
        await asyncio.Event().wait()
        return []


async def drain(iterations: int = 10) -> None:
    """Let pending tasks run to their next real suspension point."""
    for _ in range(iterations):
        await asyncio.sleep(0)


# ============================================================================
# CAMERA
# ============================================================================

def make_image(width: int = 64, height: int = 48) -> np.ndarray:
    return np.full((height, width, 3), 255, dtype=np.uint8)


class FakeStream(CameraStream):
    def __init__(self, ready: bool = True, frame: Optional[np.ndarray] = None):
        self.ready = ready
        self.image = frame if frame is not None else make_image()
        self.closed = False
        self.reads = 0

    def is_ready(self) -> bool:
        return self.ready and not self.closed

    def read_frame(self) -> Optional[Frame]:
        if not self.is_ready():
            return None
        self.reads += 1
        return Frame(data=self.image, timestamp=0.0, source="fake")

    def close(self) -> None:
        self.closed = True


class FakeCameraSource(CameraSource):
    """Camera source handing out FakeStreams, or failing on demand."""

    def __init__(self, error: Optional[BaseException] = None, ready: bool = True):
        self.error = error
        self.ready = ready
        self.streams: List[FakeStream] = []
        self.released: List[FakeStream] = []
        self.constraints: Optional[CameraConstraints] = None

    def acquire(self, constraints: CameraConstraints) -> CameraStream:
        self.constraints = constraints
        if self.error is not None:
            raise self.error
        stream = FakeStream(ready=self.ready)
        self.streams.append(stream)
        return stream

    def release(self, stream: CameraStream) -> None:
        self.released.append(stream)
        super().release(stream)

    @property
    def open_streams(self) -> List[FakeStream]:
        return [s for s in self.streams if not s.closed]


@pytest.fixture
def camera_source() -> FakeCameraSource:
    return FakeCameraSource()


@pytest.fixture
def denied_source() -> FakeCameraSource:
    return FakeCameraSource(error=exceptions.camera_permission_denied())


# ============================================================================
# API FIXTURES
# ============================================================================

@pytest.fixture
def fake_decoder() -> FakeDecoder:
    return FakeDecoder([EAN, CODE39])


@pytest.fixture(scope="function")
def client(fake_decoder: FakeDecoder) -> Generator[TestClient, None, None]:
    """Create test client with decoder override."""
    app.dependency_overrides[get_decoder] = lambda: fake_decoder
    app.dependency_overrides[get_scan_strategy] = lambda: FULL_FRAME

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
