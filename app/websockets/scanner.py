"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Real-time barcode scanning via WebSocket connection.

Protocol:
---------
1. Client connects to /ws/scan
2. Client streams frames: {"type": "frame", "frame": "<base64 image>"}
3. Server pushes {"type": "detection", "result": {...}} for every newly
   announced barcode and {"type": "results", "results": [...]} after each
   analysed frame
4. Client may send {"type": "clear"} to reset the results
5. Client sends {"type": "stop"} (or disconnects) to end the session

Each connection owns its own frame buffer, deduplicator and sampler.

==============================================================================
"""

import base64
import binascii
import logging
from typing import List, Optional

import cv2
import numpy as np
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.core.dependencies import get_decoder, get_scan_strategy
from app.scanner.camera import FrameBuffer
from app.scanner.decoders import BarcodeDecoder
from app.scanner.deduplication import DeduplicationManager
from app.scanner.models import ResultEntry
from app.scanner.regions import ScanStrategy
from app.scanner.sampler import FrameSampler
from app.schemas.scan import ResultEntryResponse


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerWebSocketHandler:
    """
    Handler for live barcode scanning WebSocket connections.

    Manages the lifecycle of a scanning session including:
    - Frame intake
    - Throttled analysis
    - Detection reporting
    """

    def __init__(
        self,
        websocket: WebSocket,
        decoder: BarcodeDecoder,
        strategy: ScanStrategy,
    ):
        self._websocket = websocket
        self._buffer = FrameBuffer(source="websocket")
        self._deduplicator = DeduplicationManager()
        self._sampler = FrameSampler(
            self._buffer,
            decoder,
            self._deduplicator,
            strategy=strategy,
            on_detected=self.send_detection,
            on_results=self.send_results,
        )
        self._frame_count = 0

    async def send_error(self, message: str, code: str = "ERROR") -> None:
        """Send error message to client."""
        await self._websocket.send_json({
            "type": "error",
            "code": code,
            "message": message
        })

    async def send_detection(self, entry: ResultEntry) -> None:
        """Announce a newly detected barcode."""
        await self._websocket.send_json({
            "type": "detection",
            "result": ResultEntryResponse.from_entry(entry).model_dump()
        })

    async def send_results(self, results: List[ResultEntry]) -> None:
        """Send the current result list."""
        await self._websocket.send_json({
            "type": "results",
            "results": [ResultEntryResponse.from_entry(r).model_dump() for r in results]
        })

    @staticmethod
    def decode_frame(encoded: str) -> Optional[np.ndarray]:
        """Decode a base64 image (optionally a data URL) into a BGR frame."""
        if "," in encoded and encoded.startswith("data:"):
            encoded = encoded.split(",", 1)[1]

        try:
            img_data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            return None

        nparr = np.frombuffer(img_data, np.uint8)
        if nparr.size == 0:
            return None
        return cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    async def handle_frame(self, data: dict) -> None:
        """Handle frame message from client."""
        encoded = data.get("frame")
        if not isinstance(encoded, str):
            await self.send_error("Frame payload missing", "INVALID_IMAGE")
            return

        frame = self.decode_frame(encoded)
        if frame is None:
            logger.debug("Undecodable frame dropped")
            await self.send_error("Invalid frame data", "INVALID_IMAGE")
            return

        self._frame_count += 1
        self._buffer.push(frame)

    async def handle_clear(self) -> None:
        """Handle clear message from client."""
        self._deduplicator.clear()
        await self.send_results([])

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Scanner WebSocket connected")

        self._sampler.enable()

        try:
            while True:
                data = await self._websocket.receive_json()
                msg_type = data.get("type") if isinstance(data, dict) else None

                if msg_type == "frame":
                    await self.handle_frame(data)

                elif msg_type == "clear":
                    await self.handle_clear()

                elif msg_type == "stop":
                    logger.info("🛑 Client requested stop")
                    break

                else:
                    await self.send_error(f"Unknown message type: {msg_type}", "UNKNOWN_MESSAGE")

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            try:
                await self.send_error(str(e))
            except Exception:
                logger.debug("Could not report error to client")
        finally:
            await self._sampler.disable()
            self._buffer.close()
            self._deduplicator.clear()
            logger.info(f"✅ Scanner WebSocket closed ({self._frame_count} frames)")


@router.websocket("/ws/scan")
async def websocket_scan(
    websocket: WebSocket,
    decoder: BarcodeDecoder = Depends(get_decoder),
    strategy: ScanStrategy = Depends(get_scan_strategy),
):
    """Real-time barcode scanning via WebSocket."""
    handler = ScannerWebSocketHandler(websocket, decoder, strategy)
    await handler.run()
