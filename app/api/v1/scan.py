"""
==============================================================================
Scan Endpoints
==============================================================================

Upload-based barcode scanning.

    POST /api/v1/scan   (multipart field "image")

Returns ``{"success": true, "barcodes": [{value, format}], "count": n}``.
Failures use the standard AppException error body.

==============================================================================
"""

import logging

import cv2
import numpy as np
from fastapi import APIRouter, Depends, File, UploadFile

from app.core import exceptions
from app.core.dependencies import get_decoder, get_scan_strategy
from app.scanner.decoders import BarcodeDecoder, decode_regions
from app.scanner.regions import ScanStrategy
from app.schemas.scan import ScanResponse


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scan", tags=["Scan"])


class ScanController:
    """Controller for upload scanning."""

    def __init__(self, decoder: BarcodeDecoder, strategy: ScanStrategy):
        self._decoder = decoder
        self._strategy = strategy

    @staticmethod
    def decode_image(payload: bytes) -> np.ndarray:
        """Decode an uploaded image into a BGR frame."""
        if not payload:
            raise exceptions.invalid_image("empty upload")

        buffer = np.frombuffer(payload, np.uint8)
        frame = cv2.imdecode(buffer, cv2.IMREAD_COLOR)

        if frame is None:
            raise exceptions.invalid_image("unsupported or corrupt image data")

        return frame

    async def scan(self, payload: bytes) -> ScanResponse:
        """Scan one uploaded image."""
        frame = self.decode_image(payload)
        logger.debug(f"Scanning upload {frame.shape[1]}x{frame.shape[0]}")

        try:
            barcodes = await decode_regions(
                self._decoder,
                frame,
                self._strategy,
                raise_if_all_failed=True,
            )
        except exceptions.AppException as e:
            if e.code != "NO_BARCODE_FOUND":
                raise
            barcodes = []

        logger.info(f"📊 Upload scan found {len(barcodes)} barcode(s)")
        return ScanResponse.from_decoded(barcodes)


@router.post("", response_model=ScanResponse)
async def scan_image(
    image: UploadFile = File(...),
    decoder: BarcodeDecoder = Depends(get_decoder),
    strategy: ScanStrategy = Depends(get_scan_strategy),
):
    """
    Scan an uploaded image for barcodes.

    Zero barcodes is a successful, empty response.
    """
    payload = await image.read()
    controller = ScanController(decoder, strategy)
    return await controller.scan(payload)
