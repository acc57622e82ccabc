"""
==============================================================================
Barcode Decoders Module
==============================================================================

Decode capabilities consumed by the scan drivers.

A decoder takes a pixel buffer and returns zero or more (value, format)
pairs, or raises an AppException (DECODE_ERROR / NO_BARCODE_FOUND /
REMOTE_SCAN_FAILED). Decoders may be synchronous or ``async``; the drivers
go through :func:`run_decoder` so either works.

Backends:
---------
- PyzbarDecoder: local decoding with pyzbar over an OpenCV greyscale image
- RemoteScanDecoder: uploads a PNG to a scanning endpoint with httpx

==============================================================================
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Set, Tuple

import cv2
import httpx
import numpy as np

from app.config import Settings, get_settings
from app.core import exceptions
from app.core.exceptions import AppException
from app.scanner.models import DecodedBarcode
from app.scanner.regions import ScanStrategy


# Module logger
logger = logging.getLogger(__name__)


# pyzbar symbol name -> normalized format name
ZBAR_FORMATS = {
    "EAN13": "EAN_13",
    "EAN8": "EAN_8",
    "UPCA": "UPC_A",
    "UPCE": "UPC_E",
    "ISBN10": "ISBN_10",
    "ISBN13": "ISBN_13",
    "I25": "ITF",
    "CODE39": "CODE_39",
    "CODE93": "CODE_93",
    "CODE128": "CODE_128",
    "CODABAR": "CODABAR",
    "QRCODE": "QR_CODE",
    "PDF417": "PDF_417",
    "DATABAR": "DATABAR",
    "DATABAR_EXP": "DATABAR_EXP",
}

# normalized format name -> pyzbar symbol name
FORMAT_SYMBOLS = {fmt: symbol for symbol, fmt in ZBAR_FORMATS.items()}


def normalize_format(zbar_type: str) -> str:
    """
    Map a pyzbar type name to the normalized format name.

    Unknown names are upper-cased and passed through.
    """
    key = zbar_type.upper().replace("-", "").replace(" ", "")
    return ZBAR_FORMATS.get(key, zbar_type.upper())


class BarcodeDecoder(ABC):
    """
    Decode capability contract.

    Implementations must be side-effect free and safe to call repeatedly.
    """

    name: str = "decoder"

    @abstractmethod
    def decode(self, image: np.ndarray) -> List[DecodedBarcode]:
        """
        Decode every barcode visible in the image.

        Args:
            image: BGR or greyscale pixel buffer

        Returns:
            Decoded barcodes (possibly empty)

        Raises:
            AppException: DECODE_ERROR on malformed input
        """
        ...


# =============================================================================
# LOCAL DECODER
# =============================================================================

class PyzbarDecoder(BarcodeDecoder):
    """
    Local decoder backed by pyzbar (ZBar).

    Example:
        >>> decoder = PyzbarDecoder(formats=["EAN_13", "CODE_128"])
        >>> decoder.decode(frame)
        [DecodedBarcode(value='0123456789012', format='EAN_13')]
    """

    name = "pyzbar"

    def __init__(self, formats: Optional[Sequence[str]] = None) -> None:
        """
        Initialize decoder.

        Args:
            formats: Normalized format names to attempt (None = all)
        """
        # pyzbar loads the zbar shared library on import
        from pyzbar.pyzbar import ZBarSymbol, decode

        self._decode = decode
        self._symbols = None

        if formats:
            symbols = []
            for fmt in formats:
                symbol = FORMAT_SYMBOLS.get(fmt.upper())
                if symbol is None:
                    logger.warning(f"Unsupported barcode format ignored: {fmt}")
                    continue
                symbols.append(ZBarSymbol[symbol])
            self._symbols = symbols or None

        logger.debug(
            f"PyzbarDecoder created (formats={list(formats) if formats else 'all'})"
        )

    def decode(self, image: np.ndarray) -> List[DecodedBarcode]:
        if image is None or image.size == 0:
            raise exceptions.decode_error("Empty frame")

        try:
            if image.ndim == 3:
                gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
            else:
                gray = np.ascontiguousarray(image)
            barcodes = self._decode(gray, symbols=self._symbols)
        except Exception as e:
            raise exceptions.decode_error(f"Decode error: {e}") from e

        results = []
        for barcode in barcodes:
            try:
                value = barcode.data.decode("utf-8")
            except UnicodeDecodeError:
                value = barcode.data.decode("latin-1")
            results.append(DecodedBarcode(value=value, format=normalize_format(barcode.type)))

        return results


# =============================================================================
# REMOTE (UPLOAD) DECODER
# =============================================================================

class RemoteScanDecoder(BarcodeDecoder):
    """
    Upload-based decoder.

    Encodes the frame as PNG (lossless keeps bars sharp) and posts it to a
    scanning endpoint returning ``{"barcodes": [{"value", "format"}]}``.
    Every failure mode surfaces as a single REMOTE_SCAN_FAILED.
    """

    name = "remote"

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize decoder.

        Args:
            endpoint: Full URL of the scanning endpoint
            timeout: Request timeout in seconds
            client: Pre-configured client (owned by the caller)
        """
        self._endpoint = endpoint
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def decode(self, image: np.ndarray) -> List[DecodedBarcode]:
        if image is None or image.size == 0:
            raise exceptions.decode_error("Empty frame")

        ok, buffer = cv2.imencode(".png", image)
        if not ok:
            raise exceptions.decode_error("Could not encode frame as PNG")

        return await self.scan_bytes(buffer.tobytes())

    async def scan_bytes(
        self,
        payload: bytes,
        filename: str = "photo.png",
        content_type: str = "image/png",
    ) -> List[DecodedBarcode]:
        """
        Upload an encoded image and parse the response.

        Raises:
            AppException: REMOTE_SCAN_FAILED on any transport or protocol error
        """
        logger.debug(f"Uploading {len(payload)} bytes to {self._endpoint}")

        try:
            response = await self._get_client().post(
                self._endpoint,
                files={"image": (filename, payload, content_type)},
            )
        except httpx.HTTPError as e:
            raise exceptions.remote_scan_failed(f"Network error: {e}") from e

        if response.is_error:
            raise exceptions.remote_scan_failed(
                f"Backend error: {self._error_message(response)}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise exceptions.remote_scan_failed("Malformed response body") from e

        results = self._parse_barcodes(data)
        logger.debug(f"Remote scan complete, found: {len(results)}")
        return results

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"

        if isinstance(data, dict):
            detail = data.get("detail") or data.get("error")
            if isinstance(detail, dict):
                detail = detail.get("message")
            if detail:
                return str(detail)

        return f"HTTP {response.status_code}"

    @staticmethod
    def _parse_barcodes(data: Any) -> List[DecodedBarcode]:
        if not isinstance(data, dict):
            raise exceptions.remote_scan_failed("Malformed response body")

        barcodes = data.get("barcodes") or []
        if not isinstance(barcodes, list):
            raise exceptions.remote_scan_failed("Malformed response body")

        results = []
        for item in barcodes:
            if (
                not isinstance(item, dict)
                or not isinstance(item.get("value"), str)
                or not isinstance(item.get("format"), str)
            ):
                raise exceptions.remote_scan_failed("Malformed barcode entry")
            results.append(DecodedBarcode(value=item["value"], format=item["format"]))
        return results

    async def aclose(self) -> None:
        """Close the HTTP client if this decoder created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# DRIVER HELPERS
# =============================================================================

async def run_decoder(decoder: BarcodeDecoder, image: np.ndarray) -> List[DecodedBarcode]:
    """
    Invoke a decoder without blocking the event loop.

    Coroutine decoders are awaited; synchronous ones run in a worker thread.
    """
    if inspect.iscoroutinefunction(decoder.decode):
        return await decoder.decode(image)
    return await asyncio.to_thread(decoder.decode, image)


async def decode_regions(
    decoder: BarcodeDecoder,
    image: np.ndarray,
    strategy: ScanStrategy,
    raise_if_all_failed: bool = False,
) -> List[DecodedBarcode]:
    """
    Decode every region of a strategy and merge the results.

    A failing region is logged and skipped; the others still run. Each
    (format, value) appears once, in first-seen order.

    Args:
        decoder: Decode capability
        image: Full frame
        strategy: Regions to attempt
        raise_if_all_failed: Re-raise the last error when no region
            decoded successfully (single-shot uses this)

    Returns:
        Distinct decoded barcodes
    """
    seen: Set[Tuple[str, str]] = set()
    results: List[DecodedBarcode] = []
    last_error: Optional[BaseException] = None
    succeeded = 0

    for region in strategy:
        crop = region.crop(image)
        if crop.size == 0:
            continue

        try:
            found = await run_decoder(decoder, crop)
        except AppException as e:
            last_error = e
            logger.debug(f"Region {region.name} skipped: {e.code} {e.message}")
            continue
        except Exception as e:
            last_error = e
            logger.debug(f"Region {region.name} failed: {e}")
            continue

        succeeded += 1
        for barcode in found:
            if barcode.key in seen:
                continue
            seen.add(barcode.key)
            results.append(barcode)

    if raise_if_all_failed and succeeded == 0 and last_error is not None:
        raise last_error

    return results


def create_decoder(settings: Optional[Settings] = None) -> BarcodeDecoder:
    """
    Build the decoder selected by ``scan_backend``.

    Args:
        settings: Settings to use (global settings if None)
    """
    settings = settings or get_settings()

    if settings.scan_backend == "remote":
        logger.info(f"🌐 Using remote scan backend: {settings.scan_api_url}")
        return RemoteScanDecoder(
            settings.scan_api_url,
            timeout=settings.scan_api_timeout_seconds,
        )

    logger.info("🔍 Using local pyzbar backend")
    return PyzbarDecoder(formats=settings.barcode_formats_list)
