"""
Application Exception Handling

Single AppException class for all application errors with FastAPI integration.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Provides consistent error response format across the entire API and a
    machine-readable code the scan drivers branch on.

    Usage:
        raise AppException("Camera permission denied", "CAMERA_PERMISSION_DENIED", 403)
        raise AppException("Invalid scan state", "INVALID_SCAN_STATE", 409, {"current": "processing"})

    Error Codes:
        Camera acquisition:
            - CAMERA_PERMISSION_DENIED (403)
            - CAMERA_NOT_SUPPORTED (501)
            - CAMERA_DEVICE_ERROR (503)
            - CAMERA_UNAVAILABLE (503)
            - CAPTURE_FAILED (500)

        Decoding:
            - NO_BARCODE_FOUND (404)
            - DECODE_ERROR (422)
            - SCAN_TIMEOUT (504)
            - REMOTE_SCAN_FAILED (502)
            - INVALID_IMAGE (400)

        Workflow:
            - INVALID_SCAN_STATE (409)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "DECODE_ERROR")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    FastAPI exception handler for AppException.

    Converts AppException to consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Call this in main.py after creating the FastAPI instance.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# ERROR CLASSIFICATION
# ============================================

ACQUISITION_ERROR_CODES = frozenset({
    "CAMERA_PERMISSION_DENIED",
    "CAMERA_NOT_SUPPORTED",
    "CAMERA_DEVICE_ERROR",
})


def is_acquisition_error(exc: BaseException) -> bool:
    """Check whether an exception is a camera acquisition failure."""
    return isinstance(exc, AppException) and exc.code in ACQUISITION_ERROR_CODES


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def camera_permission_denied() -> AppException:
    """Create camera permission denied exception."""
    return AppException("Camera permission denied", "CAMERA_PERMISSION_DENIED", 403)


def camera_not_supported(message: str = "Camera access not supported on this device") -> AppException:
    """Create camera not supported exception."""
    return AppException(message, "CAMERA_NOT_SUPPORTED", 501)


def camera_device_error(message: str = "Failed to access camera") -> AppException:
    """Create camera device failure exception."""
    return AppException(message, "CAMERA_DEVICE_ERROR", 503)


def camera_unavailable() -> AppException:
    """Create camera unavailable exception (no active stream)."""
    return AppException("Camera is not active", "CAMERA_UNAVAILABLE", 503)


def capture_failed() -> AppException:
    """Create photo capture failure exception."""
    return AppException("Failed to capture photo", "CAPTURE_FAILED", 500)


def no_barcode_found() -> AppException:
    """Create no barcode found exception."""
    return AppException("No barcodes found", "NO_BARCODE_FOUND", 404)


def decode_error(message: str = "Detection failed") -> AppException:
    """Create decode failure exception."""
    return AppException(message, "DECODE_ERROR", 422)


def scan_timeout(seconds: float) -> AppException:
    """Create scan timeout exception."""
    return AppException(
        f"Detection timed out after {seconds:.1f}s",
        "SCAN_TIMEOUT",
        504,
        {"timeout_seconds": seconds}
    )


def remote_scan_failed(message: str) -> AppException:
    """Create remote scanning endpoint failure exception."""
    return AppException(message, "REMOTE_SCAN_FAILED", 502)


def invalid_image(reason: str) -> AppException:
    """Create invalid image payload exception."""
    return AppException(
        f"Invalid image: {reason}",
        "INVALID_IMAGE",
        400,
        {"reason": reason}
    )


def invalid_scan_state(current: str, expected: str) -> AppException:
    """Create invalid scan state exception."""
    return AppException(
        f"Invalid scan state. Current: {current}, Expected: {expected}",
        "INVALID_SCAN_STATE",
        409,
        {"current_state": current, "expected_state": expected}
    )
