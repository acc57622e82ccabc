"""
==============================================================================
Core Package
==============================================================================

Core utilities and infrastructure for the application.

This package provides:
- Custom exception handling with consistent error responses
- Exception factory functions for camera and decoding failures
- Acquisition error classification

Modules:
--------
- exceptions: AppException class and error factory functions

Usage:
------
    from app.core import AppException

    # Or use exception factory functions via module
    from app.core import exceptions
    raise exceptions.camera_permission_denied()

==============================================================================
"""

from .exceptions import (
    AppException,
    is_acquisition_error,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "is_acquisition_error",
    "register_exception_handlers",
]
