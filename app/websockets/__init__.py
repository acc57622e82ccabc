"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for barcode scanning.

Handlers:
---------
- scanner: Live frame streaming with deduplicated detections

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
