"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

This package provides:
- Scan: Upload scan response and aggregated result schemas

==============================================================================
"""

from .scan import BarcodeItem, ResultEntryResponse, ScanResponse

__all__ = [
    "BarcodeItem",
    "ResultEntryResponse",
    "ScanResponse",
]
