"""
==============================================================================
Scan Schemas Module
==============================================================================

Request and response schemas for barcode scanning.

Wire Shape:
-----------
    {"barcodes": [{"value": "0123456789012", "format": "EAN_13"}]}

==============================================================================
"""

from typing import List

from pydantic import BaseModel, Field

from app.scanner.models import DecodedBarcode, ResultEntry


class BarcodeItem(BaseModel):
    """Single decoded barcode."""
    value: str = Field(..., description="Decoded barcode text")
    format: str = Field(..., description="Normalized symbology name")

    @classmethod
    def from_decoded(cls, barcode: DecodedBarcode) -> "BarcodeItem":
        return cls(value=barcode.value, format=barcode.format)


class ScanResponse(BaseModel):
    """Result of scanning one uploaded image."""
    success: bool = Field(default=True)
    barcodes: List[BarcodeItem] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)

    @classmethod
    def from_decoded(cls, barcodes: List[DecodedBarcode]) -> "ScanResponse":
        items = [BarcodeItem.from_decoded(b) for b in barcodes]
        return cls(barcodes=items, count=len(items))


class ResultEntryResponse(BaseModel):
    """Aggregated result as shown to the user."""
    id: str
    value: str
    format: str
    first_detected: float
    last_detected: float
    detection_count: int = Field(..., ge=1)

    @classmethod
    def from_entry(cls, entry: ResultEntry) -> "ResultEntryResponse":
        return cls(**entry.to_dict())
