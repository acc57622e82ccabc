"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Dependency injection functions for the scanning endpoints.

Dependencies:
-------------
- get_decoder: Shared decode capability selected by settings
- get_scan_strategy: Region strategy selected by settings

Tests replace these through ``app.dependency_overrides``.

==============================================================================
"""

from __future__ import annotations

import logging
from functools import lru_cache

from app.config import get_settings
from app.scanner.decoders import BarcodeDecoder, create_decoder
from app.scanner.regions import ScanStrategy, get_strategy


# Module logger
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_decoder() -> BarcodeDecoder:
    """
    Get the global decoder instance.

    Created lazily on first use so the application starts even when the
    decoding backend is unavailable.
    """
    return create_decoder(get_settings())


def get_scan_strategy() -> ScanStrategy:
    """Get the configured region strategy."""
    return get_strategy(get_settings().scan_strategy)
