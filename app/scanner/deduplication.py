"""
==============================================================================
Deduplication Module
==============================================================================

Time-windowed aggregation of raw barcode detections.

Each barcode is keyed by ``format:value``. While its window is open, repeated
sightings only bump the count and the last-seen time; once the window lapses
the next sighting starts a brand-new entry.

Expiry is pull-based: stale entries are swept when results are read, there is
no background timer.

==============================================================================
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from app.config import get_settings
from app.scanner.models import RawDetection, ResultEntry, make_result_id


# Module logger
logger = logging.getLogger(__name__)


@dataclass
class _WindowedEntry:
    """Stored entry plus the wall-clock instant its window closes."""
    result: ResultEntry
    expires_at: float


class DeduplicationManager:
    """
    Sliding-window deduplicator for barcode results.

    One instance is owned by one scanning session; it is never shared.

    Window lifetime is measured with ``clock`` at call time. The detection
    ``timestamp`` passed to :meth:`add_or_update` only feeds the
    ``first_detected``/``last_detected`` fields.

    Example:
        >>> dedup = DeduplicationManager(window_seconds=2.0)
        >>> dedup.add_or_update("0123456789012", "EAN_13", time.time())
        ResultEntry(id='EAN_13:0123456789012', ...)
        >>> dedup.add_or_update("0123456789012", "EAN_13", time.time()) is None
        True
    """

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize an empty store.

        Args:
            window_seconds: Duplicate window (uses settings if None)
            clock: Wall-clock source used for expiry checks
        """
        if window_seconds is None:
            window_seconds = get_settings().dedup_window_seconds
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._window = float(window_seconds)
        self._clock = clock
        self._entries: Dict[str, _WindowedEntry] = {}

    @property
    def window_seconds(self) -> float:
        return self._window

    def __len__(self) -> int:
        return len(self._entries)

    def add_or_update(
        self,
        value: str,
        format: str,
        timestamp: float
    ) -> Optional[ResultEntry]:
        """
        Record a detection.

        Args:
            value: Decoded barcode text
            format: Normalized symbology name
            timestamp: Detection time (feeds first/last detected)

        Returns:
            A copy of the new entry if this detection opened a window,
            None if it was absorbed by a live entry.
        """
        key = make_result_id(value, format)
        now = self._clock()

        existing = self._entries.get(key)

        if existing is not None and now < existing.expires_at:
            existing.result.last_detected = timestamp
            existing.result.detection_count += 1
            existing.expires_at = now + self._window
            logger.debug(
                f"Duplicate {key} (count={existing.result.detection_count})"
            )
            return None

        result = ResultEntry.create(value, format, timestamp)
        self._entries[key] = _WindowedEntry(
            result=result,
            expires_at=now + self._window,
        )

        if existing is not None:
            logger.debug(f"Window lapsed for {key}, starting new entry")
        else:
            logger.debug(f"New barcode {key}")

        return replace(result)

    def record(self, detection: RawDetection) -> Optional[ResultEntry]:
        """Record a stamped detection. Same contract as :meth:`add_or_update`."""
        return self.add_or_update(detection.value, detection.format, detection.timestamp)

    def get_results(self) -> List[ResultEntry]:
        """
        Get live results, most recently first-seen first.

        Entries whose window has lapsed are evicted as a side effect.

        Returns:
            Point-in-time copies of the live entries
        """
        now = self._clock()

        expired = [
            key for key, entry in self._entries.items()
            if now >= entry.expires_at
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(f"Evicted {len(expired)} expired result(s)")

        results = [replace(entry.result) for entry in self._entries.values()]
        results.sort(key=lambda r: r.first_detected, reverse=True)
        return results

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()
