"""Timestamps for run summaries and archive entries."""

from __future__ import annotations

import time
from datetime import datetime, timezone

# Earliest timestamp a zip header can represent; every archive entry carries it.
ZIP_EPOCH: tuple[int, int, int, int, int, int] = (1980, 1, 1, 0, 0, 0)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_since(started_monotonic: float) -> float:
    """Seconds since a ``time.monotonic()`` reading, rounded to milliseconds."""

    return round(time.monotonic() - started_monotonic, 3)
