"""Split one page of audit logs into calendar-day windows."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

from auditlogs.models import AuditLogEntry

ONE_DAY = timedelta(hours=24)


def day_start(ts: datetime) -> datetime:
    """UTC midnight of the day containing ``ts``."""
    ts = ts.astimezone(timezone.utc)
    return datetime(ts.year, ts.month, ts.day, tzinfo=timezone.utc)


def partition_by_day(entries: Sequence[AuditLogEntry]) -> list[list[AuditLogEntry]]:
    """Return contiguous windows of ``entries``, one per day crossed.

    The anchor starts at midnight of the first entry and moves forward by a
    fixed 24h each time an entry lands strictly after ``anchor + 24h``. It is
    not re-derived from the entry that closed the window, so after a gap of
    more than one day the remaining windows of the page are cut on the
    drifted anchor. Each page starts with a fresh anchor.
    """
    if not entries:
        return []

    anchor = day_start(entries[0].timestamp)
    windows: list[list[AuditLogEntry]] = []
    window_start = 0

    for i, entry in enumerate(entries):
        if (entry.timestamp, entry.nanos) > (anchor + ONE_DAY, 0):
            windows.append(list(entries[window_start:i]))
            window_start = i
            anchor += ONE_DAY

    if window_start < len(entries):
        windows.append(list(entries[window_start:]))
    return windows
