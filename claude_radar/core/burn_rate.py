"""
Burn rate estimation.

Token consumption velocity in tokens per minute, either for one session or
aggregated across every session overlapping the last hour.
"""

import dataclasses
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, TYPE_CHECKING

from claude_radar.storage.models import UsageEntry

if TYPE_CHECKING:
    from .sessions import Session

AGGREGATION_WINDOW = timedelta(hours=1)


def calculate_burn_rate(
    entries: Sequence[UsageEntry],
    elapsed: timedelta
) -> Optional[float]:
    """Compute tokens per minute over ``elapsed``.

    Args:
        entries: Entries accounted to the session
        elapsed: Duration the session has been accounted for

    Returns:
        Tokens per minute, or None for empty entries or non-positive duration
    """
    if not entries or elapsed <= timedelta(0):
        return None

    total_tokens = sum(entry.total_tokens for entry in entries)
    return total_tokens / (elapsed.total_seconds() / 60)


def calculate_aggregated_burn_rate(
    sessions: Sequence["Session"],
    now: datetime
) -> Optional[float]:
    """Compute the burn rate across all sessions overlapping the last hour.

    Each session's tokens are apportioned linearly by the share of its
    duration that falls inside ``[now - 1h, now]``. The result is the sum
    of apportioned tokens divided by the sum of overlap minutes.

    Args:
        sessions: Sessions to consider (any order)
        now: Evaluation instant

    Returns:
        Tokens per minute, or None when no session overlaps the window
    """
    window_start = now - AGGREGATION_WINDOW
    total_tokens = 0.0
    total_minutes = 0.0

    for session in sessions:
        overlap_start = max(session.start_time, window_start)
        overlap_end = min(session.end_time, now)
        if overlap_start >= overlap_end:
            continue

        overlap = (overlap_end - overlap_start).total_seconds()
        duration = (session.end_time - session.start_time).total_seconds()

        total_tokens += session.token_count * (overlap / duration)
        total_minutes += overlap / 60

    if total_minutes <= 0:
        return None
    return total_tokens / total_minutes


def apply_aggregated_burn_rate(
    sessions: Sequence["Session"],
    now: datetime
) -> List["Session"]:
    """Return sessions where the active one carries the aggregated burn rate.

    Sessions are never mutated; the active session is replaced by a copy.
    When no aggregated rate is available the session keeps its own rate.
    """
    updated = list(sessions)
    aggregated = calculate_aggregated_burn_rate(updated, now)
    if aggregated is None:
        return updated

    for index, session in enumerate(updated):
        if session.is_active:
            updated[index] = dataclasses.replace(session, burn_rate=aggregated)
            break
    return updated
