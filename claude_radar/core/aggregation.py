"""
Usage aggregation.

Derives per-project breakdowns and overall statistics from entries and
sessions. Everything here is recomputed from scratch on each refresh.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from pathlib import PurePath
from typing import Dict, List, Optional, Sequence

from claude_radar.storage.models import UsageEntry
from .sessions import Session

UNKNOWN_PROJECT = "Unknown Project"
STREAK_MAX_DAYS = 30


@dataclass(frozen=True)
class ProjectUsage:
    """Aggregated usage for one project path."""
    path: str
    total_tokens: int
    session_count: int
    last_used: datetime
    average_tokens_per_session: int
    percentage: float

    @property
    def name(self) -> str:
        """Display name (last path component)."""
        return PurePath(self.path).name or self.path


@dataclass(frozen=True)
class UsageStatistics:
    """Aggregate statistics over all sessions."""
    total_sessions: int
    total_tokens_used: int
    total_cost: float
    average_tokens_per_session: int
    average_cost_per_session: float
    peak_usage_day: Optional[datetime]
    current_streak: int

    @classmethod
    def empty(cls) -> "UsageStatistics":
        return cls(
            total_sessions=0,
            total_tokens_used=0,
            total_cost=0.0,
            average_tokens_per_session=0,
            average_cost_per_session=0.0,
            peak_usage_day=None,
            current_streak=0
        )


def _local_date(moment: datetime, tz: Optional[tzinfo]) -> date:
    # astimezone(None) converts to the system local zone
    return moment.astimezone(tz).date()


def calculate_project_usage(
    entries: Sequence[UsageEntry],
    tz: Optional[tzinfo] = None
) -> List[ProjectUsage]:
    """Group entries by project and compute each project's share.

    Session count is approximated as the number of distinct calendar days
    with at least one entry.

    Args:
        entries: Usage entries in any order
        tz: Zone used for calendar days (system local zone when None)

    Returns:
        Projects sorted by total tokens, largest first
    """
    groups: Dict[str, List[UsageEntry]] = defaultdict(list)
    for entry in entries:
        groups[entry.project_path or UNKNOWN_PROJECT].append(entry)

    grand_total = sum(entry.total_tokens for entry in entries)

    projects = []
    for path, project_entries in groups.items():
        total_tokens = sum(entry.total_tokens for entry in project_entries)
        active_days = {_local_date(entry.timestamp, tz) for entry in project_entries}
        session_count = len(active_days)

        projects.append(ProjectUsage(
            path=path,
            total_tokens=total_tokens,
            session_count=session_count,
            last_used=max(entry.timestamp for entry in project_entries),
            average_tokens_per_session=total_tokens // session_count,
            percentage=(total_tokens / grand_total * 100.0) if grand_total else 0.0
        ))

    return sorted(projects, key=lambda p: p.total_tokens, reverse=True)


def calculate_current_streak(
    sessions: Sequence[Session],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    max_days: int = STREAK_MAX_DAYS
) -> int:
    """Count consecutive days with at least one session start.

    Walks backward from today for up to ``max_days`` days and stops at the
    first day without a session. Today itself may still be empty without
    breaking the streak.
    """
    now = now or datetime.now(timezone.utc)
    today = _local_date(now, tz)
    session_days = {_local_date(session.start_time, tz) for session in sessions}

    streak = 0
    for offset in range(max_days):
        if today - timedelta(days=offset) in session_days:
            streak += 1
        elif offset > 0:
            break
    return streak


def calculate_statistics(
    sessions: Sequence[Session],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None
) -> UsageStatistics:
    """Compute totals, averages, peak session and current streak.

    Returns:
        UsageStatistics (all zero for an empty session list)
    """
    if not sessions:
        return UsageStatistics.empty()

    total_tokens = sum(session.token_count for session in sessions)
    total_cost = sum(session.cost for session in sessions)
    peak_session = max(sessions, key=lambda s: s.token_count)

    return UsageStatistics(
        total_sessions=len(sessions),
        total_tokens_used=total_tokens,
        total_cost=total_cost,
        average_tokens_per_session=total_tokens // len(sessions),
        average_cost_per_session=total_cost / len(sessions),
        peak_usage_day=peak_session.start_time,
        current_streak=calculate_current_streak(sessions, now, tz)
    )
