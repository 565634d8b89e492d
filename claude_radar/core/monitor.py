"""
Usage monitoring and refresh cycles.

Runs the full pipeline (ingestion, windowing, burn rate, aggregation) and
publishes the result as an immutable snapshot.

A refresh cycle mirrors the data flow of the engine:
1. Load deduplicated, time-ordered entries from the repository
2. Partition them into sessions under the configured policy
3. Override the active session's burn rate with the aggregated rate
4. Derive statistics and per-project usage
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, List, Optional

from claude_radar.config.loader import RadarConfig
from claude_radar.storage.repository import UsageRepository
from .aggregation import (
    ProjectUsage,
    UsageStatistics,
    calculate_project_usage,
    calculate_statistics,
)
from .burn_rate import apply_aggregated_burn_rate, calculate_aggregated_burn_rate
from .plans import TokenPlan, detect_limit_from_sessions
from .sessions import Session, calculate_sessions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    """Result of one refresh cycle."""
    sessions: List[Session]
    statistics: UsageStatistics
    projects: List[ProjectUsage]
    refreshed_at: datetime
    current_session: Optional[Session] = None
    aggregated_burn_rate: Optional[float] = None
    detected_limit: Optional[int] = None
    entry_count: int = 0

    @classmethod
    def empty(cls, refreshed_at: datetime) -> "UsageSnapshot":
        return cls(
            sessions=[],
            statistics=UsageStatistics.empty(),
            projects=[],
            refreshed_at=refreshed_at
        )


@dataclass
class UsageMonitor:
    """Periodic refresh driver.

    At most one refresh runs at a time; a refresh requested while another
    is in flight is skipped.
    """
    config: RadarConfig = field(default_factory=RadarConfig)
    repository: Optional[UsageRepository] = None
    tz: Optional[tzinfo] = None
    snapshot: Optional[UsageSnapshot] = None

    def __post_init__(self):
        if self.repository is None:
            self.repository = UsageRepository(limits=self.config.limits)
        self._refresh_lock = threading.Lock()
        self._stop_event = threading.Event()

    def build_snapshot(self, now: Optional[datetime] = None) -> UsageSnapshot:
        """Run one full pipeline pass and return its snapshot."""
        now = now or datetime.now(timezone.utc)
        plan = self.config.plan

        entries = self.repository.load_entries(self.config.data_path)
        if not entries:
            logger.info("No usage entries found")
            return UsageSnapshot.empty(now)

        sessions = calculate_sessions(entries, plan, self.config.session_policy, now, self.tz)
        aggregated = calculate_aggregated_burn_rate(sessions, now)
        sessions = apply_aggregated_burn_rate(sessions, now)

        current = next((session for session in sessions if session.is_active), None)
        if current is None:
            logger.info("No active session found")
        elif aggregated is not None:
            logger.debug("Active session burn rate: %.1f tokens/min (aggregated)", aggregated)

        return UsageSnapshot(
            sessions=sessions,
            statistics=calculate_statistics(sessions, now, self.tz),
            projects=calculate_project_usage(entries, self.tz),
            refreshed_at=now,
            current_session=current,
            aggregated_burn_rate=aggregated,
            detected_limit=(
                detect_limit_from_sessions(sessions)
                if plan is TokenPlan.AUTO_DETECT else None
            ),
            entry_count=len(entries)
        )

    def refresh(self, now: Optional[datetime] = None) -> Optional[UsageSnapshot]:
        """Refresh the snapshot unless another refresh is already running.

        Returns:
            The new snapshot, or None when the refresh was skipped
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.warning("Refresh already in progress, skipping")
            return None
        try:
            self.snapshot = self.build_snapshot(now)
            return self.snapshot
        finally:
            self._refresh_lock.release()

    def run(
        self,
        interval: Optional[float] = None,
        iterations: Optional[int] = None,
        on_snapshot: Optional[Callable[[UsageSnapshot], None]] = None
    ) -> None:
        """Refresh periodically until stopped or ``iterations`` is reached.

        Args:
            interval: Seconds between refreshes (config value by default)
            iterations: Number of refreshes before returning (unbounded if None)
            on_snapshot: Called with each new snapshot
        """
        interval = interval or self.config.refresh_interval
        self._stop_event.clear()
        count = 0
        while not self._stop_event.is_set():
            started = time.monotonic()
            snapshot = self.refresh()
            if snapshot is not None and on_snapshot is not None:
                on_snapshot(snapshot)

            count += 1
            if iterations is not None and count >= iterations:
                break
            self._stop_event.wait(max(0.0, interval - (time.monotonic() - started)))

    def stop(self) -> None:
        self._stop_event.set()
