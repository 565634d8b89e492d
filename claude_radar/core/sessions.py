"""
Session windowing.

Partitions the timestamp-ordered entry stream into fixed 5-hour sessions.

Two policies are supported:
1. Rolling - the first entry of a run opens a window; entries within 5 hours
   of that start join it, the next entry beyond opens a new window
2. Hour-aligned - each entry joins the window starting at the top of its hour

Both share one grouping routine parameterized by a bucket key function.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from claude_radar.storage.models import UsageEntry
from .burn_rate import calculate_burn_rate
from .model_info import ModelType, identify_model
from .plans import TokenPlan, resolve_token_limit

SESSION_DURATION = timedelta(hours=5)

BucketKey = Callable[[UsageEntry], datetime]


class SessionPolicy(Enum):
    """Session windowing strategies."""
    ROLLING = "rolling"
    HOUR_ALIGNED = "hour_aligned"


@dataclass(frozen=True)
class ModelUsageBreakdown:
    """One model family's share of a session."""
    model_type: ModelType
    token_count: int
    percentage: float


@dataclass(frozen=True)
class Session:
    """A fixed 5-hour accounting window over usage entries."""
    id: str
    start_time: datetime
    end_time: datetime
    token_count: int
    token_limit: int
    cost: float
    is_active: bool
    burn_rate: Optional[float] = None
    model_usage: Dict[ModelType, int] = field(default_factory=dict)

    def __post_init__(self):
        """Validate session invariants."""
        if self.end_time - self.start_time != SESSION_DURATION:
            raise ValueError("session must span exactly 5 hours")
        if self.token_count < 0:
            raise ValueError("token_count cannot be negative")

    @property
    def model_breakdown(self) -> List[ModelUsageBreakdown]:
        """Per-model token share, largest first."""
        if self.token_count <= 0:
            return []
        breakdown = [
            ModelUsageBreakdown(
                model_type=model_type,
                token_count=tokens,
                percentage=tokens / self.token_count * 100.0
            )
            for model_type, tokens in self.model_usage.items()
        ]
        return sorted(breakdown, key=lambda b: b.token_count, reverse=True)

    @property
    def primary_model(self) -> ModelType:
        """Model with the most tokens; ties go to the higher tier."""
        if not self.model_usage:
            return ModelType.UNKNOWN
        return max(self.model_usage.items(), key=lambda item: (item[1], item[0].tier))[0]

    @property
    def progress(self) -> float:
        """Fraction of the token limit consumed."""
        if self.token_limit <= 0:
            return 0.0
        return self.token_count / self.token_limit

    @property
    def remaining_tokens(self) -> int:
        return max(0, self.token_limit - self.token_count)

    @property
    def time_remaining(self) -> Optional[timedelta]:
        """Time until the limit is reached at the current burn rate."""
        if self.burn_rate is None or self.burn_rate <= 0:
            return None
        return timedelta(minutes=self.remaining_tokens / self.burn_rate)


def _rolling_bucket_key(window: timedelta = SESSION_DURATION) -> BucketKey:
    """Key entries by the start of the running window they fall into.

    The window start only moves when an entry lies more than ``window``
    after it; gaps inside the window do not open a new one.
    """
    anchor: Optional[datetime] = None

    def key(entry: UsageEntry) -> datetime:
        nonlocal anchor
        if anchor is None or entry.timestamp - anchor > window:
            anchor = entry.timestamp
        return anchor

    return key


def _hour_aligned_bucket_key(tz: Optional[tzinfo] = None) -> BucketKey:
    """Key entries by the top of their hour on the wall clock of ``tz``."""
    def key(entry: UsageEntry) -> datetime:
        # astimezone(None) converts to the system local zone
        return entry.timestamp.astimezone(tz).replace(minute=0, second=0, microsecond=0)

    return key


def _group_entries(
    entries: Sequence[UsageEntry],
    bucket_key: BucketKey
) -> Dict[datetime, List[UsageEntry]]:
    """Group entries by window start in a single pass."""
    groups: Dict[datetime, List[UsageEntry]] = defaultdict(list)
    for entry in entries:
        groups[bucket_key(entry)].append(entry)
    return groups


def _elapsed(policy: SessionPolicy, start_time: datetime, now: datetime, is_active: bool) -> timedelta:
    if policy is SessionPolicy.ROLLING:
        return min(SESSION_DURATION, now - start_time)
    return now - start_time if is_active else SESSION_DURATION


def _build_session(
    entries: List[UsageEntry],
    start_time: datetime,
    plan: TokenPlan,
    policy: SessionPolicy,
    now: datetime
) -> Session:
    end_time = start_time + SESSION_DURATION

    token_count = 0
    cost = 0.0
    model_usage: Dict[ModelType, int] = defaultdict(int)
    for entry in entries:
        token_count += entry.total_tokens
        cost += entry.cost
        model_usage[identify_model(entry.model)] += entry.total_tokens

    is_active = start_time <= now < end_time

    return Session(
        id=str(uuid.uuid4()),
        start_time=start_time,
        end_time=end_time,
        token_count=token_count,
        token_limit=resolve_token_limit(plan, entries),
        cost=cost,
        is_active=is_active,
        burn_rate=calculate_burn_rate(entries, _elapsed(policy, start_time, now, is_active)),
        model_usage=dict(model_usage)
    )


def calculate_sessions(
    entries: Sequence[UsageEntry],
    plan: TokenPlan,
    policy: SessionPolicy = SessionPolicy.ROLLING,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None
) -> List[Session]:
    """Partition entries into sessions.

    Args:
        entries: Usage entries sorted ascending by timestamp
        plan: Plan used to resolve each session's token limit
        policy: Windowing policy
        now: Evaluation instant (defaults to the current UTC time)
        tz: Zone whose wall-clock hours align hour-aligned sessions
            (system local zone when None)

    Returns:
        Sessions sorted by start time, most recent first
    """
    if not entries:
        return []

    now = now or datetime.now(timezone.utc)
    bucket_key = (
        _rolling_bucket_key()
        if policy is SessionPolicy.ROLLING
        else _hour_aligned_bucket_key(tz)
    )

    sessions = [
        _build_session(group, start_time, plan, policy, now)
        for start_time, group in _group_entries(entries, bucket_key).items()
    ]
    return sorted(sessions, key=lambda s: s.start_time, reverse=True)


def calculate_hour_aligned_sessions(
    entries: Sequence[UsageEntry],
    plan: TokenPlan,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None
) -> List[Session]:
    """Partition entries into sessions aligned to wall-clock hours."""
    return calculate_sessions(entries, plan, SessionPolicy.HOUR_ALIGNED, now, tz)
