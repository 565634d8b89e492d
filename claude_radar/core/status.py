"""
Session status evaluation.

Classifies the active session by usage level and time left, and predicts
when the token limit will be reached at the current burn rate.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .sessions import Session

APPROACHING_MINUTES = 10
CRITICAL_PERCENT = 90.0
WARNING_PERCENT = 70.0
HIGH_BURN_RATE = 100.0  # tokens per minute


class SessionStatus(Enum):
    """Status levels for a session."""
    ACTIVE = "active"
    EXPIRED = "expired"
    APPROACHING = "approaching"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class StatusReport:
    """Status of a session with the values that determined it."""
    status: SessionStatus
    percentage: float
    remaining_minutes: Optional[int] = None

    @property
    def description(self) -> str:
        if self.status is SessionStatus.APPROACHING:
            return f"Expires in {self.remaining_minutes}m"
        if self.status in (SessionStatus.WARNING, SessionStatus.CRITICAL):
            return f"{self.status.value.capitalize()} ({int(self.percentage)}%)"
        return self.status.value.capitalize()


def time_until_session_end(session: Session, now: datetime) -> timedelta:
    """Time left until the session window closes (never negative)."""
    return max(timedelta(0), session.end_time - now)


def evaluate_status(session: Session, now: datetime) -> StatusReport:
    """Classify a session.

    Order of checks:
    1. Inactive sessions are expired
    2. Fewer than 10 minutes left in the window is approaching
    3. Usage >= 90% is critical, >= 70% is warning
    """
    percentage = session.progress * 100

    if not session.is_active:
        return StatusReport(SessionStatus.EXPIRED, percentage)

    remaining_minutes = int(time_until_session_end(session, now).total_seconds() // 60)
    if remaining_minutes < APPROACHING_MINUTES:
        return StatusReport(SessionStatus.APPROACHING, percentage, remaining_minutes)

    if percentage >= CRITICAL_PERCENT:
        return StatusReport(SessionStatus.CRITICAL, percentage, remaining_minutes)
    if percentage >= WARNING_PERCENT:
        return StatusReport(SessionStatus.WARNING, percentage, remaining_minutes)
    return StatusReport(SessionStatus.ACTIVE, percentage, remaining_minutes)


def status_message(session: Session) -> str:
    """Short human-readable pace summary.

    A high burn rate escalates the message even when usage is still low.
    """
    if not session.is_active:
        return "Session expired"

    percentage = session.progress * 100
    high_burn = (session.burn_rate or 0.0) > HIGH_BURN_RATE

    if percentage > 85:
        return "Limit approaching - slow down"
    if percentage > 60 or high_burn:
        return "High burn rate detected"
    if percentage > 30:
        return "Steady usage pace"
    return "Smooth sailing..."


def predicted_end_time(session: Session, now: datetime) -> Optional[datetime]:
    """Predict when the token limit is reached at the current burn rate.

    Returns:
        Predicted instant, or None for inactive sessions and sessions
        without a positive burn rate
    """
    if not session.is_active:
        return None
    remaining = session.time_remaining
    if remaining is None:
        return None
    return now + remaining
