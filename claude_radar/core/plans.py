"""
Plan tiers and token limit detection.

Fixed token ceilings per subscription plan, plus a coarse heuristic that
infers the ceiling from observed usage when the plan is set to auto-detect.
"""

from enum import Enum
from typing import Iterable, TYPE_CHECKING

from claude_radar.storage.models import UsageEntry

if TYPE_CHECKING:
    from .sessions import Session

PRO_LIMIT = 44_000
MAX5_LIMIT = 220_000
MAX20_LIMIT = 880_000

# Usage above these totals suggests the next plan up
MAX20_THRESHOLD = 100_000
MAX5_THRESHOLD = 25_000


class TokenPlan(Enum):
    """Subscription plans and their per-session token ceilings."""
    PRO = "pro"
    MAX5 = "max5"
    MAX20 = "max20"
    AUTO_DETECT = "custom_max"

    @property
    def token_limit(self) -> int:
        """Fixed ceiling for the plan (0 for auto-detect, resolved at runtime)."""
        return {
            TokenPlan.PRO: PRO_LIMIT,
            TokenPlan.MAX5: MAX5_LIMIT,
            TokenPlan.MAX20: MAX20_LIMIT,
            TokenPlan.AUTO_DETECT: 0,
        }[self]

    @property
    def display_name(self) -> str:
        return {
            TokenPlan.PRO: "Claude Pro",
            TokenPlan.MAX5: "Claude Max 5",
            TokenPlan.MAX20: "Claude Max 20",
            TokenPlan.AUTO_DETECT: "Auto-Detect",
        }[self]

    @property
    def description(self) -> str:
        if self is TokenPlan.AUTO_DETECT:
            return "Automatically detect your token limit"
        return f"~{self.token_limit:,} tokens per 5-hour session"


def classify_token_total(total_tokens: int) -> int:
    """Map an observed token total to the most likely plan ceiling.

    Comparisons are strict, so totals exactly on a threshold resolve to
    the lower tier.
    """
    if total_tokens > MAX20_THRESHOLD:
        return MAX20_LIMIT
    if total_tokens > MAX5_THRESHOLD:
        return MAX5_LIMIT
    return PRO_LIMIT


def detect_limit_from_entries(entries: Iterable[UsageEntry]) -> int:
    """Infer the ceiling from the total tokens of the given entries."""
    return classify_token_total(sum(entry.total_tokens for entry in entries))


def detect_limit_from_sessions(sessions: Iterable["Session"]) -> int:
    """Infer the ceiling from the busiest completed session.

    The active session is ignored because it is still growing and would
    skew the classification.
    """
    completed = [session.token_count for session in sessions if not session.is_active]
    return classify_token_total(max(completed, default=0))


def resolve_token_limit(plan: TokenPlan, entries: Iterable[UsageEntry]) -> int:
    """Return the ceiling for a group of entries under ``plan``."""
    if plan is TokenPlan.AUTO_DETECT:
        return detect_limit_from_entries(entries)
    return plan.token_limit
