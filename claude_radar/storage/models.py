"""
Data models for the storage layer.

Defines the normalized usage event read from Claude log files.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UsageEntry:
    """Immutable record of a single Claude usage event.

    Created once per valid log line and never modified afterwards.
    Sessions, statistics and breakdowns are derived from these records.
    """
    timestamp: datetime
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    model: str = ""
    cost: float = 0.0
    message_id: Optional[str] = None
    request_id: Optional[str] = None
    project_path: Optional[str] = None

    def __post_init__(self):
        """Validate token counts and cost are non-negative."""
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        for name in ("input_tokens", "output_tokens",
                     "cache_creation_tokens", "cache_read_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.cost < 0:
            raise ValueError("cost cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Tokens counted against a session (input + output)."""
        return self.input_tokens + self.output_tokens

    @property
    def total_cache_tokens(self) -> int:
        """Cache tokens (creation + read)."""
        return self.cache_creation_tokens + self.cache_read_tokens

    @property
    def dedup_key(self) -> Optional[str]:
        """Key identifying the same logical event across files, if both ids exist."""
        return make_dedup_key(self.message_id, self.request_id)


def make_dedup_key(message_id: Optional[str], request_id: Optional[str]) -> Optional[str]:
    """Join both identifiers as ``message_id:request_id``, or None if either is missing."""
    if message_id is None or request_id is None:
        return None
    return f"{message_id}:{request_id}"
