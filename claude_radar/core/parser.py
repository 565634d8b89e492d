"""
Usage record parsing.

Turns one decoded JSON log record into a validated UsageEntry.

Claude log records are heterogeneous: token usage may live at the top level
or inside the nested ``message`` object, and identifiers appear in both
snake_case and camelCase. Each logical field is therefore described by an
ordered tuple of extraction rules, tried first to last.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type, Union

from claude_radar.storage.models import UsageEntry, make_dedup_key


@dataclass(frozen=True)
class ExtractionRule:
    """Location of a value inside a record and the type it must have."""
    path: Tuple[str, ...]
    expected_type: Union[Type, Tuple[Type, ...]]

    def extract(self, record: Dict[str, Any]) -> Optional[Any]:
        """Return the value at ``path`` if present and of the expected type."""
        value: Any = record
        for key in self.path:
            if not isinstance(value, dict) or key not in value:
                return None
            value = value[key]
        # bool is a subclass of int but never a valid count
        if isinstance(value, bool):
            return None
        if not isinstance(value, self.expected_type):
            return None
        return value


def _rules(*paths: str, expected_type=str) -> Tuple[ExtractionRule, ...]:
    return tuple(ExtractionRule(tuple(p.split(".")), expected_type) for p in paths)


USAGE_RULES = _rules("usage", "message.usage", expected_type=dict)
MODEL_RULES = _rules("model", "message.model")
COST_RULES = _rules("cost", "costUSD", expected_type=(int, float))
MESSAGE_ID_RULES = _rules("message.id", "message_id", "messageId")
REQUEST_ID_RULES = _rules("request_id", "requestId")
PROJECT_PATH_RULES = _rules("cwd")
TIMESTAMP_RULES = _rules("timestamp")

TOKEN_FIELDS = {
    "input_tokens": "input_tokens",
    "output_tokens": "output_tokens",
    "cache_creation_tokens": "cache_creation_input_tokens",
    "cache_read_tokens": "cache_read_input_tokens",
}

# Fractional seconds and an explicit zone are both mandatory
_TIMESTAMP_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.(\d+)(Z|[+-]\d{2}:\d{2})$"
)


def first_match(record: Dict[str, Any], rules: Tuple[ExtractionRule, ...]) -> Optional[Any]:
    """Return the value of the first rule that matches, or None."""
    for rule in rules:
        value = rule.extract(record)
        if value is not None:
            return value
    return None


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 instant with fractional seconds and explicit offset.

    Args:
        value: Timestamp string such as ``2026-02-19T10:00:05.123Z``

    Returns:
        Timezone-aware datetime normalized to UTC, or None if the string
        is not a valid instant in the expected format
    """
    match = _TIMESTAMP_PATTERN.match(value)
    if match is None:
        return None

    fraction, zone = match.group(1), match.group(2)
    # fromisoformat only accepts 3 or 6 fractional digits on older interpreters
    normalized = value[:20] + fraction[:6].ljust(6, "0")
    normalized += "+00:00" if zone == "Z" else zone
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    return parsed.astimezone(timezone.utc)


def _token_count(usage: Dict[str, Any], key: str) -> int:
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(0, value)


def extract_dedup_key(record: Dict[str, Any]) -> Optional[str]:
    """Build the ``message_id:request_id`` key for a raw record.

    Records lacking either identifier have no key and are never deduplicated.
    """
    return make_dedup_key(
        first_match(record, MESSAGE_ID_RULES),
        first_match(record, REQUEST_ID_RULES)
    )


def parse_usage_entry(
    record: Dict[str, Any],
    project_path: Optional[str] = None
) -> Optional[UsageEntry]:
    """Build a UsageEntry from one decoded log record.

    Only the timestamp is mandatory. Every other field degrades to its
    default when missing or of the wrong type.

    Args:
        record: Decoded JSON object from one log line
        project_path: Fallback project path used when the record has no ``cwd``

    Returns:
        UsageEntry, or None when the record must be skipped
    """
    if not isinstance(record, dict):
        return None

    raw_timestamp = first_match(record, TIMESTAMP_RULES)
    if raw_timestamp is None:
        return None
    timestamp = parse_timestamp(raw_timestamp)
    if timestamp is None:
        return None

    usage = first_match(record, USAGE_RULES) or {}
    tokens = {field: _token_count(usage, key) for field, key in TOKEN_FIELDS.items()}

    cost = first_match(record, COST_RULES)

    return UsageEntry(
        timestamp=timestamp,
        model=first_match(record, MODEL_RULES) or "",
        cost=max(0.0, float(cost)) if cost is not None else 0.0,
        message_id=first_match(record, MESSAGE_ID_RULES),
        request_id=first_match(record, REQUEST_ID_RULES),
        project_path=first_match(record, PROJECT_PATH_RULES) or project_path,
        **tokens
    )
