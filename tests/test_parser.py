"""
Unit tests for usage record parsing.

Tests field fallbacks, timestamp validation and default handling.
"""

from datetime import datetime, timezone

import pytest

from claude_radar.core.parser import (
    ExtractionRule,
    extract_dedup_key,
    first_match,
    parse_timestamp,
    parse_usage_entry,
)


class TestParseTimestamp:
    """Test ISO-8601 timestamp validation."""

    def test_utc_with_fraction(self):
        """Test a Z-suffixed timestamp with milliseconds."""
        parsed = parse_timestamp("2026-02-19T10:00:05.250Z")
        assert parsed == datetime(2026, 2, 19, 10, 0, 5, 250000, tzinfo=timezone.utc)

    def test_offset_normalized_to_utc(self):
        """Test that explicit offsets are converted to UTC."""
        parsed = parse_timestamp("2026-02-19T12:00:00.000+02:00")
        assert parsed == datetime(2026, 2, 19, 10, 0, 0, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_nanosecond_fraction_truncated(self):
        """Test that long fractions are truncated to microseconds."""
        parsed = parse_timestamp("2026-02-19T10:00:05.123456789Z")
        assert parsed.microsecond == 123456

    @pytest.mark.parametrize("value", [
        "2026-02-19T10:00:05Z",           # no fractional seconds
        "2026-02-19T10:00:05.123",        # no zone
        "2026-02-19 10:00:05.123Z",       # missing T separator
        "2026-13-19T10:00:05.123Z",       # invalid month
        "not a timestamp",
        "",
    ])
    def test_rejects_invalid(self, value):
        """Test that malformed timestamps are rejected."""
        assert parse_timestamp(value) is None


class TestExtractionRules:
    """Test ordered extraction rules."""

    def test_rule_follows_nested_path(self):
        """Test extraction from nested objects."""
        rule = ExtractionRule(("message", "model"), str)
        assert rule.extract({"message": {"model": "claude-opus-4"}}) == "claude-opus-4"

    def test_rule_rejects_wrong_type(self):
        """Test that values of the wrong type do not match."""
        rule = ExtractionRule(("cost",), (int, float))
        assert rule.extract({"cost": "1.50"}) is None
        assert rule.extract({"cost": True}) is None

    def test_first_matching_rule_wins(self):
        """Test rule priority ordering."""
        rules = (
            ExtractionRule(("model",), str),
            ExtractionRule(("message", "model"), str),
        )
        record = {"model": "top", "message": {"model": "nested"}}
        assert first_match(record, rules) == "top"
        assert first_match({"message": {"model": "nested"}}, rules) == "nested"
        assert first_match({}, rules) is None


class TestParseUsageEntry:
    """Test UsageEntry construction from raw records."""

    def test_nested_message_record(self):
        """Test a typical assistant record with usage under message."""
        record = {
            "type": "assistant",
            "timestamp": "2026-02-19T10:00:05.000Z",
            "requestId": "req_1",
            "cwd": "/home/dev/code/radar",
            "message": {
                "id": "msg_1",
                "model": "claude-sonnet-4-20250514",
                "usage": {
                    "input_tokens": 100,
                    "output_tokens": 300,
                    "cache_creation_input_tokens": 500,
                    "cache_read_input_tokens": 2000,
                },
            },
        }

        entry = parse_usage_entry(record)

        assert entry is not None
        assert entry.input_tokens == 100
        assert entry.output_tokens == 300
        assert entry.cache_creation_tokens == 500
        assert entry.cache_read_tokens == 2000
        assert entry.total_tokens == 400
        assert entry.total_cache_tokens == 2500
        assert entry.model == "claude-sonnet-4-20250514"
        assert entry.message_id == "msg_1"
        assert entry.request_id == "req_1"
        assert entry.project_path == "/home/dev/code/radar"
        assert entry.dedup_key == "msg_1:req_1"

    def test_top_level_fields_take_priority(self):
        """Test that top-level usage and model win over message fields."""
        record = {
            "timestamp": "2026-02-19T10:00:05.000Z",
            "model": "claude-opus-4",
            "usage": {"input_tokens": 7, "output_tokens": 3},
            "message": {
                "model": "claude-haiku-3",
                "usage": {"input_tokens": 1000, "output_tokens": 1000},
            },
        }

        entry = parse_usage_entry(record)

        assert entry.model == "claude-opus-4"
        assert entry.total_tokens == 10

    def test_snake_case_identifiers(self):
        """Test snake_case id keys."""
        record = {
            "timestamp": "2026-02-19T10:00:05.000Z",
            "message_id": "msg_2",
            "request_id": "req_2",
        }
        entry = parse_usage_entry(record)
        assert entry.message_id == "msg_2"
        assert entry.request_id == "req_2"

    def test_missing_fields_default(self):
        """Test that a record with only a timestamp is accepted with defaults."""
        entry = parse_usage_entry({"timestamp": "2026-02-19T10:00:05.000Z"})

        assert entry is not None
        assert entry.total_tokens == 0
        assert entry.total_cache_tokens == 0
        assert entry.model == ""
        assert entry.cost == 0.0
        assert entry.message_id is None
        assert entry.request_id is None
        assert entry.project_path is None
        assert entry.dedup_key is None

    def test_cost_fallback_to_cost_usd(self):
        """Test cost extraction from costUSD."""
        entry = parse_usage_entry({"timestamp": "2026-02-19T10:00:05.000Z", "costUSD": 0.42})
        assert entry.cost == 0.42

    def test_invalid_counts_degrade_to_zero(self):
        """Test that negative, boolean and string counts become zero."""
        record = {
            "timestamp": "2026-02-19T10:00:05.000Z",
            "cost": -3.0,
            "usage": {"input_tokens": -5, "output_tokens": True, "cache_read_input_tokens": "12"},
        }
        entry = parse_usage_entry(record)
        assert entry.input_tokens == 0
        assert entry.output_tokens == 0
        assert entry.cache_read_tokens == 0
        assert entry.cost == 0.0

    def test_fallback_project_path(self):
        """Test that the caller's project path is used without cwd."""
        record = {"timestamp": "2026-02-19T10:00:05.000Z"}
        assert parse_usage_entry(record, project_path="proj-a").project_path == "proj-a"

        record["cwd"] = "/work/proj-b"
        assert parse_usage_entry(record, project_path="proj-a").project_path == "/work/proj-b"

    @pytest.mark.parametrize("record", [
        {},
        {"timestamp": None},
        {"timestamp": 1771512000000},
        {"timestamp": "2026-02-19T10:00:05Z"},
    ])
    def test_rejects_bad_timestamp(self, record):
        """Test that records without a valid timestamp are skipped."""
        assert parse_usage_entry(record) is None

    def test_rejects_non_object(self):
        """Test that non-dict input is skipped."""
        assert parse_usage_entry(["timestamp"]) is None


class TestDedupKey:
    """Test dedup key extraction from raw records."""

    def test_key_from_message_and_request(self):
        record = {"message": {"id": "msg_1"}, "requestId": "req_1"}
        assert extract_dedup_key(record) == "msg_1:req_1"

    def test_no_key_without_request_id(self):
        assert extract_dedup_key({"message": {"id": "msg_1"}}) is None

    def test_no_key_without_message_id(self):
        assert extract_dedup_key({"requestId": "req_1"}) is None

    def test_nested_message_id_preferred(self):
        """Test that message.id wins over top-level id keys."""
        record = {"messageId": "top", "message": {"id": "nested"}, "requestId": "r"}
        assert extract_dedup_key(record) == "nested:r"
        entry = parse_usage_entry(dict(record, timestamp="2026-02-19T10:00:05.000Z"))
        assert entry.dedup_key == "nested:r"
