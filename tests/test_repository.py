"""
Unit tests for the usage repository.

Tests deduplication, ordering, malformed input and the ingestion limits.
"""

import json
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from claude_radar.config.loader import IngestionLimits
from claude_radar.storage.repository import UsageRepository


def _record(timestamp: str, message_id=None, request_id=None, input_tokens=10, output_tokens=5, **extra) -> dict:
    record = {
        "timestamp": timestamp,
        "message": {
            "model": "claude-sonnet-4-20250514",
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        },
    }
    if message_id is not None:
        record["message"]["id"] = message_id
    if request_id is not None:
        record["requestId"] = request_id
    record.update(extra)
    return record


def _write_log(path: Path, lines) -> Path:
    """Write records (or raw strings) as a JSONL file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        for line in lines:
            f.write(line if isinstance(line, str) else json.dumps(line))
            f.write("\n")
    return path


class TestUsageRepository:
    """Test loading entries from data roots."""

    @pytest.fixture
    def root(self, tmp_path) -> Path:
        root = tmp_path / "projects"
        root.mkdir()
        return root

    def _repository(self, root: Path, limits: IngestionLimits = None) -> UsageRepository:
        return UsageRepository(
            limits=limits,
            allowed_prefixes=[str(root.parent)],
            default_roots=[str(root)]
        )

    def test_entries_sorted_across_files(self, root):
        """Test that entries from several files are merged in timestamp order."""
        _write_log(root / "proj-a" / "one.jsonl", [
            _record("2026-02-19T12:00:00.000Z"),
            _record("2026-02-19T10:00:00.000Z"),
        ])
        _write_log(root / "proj-b" / "two.jsonl", [
            _record("2026-02-19T11:00:00.000Z"),
        ])

        entries = self._repository(root).load_entries()

        assert [e.timestamp.hour for e in entries] == [10, 11, 12]

    def test_duplicates_across_files_counted_once(self, root):
        """Test that the same event logged in two files is kept once."""
        lines = [
            _record("2026-02-19T10:00:00.000Z", "msg_1", "req_1"),
            _record("2026-02-19T10:05:00.000Z", "msg_2", "req_2"),
        ]
        _write_log(root / "proj-a" / "session.jsonl", lines)
        _write_log(root / "proj-a" / "session-copy.jsonl", lines)

        repository = self._repository(root)
        entries = repository.load_entries()

        assert len(entries) == 2
        assert sum(e.total_tokens for e in entries) == 30
        assert repository.last_run.duplicates_skipped == 2

    def test_first_occurrence_wins(self, root):
        """Test that the first record with a key is kept within a file."""
        _write_log(root / "proj-a" / "session.jsonl", [
            _record("2026-02-19T10:00:00.000Z", "msg_1", "req_1", input_tokens=100),
            _record("2026-02-19T10:00:01.000Z", "msg_1", "req_1", input_tokens=999),
        ])

        entries = self._repository(root).load_entries()

        assert len(entries) == 1
        assert entries[0].input_tokens == 100

    def test_records_without_key_never_deduplicated(self, root):
        _write_log(root / "proj-a" / "session.jsonl", [
            _record("2026-02-19T10:00:00.000Z", "msg_1"),
            _record("2026-02-19T10:00:00.000Z", "msg_1"),
            _record("2026-02-19T10:00:00.000Z"),
        ])

        assert len(self._repository(root).load_entries()) == 3

    def test_rejected_record_does_not_claim_key(self, root):
        """Test that an invalid record with a key does not hide a later valid one."""
        bad = _record("yesterday", "msg_1", "req_1")
        good = _record("2026-02-19T10:00:00.000Z", "msg_1", "req_1")
        _write_log(root / "proj-a" / "session.jsonl", [bad, good])

        entries = self._repository(root).load_entries()

        assert len(entries) == 1

    def test_malformed_lines_skipped(self, root):
        """Test that bad JSON, non-objects and bad timestamps are skipped."""
        _write_log(root / "proj-a" / "session.jsonl", [
            "{not json",
            "[1, 2, 3]",
            "",
            _record("2026-02-19T10:00:00Z"),
            _record("2026-02-19T10:00:00.000Z"),
        ])

        repository = self._repository(root)
        entries = repository.load_entries()

        assert len(entries) == 1
        assert repository.last_run.lines_skipped == 3
        assert repository.last_run.files_scanned == 1

    def test_project_from_location(self, root):
        """Test that the first directory under the root names the project."""
        _write_log(root / "proj-a" / "nested" / "session.jsonl", [_record("2026-02-19T10:00:00.000Z")])
        _write_log(root / "loose.jsonl", [_record("2026-02-19T11:00:00.000Z")])

        entries = self._repository(root).load_entries()

        assert [e.project_path for e in entries] == ["proj-a", None]

    def test_cwd_overrides_location(self, root):
        _write_log(root / "proj-a" / "session.jsonl", [
            _record("2026-02-19T10:00:00.000Z", cwd="/work/radar"),
        ])

        entries = self._repository(root).load_entries()

        assert entries[0].project_path == "/work/radar"

    def test_symlinked_file_not_read(self, root, tmp_path):
        """Test that a log symlink pointing outside the root is never parsed."""
        outside = _write_log(tmp_path / "outside.log", [_record("2026-02-19T10:00:00.000Z")])
        (root / "proj").mkdir()
        os.symlink(outside, root / "proj" / "evil.jsonl")

        repository = self._repository(root)

        assert repository.load_entries() == []
        assert repository.last_run.files_scanned == 0

    def test_missing_roots_yield_nothing(self, tmp_path):
        repository = UsageRepository(default_roots=[str(tmp_path / "missing")])
        assert repository.load_entries() == []

    def test_runs_do_not_share_state(self, root):
        """Test that dedup keys and budget are reset on every load."""
        _write_log(root / "proj-a" / "session.jsonl", [
            _record("2026-02-19T10:00:00.000Z", "msg_1", "req_1"),
        ])
        repository = self._repository(root)

        first = repository.load_entries()
        second = repository.load_entries()

        assert len(first) == len(second) == 1
        assert repository.last_run.duplicates_skipped == 0


class TestIngestionLimits:
    """Test per-file and per-run size limits."""

    def _repository(self, root: Path, limits: IngestionLimits) -> UsageRepository:
        return UsageRepository(limits=limits, allowed_prefixes=[str(root)], default_roots=[str(root)])

    def test_oversized_file_never_opened(self, tmp_path):
        """Test that files over the size cap are skipped before reading."""
        small = _write_log(tmp_path / "proj-a" / "small.jsonl", [_record("2026-02-19T10:00:00.000Z")])
        large = _write_log(tmp_path / "proj-a" / "large.jsonl", [
            _record("2026-02-19T11:00:00.000Z") for _ in range(20)
        ])
        limits = IngestionLimits(max_file_size=small.stat().st_size + 1)
        repository = self._repository(tmp_path, limits)

        with patch("builtins.open", wraps=open) as mock_open:
            entries = repository.load_entries()

        opened = [call.args[0] for call in mock_open.call_args_list]
        assert large not in opened
        assert small in opened
        assert len(entries) == 1
        assert repository.last_run.files_skipped == 1

    def test_memory_budget_stops_reading(self, tmp_path):
        """Test that files beyond the cumulative budget are skipped."""
        first = _write_log(tmp_path / "proj-a" / "a.jsonl", [_record("2026-02-19T10:00:00.000Z")])
        second = _write_log(tmp_path / "proj-b" / "b.jsonl", [
            _record("2026-02-19T11:00:00.000Z"),
            _record("2026-02-19T11:30:00.000Z"),
        ])
        sizes = sorted([first.stat().st_size, second.stat().st_size])
        limits = IngestionLimits(memory_budget=sizes[0] + sizes[1] - 1)
        repository = self._repository(tmp_path, limits)

        repository.load_entries()

        assert repository.last_run.files_scanned == 1
        assert repository.last_run.files_skipped == 1
        assert repository.last_run.budget.bytes_read in sizes


class TestCustomRoot:
    """Test custom root selection and fallback."""

    @pytest.fixture
    def home(self, tmp_path, monkeypatch) -> Path:
        home = tmp_path / "home"
        monkeypatch.setenv("HOME", str(home))
        _write_log(home / ".claude" / "projects" / "default-proj" / "s.jsonl", [
            _record("2026-02-19T10:00:00.000Z"),
        ])
        _write_log(home / ".claude" / "archive" / "archived-proj" / "s.jsonl", [
            _record("2026-02-18T10:00:00.000Z"),
            _record("2026-02-18T11:00:00.000Z"),
        ])
        return home

    def test_valid_custom_root_replaces_defaults(self, home):
        entries = UsageRepository().load_entries("~/.claude/archive")

        assert len(entries) == 2
        assert {e.project_path for e in entries} == {"archived-proj"}

    def test_rejected_custom_root_falls_back(self, home, tmp_path, caplog):
        """Test that an untrusted custom path falls back to the default roots."""
        outside = tmp_path / "outside"
        _write_log(outside / "evil" / "s.jsonl", [_record("2026-02-19T10:00:00.000Z")])

        with caplog.at_level(logging.WARNING, logger="claude_radar"):
            entries = UsageRepository().load_entries(str(outside))

        assert [e.project_path for e in entries] == ["default-proj"]
        assert "falling back to defaults" in caplog.text
