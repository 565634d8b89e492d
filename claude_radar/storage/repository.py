"""
Repository pattern for usage log access.

Reads Claude log files into a deduplicated, time-ordered entry list.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Set

from claude_radar.config.loader import IngestionLimits
from claude_radar.core.parser import extract_dedup_key, parse_usage_entry
from .discovery import (
    ALLOWED_ROOT_PREFIXES,
    DEFAULT_DATA_ROOTS,
    MemoryBudget,
    SecurityError,
    default_data_roots,
    discover_log_files,
    validate_custom_root,
)
from .models import UsageEntry

logger = logging.getLogger(__name__)


@dataclass
class IngestionRun:
    """State owned by a single ingestion pass.

    Created at the start of a run and discarded at its end, so separate
    runs never share deduplication keys or budget counters.
    """
    budget: MemoryBudget
    max_file_size: int
    seen_keys: Set[str] = field(default_factory=set)
    files_scanned: int = 0
    files_skipped: int = 0
    lines_skipped: int = 0
    duplicates_skipped: int = 0


def _project_from_location(file_path: Path, root: Path) -> Optional[str]:
    """First path segment of ``file_path`` beneath ``root``."""
    try:
        relative = file_path.relative_to(root)
    except ValueError:
        return None
    # A file directly under the root has no project segment
    if len(relative.parts) < 2:
        return None
    return relative.parts[0]


class UsageRepository:
    """Repository for reading usage entries from Claude data directories.

    Each call to ``load_entries`` is one independent ingestion run.
    """

    def __init__(
        self,
        limits: Optional[IngestionLimits] = None,
        allowed_prefixes: Sequence[str] = ALLOWED_ROOT_PREFIXES,
        default_roots: Sequence[str] = DEFAULT_DATA_ROOTS
    ):
        """Initialize the repository.

        Args:
            limits: Per-file and per-run size limits
            allowed_prefixes: Trusted directories for custom roots
            default_roots: Roots scanned when no valid custom root is given
        """
        self.limits = limits or IngestionLimits()
        self.allowed_prefixes = tuple(allowed_prefixes)
        self.default_roots = tuple(default_roots)
        self.last_run: Optional[IngestionRun] = None

    def resolve_roots(self, custom_path: Optional[str] = None) -> List[Path]:
        """Return the roots to scan, falling back to defaults on a bad custom path."""
        if custom_path is None:
            return default_data_roots(self.default_roots)
        try:
            root = validate_custom_root(custom_path, self.allowed_prefixes)
        except SecurityError as e:
            logger.warning("Custom path validation failed, falling back to defaults: %s", e)
            return default_data_roots(self.default_roots)
        logger.info("Using validated custom path: %s", root)
        return [root]

    def load_entries(self, custom_path: Optional[str] = None) -> List[UsageEntry]:
        """Load all usage entries from the configured roots.

        Args:
            custom_path: Optional override root; must lie under an allowed prefix

        Returns:
            Deduplicated entries sorted ascending by timestamp
        """
        run = IngestionRun(
            budget=MemoryBudget(self.limits.memory_budget),
            max_file_size=self.limits.max_file_size
        )
        self.last_run = run

        entries: List[UsageEntry] = []
        for root in self.resolve_roots(custom_path):
            if not root.is_dir():
                logger.debug("Path does not exist: %s", root)
                continue
            root_entries = self._load_root(root, run)
            logger.debug("Loaded %d entries from %s", len(root_entries), root)
            entries.extend(root_entries)

        logger.debug(
            "Ingestion finished: %d entries, %d files scanned, %d skipped, "
            "%d duplicates, %d bad lines",
            len(entries), run.files_scanned, run.files_skipped,
            run.duplicates_skipped, run.lines_skipped
        )
        entries.sort(key=lambda e: e.timestamp)
        return entries

    def _load_root(self, root: Path, run: IngestionRun) -> List[UsageEntry]:
        entries: List[UsageEntry] = []
        for file_path in discover_log_files(root):
            content = self._read_file(file_path, run)
            if content is None:
                continue
            project = _project_from_location(file_path, root)
            entries.extend(self._parse_content(content, project, run))
        return entries

    def _read_file(self, file_path: Path, run: IngestionRun) -> Optional[str]:
        """Read a file if it fits within the size cap and memory budget."""
        try:
            size = file_path.stat().st_size
        except OSError as e:
            logger.warning("Could not get file size for %s: %s", file_path.name, e)
            run.files_skipped += 1
            return None

        if size > run.max_file_size:
            logger.warning("Skipping large file (%d bytes): %s", size, file_path.name)
            run.files_skipped += 1
            return None

        if run.budget.would_exceed(size):
            logger.warning(
                "Skipping file due to memory budget: %s (%d bytes, %d/%d used)",
                file_path.name, size, run.budget.bytes_read, run.budget.limit
            )
            run.files_skipped += 1
            return None

        try:
            with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
                content = f.read()
        except OSError as e:
            logger.warning("Could not read %s: %s", file_path, e)
            run.files_skipped += 1
            return None

        run.budget.charge(size)
        run.files_scanned += 1
        return content

    def _parse_content(
        self,
        content: str,
        project: Optional[str],
        run: IngestionRun
    ) -> List[UsageEntry]:
        entries: List[UsageEntry] = []
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except ValueError:
                run.lines_skipped += 1
                continue
            if not isinstance(record, dict):
                run.lines_skipped += 1
                continue

            key = extract_dedup_key(record)
            if key is not None and key in run.seen_keys:
                run.duplicates_skipped += 1
                continue

            entry = parse_usage_entry(record, project_path=project)
            if entry is None:
                run.lines_skipped += 1
                continue

            # Only accepted records claim their key
            if key is not None:
                run.seen_keys.add(key)
            entries.append(entry)
        return entries

