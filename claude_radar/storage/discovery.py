"""
Log file discovery and security guard.

Finds candidate usage log files under Claude data directories while
enforcing path containment and memory limits.

Limits:
1. Path containment - caller-supplied roots must live under a trusted prefix
2. Per-file size cap - oversized files are never opened
3. Cumulative memory budget - bytes read per refresh cycle are bounded
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 100_000_000  # 100MB per file
MAX_TOTAL_MEMORY = 500_000_000  # 500MB per refresh cycle
LOG_EXTENSION = ".jsonl"

ALLOWED_ROOT_PREFIXES = ("~/.claude", "~/.config/claude")
DEFAULT_DATA_ROOTS = ("~/.claude/projects", "~/.config/claude/projects")


class SecurityError(Exception):
    """Base class for guard violations."""


class PathTraversalError(SecurityError):
    """Raised when a custom root resolves outside the allowed prefixes."""


class InvalidPathError(SecurityError):
    """Raised when a custom root is empty or malformed."""


class MemoryBudgetExceeded(SecurityError):
    """Raised when reading a file would exceed the memory budget."""


class MemoryBudget:
    """Running count of file bytes read during one refresh cycle."""

    def __init__(self, limit: int = MAX_TOTAL_MEMORY):
        if limit <= 0:
            raise ValueError("memory budget must be > 0")
        self.limit = limit
        self.bytes_read = 0

    def would_exceed(self, size: int) -> bool:
        """Check whether charging ``size`` bytes would go over the limit."""
        return self.bytes_read + size > self.limit

    def charge(self, size: int) -> None:
        """Record ``size`` bytes as read.

        Raises:
            MemoryBudgetExceeded: If the budget cannot accommodate the bytes
        """
        if self.would_exceed(size):
            raise MemoryBudgetExceeded(
                f"Reading {size} bytes would exceed budget "
                f"({self.bytes_read}/{self.limit} bytes used)"
            )
        self.bytes_read += size
        logger.debug(
            "Memory usage: %d/%d bytes (%d%%)",
            self.bytes_read, self.limit, self.bytes_read * 100 // self.limit
        )

    def reset(self) -> None:
        self.bytes_read = 0


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path)).resolve()


def validate_custom_root(
    path: str,
    allowed_prefixes: Sequence[str] = ALLOWED_ROOT_PREFIXES
) -> Path:
    """Validate a caller-supplied data root.

    The path is tilde-expanded and symlinks are resolved before the
    containment check, so links pointing outside the allow-list are rejected.

    Args:
        path: User supplied directory
        allowed_prefixes: Trusted directories the root must live under

    Returns:
        The resolved root path

    Raises:
        InvalidPathError: If the path is empty or contains NUL bytes
        PathTraversalError: If the resolved path is outside every allowed prefix
    """
    if not path or not path.strip() or "\x00" in path:
        raise InvalidPathError(f"Invalid or unsafe path provided: {path!r}")

    resolved = _expand(path.strip())
    for prefix in allowed_prefixes:
        allowed = _expand(prefix)
        if resolved == allowed or allowed in resolved.parents:
            logger.debug("Path validation passed: %s", resolved)
            return resolved

    logger.error("Path traversal attempt detected: %s -> %s", path, resolved)
    raise PathTraversalError(f"Path traversal attempt detected: {path}")


def default_data_roots(roots: Iterable[str] = DEFAULT_DATA_ROOTS) -> List[Path]:
    """Expand the trusted default data roots."""
    return [Path(os.path.expanduser(root)) for root in roots]


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def discover_log_files(root: Path) -> Iterator[Path]:
    """Recursively yield log files under ``root`` in enumeration order.

    Hidden files and directories are skipped. Symlinks are never followed,
    so every yielded file lies inside ``root``. A missing or unreadable
    root yields nothing.
    """
    def _on_error(error: OSError) -> None:
        logger.debug("Could not enumerate %s: %s", error.filename, error)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        # Prune hidden directories in place so os.walk does not descend
        dirnames[:] = [d for d in dirnames if not _is_hidden(d)]
        for filename in filenames:
            if _is_hidden(filename) or not filename.endswith(LOG_EXTENSION):
                continue
            file_path = Path(dirpath) / filename
            if file_path.is_symlink():
                logger.warning("Skipping symlinked log file: %s", file_path)
                continue
            if file_path.is_file():
                yield file_path
