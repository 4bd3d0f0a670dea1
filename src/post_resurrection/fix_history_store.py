"""
Durable per-repository memory of fixes that worked.

Each repository gets one JSON document. Histories are loaded explicitly,
mutated in memory and written back with ``save``; nothing is cached behind
the caller's back.
"""

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from ..shared_utilities import ResurrectionError, get_logger
from .data_models import FixHistory, FixStrategy, HistoricalFix

HISTORY_DIR_NAME = ".resurrection"
HISTORY_FILE_NAME = "fix-history.json"
MAX_REPO_KEY_LENGTH = 64


class FixHistoryError(ResurrectionError):
    """Raised when a fix history cannot be persisted."""

    pass


def sanitize_repo_id(repo_id: str) -> str:
    """Make a repository identity safe to use as a directory name."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", repo_id)[:MAX_REPO_KEY_LENGTH]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FixHistoryStore:
    """
    JSON-file backed store of ``FixHistory`` records.

    Without a ``base_dir`` the repository identity is treated as the
    repository path and the history lives inside it, under
    ``.resurrection/fix-history.json``. With a ``base_dir`` every repository
    gets ``<base_dir>/<sanitized id>/fix-history.json``.
    """

    def __init__(self, base_dir: str | Path | None = None):
        self.logger = get_logger(__name__)
        self.base_dir = Path(base_dir) if base_dir else None
        self._histories: dict[str, FixHistory] = {}
        self._global_patterns: dict[str, FixStrategy] = {}

    def history_path(self, repo_id: str) -> Path:
        if self.base_dir is None:
            return Path(repo_id) / HISTORY_DIR_NAME / HISTORY_FILE_NAME
        return self.base_dir / sanitize_repo_id(repo_id) / HISTORY_FILE_NAME

    def load(self, repo_id: str) -> FixHistory | None:
        """
        Load a repository's history from disk.

        Returns None when there is no history yet or the file is corrupt.
        """
        path = self.history_path(repo_id)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                history = FixHistory.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.error(
                "Fix history is unreadable",
                repo_id=repo_id,
                path=str(path),
                error=str(e),
            )
            return None

        self._histories[repo_id] = history
        for fix in history.fixes:
            self._global_patterns.setdefault(fix.error_pattern, fix.strategy)
        self.logger.debug(
            "Fix history loaded", repo_id=repo_id, fixes=len(history.fixes)
        )
        return history

    def get_history(self, repo_id: str) -> FixHistory:
        """The in-memory history, loading it or starting an empty one."""
        if repo_id not in self._histories:
            history = self.load(repo_id)
            if history is None:
                self._histories[repo_id] = FixHistory(repo_id=repo_id)
        return self._histories[repo_id]

    def save(self, repo_id: str) -> Path:
        """
        Write the in-memory history for a repository.

        Raises:
            FixHistoryError: If the file cannot be written
        """
        history = self.get_history(repo_id)
        path = self.history_path(repo_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(history.to_dict(), f, indent=2)
        except OSError as e:
            raise FixHistoryError(f"Failed to save fix history: {e}") from e

        self.logger.info(
            "Fix history saved", repo_id=repo_id, path=str(path), fixes=len(history.fixes)
        )
        return path

    def record_fix(self, repo_id: str, error_pattern: str, strategy: FixStrategy) -> HistoricalFix:
        """
        Remember that ``strategy`` fixed ``error_pattern``.

        The same strategy again bumps its success count; a different strategy
        for a known pattern replaces the old one.
        """
        history = self.get_history(repo_id)
        now = _now()

        entry = next(
            (fix for fix in history.fixes if fix.error_pattern == error_pattern), None
        )
        if entry is None:
            entry = HistoricalFix(error_pattern, strategy, 1, now)
            history.fixes.append(entry)
        elif entry.strategy.key == strategy.key:
            entry.success_count += 1
            entry.last_used = now
        else:
            entry.strategy = strategy
            entry.success_count = 1
            entry.last_used = now

        history.last_resurrection = now
        self._global_patterns.setdefault(error_pattern, strategy)
        return entry

    def get_prioritized_fixes(self, repo_id: str) -> list[HistoricalFix]:
        """Most successful first, most recently used breaking ties."""
        return sorted(
            self.get_history(repo_id).fixes,
            key=lambda fix: (fix.success_count, fix.last_used),
            reverse=True,
        )

    def find_best_fix(self, repo_id: str, error_pattern: str) -> FixStrategy | None:
        for fix in self.get_prioritized_fixes(repo_id):
            if fix.error_pattern == error_pattern:
                return fix.strategy
        return self._global_patterns.get(error_pattern)

    def get_global_pattern(self, error_pattern: str) -> FixStrategy | None:
        """Strategy first recorded for a pattern in any repository this session."""
        return self._global_patterns.get(error_pattern)

    def clear(self, repo_id: str) -> None:
        self._histories.pop(repo_id, None)
        path = self.history_path(repo_id)
        if path.exists():
            path.unlink()
            self.logger.info("Fix history cleared", repo_id=repo_id)
