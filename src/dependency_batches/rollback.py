"""
Reverts the most recent commit after a failed dependency update.
"""

import subprocess
from datetime import datetime, timezone
from pathlib import Path

from ..shared_utilities import ResurrectionError, get_logger
from ..shared_utilities.telemetry import trace_function
from .data_models import DependencyInfo, RollbackResult, UpdateStatus


class GitOperationError(ResurrectionError):
    """Raised when a git command fails."""

    pass


def run_git(repo_path: str | Path, *args: str, git_executable: str = "git") -> str:
    """Run a git command in ``repo_path`` and return its stripped stdout."""
    try:
        result = subprocess.run(
            [git_executable, *args],
            capture_output=True,
            text=True,
            cwd=str(repo_path),
            check=False,
        )
    except OSError as e:
        raise GitOperationError(f"git {args[0]} could not run: {e}") from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise GitOperationError(f"git {' '.join(args)} failed: {detail}")
    return result.stdout.strip()


class RollbackService:
    """Hard-resets a working tree to the parent of HEAD."""

    def __init__(self, git_executable: str = "git"):
        self.logger = get_logger(__name__)
        self.git_executable = git_executable

    def _git(self, repo_path: str | Path, *args: str) -> str:
        return run_git(repo_path, *args, git_executable=self.git_executable)

    def has_uncommitted_changes(self, repo_path: str | Path) -> bool:
        return bool(self._git(repo_path, "status", "--porcelain"))

    @trace_function("rollback.rollback_last_commit", include_args=True)
    def rollback_last_commit(self, repo_path: str | Path) -> RollbackResult:
        """
        Undo HEAD with ``git reset --hard HEAD~1``.

        Uncommitted changes are logged but do not block the reset. Never
        raises; a repository without a parent commit or any git failure comes
        back as ``success=False`` with the error.
        """
        try:
            commit = self._git(repo_path, "rev-parse", "HEAD")
            message = self._git(repo_path, "log", "-1", "--pretty=%B", commit)

            if self.has_uncommitted_changes(repo_path):
                self.logger.warning(
                    "Uncommitted changes will be discarded by rollback",
                    repo_path=str(repo_path),
                )

            try:
                self._git(repo_path, "rev-parse", "--verify", "--quiet", "HEAD~1")
            except GitOperationError:
                error = "Cannot roll back: HEAD has no parent commit"
                self.logger.error(error, repo_path=str(repo_path), commit=commit)
                return RollbackResult(
                    success=False,
                    current_commit=commit,
                    error=error,
                )

            self._git(repo_path, "reset", "--hard", "HEAD~1")
            current = self._git(repo_path, "rev-parse", "HEAD")
        except GitOperationError as e:
            self.logger.error("Rollback failed", repo_path=str(repo_path), error=str(e))
            return RollbackResult(success=False, error=str(e))

        self.logger.info(
            "Rolled back commit",
            rolled_back=commit[:8],
            current=current[:8],
            message=message.splitlines()[0] if message else "",
        )
        return RollbackResult(
            success=True,
            rolled_back_commit=commit,
            rolled_back_message=message,
            current_commit=current,
        )

    def mark_dependency_as_problematic(
        self, dependencies: list[DependencyInfo], package_name: str
    ) -> bool:
        """Set the dependency's status to failed; False if it is not tracked."""
        for dependency in dependencies:
            if dependency.name == package_name:
                dependency.update_status = UpdateStatus.FAILED
                self.logger.info("Dependency marked as failed", package=package_name)
                return True
        self.logger.warning("Dependency not tracked", package=package_name)
        return False

    def recover_from_failed_update(
        self,
        repo_path: str | Path,
        package_name: str,
        dependencies: list[DependencyInfo],
    ) -> RollbackResult:
        """Roll back the failed update's commit and mark the dependency failed."""
        result = self.rollback_last_commit(repo_path)
        if result.success:
            self.mark_dependency_as_problematic(dependencies, package_name)
        return result


def create_rollback_log_entry(package_name: str, result: RollbackResult) -> str:
    """One line describing a rollback, suitable for a transformation log."""
    timestamp = datetime.now(timezone.utc).isoformat()
    if result.success:
        commit = (result.rolled_back_commit or "")[:8]
        subject = (result.rolled_back_message or "").splitlines()
        return (
            f"[{timestamp}] Rolled back {package_name}: reverted {commit}"
            + (f" ({subject[0]})" if subject else "")
        )
    return f"[{timestamp}] Rollback of {package_name} failed: {result.error}"
