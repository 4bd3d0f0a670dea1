"""
Pytest configuration and shared fixtures.
"""

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from src.dependency_batches.data_models import ResurrectionPlanItem
from src.post_resurrection.data_models import (
    AnalyzedError,
    CompilationResult,
    ValidationErrorCategory,
)


def write_manifest(repo: Path, manifest: dict) -> Path:
    path = repo / "package.json"
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    return path


def read_manifest(repo: Path) -> dict:
    return json.loads((repo / "package.json").read_text(encoding="utf-8"))


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=repo, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


@pytest.fixture
def npm_repo(tmp_path):
    """A minimal npm project with a build script and a few dependencies."""
    write_manifest(
        tmp_path,
        {
            "name": "sample-app",
            "version": "1.0.0",
            "scripts": {"build": "tsc", "test": "jest"},
            "dependencies": {"react": "^16.8.0", "bcrypt": "^3.0.0"},
            "devDependencies": {"typescript": "^3.9.0"},
        },
    )
    return tmp_path


@pytest.fixture
def git_repo(tmp_path):
    """An initialized git repository with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    git(tmp_path, "init", "-q")
    git(tmp_path, "config", "user.email", "dev@example.com")
    git(tmp_path, "config", "user.name", "Dev")
    git(tmp_path, "config", "commit.gpgsign", "false")
    (tmp_path / "README.md").write_text("initial\n")
    git(tmp_path, "add", "-A")
    git(tmp_path, "commit", "-q", "-m", "Initial commit")
    return tmp_path


@pytest.fixture
def make_plan_item():
    """Factory for plan items with sensible defaults."""

    def _make(
        name: str,
        current: str = "1.0.0",
        target: str = "1.1.0",
        priority: int = 0,
        security: bool = False,
    ) -> ResurrectionPlanItem:
        return ResurrectionPlanItem(
            package_name=name,
            current_version=current,
            target_version=target,
            priority=priority,
            reason="test",
            fixes_vulnerabilities=security,
            vulnerability_count=1 if security else 0,
        )

    return _make


@pytest.fixture
def failing_result():
    """Factory for failing compilation results."""

    def _make(stderr: str, stdout: str = "", exit_code: int = 1) -> CompilationResult:
        return CompilationResult(
            success=False,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            status="failed",
        )

    return _make


@pytest.fixture
def make_error():
    """Factory for analyzed errors."""

    def _make(
        category: ValidationErrorCategory,
        package_name: str | None = None,
        message: str = "boom",
        version_constraint: str | None = None,
        priority: int = 50,
    ) -> AnalyzedError:
        return AnalyzedError(
            category=category,
            message=message,
            package_name=package_name,
            version_constraint=version_constraint,
            priority=priority,
        )

    return _make
