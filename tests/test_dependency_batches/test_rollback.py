"""Tests for rolling back failed dependency updates with real git."""

from conftest import git

from src.dependency_batches.data_models import (
    DependencyInfo,
    RollbackResult,
    UpdateStatus,
)
from src.dependency_batches.rollback import (
    RollbackService,
    create_rollback_log_entry,
)


def commit_file(repo, name, content, message):
    (repo / name).write_text(content)
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


class TestRollbackLastCommit:
    """Test RollbackService.rollback_last_commit."""

    def test_reverts_head(self, git_repo):
        parent = git(git_repo, "rev-parse", "HEAD")
        head = commit_file(git_repo, "package.json", "{}", "chore(deps): update react")

        result = RollbackService().rollback_last_commit(git_repo)

        assert result.success
        assert result.rolled_back_commit == head
        assert result.rolled_back_message.startswith("chore(deps): update react")
        assert result.current_commit == parent
        assert git(git_repo, "rev-parse", "HEAD") == parent
        assert not (git_repo / "package.json").exists()

    def test_only_one_commit_is_reverted(self, git_repo):
        first = commit_file(git_repo, "a.txt", "a", "first update")
        commit_file(git_repo, "b.txt", "b", "second update")

        RollbackService().rollback_last_commit(git_repo)

        assert git(git_repo, "rev-parse", "HEAD") == first
        assert (git_repo / "a.txt").exists()

    def test_root_commit_cannot_be_rolled_back(self, git_repo):
        head = git(git_repo, "rev-parse", "HEAD")

        result = RollbackService().rollback_last_commit(git_repo)

        assert not result.success
        assert "no parent" in result.error
        assert git(git_repo, "rev-parse", "HEAD") == head

    def test_uncommitted_changes_do_not_block(self, git_repo):
        parent = git(git_repo, "rev-parse", "HEAD")
        commit_file(git_repo, "a.txt", "a", "update")
        (git_repo / "README.md").write_text("dirty\n")

        result = RollbackService().rollback_last_commit(git_repo)

        assert result.success
        assert git(git_repo, "rev-parse", "HEAD") == parent

    def test_not_a_repository(self, tmp_path):
        result = RollbackService().rollback_last_commit(tmp_path / "missing")

        assert not result.success
        assert result.error


class TestRecoverFromFailedUpdate:
    """Test RollbackService.recover_from_failed_update."""

    def test_marks_dependency_failed(self, git_repo):
        commit_file(git_repo, "package.json", "{}", "update react")
        dependencies = [DependencyInfo("react", "16.8.0"), DependencyInfo("vue", "2.0.0")]

        result = RollbackService().recover_from_failed_update(
            git_repo, "react", dependencies
        )

        assert result.success
        assert dependencies[0].update_status is UpdateStatus.FAILED
        assert dependencies[1].update_status is UpdateStatus.PENDING

    def test_failed_rollback_leaves_status(self, git_repo):
        dependencies = [DependencyInfo("react", "16.8.0")]

        result = RollbackService().recover_from_failed_update(
            git_repo, "react", dependencies
        )

        assert not result.success
        assert dependencies[0].update_status is UpdateStatus.PENDING

    def test_untracked_dependency(self):
        assert not RollbackService().mark_dependency_as_problematic([], "react")


class TestCreateRollbackLogEntry:
    """Test create_rollback_log_entry."""

    def test_success_entry(self):
        entry = create_rollback_log_entry(
            "react",
            RollbackResult(
                success=True,
                rolled_back_commit="0123456789abcdef",
                rolled_back_message="chore(deps): update react\n\nbody",
            ),
        )

        assert "Rolled back react: reverted 01234567" in entry
        assert "(chore(deps): update react)" in entry

    def test_failure_entry(self):
        entry = create_rollback_log_entry(
            "react", RollbackResult(success=False, error="no parent")
        )
        assert "Rollback of react failed: no parent" in entry
