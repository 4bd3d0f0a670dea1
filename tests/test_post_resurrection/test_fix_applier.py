"""Tests for applying fix strategies to a working tree."""

from unittest.mock import patch

import pytest
from conftest import read_manifest

from src.post_resurrection.data_models import (
    AddResolution,
    AdjustVersion,
    ForceInstall,
    LegacyPeerDeps,
    RemoveLockfile,
    RemovePackage,
    SubstitutePackage,
    ValidationOptions,
)
from src.post_resurrection.fix_applier import ManifestFixApplier, install_command_args
from src.shared_utilities import ProcessExecutionError, ProcessOutcome

RUN_PROCESS = "src.post_resurrection.fix_applier.run_process"


def outcome(exit_code=0, stderr="", timed_out=False):
    return ProcessOutcome(
        command=["npm", "install"],
        exit_code=exit_code,
        stdout="",
        stderr=stderr,
        duration_ms=1,
        timed_out=timed_out,
    )


@pytest.fixture(autouse=True)
def mock_install():
    """Every fix ends in an install; stub it unless a test overrides it."""
    with patch(RUN_PROCESS, return_value=outcome()) as mock_run:
        yield mock_run


class TestManifestFixApplier:
    """Test ManifestFixApplier strategy handlers."""

    def setup_method(self):
        self.applier = ManifestFixApplier()

    def test_adjust_existing_version(self, npm_repo):
        result = self.applier.apply(npm_repo, AdjustVersion("react", "17.0.2"))

        assert result.success
        assert read_manifest(npm_repo)["dependencies"]["react"] == "17.0.2"

    def test_adjust_version_adds_missing_dependency(self, npm_repo):
        self.applier.apply(npm_repo, AdjustVersion("left-pad", "latest"))
        assert read_manifest(npm_repo)["dependencies"]["left-pad"] == "latest"

    def test_npmrc_settings_are_idempotent(self, npm_repo):
        self.applier.apply(npm_repo, LegacyPeerDeps())
        self.applier.apply(npm_repo, LegacyPeerDeps())
        self.applier.apply(npm_repo, ForceInstall())

        lines = (npm_repo / ".npmrc").read_text().splitlines()
        assert lines == ["legacy-peer-deps=true", "force=true"]

    def test_remove_lockfile(self, npm_repo):
        lockfile = npm_repo / "package-lock.json"
        lockfile.write_text("{}")

        result = self.applier.apply(npm_repo, RemoveLockfile())

        assert result.success
        assert not lockfile.exists()

    def test_remove_lockfile_falls_back_to_any_lockfile(self, npm_repo):
        (npm_repo / "yarn.lock").write_text("")

        result = self.applier.apply(npm_repo, RemoveLockfile("package-lock.json"))

        assert result.success
        assert not (npm_repo / "yarn.lock").exists()

    def test_remove_lockfile_with_nothing_to_remove_fails(self, npm_repo):
        result = self.applier.apply(npm_repo, RemoveLockfile())

        assert not result.success
        assert "No lockfile" in result.error

    def test_substitute_package(self, npm_repo):
        result = self.applier.apply(npm_repo, SubstitutePackage("bcrypt", "bcryptjs"))

        deps = read_manifest(npm_repo)["dependencies"]
        assert result.success
        assert "bcrypt" not in deps
        assert deps["bcryptjs"] == "latest"

    def test_remove_undeclared_package_fails(self, npm_repo):
        result = self.applier.apply(npm_repo, RemovePackage("not-there"))

        assert not result.success
        assert "not-there" in result.error

    def test_remove_package_from_dev_dependencies(self, npm_repo):
        result = self.applier.apply(npm_repo, RemovePackage("typescript"))

        assert result.success
        assert "typescript" not in read_manifest(npm_repo)["devDependencies"]

    def test_add_resolution_writes_both_fields(self, npm_repo):
        self.applier.apply(npm_repo, AddResolution("react", "^17.0.0"))

        manifest = read_manifest(npm_repo)
        assert manifest["resolutions"] == {"react": "^17.0.0"}
        assert manifest["overrides"] == {"react": "^17.0.0"}

    def test_missing_manifest_is_reported_not_raised(self, tmp_path):
        result = self.applier.apply(tmp_path, AdjustVersion("react", "17.0.2"))

        assert not result.success
        assert "No package.json" in result.error

    def test_corrupt_manifest_is_reported(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json")

        result = self.applier.apply(tmp_path, RemovePackage("react"))

        assert not result.success
        assert "Unreadable package.json" in result.error


class TestInstallAfterFix:
    """Test the reinstall that follows every edit."""

    def setup_method(self):
        self.applier = ManifestFixApplier()

    def test_edit_is_followed_by_install(self, npm_repo, mock_install):
        result = self.applier.apply(npm_repo, AdjustVersion("react", "17.0.2"))

        assert result.success
        mock_install.assert_called_once()
        assert mock_install.call_args.args[0] == ["npm", "install"]
        assert mock_install.call_args.kwargs["cwd"] == npm_repo

    def test_relaxed_variants_pass_their_flag(self, npm_repo, mock_install):
        self.applier.apply(npm_repo, LegacyPeerDeps())
        self.applier.apply(npm_repo, ForceInstall())

        calls = [call.args[0] for call in mock_install.call_args_list]
        assert calls == [
            ["npm", "install", "--legacy-peer-deps"],
            ["npm", "install", "--force"],
        ]

    def test_package_manager_and_timeout_come_from_options(self, npm_repo, mock_install):
        options = ValidationOptions(package_manager="yarn", timeout_ms=5000)

        self.applier.apply(npm_repo, ForceInstall(), options)

        assert mock_install.call_args.args[0] == ["yarn", "install", "--force"]
        assert mock_install.call_args.kwargs["timeout_ms"] == 5000

    def test_package_manager_is_detected_before_lockfile_removal(
        self, tmp_path, mock_install
    ):
        (tmp_path / "package.json").write_text("{}")
        (tmp_path / "pnpm-lock.yaml").write_text("")

        result = self.applier.apply(tmp_path, RemoveLockfile("pnpm-lock.yaml"))

        assert result.success
        assert mock_install.call_args.args[0] == ["pnpm", "install"]

    def test_failed_install_fails_the_fix(self, npm_repo, mock_install):
        mock_install.return_value = outcome(1, stderr="npm ERR! ERESOLVE")

        result = self.applier.apply(npm_repo, AdjustVersion("react", "17.0.2"))

        assert not result.success
        assert "npm install failed" in result.error
        assert "ERESOLVE" in result.error

    def test_install_timeout_fails_the_fix(self, npm_repo, mock_install):
        mock_install.return_value = outcome(-1, timed_out=True)

        result = self.applier.apply(
            npm_repo, ForceInstall(), ValidationOptions(timeout_ms=1000)
        )

        assert not result.success
        assert "timed out after 1000ms" in result.error

    def test_missing_package_manager_fails_the_fix(self, npm_repo, mock_install):
        mock_install.side_effect = ProcessExecutionError("npm not found")

        result = self.applier.apply(npm_repo, LegacyPeerDeps())

        assert not result.success
        assert "npm not found" in result.error

    def test_failed_edit_skips_install(self, npm_repo, mock_install):
        result = self.applier.apply(npm_repo, RemovePackage("not-there"))

        assert not result.success
        mock_install.assert_not_called()

    def test_install_command_args(self):
        assert install_command_args("pnpm", LegacyPeerDeps()) == ["pnpm", "install"]
        assert install_command_args("npm", RemovePackage("x")) == ["npm", "install"]
