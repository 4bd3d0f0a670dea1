"""
Default collaborators for the batch executor: a manifest-based dependency
updater and a build + test post-update check.
"""

import json
import re
from pathlib import Path
from typing import Protocol

from ..post_resurrection.compilation_runner import (
    CompilationRunner,
    detect_package_manager,
    read_manifest,
)
from ..post_resurrection.data_models import ValidationOptions
from ..shared_utilities import (
    ProcessExecutionError,
    ResurrectionError,
    get_logger,
    run_process,
)
from .data_models import ResurrectionPlanItem, UpdateOutcome
from .rollback import GitOperationError, run_git

INSTALL_TIMEOUT_MS = 600_000
TEST_TIMEOUT_MS = 600_000
DEPENDENCY_SECTIONS = [
    "dependencies",
    "devDependencies",
    "optionalDependencies",
    "peerDependencies",
]
LOCKFILES = ["package-lock.json", "yarn.lock", "pnpm-lock.yaml"]
TRANSIENT_INSTALL_ERRORS = re.compile(
    r"ETIMEDOUT|ECONNRESET|EAI_AGAIN|ENOTFOUND|ECONNREFUSED|socket hang up|network",
    re.IGNORECASE,
)
NPM_PLACEHOLDER_TEST = "no test specified"


class DependencyUpdateError(ResurrectionError):
    """Raised when a dependency update cannot be applied."""

    pass


class TransientUpdateError(DependencyUpdateError):
    """An update failure worth retrying, such as a registry timeout."""

    pass


class DependencyUpdater(Protocol):
    def update(self, repo_path: str | Path, item: ResurrectionPlanItem) -> UpdateOutcome: ...


class PostUpdateCheck(Protocol):
    def check(self, repo_path: str | Path) -> tuple[bool, str]: ...


class ManifestDependencyUpdater:
    """
    Bumps one dependency in ``package.json``, reinstalls and commits.

    Failed installs restore the manifest and lockfiles so the working tree is
    left as it was; only successful updates produce a commit.
    """

    def __init__(self, install_timeout_ms: int = INSTALL_TIMEOUT_MS):
        self.logger = get_logger(__name__)
        self.install_timeout_ms = install_timeout_ms

    def update(self, repo_path: str | Path, item: ResurrectionPlanItem) -> UpdateOutcome:
        """
        Raises:
            TransientUpdateError: The install hit a network-level failure
            DependencyUpdateError: The manifest could not be changed
        """
        root = Path(repo_path)
        manifest_path = root / "package.json"
        manifest = read_manifest(root)
        if manifest is None:
            raise DependencyUpdateError(f"No readable package.json in {root}")

        original_text = manifest_path.read_text(encoding="utf-8")
        original_lockfiles = {
            name: (root / name).read_bytes() for name in LOCKFILES if (root / name).exists()
        }

        if not self._set_version(manifest, item):
            raise DependencyUpdateError(
                f"{item.package_name} is not declared in package.json"
            )
        try:
            manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise DependencyUpdateError(f"Failed to write package.json: {e}") from e

        package_manager = detect_package_manager(root)
        try:
            outcome = run_process(
                [package_manager, "install"],
                cwd=root,
                timeout_ms=self.install_timeout_ms,
                env={"CI": "true"},
            )
        except ProcessExecutionError as e:
            self._restore(root, original_text, original_lockfiles)
            raise DependencyUpdateError(str(e)) from e

        if not outcome.success:
            self._restore(root, original_text, original_lockfiles)
            output = outcome.output.strip()
            if outcome.timed_out or TRANSIENT_INSTALL_ERRORS.search(output):
                raise TransientUpdateError(
                    f"{package_manager} install failed transiently for {item.package_name}"
                )
            return UpdateOutcome(
                package_name=item.package_name,
                success=False,
                error=f"{package_manager} install failed: {output[-500:]}",
            )

        try:
            run_git(root, "add", "-A")
            run_git(
                root,
                "commit",
                "-m",
                f"chore(deps): update {item.package_name} from "
                f"{item.current_version} to {item.target_version}",
            )
            commit = run_git(root, "rev-parse", "HEAD")
        except GitOperationError as e:
            self.logger.error(
                "Could not commit dependency update",
                package=item.package_name,
                error=str(e),
            )
            return UpdateOutcome(
                package_name=item.package_name, success=False, error=str(e)
            )

        self.logger.info(
            "Dependency updated",
            package=item.package_name,
            target=item.target_version,
            commit=commit[:8],
        )
        return UpdateOutcome(package_name=item.package_name, success=True, commit=commit)

    def _set_version(self, manifest: dict, item: ResurrectionPlanItem) -> bool:
        found = False
        for section in DEPENDENCY_SECTIONS:
            deps = manifest.get(section)
            if isinstance(deps, dict) and item.package_name in deps:
                deps[item.package_name] = item.target_version
                found = True
        return found

    def _restore(
        self, root: Path, manifest_text: str, lockfiles: dict[str, bytes]
    ) -> None:
        (root / "package.json").write_text(manifest_text, encoding="utf-8")
        for name in LOCKFILES:
            path = root / name
            if name in lockfiles:
                path.write_bytes(lockfiles[name])
            elif path.exists():
                path.unlink()


class CompilationCheck:
    """Post-update check: the build must pass, then the test script if there is one."""

    def __init__(
        self,
        runner: CompilationRunner | None = None,
        options: ValidationOptions | None = None,
        run_tests: bool = True,
        test_timeout_ms: int = TEST_TIMEOUT_MS,
    ):
        self.logger = get_logger(__name__)
        self.runner = runner or CompilationRunner()
        self.options = options or ValidationOptions()
        self.run_tests = run_tests
        self.test_timeout_ms = test_timeout_ms

    def check(self, repo_path: str | Path) -> tuple[bool, str]:
        result = self.runner.compile(repo_path, self.options)
        if not result.success:
            return False, result.output

        if not self.run_tests:
            return True, result.output

        manifest = read_manifest(repo_path) or {}
        test_script = (manifest.get("scripts") or {}).get("test")
        if not test_script or NPM_PLACEHOLDER_TEST in test_script:
            return True, result.output

        package_manager = self.runner.resolve_package_manager(repo_path, self.options)
        try:
            outcome = run_process(
                [package_manager, "test"],
                cwd=repo_path,
                timeout_ms=self.test_timeout_ms,
                env={"CI": "true", "FORCE_COLOR": "0"},
            )
        except ProcessExecutionError as e:
            return False, str(e)
        return outcome.success, outcome.output
