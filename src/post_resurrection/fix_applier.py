"""
Applies fix strategies to a working tree by editing ``package.json``,
``.npmrc`` and lockfiles, then reinstalling so the next build sees the change.
"""

import json
import shutil
from pathlib import Path
from typing import Any, Protocol

from ..shared_utilities import (
    ProcessExecutionError,
    ResurrectionError,
    get_logger,
    run_process,
)
from .compilation_runner import detect_package_manager
from .data_models import (
    AddResolution,
    AdjustVersion,
    FixResult,
    FixStrategy,
    ForceInstall,
    LegacyPeerDeps,
    RemoveLockfile,
    RemovePackage,
    SubstitutePackage,
    ValidationOptions,
)

KNOWN_LOCKFILES = ["package-lock.json", "yarn.lock", "pnpm-lock.yaml"]
VERSIONED_SECTIONS = ["dependencies", "devDependencies", "peerDependencies"]
SUBSTITUTABLE_SECTIONS = ["dependencies", "devDependencies", "optionalDependencies"]
ALL_SECTIONS = [
    "dependencies",
    "devDependencies",
    "optionalDependencies",
    "peerDependencies",
]
INSTALL_ENV = {"CI": "true", "FORCE_COLOR": "0"}


class ManifestError(ResurrectionError):
    """Raised when the manifest cannot be read, changed or written."""

    pass


class FixApplier(Protocol):
    """Anything that can apply a strategy to a repository."""

    def apply(
        self,
        repo_path: str | Path,
        strategy: FixStrategy,
        options: ValidationOptions | None = None,
    ) -> FixResult: ...


def load_manifest(repo_path: str | Path) -> dict[str, Any]:
    manifest_path = Path(repo_path) / "package.json"
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ManifestError(f"No package.json in {repo_path}") from e
    except (OSError, ValueError) as e:
        raise ManifestError(f"Unreadable package.json: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError("package.json does not contain an object")
    return data


def save_manifest(repo_path: str | Path, manifest: dict[str, Any]) -> None:
    manifest_path = Path(repo_path) / "package.json"
    try:
        manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Failed to write package.json: {e}") from e


def install_command_args(package_manager: str, strategy: FixStrategy) -> list[str]:
    """Install invocation for a strategy; relaxed variants get their flag."""
    args = [package_manager, "install"]
    if isinstance(strategy, ForceInstall):
        args.append("--force")
    elif isinstance(strategy, LegacyPeerDeps) and package_manager == "npm":
        args.append("--legacy-peer-deps")
    return args


class ManifestFixApplier:
    """
    Default applier: every strategy becomes a manifest, npmrc or lockfile
    edit followed by a reinstall with the project's package manager.
    """

    def __init__(self):
        self.logger = get_logger(__name__)

    def apply(
        self,
        repo_path: str | Path,
        strategy: FixStrategy,
        options: ValidationOptions | None = None,
    ) -> FixResult:
        """
        Apply one strategy and reinstall. Failures are returned, not raised.

        A strategy only counts as applied when the install after the edit
        succeeds.
        """
        options = options or ValidationOptions()
        # Resolve before the edit, RemoveLockfile deletes what detection reads
        package_manager = (
            options.package_manager
            if options.package_manager != "auto"
            else detect_package_manager(repo_path)
        )
        handlers = {
            AdjustVersion: self._adjust_version,
            LegacyPeerDeps: self._legacy_peer_deps,
            ForceInstall: self._force_install,
            RemoveLockfile: self._remove_lockfile,
            SubstitutePackage: self._substitute_package,
            RemovePackage: self._remove_package,
            AddResolution: self._add_resolution,
        }
        handler = handlers.get(type(strategy))
        if handler is None:
            return FixResult(False, strategy, f"Unsupported strategy: {strategy!r}")

        try:
            handler(Path(repo_path), strategy)
        except (ManifestError, OSError) as e:
            self.logger.warning(
                "Fix application failed",
                strategy=strategy.key,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return FixResult(False, strategy, str(e))

        self.logger.info("Fix applied to working tree", strategy=strategy.key)
        return self._install(
            Path(repo_path), strategy, package_manager, options.timeout_ms
        )

    def _install(
        self, repo: Path, strategy: FixStrategy, package_manager: str, timeout_ms: int
    ) -> FixResult:
        args = install_command_args(package_manager, strategy)
        try:
            outcome = run_process(args, cwd=repo, timeout_ms=timeout_ms, env=INSTALL_ENV)
        except ProcessExecutionError as e:
            self.logger.warning("Install could not start", command=args, error=str(e))
            return FixResult(False, strategy, str(e))

        if outcome.success:
            self.logger.info(
                "Reinstalled after fix",
                strategy=strategy.key,
                command=" ".join(args),
                duration_ms=outcome.duration_ms,
            )
            return FixResult(True, strategy)

        if outcome.timed_out:
            error = f"{' '.join(args)} timed out after {timeout_ms}ms"
        else:
            error = f"{' '.join(args)} failed: {outcome.output.strip()[-500:]}"
        self.logger.warning(
            "Install after fix failed",
            strategy=strategy.key,
            exit_code=outcome.exit_code,
            timed_out=outcome.timed_out,
        )
        return FixResult(False, strategy, error)

    def _adjust_version(self, repo: Path, strategy: AdjustVersion) -> None:
        manifest = load_manifest(repo)
        found = False
        for section in VERSIONED_SECTIONS:
            deps = manifest.get(section)
            if isinstance(deps, dict) and strategy.package in deps:
                deps[strategy.package] = strategy.new_version
                found = True
        if not found:
            manifest.setdefault("dependencies", {})[strategy.package] = (
                strategy.new_version
            )
        save_manifest(repo, manifest)

    def _append_npmrc(self, repo: Path, setting: str) -> None:
        npmrc = repo / ".npmrc"
        existing = npmrc.read_text(encoding="utf-8") if npmrc.exists() else ""
        if setting in existing.splitlines():
            return
        if existing and not existing.endswith("\n"):
            existing += "\n"
        npmrc.write_text(existing + setting + "\n", encoding="utf-8")

    def _legacy_peer_deps(self, repo: Path, strategy: LegacyPeerDeps) -> None:
        self._append_npmrc(repo, "legacy-peer-deps=true")

    def _force_install(self, repo: Path, strategy: ForceInstall) -> None:
        self._append_npmrc(repo, "force=true")

    def _remove_lockfile(self, repo: Path, strategy: RemoveLockfile) -> None:
        target = repo / strategy.lockfile
        if target.exists():
            target.unlink()
            return

        removed = False
        for lockfile in KNOWN_LOCKFILES:
            path = repo / lockfile
            if path.exists():
                path.unlink()
                removed = True
        if removed:
            return

        node_modules = repo / "node_modules"
        if node_modules.exists():
            shutil.rmtree(node_modules)
            return
        raise ManifestError("No lockfile or node_modules to remove")

    def _substitute_package(self, repo: Path, strategy: SubstitutePackage) -> None:
        manifest = load_manifest(repo)
        found = False
        for section in SUBSTITUTABLE_SECTIONS:
            deps = manifest.get(section)
            if isinstance(deps, dict) and strategy.original in deps:
                deps.pop(strategy.original)
                if strategy.replacement:
                    deps[strategy.replacement] = "latest"
                found = True
        if not found:
            raise ManifestError(f"{strategy.original} is not declared in package.json")
        save_manifest(repo, manifest)

    def _remove_package(self, repo: Path, strategy: RemovePackage) -> None:
        manifest = load_manifest(repo)
        found = False
        for section in ALL_SECTIONS:
            deps = manifest.get(section)
            if isinstance(deps, dict) and strategy.package in deps:
                deps.pop(strategy.package)
                found = True
        if not found:
            raise ManifestError(f"{strategy.package} is not declared in package.json")
        save_manifest(repo, manifest)

    def _add_resolution(self, repo: Path, strategy: AddResolution) -> None:
        manifest = load_manifest(repo)
        # yarn reads resolutions, npm and pnpm read overrides
        manifest.setdefault("resolutions", {})[strategy.package] = strategy.version
        manifest.setdefault("overrides", {})[strategy.package] = strategy.version
        save_manifest(repo, manifest)
