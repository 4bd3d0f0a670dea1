"""
Data models for post-resurrection build validation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class ValidationErrorCategory(Enum):
    """Build failure categories recognized by the error analyzer."""

    DEPENDENCY_NOT_FOUND = "dependency_not_found"
    DEPENDENCY_VERSION_CONFLICT = "dependency_version_conflict"
    PEER_DEPENDENCY_CONFLICT = "peer_dependency_conflict"
    NATIVE_MODULE_FAILURE = "native_module_failure"
    LOCKFILE_CONFLICT = "lockfile_conflict"
    GIT_DEPENDENCY_FAILURE = "git_dependency_failure"
    SYNTAX_ERROR = "syntax_error"
    TYPE_ERROR = "type_error"
    UNKNOWN = "unknown"


class ValidationState(Enum):
    """States of the repair loop. Everything except RUNNING is terminal."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILURE_MAX_ITERATIONS = "failure_max_iterations"
    FAILURE_NO_PROGRESS = "failure_no_progress"

    @property
    def is_terminal(self) -> bool:
        return self is not ValidationState.RUNNING


@dataclass
class CompilationResult:
    """Outcome of a single build invocation."""

    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    command: str | None = None
    package_manager: str | None = None
    status: str = "compiled"  # compiled, failed, timeout, not_applicable
    timed_out: bool = False
    truncated: bool = False

    @property
    def output(self) -> str:
        return self.stdout + self.stderr

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "command": self.command,
            "package_manager": self.package_manager,
            "status": self.status,
            "timed_out": self.timed_out,
            "truncated": self.truncated,
        }


@dataclass
class AnalyzedError:
    """A categorized build error with whatever package details could be extracted."""

    category: ValidationErrorCategory
    message: str
    package_name: str | None = None
    version_constraint: str | None = None
    conflicting_packages: list[str] = field(default_factory=list)
    priority: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "message": self.message,
            "package_name": self.package_name,
            "version_constraint": self.version_constraint,
            "conflicting_packages": list(self.conflicting_packages),
            "priority": self.priority,
        }


@dataclass(frozen=True)
class PackageInfo:
    """Package details pulled out of an error message."""

    package_name: str | None = None
    version_constraint: str | None = None
    conflicting_packages: tuple[str, ...] = ()


# Fix strategies. Each variant is an immutable value with a stable ``key``
# used for the tried-set and the fix history.


@dataclass(frozen=True)
class AdjustVersion:
    package: str
    new_version: str

    kind: ClassVar[str] = "adjust_version"

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.package}:{self.new_version}"

    def describe(self) -> str:
        return f"Adjust {self.package} to version {self.new_version}"


@dataclass(frozen=True)
class LegacyPeerDeps:
    kind: ClassVar[str] = "legacy_peer_deps"

    @property
    def key(self) -> str:
        return self.kind

    def describe(self) -> str:
        return "Install with relaxed peer dependency checking"


@dataclass(frozen=True)
class RemoveLockfile:
    lockfile: str = "package-lock.json"

    kind: ClassVar[str] = "remove_lockfile"

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.lockfile}"

    def describe(self) -> str:
        return f"Remove {self.lockfile} and regenerate it"


@dataclass(frozen=True)
class SubstitutePackage:
    original: str
    replacement: str

    kind: ClassVar[str] = "substitute_package"

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.original}:{self.replacement}"

    def describe(self) -> str:
        return f"Replace {self.original} with {self.replacement}"


@dataclass(frozen=True)
class RemovePackage:
    package: str

    kind: ClassVar[str] = "remove_package"

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.package}"

    def describe(self) -> str:
        return f"Remove {self.package} from the manifest"


@dataclass(frozen=True)
class AddResolution:
    package: str
    version: str

    kind: ClassVar[str] = "add_resolution"

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.package}:{self.version}"

    def describe(self) -> str:
        return f"Pin {self.package} to {self.version} via resolutions/overrides"


@dataclass(frozen=True)
class ForceInstall:
    kind: ClassVar[str] = "force_install"

    @property
    def key(self) -> str:
        return self.kind

    def describe(self) -> str:
        return "Force install, ignoring conflicts"


FixStrategy = (
    AdjustVersion
    | LegacyPeerDeps
    | RemoveLockfile
    | SubstitutePackage
    | RemovePackage
    | AddResolution
    | ForceInstall
)

STRATEGY_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        AdjustVersion,
        LegacyPeerDeps,
        RemoveLockfile,
        SubstitutePackage,
        RemovePackage,
        AddResolution,
        ForceInstall,
    )
}


def strategy_to_dict(strategy: FixStrategy) -> dict[str, Any]:
    """Serialize a strategy as ``{"type": kind, **fields}``."""
    data: dict[str, Any] = {"type": strategy.kind}
    data.update(strategy.__dict__)
    return data


def strategy_from_dict(data: dict[str, Any]) -> FixStrategy:
    """
    Rebuild a strategy from ``strategy_to_dict`` output.

    Raises:
        ValueError: If the type is unknown or fields are missing
    """
    payload = dict(data)
    kind = payload.pop("type", None)
    strategy_cls = STRATEGY_TYPES.get(kind)
    if strategy_cls is None:
        raise ValueError(f"Unknown fix strategy type: {kind}")
    try:
        return strategy_cls(**payload)
    except TypeError as e:
        raise ValueError(f"Invalid fields for {kind}: {e}") from e


@dataclass
class FixResult:
    """Result of applying one strategy to the working tree."""

    success: bool
    strategy: FixStrategy
    error: str | None = None


@dataclass
class AppliedFix:
    """One fix attempt made during a validation run."""

    iteration: int
    error: AnalyzedError
    strategy: FixStrategy
    result: FixResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "error": self.error.to_dict(),
            "strategy": strategy_to_dict(self.strategy),
            "success": self.result.success,
            "fix_error": self.result.error,
        }


@dataclass
class HistoricalFix:
    """A strategy that previously fixed an error pattern in a repository."""

    error_pattern: str
    strategy: FixStrategy
    success_count: int = 1
    last_used: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_pattern": self.error_pattern,
            "strategy": strategy_to_dict(self.strategy),
            "success_count": self.success_count,
            "last_used": self.last_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoricalFix":
        return cls(
            error_pattern=data["error_pattern"],
            strategy=strategy_from_dict(data["strategy"]),
            success_count=int(data.get("success_count", 1)),
            last_used=data.get("last_used", ""),
        )


@dataclass
class FixHistory:
    """Everything the store remembers about one repository."""

    repo_id: str
    fixes: list[HistoricalFix] = field(default_factory=list)
    last_resurrection: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo_id": self.repo_id,
            "fixes": [fix.to_dict() for fix in self.fixes],
            "last_resurrection": self.last_resurrection,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FixHistory":
        return cls(
            repo_id=data["repo_id"],
            fixes=[HistoricalFix.from_dict(item) for item in data.get("fixes", [])],
            last_resurrection=data.get("last_resurrection", ""),
        )


@dataclass
class CompilationProof:
    """Tamper-evident record of a successful build."""

    timestamp: str
    build_command: str
    exit_code: int
    duration_ms: int
    output_hash: str
    package_manager: str
    iterations_required: int

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class ValidationOptions:
    """Knobs for a single validation run."""

    max_iterations: int = 10
    package_manager: str = "auto"  # auto, npm, yarn, pnpm
    build_command: str | None = None
    skip_native_modules: bool = False
    timeout_ms: int = 300_000

    def validate(self) -> None:
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.package_manager not in ("auto", "npm", "yarn", "pnpm"):
            raise ValueError(f"Unsupported package manager: {self.package_manager}")


@dataclass
class PostResurrectionValidationResult:
    """Final outcome of the repair loop."""

    success: bool
    iterations: int
    state: ValidationState
    applied_fixes: list[AppliedFix] = field(default_factory=list)
    remaining_errors: list[AnalyzedError] = field(default_factory=list)
    compilation_proof: CompilationProof | None = None
    duration_ms: int = 0

    @property
    def successful_fixes(self) -> list[AppliedFix]:
        return [fix for fix in self.applied_fixes if fix.result.success]

    def summary(self) -> str:
        if self.success:
            return (
                f"Build passes after {self.iterations} iteration(s) "
                f"and {len(self.successful_fixes)} fix(es)"
            )
        return (
            f"Build still failing after {self.iterations} iteration(s) "
            f"({self.state.value}), {len(self.remaining_errors)} error(s) remain"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "state": self.state.value,
            "iterations": self.iterations,
            "duration_ms": self.duration_ms,
            "summary": self.summary(),
            "compilation_proof": (
                self.compilation_proof.to_dict() if self.compilation_proof else None
            ),
            "applied_fixes": [fix.to_dict() for fix in self.applied_fixes],
            "remaining_errors": [error.to_dict() for error in self.remaining_errors],
        }
