"""
Runs a project's build script and reports the raw outcome.
"""

import hashlib
import json
import shlex
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..shared_utilities import (
    DEFAULT_MAX_OUTPUT_BYTES,
    ProcessExecutionError,
    get_logger,
    run_process,
)
from ..shared_utilities.telemetry import trace_operation
from .data_models import CompilationProof, CompilationResult, ValidationOptions

# Lockfile precedence, first match wins
LOCKFILE_PACKAGE_MANAGERS = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
]

BUILD_SCRIPT_PRIORITY = [
    "build",
    "compile",
    "tsc",
    "build:prod",
    "build:production",
    "dist",
    "test",
]

DEFAULT_TIMEOUT_MS = 300_000
COMPILE_ENV = {"CI": "true", "FORCE_COLOR": "0"}
NOT_APPLICABLE_MESSAGE = "No build script detected. Compilation not required."


def read_manifest(repo_path: str | Path) -> dict[str, Any] | None:
    """Load ``package.json``; None when it is missing or unreadable."""
    manifest_path = Path(repo_path) / "package.json"
    if not manifest_path.exists():
        return None
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        get_logger(__name__).warning(
            "Failed to read manifest", path=str(manifest_path), error=str(e)
        )
        return None
    return data if isinstance(data, dict) else None


def detect_package_manager(repo_path: str | Path) -> str:
    """Pick the package manager from the lockfile present in the repository."""
    root = Path(repo_path)
    for lockfile, manager in LOCKFILE_PACKAGE_MANAGERS:
        if (root / lockfile).exists():
            return manager
    return "npm"


def detect_build_command(repo_path: str | Path) -> str | None:
    """Return the first declared build-like script, or None."""
    manifest = read_manifest(repo_path)
    if not manifest:
        return None
    scripts = manifest.get("scripts") or {}
    for script in BUILD_SCRIPT_PRIORITY:
        if script in scripts:
            return script
    return None


def build_command_args(package_manager: str, build_command: str) -> list[str]:
    """
    Turn a build command into an argument vector.

    Full package-manager invocations (``npm run x``, ``yarn x``) are split as
    given; anything else is treated as a script name.
    """
    if build_command.startswith(("npm ", "yarn ", "pnpm ")):
        return shlex.split(build_command)
    return [package_manager, "run", build_command]


class CompilationRunner:
    """Executes build commands, one at a time, with a hard timeout."""

    def __init__(self, max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES):
        self.logger = get_logger(__name__)
        self.max_output_bytes = max_output_bytes

    def resolve_package_manager(
        self, repo_path: str | Path, options: ValidationOptions
    ) -> str:
        if options.package_manager and options.package_manager != "auto":
            return options.package_manager
        return detect_package_manager(repo_path)

    def resolve_build_command(
        self, repo_path: str | Path, options: ValidationOptions
    ) -> str | None:
        return options.build_command or detect_build_command(repo_path)

    def compile(
        self, repo_path: str | Path, options: ValidationOptions | None = None
    ) -> CompilationResult:
        """
        Run the build and capture its outcome.

        Never raises for build failures, timeouts or missing executables;
        those come back as failing results.
        """
        options = options or ValidationOptions()
        package_manager = self.resolve_package_manager(repo_path, options)

        build_command = self.resolve_build_command(repo_path, options)
        if build_command is None:
            self.logger.info("No build script found", repo_path=str(repo_path))
            return CompilationResult(
                success=True,
                exit_code=0,
                stdout=NOT_APPLICABLE_MESSAGE,
                package_manager=package_manager,
                status="not_applicable",
            )

        args = build_command_args(package_manager, build_command)
        command_text = " ".join(args)

        self.logger.info(
            "Compiling",
            repo_path=str(repo_path),
            command=command_text,
            timeout_ms=options.timeout_ms,
        )

        with trace_operation(
            "compilation_runner.compile",
            {"command": command_text, "package_manager": package_manager},
        ):
            try:
                outcome = run_process(
                    args,
                    cwd=repo_path,
                    timeout_ms=options.timeout_ms,
                    env=COMPILE_ENV,
                    max_output_bytes=self.max_output_bytes,
                )
            except ProcessExecutionError as e:
                self.logger.error("Build command could not start", error=str(e))
                return CompilationResult(
                    success=False,
                    exit_code=-1,
                    stderr=str(e),
                    command=command_text,
                    package_manager=package_manager,
                    status="failed",
                )

        stderr = outcome.stderr
        if outcome.timed_out:
            stderr = (
                f"{stderr}\n[TIMEOUT] Compilation timed out after "
                f"{options.timeout_ms}ms"
            )

        result = CompilationResult(
            success=outcome.success,
            exit_code=outcome.exit_code,
            stdout=outcome.stdout,
            stderr=stderr,
            duration_ms=outcome.duration_ms,
            command=command_text,
            package_manager=package_manager,
            status=(
                "timeout"
                if outcome.timed_out
                else "compiled" if outcome.success else "failed"
            ),
            timed_out=outcome.timed_out,
            truncated=outcome.truncated,
        )

        self.logger.info(
            "Compilation finished",
            success=result.success,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
        )
        return result

    def generate_proof(
        self, result: CompilationResult, iterations_required: int
    ) -> CompilationProof:
        """Build a proof record for a successful compile."""
        output_hash = hashlib.sha256(result.output.encode("utf-8")).hexdigest()
        return CompilationProof(
            timestamp=datetime.now(timezone.utc).isoformat(),
            build_command=result.command or "",
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            output_hash=output_hash,
            package_manager=result.package_manager or "npm",
            iterations_required=iterations_required,
        )
