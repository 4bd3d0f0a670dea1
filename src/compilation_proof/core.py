"""
Compilation proof engine.

Runs the baseline (before any change) and final (after all repairs)
compilation checks and diffs them into a resurrection verdict.
"""

from datetime import datetime, timezone
from pathlib import Path

from ..shared_utilities import (
    DEFAULT_MAX_OUTPUT_BYTES,
    ProcessExecutionError,
    ResurrectionError,
    ResurrectionObserver,
    as_dispatcher,
    get_logger,
    get_logging_manager,
    run_process,
)
from ..shared_utilities.telemetry import trace_function
from .data_models import (
    BaselineCompilationResult,
    CategorizedError,
    ErrorCategory,
    ResurrectionVerdict,
    empty_category_counts,
)
from .parser import count_by_category, generate_fix_suggestions, parse_compilation_errors
from .strategy import (
    BUILD_TIMEOUT_MS,
    TYPECHECK_TIMEOUT_MS,
    detect_compilation_strategy,
    detect_project_kind,
    plan_for_strategy,
)

NO_STRATEGY_MESSAGE = "No compilation strategy detected"
MATCH_MODES = ("exact", "fuzzy")


class CompilationProofError(ResurrectionError):
    """Raised for invalid proof engine requests."""

    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _exact_key(error: CategorizedError) -> tuple:
    return error.key


def _fuzzy_key(error: CategorizedError) -> tuple:
    return (error.file, error.code)


def failed_compilation(message: str) -> BaselineCompilationResult:
    """Snapshot used when a check could not be run at all."""
    return BaselineCompilationResult(
        timestamp=_now(),
        success=False,
        error_count=0,
        output=message,
    )


class CompilationProofEngine:
    """Detects how to compile a project, runs it and judges the result."""

    def __init__(
        self,
        typecheck_timeout_ms: int = TYPECHECK_TIMEOUT_MS,
        build_timeout_ms: int = BUILD_TIMEOUT_MS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        observer: ResurrectionObserver | None = None,
    ):
        self.logger = get_logger(__name__)
        self.typecheck_timeout_ms = typecheck_timeout_ms
        self.build_timeout_ms = build_timeout_ms
        self.max_output_bytes = max_output_bytes
        self.observer = as_dispatcher(observer)

    @trace_function("compilation_proof.check", include_args=True)
    def run_compilation_check(
        self, repo_path: str | Path, label: str = "compilation"
    ) -> BaselineCompilationResult:
        """
        Compile the project with the detected strategy and categorize the output.

        Never raises: a command that cannot start yields a failing snapshot.
        """
        strategy = detect_compilation_strategy(repo_path)
        project_kind = detect_project_kind(repo_path)
        plan = plan_for_strategy(
            strategy, repo_path, self.typecheck_timeout_ms, self.build_timeout_ms
        )

        self.logger.info(
            "Running compilation check",
            label=label,
            repo_path=str(repo_path),
            strategy=strategy.value,
            project_kind=project_kind.value,
        )

        if plan.command is None:
            result = BaselineCompilationResult(
                timestamp=_now(),
                success=True,
                error_count=0,
                output=NO_STRATEGY_MESSAGE,
                project_kind=project_kind,
                strategy=strategy,
            )
            self.observer.on_compilation_check(label, result)
            return result

        try:
            outcome = run_process(
                plan.command,
                cwd=repo_path,
                timeout_ms=plan.timeout_ms,
                env={"CI": "true", "FORCE_COLOR": "0"},
                max_output_bytes=self.max_output_bytes,
            )
            success = outcome.success
            output = outcome.output
            duration_ms = outcome.duration_ms
            if outcome.timed_out:
                output += f"\n[TIMEOUT] Compilation timed out after {plan.timeout_ms}ms"
        except ProcessExecutionError as e:
            success, output, duration_ms = False, str(e), 0

        errors: list[CategorizedError] = (
            [] if success else parse_compilation_errors(output)
        )
        by_category = count_by_category(errors)
        result = BaselineCompilationResult(
            timestamp=_now(),
            success=success,
            error_count=len(errors),
            errors=errors,
            errors_by_category=by_category,
            output=output,
            project_kind=project_kind,
            strategy=strategy,
            suggested_fixes=generate_fix_suggestions(by_category, errors),
        )

        get_logging_manager().log_compilation_result(
            label, result.success, result.error_count, duration_ms
        )
        self.observer.on_compilation_check(label, result)
        return result

    def run_baseline_compilation(self, repo_path: str | Path) -> BaselineCompilationResult:
        """Prove the repository is broken before anything is changed."""
        return self.run_compilation_check(repo_path, label="baseline")

    def run_final_compilation(self, repo_path: str | Path) -> BaselineCompilationResult:
        """Check the repository after all updates and repairs."""
        return self.run_compilation_check(repo_path, label="final")

    def generate_resurrection_verdict(
        self,
        baseline: BaselineCompilationResult,
        final: BaselineCompilationResult,
        match: str = "exact",
    ) -> ResurrectionVerdict:
        """
        Diff two compilation snapshots.

        ``match="exact"`` compares errors on (file, line, code, message).
        ``match="fuzzy"`` compares on (file, code) only, so an error whose line
        moved is not reported as both fixed and new; it can also hide a
        genuinely new error of the same code in the same file, which is why it
        is opt-in and recorded on the verdict.
        """
        if match not in MATCH_MODES:
            raise CompilationProofError(f"Unknown match mode: {match}")

        key = _exact_key if match == "exact" else _fuzzy_key

        baseline_keys = {key(error) for error in baseline.errors}
        final_keys = {key(error) for error in final.errors}

        fixed_errors = [e for e in baseline.errors if key(e) not in final_keys]
        new_errors = [e for e in final.errors if key(e) not in baseline_keys]

        fixed_by_category = empty_category_counts()
        remaining_by_category = empty_category_counts()
        for category in ErrorCategory:
            before = baseline.errors_by_category.get(category.value, 0)
            after = final.errors_by_category.get(category.value, 0)
            fixed_by_category[category.value] = max(0, before - after)
            remaining_by_category[category.value] = after

        verdict = ResurrectionVerdict(
            baseline_compilation=baseline,
            final_compilation=final,
            resurrected=not baseline.success and final.success,
            errors_fixed=max(0, baseline.error_count - final.error_count),
            errors_remaining=final.error_count,
            errors_fixed_by_category=fixed_by_category,
            errors_remaining_by_category=remaining_by_category,
            fixed_errors=fixed_errors,
            new_errors=new_errors,
            match_mode=match,
        )
        self.observer.on_verdict(verdict)
        return verdict


def format_verdict_summary(verdict: ResurrectionVerdict) -> list[str]:
    """Human-readable narration of a verdict."""
    baseline = verdict.baseline_compilation
    final = verdict.final_compilation
    lines: list[str] = []

    if verdict.resurrected:
        lines.append("Resurrection successful: the build was broken and now compiles.")
    elif baseline.success and final.success:
        lines.append("The build compiled before and still compiles.")
    elif baseline.success and not final.success:
        lines.append("Regression: the build compiled before but fails now.")
    else:
        lines.append("Resurrection incomplete: the build still fails.")

    if verdict.errors_fixed:
        fixed = ", ".join(
            f"{count} {category}"
            for category, count in verdict.errors_fixed_by_category.items()
            if count
        )
        lines.append(f"Fixed {verdict.errors_fixed} error(s)" + (f" ({fixed})." if fixed else "."))
    if verdict.errors_remaining:
        lines.append(f"{verdict.errors_remaining} error(s) remaining.")
    if verdict.new_errors:
        lines.append(f"{len(verdict.new_errors)} new error(s) appeared.")
    if verdict.match_mode == "fuzzy":
        lines.append(
            "Errors were matched on file and code only; line changes are ignored."
        )
    return lines
