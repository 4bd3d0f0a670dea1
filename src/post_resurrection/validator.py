"""
Post-resurrection validation: the compile, analyze, fix, repeat loop.
"""

import time
from pathlib import Path

from ..shared_utilities import ResurrectionObserver, as_dispatcher, get_logger
from ..shared_utilities.telemetry import trace_function, trace_operation
from .compilation_runner import CompilationRunner
from .data_models import (
    AnalyzedError,
    AppliedFix,
    CompilationResult,
    FixHistory,
    FixResult,
    PostResurrectionValidationResult,
    ValidationOptions,
    ValidationState,
)
from .error_analyzer import ErrorAnalyzer
from .fix_applier import FixApplier, ManifestFixApplier
from .fix_history_store import FixHistoryError, FixHistoryStore
from .fix_strategy_engine import FixStrategyEngine, error_pattern

DEFAULT_MAX_ITERATIONS = 10
NO_PROGRESS_THRESHOLD = 3


class PostResurrectionValidator:
    """
    Repairs residual build failures after dependency updates.

    Each iteration compiles the project. On failure the errors are analyzed
    and prioritized, and one fix is applied to the highest-priority error that
    still has an untried strategy. The loop ends when:

    * the build passes (SUCCESS),
    * the error count has not dropped for ``no_progress_threshold``
      iterations and no error has an untried strategy (FAILURE_NO_PROGRESS),
    * ``max_iterations`` is reached (FAILURE_MAX_ITERATIONS).

    A drop in the error count is treated as progress: the tried-strategy set
    and the stall counter are reset so strategies can be retried against the
    changed problem.

    Fixes applied on the way to a passing build are recorded in the history
    store. Runs that end in failure leave the history untouched.
    """

    def __init__(
        self,
        runner: CompilationRunner | None = None,
        analyzer: ErrorAnalyzer | None = None,
        applier: FixApplier | None = None,
        history_store: FixHistoryStore | None = None,
        observer: ResurrectionObserver | None = None,
        no_progress_threshold: int = NO_PROGRESS_THRESHOLD,
    ):
        self.logger = get_logger(__name__)
        self.runner = runner or CompilationRunner()
        self.analyzer = analyzer or ErrorAnalyzer()
        self.applier = applier or ManifestFixApplier()
        self.history_store = history_store or FixHistoryStore()
        self.observer = as_dispatcher(observer)
        self.no_progress_threshold = no_progress_threshold

    @trace_function("post_resurrection.validate")
    def validate(
        self, repo_path: str | Path, options: ValidationOptions | None = None
    ) -> PostResurrectionValidationResult:
        """
        Run the repair loop until the build passes or a stop condition hits.

        Always returns a result; ``iterations`` never exceeds
        ``options.max_iterations``.
        """
        options = options or ValidationOptions()
        options.validate()
        start = time.monotonic()
        repo_id = str(repo_path)

        package_manager = self.runner.resolve_package_manager(repo_path, options)
        build_command = self.runner.resolve_build_command(repo_path, options)
        if build_command is None:
            self.logger.info(
                "No build command detected, nothing to validate", repo_path=repo_id
            )
            result = PostResurrectionValidationResult(
                success=True, iterations=0, state=ValidationState.SUCCESS
            )
            self.observer.on_validation_complete(result)
            return result

        run_options = ValidationOptions(
            max_iterations=options.max_iterations,
            package_manager=package_manager,
            build_command=build_command,
            skip_native_modules=options.skip_native_modules,
            timeout_ms=options.timeout_ms,
        )
        engine = FixStrategyEngine(package_manager, options.skip_native_modules)
        history = self.history_store.get_history(repo_id)

        state = ValidationState.RUNNING
        iterations = 0
        applied_fixes: list[AppliedFix] = []
        remaining_errors: list[AnalyzedError] = []
        proof = None
        previous_count: int | None = None
        stalled_iterations = 0

        self.logger.info(
            "Starting post-resurrection validation",
            repo_path=repo_id,
            build_command=build_command,
            package_manager=package_manager,
            max_iterations=options.max_iterations,
        )

        while iterations < options.max_iterations:
            iterations += 1
            self.observer.on_iteration_start(iterations, options.max_iterations)

            with trace_operation(
                "post_resurrection.iteration", {"iteration": iterations}
            ):
                compile_result = self._compile(repo_path, run_options)

                if compile_result.success:
                    state = ValidationState.SUCCESS
                    remaining_errors = []
                    proof = self.runner.generate_proof(compile_result, iterations)
                    break

                errors = self.analyzer.prioritize(self.analyzer.analyze(compile_result))
                remaining_errors = errors
                self.observer.on_error_analysis(iterations, errors)

                if previous_count is not None and len(errors) < previous_count:
                    self.logger.info(
                        "Error count decreased, resetting tried strategies",
                        previous=previous_count,
                        current=len(errors),
                    )
                    engine.reset_attempted_strategies()
                    stalled_iterations = 0
                elif previous_count is not None:
                    stalled_iterations += 1
                previous_count = len(errors)

                target = next(
                    (e for e in errors if engine.has_untried_strategies(e, history)),
                    None,
                )
                if target is None:
                    if stalled_iterations >= self.no_progress_threshold:
                        state = ValidationState.FAILURE_NO_PROGRESS
                        break
                    self.logger.debug(
                        "No untried strategies left this iteration",
                        iteration=iterations,
                        stalled_iterations=stalled_iterations,
                    )
                    continue

                applied_fixes.append(
                    self._apply_fix(
                        repo_path, iterations, target, engine, history, run_options
                    )
                )

        if state is ValidationState.RUNNING:
            state = ValidationState.FAILURE_MAX_ITERATIONS

        if state is ValidationState.SUCCESS:
            self._record_successful_fixes(repo_id, applied_fixes)

        result = PostResurrectionValidationResult(
            success=state is ValidationState.SUCCESS,
            iterations=iterations,
            state=state,
            applied_fixes=applied_fixes,
            remaining_errors=remaining_errors,
            compilation_proof=proof,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        self.logger.info(
            "Validation finished",
            state=state.value,
            iterations=iterations,
            fixes_applied=len(applied_fixes),
            remaining_errors=len(remaining_errors),
        )
        self.observer.on_validation_complete(result)
        return result

    def _compile(
        self, repo_path: str | Path, options: ValidationOptions
    ) -> CompilationResult:
        try:
            return self.runner.compile(repo_path, options)
        except Exception as e:
            self.logger.error(
                "Compilation raised unexpectedly",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return CompilationResult(
                success=False, exit_code=-1, stderr=str(e), status="failed"
            )

    def _apply_fix(
        self,
        repo_path: str | Path,
        iteration: int,
        target: AnalyzedError,
        engine: FixStrategyEngine,
        history: FixHistory,
        options: ValidationOptions,
    ) -> AppliedFix:
        strategy = engine.select_strategy(target, history)
        engine.mark_strategy_attempted(target, strategy)
        self.observer.on_fix_applied(iteration, target, strategy)

        try:
            fix_result = self.applier.apply(repo_path, strategy, options)
        except Exception as e:
            self.logger.warning(
                "Fix applier raised",
                strategy=strategy.key,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            fix_result = FixResult(False, strategy, str(e))

        applied = AppliedFix(iteration, target, strategy, fix_result)
        self.observer.on_fix_outcome(iteration, applied)
        return applied

    def _record_successful_fixes(
        self, repo_id: str, applied_fixes: list[AppliedFix]
    ) -> None:
        """Teach the history store which fixes led to a passing build."""
        successful = [fix for fix in applied_fixes if fix.result.success]
        if not successful:
            return
        for fix in successful:
            self.history_store.record_fix(repo_id, error_pattern(fix.error), fix.strategy)
        try:
            self.history_store.save(repo_id)
        except FixHistoryError as e:
            self.logger.error("Could not persist fix history", error=str(e))
