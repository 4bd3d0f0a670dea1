"""
End-to-end resurrection pipeline.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..compilation_proof import (
    BaselineCompilationResult,
    CompilationProofEngine,
    ResurrectionVerdict,
    failed_compilation,
)
from ..dependency_batches import (
    BatchExecutionResult,
    BatchExecutor,
    BatchPlanner,
    CompilationCheck,
    DependencyInfo,
    DependencyUpdater,
    ManifestDependencyUpdater,
    PostUpdateCheck,
    ResurrectionPlanItem,
    RollbackService,
    UpdateBatch,
)
from ..post_resurrection import (
    CompilationRunner,
    FixHistoryStore,
    PostResurrectionValidationResult,
    PostResurrectionValidator,
    ValidationState,
)
from ..shared_utilities import ResurrectionObserver, as_dispatcher, get_logger
from ..shared_utilities.logging_config import get_logging_manager
from ..shared_utilities.telemetry import trace_function, trace_operation
from .config import ResurrectionSettings


@dataclass
class ResurrectionReport:
    """Everything a pipeline run produced."""

    repo_path: str
    started_at: str
    baseline: BaselineCompilationResult
    final: BaselineCompilationResult
    verdict: ResurrectionVerdict
    batches: list[UpdateBatch] = field(default_factory=list)
    batch_results: list[BatchExecutionResult] = field(default_factory=list)
    validation: PostResurrectionValidationResult | None = None
    transformation_log: list[str] = field(default_factory=list)
    step_errors: dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo_path": self.repo_path,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "resurrected": self.verdict.resurrected,
            "baseline": self.baseline.to_dict(),
            "batches": [batch.to_dict() for batch in self.batches],
            "batch_results": [result.to_dict() for result in self.batch_results],
            "validation": self.validation.to_dict() if self.validation else None,
            "final": self.final.to_dict(),
            "verdict": self.verdict.to_dict(),
            "transformation_log": list(self.transformation_log),
            "step_errors": dict(self.step_errors),
        }


class ResurrectionPipeline:
    """
    Baseline proof, batched updates, repair loop, final proof, verdict.

    Every step is isolated: a step that raises is recorded in
    ``report.step_errors`` and later steps still run, so a report with a
    verdict is always returned.
    """

    def __init__(
        self,
        settings: ResurrectionSettings | None = None,
        observer: ResurrectionObserver | None = None,
        updater: DependencyUpdater | None = None,
        post_update_check: PostUpdateCheck | None = None,
        proof_engine: CompilationProofEngine | None = None,
        validator: PostResurrectionValidator | None = None,
        rollback_service: RollbackService | None = None,
    ):
        self.logger = get_logger(__name__)
        self.settings = settings or ResurrectionSettings()
        self.settings.validate()
        self.observer = as_dispatcher(observer)

        runner = CompilationRunner(max_output_bytes=self.settings.max_output_bytes)
        options = self.settings.to_validation_options()

        self.planner = BatchPlanner(
            max_batch_size=self.settings.max_batch_size,
            large_batch_threshold=self.settings.large_batch_threshold,
        )
        self.proof_engine = proof_engine or CompilationProofEngine(
            typecheck_timeout_ms=self.settings.typecheck_timeout_ms,
            build_timeout_ms=self.settings.build_timeout_ms,
            max_output_bytes=self.settings.max_output_bytes,
            observer=self.observer,
        )
        self.executor = BatchExecutor(
            updater=updater or ManifestDependencyUpdater(),
            post_update_check=post_update_check
            or CompilationCheck(runner=runner, options=options),
            rollback_service=rollback_service,
            observer=self.observer,
            max_retries=self.settings.max_retries,
        )
        self.validator = validator or PostResurrectionValidator(
            runner=runner,
            history_store=FixHistoryStore(self.settings.history_dir),
            observer=self.observer,
            no_progress_threshold=self.settings.no_progress_threshold,
        )

    @trace_function("resurrection.pipeline.run")
    def run(
        self,
        repo_path: str | Path,
        plan_items: list[ResurrectionPlanItem],
        dependencies: list[DependencyInfo] | None = None,
    ) -> ResurrectionReport:
        start = time.monotonic()
        started_at = datetime.now(timezone.utc).isoformat()
        dependencies = dependencies if dependencies is not None else []
        step_errors: dict[str, str] = {}
        repo = str(repo_path)

        get_logging_manager().log_operation_start(
            "resurrection", repo_path=repo, plan_items=len(plan_items)
        )

        baseline = self._step(
            "baseline",
            step_errors,
            lambda: self.proof_engine.run_baseline_compilation(repo_path),
        )
        if baseline is None:
            baseline = failed_compilation(f"Baseline compilation failed: {step_errors['baseline']}")

        batches = self._step(
            "plan",
            step_errors,
            lambda: self.planner.reorder_for_safety(
                self.planner.create_batches(plan_items)
            ),
        ) or []

        batch_results = self._step(
            "execute",
            step_errors,
            lambda: self.executor.execute(repo_path, batches, dependencies),
        ) or []

        validation = self._step(
            "validate",
            step_errors,
            lambda: self.validator.validate(
                repo_path, self.settings.to_validation_options()
            ),
        )
        if validation is None:
            validation = PostResurrectionValidationResult(
                success=False, iterations=0, state=ValidationState.FAILURE_NO_PROGRESS
            )

        final = self._step(
            "final",
            step_errors,
            lambda: self.proof_engine.run_final_compilation(repo_path),
        )
        if final is None:
            final = failed_compilation(f"Final compilation failed: {step_errors['final']}")

        verdict = self._step(
            "verdict",
            step_errors,
            lambda: self.proof_engine.generate_resurrection_verdict(baseline, final),
        )
        if verdict is None:
            verdict = CompilationProofEngine().generate_resurrection_verdict(
                baseline, final
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        report = ResurrectionReport(
            repo_path=repo,
            started_at=started_at,
            baseline=baseline,
            final=final,
            verdict=verdict,
            batches=batches,
            batch_results=batch_results,
            validation=validation,
            transformation_log=list(self.executor.transformation_log),
            step_errors=step_errors,
            duration_ms=duration_ms,
        )

        get_logging_manager().log_operation_complete(
            "resurrection",
            duration_ms / 1000,
            repo_path=repo,
            resurrected=verdict.resurrected,
            failed_steps=sorted(step_errors),
        )
        return report

    def _step(self, name: str, step_errors: dict[str, str], action) -> Any:
        with trace_operation(f"resurrection.{name}", {"step": name}):
            try:
                return action()
            except Exception as e:
                step_errors[name] = str(e)
                get_logging_manager().log_operation_error(f"resurrection.{name}", e)
                return None
