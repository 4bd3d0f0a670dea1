"""
Applies update batches one item at a time, rolling back items whose
post-update check fails.
"""

from pathlib import Path

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..shared_utilities import ResurrectionObserver, as_dispatcher, get_logger
from ..shared_utilities.telemetry import trace_operation
from .data_models import (
    BatchExecutionResult,
    DependencyInfo,
    ResurrectionPlanItem,
    UpdateBatch,
    UpdateOutcome,
    UpdateStatus,
)
from .planner import BatchPlanner
from .rollback import RollbackService, create_rollback_log_entry
from .updater import DependencyUpdater, PostUpdateCheck, TransientUpdateError

DEFAULT_MAX_RETRIES = 3


class BatchExecutor:
    """
    Runs batches strictly in safety order.

    A failing item never stops the run: its commit (if any) is rolled back,
    it is marked failed and execution moves on to the next item.
    """

    def __init__(
        self,
        updater: DependencyUpdater,
        post_update_check: PostUpdateCheck,
        rollback_service: RollbackService | None = None,
        observer: ResurrectionObserver | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_wait_seconds: float = 1.0,
    ):
        """
        Args:
            updater: Applies and commits a single plan item
            post_update_check: Build (and test) check run after each update
            rollback_service: Reverts the commit of a failed item
            observer: Receives batch and package progress events
            max_retries: Total attempts for updates failing with
                ``TransientUpdateError``
            retry_wait_seconds: Base of the exponential backoff between attempts
        """
        self.logger = get_logger(__name__)
        self.updater = updater
        self.post_update_check = post_update_check
        self.rollback_service = rollback_service or RollbackService()
        self.observer = as_dispatcher(observer)
        self.max_retries = max(1, max_retries)
        self.retry_wait_seconds = retry_wait_seconds
        self.transformation_log: list[str] = []

    def execute(
        self,
        repo_path: str | Path,
        batches: list[UpdateBatch],
        dependencies: list[DependencyInfo] | None = None,
    ) -> list[BatchExecutionResult]:
        """
        Run every batch in safety order.

        ``transformation_log`` is reset so it only covers this call.
        """
        self.transformation_log = []
        dependencies = dependencies if dependencies is not None else []
        ordered = BatchPlanner().reorder_for_safety(batches)
        results: list[BatchExecutionResult] = []

        for index, batch in enumerate(ordered, start=1):
            self.observer.on_batch_started(batch, index, len(ordered))
            with trace_operation(
                "batch_executor.batch",
                {"batch_id": batch.id, "packages": len(batch.packages)},
            ):
                result = BatchExecutionResult(batch_id=batch.id)
                for item in batch.packages:
                    result.outcomes.append(
                        self.execute_item(repo_path, item, dependencies)
                    )
            results.append(result)
            self.observer.on_batch_completed(batch, result)

        return results

    def execute_item(
        self,
        repo_path: str | Path,
        item: ResurrectionPlanItem,
        dependencies: list[DependencyInfo],
    ) -> UpdateOutcome:
        self.observer.on_package_update_started(item)

        try:
            outcome = self._update_with_retry(repo_path, item)
        except Exception as e:
            self.logger.warning(
                "Dependency update failed",
                package=item.package_name,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            outcome = UpdateOutcome(item.package_name, success=False, error=str(e))

        if outcome.success:
            outcome = self._verify(repo_path, item, outcome, dependencies)

        self._set_status(dependencies, item.package_name, outcome.success)
        self.observer.on_package_update_completed(item, outcome)
        return outcome

    def _verify(
        self,
        repo_path: str | Path,
        item: ResurrectionPlanItem,
        outcome: UpdateOutcome,
        dependencies: list[DependencyInfo],
    ) -> UpdateOutcome:
        try:
            passed, detail = self.post_update_check.check(repo_path)
        except Exception as e:
            passed, detail = False, str(e)

        if passed:
            return outcome

        error = f"Post-update check failed: {detail.strip()[-500:]}"
        if not outcome.commit:
            return UpdateOutcome(item.package_name, success=False, error=error)

        rollback = self.rollback_service.recover_from_failed_update(
            repo_path, item.package_name, dependencies
        )
        self.transformation_log.append(
            create_rollback_log_entry(item.package_name, rollback)
        )
        return UpdateOutcome(
            item.package_name,
            success=False,
            commit=outcome.commit,
            error=error,
            rolled_back=rollback.success,
            rollback=rollback,
        )

    def _update_with_retry(
        self, repo_path: str | Path, item: ResurrectionPlanItem
    ) -> UpdateOutcome:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=30),
            retry=retry_if_exception_type(TransientUpdateError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self.updater.update, repo_path, item)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            "Retrying dependency update",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries,
            error=str(exception),
        )

    def _set_status(
        self, dependencies: list[DependencyInfo], package_name: str, success: bool
    ) -> None:
        for dependency in dependencies:
            if dependency.name == package_name:
                dependency.update_status = (
                    UpdateStatus.UPDATED if success else UpdateStatus.FAILED
                )
