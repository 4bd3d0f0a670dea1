"""
Injected progress observers.

Components never publish to a global emitter. They receive a
``ResurrectionObserver`` and call its hooks at fixed points of the pipeline;
what happens with those calls (log lines, a dashboard push, nothing) is up to
the caller.
"""

from typing import Any

from .logging_config import get_logger


class ResurrectionObserver:
    """Base observer. Every hook is a no-op, override the ones you need."""

    def on_iteration_start(self, iteration: int, max_iterations: int) -> None:
        pass

    def on_error_analysis(self, iteration: int, errors: list[Any]) -> None:
        pass

    def on_fix_applied(self, iteration: int, error: Any, strategy: Any) -> None:
        pass

    def on_fix_outcome(self, iteration: int, applied_fix: Any) -> None:
        pass

    def on_validation_complete(self, result: Any) -> None:
        pass

    def on_batch_started(self, batch: Any, index: int, total: int) -> None:
        pass

    def on_batch_completed(self, batch: Any, result: Any) -> None:
        pass

    def on_package_update_started(self, item: Any) -> None:
        pass

    def on_package_update_completed(self, item: Any, outcome: Any) -> None:
        pass

    def on_compilation_check(self, label: str, result: Any) -> None:
        pass

    def on_verdict(self, verdict: Any) -> None:
        pass


NullObserver = ResurrectionObserver


class LoggingObserver(ResurrectionObserver):
    """Narrates pipeline progress as structured log lines."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def on_iteration_start(self, iteration: int, max_iterations: int) -> None:
        self.logger.info(
            "Validation iteration started",
            iteration=iteration,
            max_iterations=max_iterations,
        )

    def on_error_analysis(self, iteration: int, errors: list[Any]) -> None:
        by_category: dict[str, int] = {}
        for error in errors:
            key = getattr(error.category, "value", str(error.category))
            by_category[key] = by_category.get(key, 0) + 1
        self.logger.info(
            "Build errors analyzed",
            iteration=iteration,
            error_count=len(errors),
            by_category=by_category,
        )

    def on_fix_applied(self, iteration: int, error: Any, strategy: Any) -> None:
        self.logger.info(
            "Applying fix",
            iteration=iteration,
            fix=strategy.describe(),
            package=error.package_name,
        )

    def on_fix_outcome(self, iteration: int, applied_fix: Any) -> None:
        result = applied_fix.result
        if result.success:
            self.logger.info(
                "Fix applied", iteration=iteration, fix=applied_fix.strategy.key
            )
        else:
            self.logger.warning(
                "Fix failed",
                iteration=iteration,
                fix=applied_fix.strategy.key,
                error=result.error,
            )

    def on_validation_complete(self, result: Any) -> None:
        self.logger.info(
            "Validation complete",
            state=result.state.value,
            iterations=result.iterations,
            fixes_applied=len(result.applied_fixes),
        )

    def on_batch_started(self, batch: Any, index: int, total: int) -> None:
        self.logger.info(
            "Batch started",
            batch_id=batch.id,
            position=f"{index}/{total}",
            packages=len(batch.packages),
            risk=batch.estimated_risk.value,
        )

    def on_batch_completed(self, batch: Any, result: Any) -> None:
        self.logger.info(
            "Batch completed",
            batch_id=batch.id,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )

    def on_package_update_started(self, item: Any) -> None:
        self.logger.info(
            "Updating package",
            package=item.package_name,
            current=item.current_version,
            target=item.target_version,
        )

    def on_package_update_completed(self, item: Any, outcome: Any) -> None:
        if outcome.success:
            self.logger.info("Package updated", package=item.package_name)
        else:
            self.logger.warning(
                "Package update failed",
                package=item.package_name,
                error=outcome.error,
                rolled_back=outcome.rolled_back,
            )

    def on_compilation_check(self, label: str, result: Any) -> None:
        self.logger.info(
            "Compilation check finished",
            label=label,
            success=result.success,
            error_count=result.error_count,
        )

    def on_verdict(self, verdict: Any) -> None:
        self.logger.info(
            "Resurrection verdict",
            resurrected=verdict.resurrected,
            errors_fixed=verdict.errors_fixed,
            errors_remaining=verdict.errors_remaining,
        )


class ObserverDispatcher(ResurrectionObserver):
    """
    Fans each hook out to several observers.

    A failing observer is logged and skipped; it never interrupts the
    component that emitted the event.
    """

    def __init__(self, observers: list[ResurrectionObserver] | None = None):
        self.observers = list(observers or [])
        self.logger = get_logger(__name__)

    def add(self, observer: ResurrectionObserver) -> None:
        self.observers.append(observer)

    def _dispatch(self, hook: str, *args: Any) -> None:
        for observer in self.observers:
            try:
                getattr(observer, hook)(*args)
            except Exception as e:
                self.logger.warning(
                    "Observer hook failed",
                    hook=hook,
                    observer=type(observer).__name__,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )

    def on_iteration_start(self, iteration: int, max_iterations: int) -> None:
        self._dispatch("on_iteration_start", iteration, max_iterations)

    def on_error_analysis(self, iteration: int, errors: list[Any]) -> None:
        self._dispatch("on_error_analysis", iteration, errors)

    def on_fix_applied(self, iteration: int, error: Any, strategy: Any) -> None:
        self._dispatch("on_fix_applied", iteration, error, strategy)

    def on_fix_outcome(self, iteration: int, applied_fix: Any) -> None:
        self._dispatch("on_fix_outcome", iteration, applied_fix)

    def on_validation_complete(self, result: Any) -> None:
        self._dispatch("on_validation_complete", result)

    def on_batch_started(self, batch: Any, index: int, total: int) -> None:
        self._dispatch("on_batch_started", batch, index, total)

    def on_batch_completed(self, batch: Any, result: Any) -> None:
        self._dispatch("on_batch_completed", batch, result)

    def on_package_update_started(self, item: Any) -> None:
        self._dispatch("on_package_update_started", item)

    def on_package_update_completed(self, item: Any, outcome: Any) -> None:
        self._dispatch("on_package_update_completed", item, outcome)

    def on_compilation_check(self, label: str, result: Any) -> None:
        self._dispatch("on_compilation_check", label, result)

    def on_verdict(self, verdict: Any) -> None:
        self._dispatch("on_verdict", verdict)


def as_dispatcher(observer: ResurrectionObserver | None) -> ObserverDispatcher:
    """Wrap any observer (or None) so hook failures are contained."""
    if isinstance(observer, ObserverDispatcher):
        return observer
    return ObserverDispatcher([observer] if observer is not None else [])
