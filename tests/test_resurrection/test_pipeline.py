"""Tests for the end-to-end resurrection pipeline."""

from unittest.mock import Mock

import pytest

from src.compilation_proof.core import CompilationProofEngine
from src.compilation_proof.data_models import (
    BaselineCompilationResult,
    CategorizedError,
    ErrorCategory,
)
from src.compilation_proof.parser import count_by_category
from src.dependency_batches.data_models import DependencyInfo, UpdateOutcome
from src.post_resurrection.data_models import (
    PostResurrectionValidationResult,
    ValidationState,
)
from src.resurrection.config import ResurrectionConfigError, ResurrectionSettings
from src.resurrection.core import ResurrectionPipeline

BROKEN = CategorizedError(
    "src/index.ts", 1, 1, "TS2307", "Cannot find module 'react'", ErrorCategory.IMPORT
)


def snapshot(success, errors=()):
    errors = list(errors)
    return BaselineCompilationResult(
        timestamp="2024-01-01T00:00:00+00:00",
        success=success,
        error_count=len(errors),
        errors=errors,
        errors_by_category=count_by_category(errors),
    )


@pytest.fixture
def proof_engine():
    engine = CompilationProofEngine()
    engine.run_baseline_compilation = Mock(return_value=snapshot(False, [BROKEN]))
    engine.run_final_compilation = Mock(return_value=snapshot(True))
    return engine


@pytest.fixture
def validator():
    validator = Mock()
    validator.validate.return_value = PostResurrectionValidationResult(
        success=True, iterations=1, state=ValidationState.SUCCESS
    )
    return validator


@pytest.fixture
def updater():
    updater = Mock()
    updater.update.side_effect = lambda repo, item: UpdateOutcome(
        item.package_name, success=True, commit="abc"
    )
    return updater


@pytest.fixture
def passing_check():
    check = Mock()
    check.check.return_value = (True, "ok")
    return check


def make_pipeline(proof_engine, validator, updater, check, **settings):
    return ResurrectionPipeline(
        ResurrectionSettings(**settings),
        updater=updater,
        post_update_check=check,
        proof_engine=proof_engine,
        validator=validator,
        rollback_service=Mock(),
    )


class TestResurrectionPipeline:
    """Test ResurrectionPipeline.run."""

    def test_full_run(self, proof_engine, validator, updater, passing_check, make_plan_item):
        pipeline = make_pipeline(proof_engine, validator, updater, passing_check)
        items = [
            make_plan_item("lodash"),
            make_plan_item("react", "16.0.0", "17.0.2"),
            make_plan_item("minimist", security=True),
        ]
        dependencies = [DependencyInfo(i.package_name, i.current_version) for i in items]

        report = pipeline.run("/repo", items, dependencies)

        assert report.verdict.resurrected
        assert report.verdict.errors_fixed == 1
        assert report.step_errors == {}
        assert [b.packages[0].package_name for b in report.batches] == [
            "minimist",
            "react",
            "lodash",
        ]
        assert [c.args[1].package_name for c in updater.update.call_args_list] == [
            "minimist",
            "react",
            "lodash",
        ]
        assert report.validation.success
        options = validator.validate.call_args.args[1]
        assert options.max_iterations == 10

    def test_failing_step_is_recorded_and_run_continues(
        self, proof_engine, validator, updater, passing_check, make_plan_item
    ):
        validator.validate.side_effect = RuntimeError("validator crashed")
        pipeline = make_pipeline(proof_engine, validator, updater, passing_check)

        report = pipeline.run("/repo", [make_plan_item("lodash")])

        assert report.step_errors == {"validate": "validator crashed"}
        assert report.validation.state is ValidationState.FAILURE_NO_PROGRESS
        proof_engine.run_final_compilation.assert_called_once()
        assert report.verdict.resurrected

    def test_baseline_failure_still_yields_verdict(
        self, proof_engine, validator, updater, passing_check
    ):
        proof_engine.run_baseline_compilation.side_effect = OSError("disk gone")
        pipeline = make_pipeline(proof_engine, validator, updater, passing_check)

        report = pipeline.run("/repo", [])

        assert "baseline" in report.step_errors
        assert not report.baseline.success
        assert "disk gone" in report.baseline.output
        assert report.verdict is not None
        assert report.verdict.resurrected

    def test_everything_failing_still_returns_report(
        self, proof_engine, validator, updater, passing_check
    ):
        proof_engine.run_baseline_compilation.side_effect = RuntimeError("a")
        proof_engine.run_final_compilation.side_effect = RuntimeError("b")
        validator.validate.side_effect = RuntimeError("c")
        pipeline = make_pipeline(proof_engine, validator, updater, passing_check)

        report = pipeline.run("/repo", [])

        assert set(report.step_errors) == {"baseline", "validate", "final"}
        assert not report.verdict.resurrected
        assert not report.final.success
        assert report.to_dict()["resurrected"] is False

    def test_rollbacks_reach_the_transformation_log(
        self, proof_engine, validator, updater, make_plan_item
    ):
        check = Mock()
        check.check.return_value = (False, "tests failed")
        pipeline = make_pipeline(proof_engine, validator, updater, check)
        pipeline.executor.rollback_service.recover_from_failed_update.return_value = Mock(
            success=True, rolled_back_commit="abc12345", rolled_back_message="update"
        )

        report = pipeline.run("/repo", [make_plan_item("lodash")])

        assert report.batch_results[0].failed[0].rolled_back
        assert len(report.transformation_log) == 1

    def test_second_run_reports_only_its_own_rollbacks(
        self, proof_engine, validator, updater, make_plan_item
    ):
        check = Mock()
        check.check.return_value = (False, "tests failed")
        pipeline = make_pipeline(proof_engine, validator, updater, check)
        pipeline.executor.rollback_service.recover_from_failed_update.return_value = Mock(
            success=True, rolled_back_commit="abc12345", rolled_back_message="update"
        )

        first = pipeline.run("/repo", [make_plan_item("lodash")])
        second = pipeline.run("/repo", [make_plan_item("react")])

        assert len(first.transformation_log) == 1
        assert len(second.transformation_log) == 1
        assert "react" in second.transformation_log[0]

    def test_settings_reach_collaborators(self, proof_engine, validator, updater, passing_check):
        pipeline = make_pipeline(
            proof_engine, validator, updater, passing_check, max_batch_size=3, max_retries=5
        )

        assert pipeline.planner.max_batch_size == 3
        assert pipeline.executor.max_retries == 5

    def test_invalid_settings_rejected(self):
        with pytest.raises(ResurrectionConfigError):
            ResurrectionPipeline(ResurrectionSettings(max_batch_size=0))
