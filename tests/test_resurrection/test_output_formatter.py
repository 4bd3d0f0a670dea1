"""Tests for resurrection output formatting."""

import json

import pytest
import yaml

from src.compilation_proof.core import CompilationProofEngine, format_verdict_summary
from src.compilation_proof.data_models import (
    BaselineCompilationResult,
    CategorizedError,
    ErrorCategory,
)
from src.compilation_proof.parser import count_by_category, generate_fix_suggestions
from src.dependency_batches.data_models import RollbackResult
from src.post_resurrection.data_models import (
    AnalyzedError,
    AppliedFix,
    FixHistory,
    FixResult,
    ForceInstall,
    HistoricalFix,
    PostResurrectionValidationResult,
    RemoveLockfile,
    ValidationErrorCategory,
    ValidationState,
)
from src.resurrection.output_formatter import MAX_LISTED_ERRORS, ResurrectionFormatter

ERROR = CategorizedError(
    "src/app.ts", 4, 2, "TS2307", "Cannot find module 'react'", ErrorCategory.IMPORT
)


def snapshot(success, errors=()):
    errors = list(errors)
    counts = count_by_category(errors)
    return BaselineCompilationResult(
        timestamp="2024-01-01T00:00:00+00:00",
        success=success,
        error_count=len(errors),
        errors=errors,
        errors_by_category=counts,
        suggested_fixes=generate_fix_suggestions(counts, errors),
    )


class TestResurrectionFormatter:
    """Test ResurrectionFormatter views."""

    def setup_method(self):
        self.formatter = ResurrectionFormatter()

    def test_baseline_view(self):
        output = self.formatter.format(
            snapshot(False, [ERROR]).to_dict(), "table", view="baseline", title="Baseline"
        )

        assert "Baseline: ❌ FAIL" in output
        assert "src/app.ts:4" in output
        assert "TS2307" in output
        assert "$ npm install react" in output

    def test_long_error_lists_are_capped(self):
        errors = [
            CategorizedError("src/a.ts", i, 1, "TS2322", "Type mismatch", ErrorCategory.TYPE)
            for i in range(MAX_LISTED_ERRORS + 5)
        ]

        output = self.formatter.format(snapshot(False, errors).to_dict(), view="baseline")

        assert "... and 5 more" in output

    def test_verdict_view_includes_summary(self):
        verdict = CompilationProofEngine().generate_resurrection_verdict(
            snapshot(False, [ERROR]), snapshot(True)
        )

        output = self.formatter.format(
            verdict.to_dict(), view="verdict", summary=format_verdict_summary(verdict)
        )

        assert "🎉 RESURRECTED" in output
        assert "Resurrection successful" in output
        assert "Errors fixed: 1" in output

    def test_validation_view(self):
        error = AnalyzedError(ValidationErrorCategory.LOCKFILE_CONFLICT, "ENOLOCK", priority=100)
        result = PostResurrectionValidationResult(
            success=False,
            iterations=3,
            state=ValidationState.FAILURE_MAX_ITERATIONS,
            applied_fixes=[
                AppliedFix(1, error, RemoveLockfile(), FixResult(True, RemoveLockfile()))
            ],
            remaining_errors=[error],
        )

        output = self.formatter.format(result.to_dict(), view="validation")

        assert "Post-Resurrection Validation: ❌ FAIL" in output
        assert "State: failure_max_iterations" in output
        assert RemoveLockfile().describe() in output
        assert "lockfile_conflict: ENOLOCK" in output

    def test_rollback_views(self):
        success = RollbackResult(
            success=True,
            rolled_back_commit="0123456789",
            rolled_back_message="chore(deps): update react\n",
            current_commit="abcdef0123",
        )
        failure = RollbackResult(success=False, error="no parent commit")

        assert "Reverted: 01234567" in self.formatter.format(
            success.to_dict(), view="rollback"
        )
        assert "Error: no parent commit" in self.formatter.format(
            failure.to_dict(), view="rollback"
        )

    def test_history_views(self):
        empty = FixHistory(repo_id="repo")
        filled = FixHistory(
            repo_id="repo",
            fixes=[HistoricalFix("lockfile_conflict:none", ForceInstall(), 2, "2024-01-01")],
            last_resurrection="2024-01-01",
        )

        assert "No fixes recorded." in self.formatter.format(empty.to_dict(), view="history")
        output = self.formatter.format(filled.to_dict(), view="history")
        assert "lockfile_conflict:none" in output
        assert ForceInstall().describe() in output

    def test_unknown_view(self):
        with pytest.raises(ValueError):
            self.formatter.format({}, "table", view="nope")

    def test_json_and_yaml_round_trip_data(self):
        data = snapshot(False, [ERROR]).to_dict()

        assert json.loads(self.formatter.format(data, "json")) == data
        assert yaml.safe_load(self.formatter.format(data, "yaml")) == data

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            self.formatter.format({}, "xml")

    def test_save_creates_parent_directories(self, tmp_path):
        target = tmp_path / "reports" / "baseline.json"

        self.formatter.save(snapshot(True).to_dict(), target, "json")

        assert json.loads(target.read_text())["success"] is True
