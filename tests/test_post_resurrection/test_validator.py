"""Tests for the post-resurrection repair loop."""

import os
import textwrap
from unittest.mock import Mock

import pytest
from conftest import write_manifest

from src.post_resurrection.compilation_runner import CompilationRunner
from src.post_resurrection.data_models import (
    AnalyzedError,
    CompilationResult,
    FixResult,
    RemoveLockfile,
    ValidationErrorCategory,
    ValidationOptions,
    ValidationState,
)
from src.post_resurrection.error_analyzer import ErrorAnalyzer
from src.post_resurrection.fix_history_store import FixHistoryStore
from src.post_resurrection.validator import PostResurrectionValidator
from src.shared_utilities.observer import ResurrectionObserver

Category = ValidationErrorCategory

PASS = CompilationResult(success=True, exit_code=0, stdout="ok", command="npm run build")


def fail(stderr: str) -> CompilationResult:
    return CompilationResult(success=False, exit_code=1, stderr=stderr, status="failed")


class ScriptedRunner(CompilationRunner):
    """Returns queued results; the last one repeats forever."""

    def __init__(self, results):
        super().__init__()
        self.results = list(results)
        self.calls = 0

    def resolve_package_manager(self, repo_path, options):
        return "npm"

    def resolve_build_command(self, repo_path, options):
        return "build"

    def compile(self, repo_path, options=None):
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class ScriptedAnalyzer(ErrorAnalyzer):
    """Returns queued error lists instead of parsing output."""

    def __init__(self, batches):
        super().__init__()
        self.batches = list(batches)

    def analyze(self, result):
        if len(self.batches) > 1:
            return self.batches.pop(0)
        return self.batches[0]


class FreshErrorAnalyzer(ErrorAnalyzer):
    """Adversarial: a brand-new, never-fixed error every iteration."""

    def __init__(self):
        super().__init__()
        self.counter = 0

    def analyze(self, result):
        self.counter += 1
        return [
            AnalyzedError(
                Category.DEPENDENCY_NOT_FOUND,
                f"Cannot find module 'pkg-{self.counter}'",
                package_name=f"pkg-{self.counter}",
                priority=70,
            )
        ]


class RecordingObserver(ResurrectionObserver):
    def __init__(self):
        self.events = []

    def on_iteration_start(self, iteration, max_iterations):
        self.events.append(("iteration_start", iteration))

    def on_error_analysis(self, iteration, errors):
        self.events.append(("error_analysis", iteration))

    def on_fix_applied(self, iteration, error, strategy):
        self.events.append(("fix_applied", iteration))

    def on_fix_outcome(self, iteration, applied_fix):
        self.events.append(("fix_outcome", iteration))

    def on_validation_complete(self, result):
        self.events.append(("validation_complete", result.state))


def succeeding_applier():
    applier = Mock()
    applier.apply.side_effect = lambda repo, strategy, options=None: FixResult(
        True, strategy
    )
    return applier


def make_validator(runner, tmp_path, analyzer=None, applier=None, observer=None):
    return PostResurrectionValidator(
        runner=runner,
        analyzer=analyzer or ErrorAnalyzer(),
        applier=applier or succeeding_applier(),
        history_store=FixHistoryStore(tmp_path / "history"),
        observer=observer,
    )


class TestValidate:
    """Test PostResurrectionValidator.validate."""

    def test_passing_build_succeeds_immediately(self, tmp_path):
        validator = make_validator(ScriptedRunner([PASS]), tmp_path)

        result = validator.validate(tmp_path, ValidationOptions())

        assert result.success
        assert result.state is ValidationState.SUCCESS
        assert result.iterations == 1
        assert result.applied_fixes == []
        assert result.compilation_proof.iterations_required == 1
        assert result.compilation_proof.build_command == "npm run build"

    def test_fix_then_pass_records_history(self, tmp_path):
        runner = ScriptedRunner([fail("Error: Cannot find module 'lodash'"), PASS])
        validator = make_validator(runner, tmp_path)

        result = validator.validate(tmp_path)

        assert result.success
        assert result.iterations == 2
        assert len(result.applied_fixes) == 1
        assert result.applied_fixes[0].strategy.key == "adjust_version:lodash:latest"
        history_file = validator.history_store.history_path(str(tmp_path))
        assert history_file.exists()
        stored = FixHistoryStore(tmp_path / "history").load(str(tmp_path))
        assert [fix.strategy.key for fix in stored.fixes] == ["adjust_version:lodash:latest"]
        assert stored.fixes[0].success_count == 1

    def test_failed_run_leaves_history_untouched(self, tmp_path):
        runner = ScriptedRunner([fail("npm ERR! code ENOLOCK")])
        validator = make_validator(runner, tmp_path)

        result = validator.validate(tmp_path, ValidationOptions(max_iterations=3))

        assert result.state is ValidationState.FAILURE_MAX_ITERATIONS
        assert all(fix.result.success for fix in result.applied_fixes)
        assert validator.history_store.get_history(str(tmp_path)).fixes == []
        assert not validator.history_store.history_path(str(tmp_path)).exists()

    def test_validator_passes_resolved_options_to_applier(self, tmp_path):
        runner = ScriptedRunner([fail("Error: Cannot find module 'lodash'"), PASS])
        applier = succeeding_applier()
        validator = make_validator(runner, tmp_path, applier=applier)

        validator.validate(tmp_path, ValidationOptions(timeout_ms=1234))

        options = applier.apply.call_args.args[2]
        assert options.package_manager == "npm"
        assert options.timeout_ms == 1234

    def test_adversarial_analyzer_stops_at_max_iterations(self, tmp_path):
        runner = ScriptedRunner([fail("still broken")])
        validator = make_validator(runner, tmp_path, analyzer=FreshErrorAnalyzer())

        result = validator.validate(tmp_path, ValidationOptions(max_iterations=5))

        assert result.state is ValidationState.FAILURE_MAX_ITERATIONS
        assert result.iterations == 5
        assert runner.calls == 5
        assert len(result.remaining_errors) == 1

    def test_unfixable_errors_stop_with_no_progress(self, tmp_path):
        runner = ScriptedRunner([fail("SyntaxError: Unexpected token <")])
        validator = make_validator(runner, tmp_path)

        result = validator.validate(tmp_path, ValidationOptions(max_iterations=10))

        assert result.state is ValidationState.FAILURE_NO_PROGRESS
        # three flat iterations after the first one
        assert result.iterations == 4
        assert result.applied_fixes == []
        assert result.remaining_errors[0].category is Category.SYNTAX_ERROR

    def test_exhausted_strategies_do_not_end_before_threshold(self, tmp_path):
        runner = ScriptedRunner([fail("npm ERR! code ENOLOCK")])
        validator = make_validator(runner, tmp_path)

        result = validator.validate(tmp_path, ValidationOptions(max_iterations=3))

        # remove_lockfile and force_install, then one idle iteration
        assert len(result.applied_fixes) == 2
        assert result.state is ValidationState.FAILURE_MAX_ITERATIONS
        assert result.iterations == 3

    def test_error_count_decrease_resets_tried_strategies(self, tmp_path):
        lockfile = AnalyzedError(Category.LOCKFILE_CONFLICT, "ENOLOCK", priority=100)
        conflict = AnalyzedError(
            Category.DEPENDENCY_VERSION_CONFLICT, "ERESOLVE", "react", "^17.0.0", priority=90
        )
        runner = ScriptedRunner([fail("x"), fail("x"), PASS])
        analyzer = ScriptedAnalyzer([[lockfile, conflict], [lockfile]])
        validator = make_validator(runner, tmp_path, analyzer=analyzer)

        result = validator.validate(tmp_path)

        assert result.success
        strategies = [fix.strategy for fix in result.applied_fixes]
        assert strategies == [RemoveLockfile(), RemoveLockfile()]

    def test_zero_iterations_budget(self, tmp_path):
        runner = ScriptedRunner([PASS])
        validator = make_validator(runner, tmp_path)

        result = validator.validate(tmp_path, ValidationOptions(max_iterations=0))

        assert result.iterations == 0
        assert result.state is ValidationState.FAILURE_MAX_ITERATIONS
        assert runner.calls == 0

    def test_applier_exception_becomes_failed_fix(self, tmp_path):
        runner = ScriptedRunner([fail("Error: Cannot find module 'lodash'"), PASS])
        applier = Mock()
        applier.apply.side_effect = OSError("disk full")
        validator = make_validator(runner, tmp_path, applier=applier)

        result = validator.validate(tmp_path)

        assert result.success
        assert not result.applied_fixes[0].result.success
        assert "disk full" in result.applied_fixes[0].result.error
        assert not validator.history_store.history_path(str(tmp_path)).exists()

    def test_runner_exception_counts_as_failed_compile(self, tmp_path):
        runner = ScriptedRunner([PASS])
        runner.compile = Mock(side_effect=RuntimeError("spawn failed"))
        validator = make_validator(runner, tmp_path)

        result = validator.validate(tmp_path, ValidationOptions(max_iterations=2))

        assert not result.success
        assert result.iterations == 2

    def test_repository_without_build_script(self, tmp_path):
        (tmp_path / "package.json").write_text('{"name": "lib"}')
        validator = PostResurrectionValidator(
            history_store=FixHistoryStore(tmp_path / "history")
        )

        result = validator.validate(tmp_path)

        assert result.success
        assert result.iterations == 0

    def test_observer_sees_each_phase(self, tmp_path):
        runner = ScriptedRunner([fail("Error: Cannot find module 'lodash'"), PASS])
        observer = RecordingObserver()
        validator = make_validator(runner, tmp_path, observer=observer)

        validator.validate(tmp_path)

        assert observer.events == [
            ("iteration_start", 1),
            ("error_analysis", 1),
            ("fix_applied", 1),
            ("fix_outcome", 1),
            ("iteration_start", 2),
            ("validation_complete", ValidationState.SUCCESS),
        ]

    def test_failing_observer_does_not_break_the_loop(self, tmp_path):
        observer = Mock(spec=ResurrectionObserver)
        observer.on_iteration_start.side_effect = RuntimeError("sink down")
        validator = make_validator(ScriptedRunner([PASS]), tmp_path, observer=observer)

        result = validator.validate(tmp_path)

        assert result.success


FAKE_NPM = """\
#!/bin/sh
echo "$*" >> calls.log
if [ "$1" = "install" ]; then
    touch installed.marker
    exit 0
fi
if [ -f installed.marker ]; then
    echo "built"
    exit 0
fi
echo "npm ERR! code ENOLOCK" >&2
exit 1
"""


@pytest.mark.skipif(os.name != "posix", reason="fake npm is a shell script")
class TestValidateWithPackageManager:
    """Run the loop against a stand-in npm that only builds after an install."""

    @pytest.fixture
    def fake_npm(self, tmp_path, monkeypatch):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        npm = bin_dir / "npm"
        npm.write_text(textwrap.dedent(FAKE_NPM))
        npm.chmod(0o755)
        monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
        return npm

    def test_fix_is_followed_by_install(self, tmp_path, fake_npm):
        repo = tmp_path / "repo"
        repo.mkdir()
        write_manifest(repo, {"name": "app", "scripts": {"build": "tsc"}})
        (repo / "package-lock.json").write_text("{}")
        validator = PostResurrectionValidator(
            history_store=FixHistoryStore(tmp_path / "history")
        )

        result = validator.validate(repo, ValidationOptions(max_iterations=5))

        assert result.state is ValidationState.SUCCESS
        assert result.iterations == 2
        assert [fix.strategy.key for fix in result.applied_fixes] == [
            "remove_lockfile:package-lock.json"
        ]
        assert (repo / "calls.log").read_text().splitlines() == [
            "run build",
            "install",
            "run build",
        ]
        assert not (repo / "package-lock.json").exists()
