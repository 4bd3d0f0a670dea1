"""Tests for compilation strategy detection."""

from conftest import write_manifest

from src.compilation_proof.data_models import CompilationStrategy, ProjectKind
from src.compilation_proof.strategy import (
    STRATEGY_COMMANDS,
    detect_compilation_strategy,
    detect_project_kind,
    plan_for_strategy,
)


class TestDetectCompilationStrategy:
    """Test detect_compilation_strategy precedence."""

    def test_tsconfig_wins_over_everything(self, tmp_path):
        (tmp_path / "tsconfig.json").write_text("{}")
        (tmp_path / "vite.config.ts").write_text("")
        write_manifest(tmp_path, {"scripts": {"build": "vite build"}})

        assert detect_compilation_strategy(tmp_path) is CompilationStrategy.TYPESCRIPT

    def test_vite_before_webpack(self, tmp_path):
        (tmp_path / "vite.config.mjs").write_text("")
        (tmp_path / "webpack.config.js").write_text("")
        assert detect_compilation_strategy(tmp_path) is CompilationStrategy.VITE

    def test_webpack(self, tmp_path):
        (tmp_path / "webpack.config.js").write_text("")
        assert detect_compilation_strategy(tmp_path) is CompilationStrategy.WEBPACK

    def test_build_script(self, npm_repo):
        assert detect_compilation_strategy(npm_repo) is CompilationStrategy.NPM_BUILD

    def test_custom_when_nothing_matches(self, tmp_path):
        assert detect_compilation_strategy(tmp_path) is CompilationStrategy.CUSTOM


class TestDetectProjectKind:
    """Test detect_project_kind."""

    def test_typescript_dependency(self, npm_repo):
        assert detect_project_kind(npm_repo) is ProjectKind.TYPESCRIPT

    def test_plain_javascript(self, tmp_path):
        write_manifest(tmp_path, {"dependencies": {"express": "^4.0.0"}})
        assert detect_project_kind(tmp_path) is ProjectKind.JAVASCRIPT

    def test_unknown_without_manifest(self, tmp_path):
        assert detect_project_kind(tmp_path) is ProjectKind.UNKNOWN


class TestPlanForStrategy:
    """Test plan_for_strategy."""

    def test_typecheck_uses_typecheck_timeout(self, tmp_path):
        plan = plan_for_strategy(CompilationStrategy.TYPESCRIPT, tmp_path, 1000, 5000)

        assert plan.command == ["npx", "tsc", "--noEmit"]
        assert plan.timeout_ms == 1000

    def test_bundler_uses_build_timeout(self, tmp_path):
        plan = plan_for_strategy(CompilationStrategy.VITE, tmp_path, 1000, 5000)
        assert plan.timeout_ms == 5000

    def test_custom_with_build_script_runs_generic_build(self, npm_repo):
        plan = plan_for_strategy(CompilationStrategy.CUSTOM, npm_repo)
        assert plan.command == STRATEGY_COMMANDS[CompilationStrategy.NPM_BUILD]

    def test_custom_without_build_script_runs_nothing(self, tmp_path):
        plan = plan_for_strategy(CompilationStrategy.CUSTOM, tmp_path)
        assert plan.command is None
