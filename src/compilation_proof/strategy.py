"""
Build-tool aware detection of how a project should be compiled.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .data_models import CompilationStrategy, ProjectKind

TYPECHECK_TIMEOUT_MS = 120_000
BUILD_TIMEOUT_MS = 300_000

VITE_CONFIGS = ["vite.config.js", "vite.config.ts", "vite.config.mjs"]
WEBPACK_CONFIGS = ["webpack.config.js"]

STRATEGY_COMMANDS: dict[CompilationStrategy, list[str]] = {
    CompilationStrategy.TYPESCRIPT: ["npx", "tsc", "--noEmit"],
    CompilationStrategy.VITE: ["npx", "vite", "build"],
    CompilationStrategy.WEBPACK: ["npx", "webpack", "--mode", "production"],
    CompilationStrategy.NPM_BUILD: ["npm", "run", "build"],
}


@dataclass
class StrategyPlan:
    """What to run for a detected strategy; ``command`` None means nothing to run."""

    strategy: CompilationStrategy
    command: list[str] | None
    timeout_ms: int


def _read_package_json(repo_path: Path) -> dict[str, Any]:
    try:
        data = json.loads((repo_path / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _has_build_script(repo_path: Path) -> bool:
    scripts = _read_package_json(repo_path).get("scripts") or {}
    return isinstance(scripts, dict) and "build" in scripts


def detect_compilation_strategy(repo_path: str | Path) -> CompilationStrategy:
    """First match wins: tsconfig, vite, webpack, build script, custom."""
    root = Path(repo_path)
    if (root / "tsconfig.json").exists():
        return CompilationStrategy.TYPESCRIPT
    if any((root / name).exists() for name in VITE_CONFIGS):
        return CompilationStrategy.VITE
    if any((root / name).exists() for name in WEBPACK_CONFIGS):
        return CompilationStrategy.WEBPACK
    if _has_build_script(root):
        return CompilationStrategy.NPM_BUILD
    return CompilationStrategy.CUSTOM


def detect_project_kind(repo_path: str | Path) -> ProjectKind:
    root = Path(repo_path)
    if (root / "tsconfig.json").exists():
        return ProjectKind.TYPESCRIPT
    manifest = _read_package_json(root)
    if manifest:
        dependencies = {
            **(manifest.get("dependencies") or {}),
            **(manifest.get("devDependencies") or {}),
        }
        if "typescript" in dependencies:
            return ProjectKind.TYPESCRIPT
        return ProjectKind.JAVASCRIPT
    return ProjectKind.UNKNOWN


def plan_for_strategy(
    strategy: CompilationStrategy,
    repo_path: str | Path,
    typecheck_timeout_ms: int = TYPECHECK_TIMEOUT_MS,
    build_timeout_ms: int = BUILD_TIMEOUT_MS,
) -> StrategyPlan:
    if strategy is CompilationStrategy.TYPESCRIPT:
        return StrategyPlan(strategy, STRATEGY_COMMANDS[strategy], typecheck_timeout_ms)
    if strategy is CompilationStrategy.CUSTOM:
        command = (
            STRATEGY_COMMANDS[CompilationStrategy.NPM_BUILD]
            if _has_build_script(Path(repo_path))
            else None
        )
        return StrategyPlan(strategy, command, build_timeout_ms)
    return StrategyPlan(strategy, STRATEGY_COMMANDS[strategy], build_timeout_ms)
