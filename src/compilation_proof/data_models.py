"""
Data models for compilation proofs and resurrection verdicts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    TYPE = "type"
    IMPORT = "import"
    SYNTAX = "syntax"
    DEPENDENCY = "dependency"
    CONFIG = "config"


class ProjectKind(Enum):
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    UNKNOWN = "unknown"


class CompilationStrategy(Enum):
    TYPESCRIPT = "typescript"
    VITE = "vite"
    WEBPACK = "webpack"
    NPM_BUILD = "npm-build"
    CUSTOM = "custom"


def empty_category_counts() -> dict[str, int]:
    return {category.value: 0 for category in ErrorCategory}


@dataclass
class CategorizedError:
    """A single diagnostic with its location and category."""

    file: str
    line: int
    column: int
    code: str
    message: str
    category: ErrorCategory
    suggested_fix: str | None = None

    @property
    def key(self) -> tuple[str, int, str, str]:
        """Structural identity used when diffing two compilations."""
        return (self.file, self.line, self.code, self.message)

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "suggested_fix": self.suggested_fix,
        }


@dataclass
class FixSuggestion:
    """Advice for one error category."""

    category: ErrorCategory
    description: str
    details: list[str] = field(default_factory=list)
    auto_applicable: bool = False
    command: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "description": self.description,
            "details": list(self.details),
            "auto_applicable": self.auto_applicable,
            "command": self.command,
        }


@dataclass
class BaselineCompilationResult:
    """Snapshot of one proof run, taken before or after the resurrection."""

    timestamp: str
    success: bool
    error_count: int
    errors: list[CategorizedError] = field(default_factory=list)
    errors_by_category: dict[str, int] = field(default_factory=empty_category_counts)
    output: str = ""
    project_kind: ProjectKind = ProjectKind.UNKNOWN
    strategy: CompilationStrategy = CompilationStrategy.CUSTOM
    suggested_fixes: list[FixSuggestion] = field(default_factory=list)

    def to_dict(self, include_output: bool = False) -> dict[str, Any]:
        data = {
            "timestamp": self.timestamp,
            "success": self.success,
            "error_count": self.error_count,
            "errors_by_category": dict(self.errors_by_category),
            "project_kind": self.project_kind.value,
            "strategy": self.strategy.value,
            "errors": [error.to_dict() for error in self.errors],
            "suggested_fixes": [fix.to_dict() for fix in self.suggested_fixes],
        }
        if include_output:
            data["output"] = self.output
        return data


@dataclass
class ResurrectionVerdict:
    """Diff between the baseline and final compilations."""

    baseline_compilation: BaselineCompilationResult
    final_compilation: BaselineCompilationResult
    resurrected: bool
    errors_fixed: int
    errors_remaining: int
    errors_fixed_by_category: dict[str, int]
    errors_remaining_by_category: dict[str, int]
    fixed_errors: list[CategorizedError] = field(default_factory=list)
    new_errors: list[CategorizedError] = field(default_factory=list)
    match_mode: str = "exact"

    def to_dict(self) -> dict[str, Any]:
        return {
            "resurrected": self.resurrected,
            "errors_fixed": self.errors_fixed,
            "errors_remaining": self.errors_remaining,
            "errors_fixed_by_category": dict(self.errors_fixed_by_category),
            "errors_remaining_by_category": dict(self.errors_remaining_by_category),
            "fixed_errors": [error.to_dict() for error in self.fixed_errors],
            "new_errors": [error.to_dict() for error in self.new_errors],
            "match_mode": self.match_mode,
            "baseline": self.baseline_compilation.to_dict(),
            "final": self.final_compilation.to_dict(),
        }
