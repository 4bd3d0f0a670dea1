"""
Compilation proof toolkit.

Runs baseline and final compilation checks and turns them into a verdict on
whether a repository was resurrected.
"""

from .core import (
    CompilationProofEngine,
    CompilationProofError,
    failed_compilation,
    format_verdict_summary,
)
from .data_models import (
    BaselineCompilationResult,
    CategorizedError,
    CompilationStrategy,
    ErrorCategory,
    FixSuggestion,
    ProjectKind,
    ResurrectionVerdict,
)
from .parser import categorize_error, generate_fix_suggestions, parse_compilation_errors
from .strategy import detect_compilation_strategy, detect_project_kind

__all__ = [
    "CompilationProofEngine",
    "CompilationProofError",
    "failed_compilation",
    "format_verdict_summary",
    "BaselineCompilationResult",
    "CategorizedError",
    "CompilationStrategy",
    "ErrorCategory",
    "FixSuggestion",
    "ProjectKind",
    "ResurrectionVerdict",
    "categorize_error",
    "generate_fix_suggestions",
    "parse_compilation_errors",
    "detect_compilation_strategy",
    "detect_project_kind",
]
