"""
Post-resurrection validation toolkit.

Compiles a repository after its dependencies were updated, classifies what is
still broken and applies fixes until the build passes or the loop gives up.
"""

from .compilation_runner import CompilationRunner
from .data_models import (
    AddResolution,
    AdjustVersion,
    AnalyzedError,
    AppliedFix,
    CompilationProof,
    CompilationResult,
    FixHistory,
    FixResult,
    FixStrategy,
    ForceInstall,
    HistoricalFix,
    LegacyPeerDeps,
    PostResurrectionValidationResult,
    RemoveLockfile,
    RemovePackage,
    SubstitutePackage,
    ValidationErrorCategory,
    ValidationOptions,
    ValidationState,
)
from .error_analyzer import ErrorAnalyzer
from .fix_applier import ManifestError, ManifestFixApplier
from .fix_history_store import FixHistoryError, FixHistoryStore
from .fix_strategy_engine import FixStrategyEngine, error_pattern
from .validator import PostResurrectionValidator

__all__ = [
    "CompilationRunner",
    "ErrorAnalyzer",
    "FixStrategyEngine",
    "FixHistoryStore",
    "FixHistoryError",
    "ManifestFixApplier",
    "ManifestError",
    "PostResurrectionValidator",
    "error_pattern",
    "AnalyzedError",
    "AppliedFix",
    "CompilationProof",
    "CompilationResult",
    "FixHistory",
    "FixResult",
    "FixStrategy",
    "HistoricalFix",
    "PostResurrectionValidationResult",
    "ValidationErrorCategory",
    "ValidationOptions",
    "ValidationState",
    "AdjustVersion",
    "LegacyPeerDeps",
    "RemoveLockfile",
    "SubstitutePackage",
    "RemovePackage",
    "AddResolution",
    "ForceInstall",
]
