"""
Dependency batch planning, execution and rollback.
"""

from .data_models import (
    BatchExecutionResult,
    DependencyInfo,
    ResurrectionPlanItem,
    RiskLevel,
    RollbackResult,
    UpdateBatch,
    UpdateOutcome,
    UpdateStatus,
)
from .executor import BatchExecutor
from .planner import BatchPlanner, is_major_bump, major_version
from .rollback import (
    GitOperationError,
    RollbackService,
    create_rollback_log_entry,
    run_git,
)
from .updater import (
    CompilationCheck,
    DependencyUpdateError,
    DependencyUpdater,
    ManifestDependencyUpdater,
    PostUpdateCheck,
    TransientUpdateError,
)

__all__ = [
    "BatchPlanner",
    "BatchExecutor",
    "RollbackService",
    "ManifestDependencyUpdater",
    "CompilationCheck",
    "DependencyUpdater",
    "PostUpdateCheck",
    "GitOperationError",
    "DependencyUpdateError",
    "TransientUpdateError",
    "create_rollback_log_entry",
    "run_git",
    "is_major_bump",
    "major_version",
    "BatchExecutionResult",
    "DependencyInfo",
    "ResurrectionPlanItem",
    "RiskLevel",
    "RollbackResult",
    "UpdateBatch",
    "UpdateOutcome",
    "UpdateStatus",
]
