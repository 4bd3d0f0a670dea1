"""
Data models for planning and executing dependency update batches.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class UpdateStatus(Enum):
    PENDING = "pending"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class ResurrectionPlanItem:
    """One planned dependency change, produced by an upstream planning stage."""

    package_name: str
    current_version: str
    target_version: str
    priority: int = 0
    reason: str = ""
    fixes_vulnerabilities: bool = False
    vulnerability_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResurrectionPlanItem":
        return cls(
            package_name=data["package_name"],
            current_version=str(data["current_version"]),
            target_version=str(data["target_version"]),
            priority=int(data.get("priority", 0)),
            reason=data.get("reason", ""),
            fixes_vulnerabilities=bool(data.get("fixes_vulnerabilities", False)),
            vulnerability_count=int(data.get("vulnerability_count", 0)),
        )


@dataclass
class UpdateBatch:
    """A group of plan items applied and validated together."""

    id: str
    packages: list[ResurrectionPlanItem]
    priority: int
    estimated_risk: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "estimated_risk": self.estimated_risk.value,
            "packages": [item.to_dict() for item in self.packages],
        }


@dataclass
class DependencyInfo:
    """Tracked state of one dependency during a resurrection run."""

    name: str
    current_version: str
    latest_version: str | None = None
    update_status: UpdateStatus = UpdateStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "current_version": self.current_version,
            "latest_version": self.latest_version,
            "update_status": self.update_status.value,
        }


@dataclass
class RollbackResult:
    success: bool
    rolled_back_commit: str | None = None
    rolled_back_message: str | None = None
    current_commit: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class UpdateOutcome:
    """Result of applying and checking one plan item."""

    package_name: str
    success: bool
    commit: str | None = None
    error: str | None = None
    rolled_back: bool = False
    rollback: RollbackResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "package_name": self.package_name,
            "success": self.success,
            "commit": self.commit,
            "error": self.error,
            "rolled_back": self.rolled_back,
            "rollback": self.rollback.to_dict() if self.rollback else None,
        }


@dataclass
class BatchExecutionResult:
    """Per-batch summary produced by the executor."""

    batch_id: str
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[UpdateOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> list[UpdateOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def rolled_back(self) -> list[UpdateOutcome]:
        return [outcome for outcome in self.outcomes if outcome.rolled_back]

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "rolled_back": len(self.rolled_back),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
