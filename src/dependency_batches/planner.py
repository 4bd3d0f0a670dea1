"""
Groups planned dependency updates into ordered, risk-scored batches.
"""

import re

from ..shared_utilities import get_logger
from .data_models import ResurrectionPlanItem, RiskLevel, UpdateBatch

DEFAULT_MAX_BATCH_SIZE = 10
DEFAULT_LARGE_BATCH_THRESHOLD = 6

SECURITY_BATCH_PRIORITY = 1000
MAJOR_BATCH_PRIORITY = 500
MINOR_BATCH_PRIORITY = 100

_RANGE_PREFIX = re.compile(r"^[\^~>=<v\s]+")
_LEADING_NUMBER = re.compile(r"^(\d+)")


def major_version(version: str) -> int | None:
    """Leading numeric segment of a version or range, ignoring range operators."""
    cleaned = _RANGE_PREFIX.sub("", version or "")
    match = _LEADING_NUMBER.match(cleaned)
    return int(match.group(1)) if match else None


def is_major_bump(current_version: str, target_version: str) -> bool:
    """True when the major version changes; unparseable versions never count."""
    current = major_version(current_version)
    target = major_version(target_version)
    if current is None or target is None:
        return False
    return current != target


class BatchPlanner:
    """
    Turns a flat update plan into batches.

    Security fixes go first, every major bump gets a batch of its own so a
    failure can be rolled back to exactly one commit, and the remaining
    minor/patch updates are grouped.
    """

    def __init__(
        self,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        large_batch_threshold: int = DEFAULT_LARGE_BATCH_THRESHOLD,
    ):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if large_batch_threshold < 1:
            raise ValueError("large_batch_threshold must be at least 1")
        self.logger = get_logger(__name__)
        self.max_batch_size = max_batch_size
        self.large_batch_threshold = large_batch_threshold

    def create_batches(self, items: list[ResurrectionPlanItem]) -> list[UpdateBatch]:
        security = [item for item in items if item.fixes_vulnerabilities]
        others = [item for item in items if not item.fixes_vulnerabilities]
        major = [
            item
            for item in others
            if is_major_bump(item.current_version, item.target_version)
        ]
        minor = [
            item
            for item in others
            if not is_major_bump(item.current_version, item.target_version)
        ]

        batches: list[UpdateBatch] = []

        for chunk in self._chunk(self._by_priority(security)):
            batches.append(
                self._new_batch(
                    len(batches), chunk, SECURITY_BATCH_PRIORITY, self.estimate_risk(chunk)
                )
            )

        for item in self._by_priority(major):
            batches.append(
                self._new_batch(len(batches), [item], MAJOR_BATCH_PRIORITY, RiskLevel.HIGH)
            )

        for chunk in self._chunk(self._by_priority(minor)):
            batches.append(
                self._new_batch(
                    len(batches), chunk, MINOR_BATCH_PRIORITY, self.estimate_risk(chunk)
                )
            )

        self.logger.info(
            "Update batches planned",
            items=len(items),
            batches=len(batches),
            security=len(security),
            major=len(major),
            minor=len(minor),
        )
        return batches

    def estimate_risk(self, items: list[ResurrectionPlanItem]) -> RiskLevel:
        if not items:
            return RiskLevel.LOW
        if any(is_major_bump(i.current_version, i.target_version) for i in items):
            return RiskLevel.HIGH
        if len(items) >= self.large_batch_threshold:
            return RiskLevel.HIGH
        if any(item.fixes_vulnerabilities for item in items):
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def reorder_for_safety(self, batches: list[UpdateBatch]) -> list[UpdateBatch]:
        """Highest priority first, lower risk first among equals; stable."""
        return sorted(
            batches, key=lambda batch: (-batch.priority, batch.estimated_risk.rank)
        )

    def _by_priority(self, items: list[ResurrectionPlanItem]) -> list[ResurrectionPlanItem]:
        return sorted(items, key=lambda item: -item.priority)

    def _chunk(
        self, items: list[ResurrectionPlanItem]
    ) -> list[list[ResurrectionPlanItem]]:
        return [
            items[i : i + self.max_batch_size]
            for i in range(0, len(items), self.max_batch_size)
        ]

    def _new_batch(
        self,
        index: int,
        items: list[ResurrectionPlanItem],
        priority: int,
        risk: RiskLevel,
    ) -> UpdateBatch:
        return UpdateBatch(
            id=f"batch-{index + 1}",
            packages=list(items),
            priority=priority,
            estimated_risk=risk,
        )
