"""
Chooses remediation strategies for analyzed build errors.

The engine is pure bookkeeping: it proposes strategies and remembers which
ones were already tried in the current run. Applying a strategy to the
working tree is the job of a fix applier.
"""

import re

from ..shared_utilities import get_logger
from .data_models import (
    AddResolution,
    AdjustVersion,
    AnalyzedError,
    FixHistory,
    FixStrategy,
    ForceInstall,
    LegacyPeerDeps,
    RemoveLockfile,
    RemovePackage,
    SubstitutePackage,
    ValidationErrorCategory,
)

Category = ValidationErrorCategory

# Templates; package-specific fields are filled in by ``customize_strategy``.
DEFAULT_FIX_STRATEGIES: dict[ValidationErrorCategory, list[FixStrategy]] = {
    Category.DEPENDENCY_NOT_FOUND: [
        AdjustVersion("", "latest"),
        RemoveLockfile(),
        ForceInstall(),
    ],
    Category.DEPENDENCY_VERSION_CONFLICT: [
        AddResolution("", "*"),
        AdjustVersion("", "latest"),
        LegacyPeerDeps(),
        ForceInstall(),
    ],
    Category.PEER_DEPENDENCY_CONFLICT: [
        LegacyPeerDeps(),
        AddResolution("", "*"),
        ForceInstall(),
    ],
    Category.NATIVE_MODULE_FAILURE: [
        SubstitutePackage("", ""),
        RemovePackage(""),
    ],
    Category.LOCKFILE_CONFLICT: [
        RemoveLockfile(),
        ForceInstall(),
    ],
    Category.GIT_DEPENDENCY_FAILURE: [
        RemovePackage(""),
        ForceInstall(),
    ],
    Category.SYNTAX_ERROR: [],
    Category.TYPE_ERROR: [],
    Category.UNKNOWN: [
        ForceInstall(),
        RemoveLockfile(),
    ],
}

NATIVE_MODULE_ALTERNATIVES = {
    "bcrypt": "bcryptjs",
    "node-sass": "sass",
    "sqlite3": "better-sqlite3",
    "fibers": "",
    "deasync": "",
}

PACKAGE_MANAGER_LOCKFILES = {
    "npm": "package-lock.json",
    "yarn": "yarn.lock",
    "pnpm": "pnpm-lock.yaml",
}

_RANGE_PREFIX = re.compile(r"^[\^~>=<v\s]+")
_EXACT_VERSION = re.compile(r"^\d+\.\d+\.\d+")


def error_pattern(error: AnalyzedError) -> str:
    """Normalized signature used to match errors against the fix history."""
    return f"{error.category.value}:{error.package_name or 'none'}"


def default_strategies(category: ValidationErrorCategory) -> list[FixStrategy]:
    return list(DEFAULT_FIX_STRATEGIES.get(category, []))


def customize_strategy(
    template: FixStrategy, error: AnalyzedError, package_manager: str = "npm"
) -> FixStrategy | None:
    """
    Fill a strategy template with the error's package details.

    Returns None when the template needs a package the error does not name.
    """
    package = error.package_name

    if isinstance(template, AdjustVersion):
        if not package:
            return None
        target = "latest"
        if error.version_constraint:
            candidate = _RANGE_PREFIX.sub("", error.version_constraint)
            if _EXACT_VERSION.match(candidate):
                target = _EXACT_VERSION.match(candidate).group(0)
        return AdjustVersion(package, target)

    if isinstance(template, AddResolution):
        if not package:
            return None
        return AddResolution(package, error.version_constraint or "*")

    if isinstance(template, SubstitutePackage):
        replacement = NATIVE_MODULE_ALTERNATIVES.get(package or "")
        if not package or not replacement:
            return None
        return SubstitutePackage(package, replacement)

    if isinstance(template, RemovePackage):
        if not package:
            return None
        return RemovePackage(package)

    if isinstance(template, RemoveLockfile):
        return RemoveLockfile(
            PACKAGE_MANAGER_LOCKFILES.get(package_manager, "package-lock.json")
        )

    return template


class FixStrategyEngine:
    """Proposes fix strategies and tracks which were attempted this run."""

    def __init__(self, package_manager: str = "npm", skip_native_modules: bool = False):
        """
        Args:
            package_manager: Decides which lockfile ``remove_lockfile`` targets
            skip_native_modules: Drop failing native modules instead of
                looking for pure-JS replacements
        """
        self.logger = get_logger(__name__)
        self.package_manager = package_manager
        self.skip_native_modules = skip_native_modules
        self._attempted: dict[str, set[str]] = {}

    def candidate_strategies(self, error: AnalyzedError) -> list[FixStrategy]:
        """Default strategies for the error, customized and de-duplicated."""
        if (
            self.skip_native_modules
            and error.category is Category.NATIVE_MODULE_FAILURE
        ):
            templates: list[FixStrategy] = [RemovePackage("")]
        else:
            templates = default_strategies(error.category)

        strategies: list[FixStrategy] = []
        seen: set[str] = set()
        for template in templates:
            strategy = customize_strategy(template, error, self.package_manager)
            if strategy is not None and strategy.key not in seen:
                seen.add(strategy.key)
                strategies.append(strategy)
        return strategies

    def historical_strategies(
        self, error: AnalyzedError, history: FixHistory | None
    ) -> list[FixStrategy]:
        if history is None:
            return []
        pattern = error_pattern(error)
        matches = [fix for fix in history.fixes if fix.error_pattern == pattern]
        matches.sort(key=lambda fix: (fix.success_count, fix.last_used), reverse=True)
        return [fix.strategy for fix in matches]

    def select_strategy(
        self, error: AnalyzedError, history: FixHistory | None = None
    ) -> FixStrategy | None:
        """
        Pick the next strategy for an error.

        A strategy that fixed the same pattern before wins, provided it has not
        been tried in this run; otherwise the first untried default candidate.
        Returns None once everything has been attempted.
        """
        for strategy in self.historical_strategies(error, history):
            if not self.is_attempted(error, strategy):
                self.logger.debug(
                    "Using strategy from fix history",
                    pattern=error_pattern(error),
                    strategy=strategy.key,
                )
                return strategy

        for strategy in self.candidate_strategies(error):
            if not self.is_attempted(error, strategy):
                return strategy

        return None

    def has_untried_strategies(
        self, error: AnalyzedError, history: FixHistory | None = None
    ) -> bool:
        return self.select_strategy(error, history) is not None

    def is_attempted(self, error: AnalyzedError, strategy: FixStrategy) -> bool:
        return strategy.key in self._attempted.get(error_pattern(error), set())

    def mark_strategy_attempted(
        self, error: AnalyzedError, strategy: FixStrategy
    ) -> None:
        self._attempted.setdefault(error_pattern(error), set()).add(strategy.key)

    def reset_attempted_strategies(self) -> None:
        self._attempted.clear()

    @property
    def attempted_count(self) -> int:
        return sum(len(keys) for keys in self._attempted.values())
