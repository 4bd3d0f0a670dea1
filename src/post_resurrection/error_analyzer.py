"""
Turns raw build output into categorized, prioritized errors.

Output from npm, yarn, node-gyp and tsc is split into individual error
messages, each message is matched against an ordered category table (first
match wins) and package details are pulled from the text where possible.
Nothing in here raises on odd input: unrecognized output becomes a single
``unknown`` error.
"""

import re

from ..shared_utilities import get_logger
from .data_models import (
    AnalyzedError,
    CompilationResult,
    FixStrategy,
    PackageInfo,
    ValidationErrorCategory,
)
from .fix_strategy_engine import customize_strategy, default_strategies

Category = ValidationErrorCategory

# Ordered: the first category with a matching pattern wins.
CATEGORY_PATTERNS: list[tuple[ValidationErrorCategory, list[re.Pattern]]] = [
    (
        Category.LOCKFILE_CONFLICT,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"\bENOLOCK\b",
                r"\bEINTEGRITY\b",
                r"lock\s?file",
                r"package-lock\.json",
                r"yarn\.lock",
                r"pnpm-lock\.yaml",
            )
        ],
    ),
    (
        Category.DEPENDENCY_VERSION_CONFLICT,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"\bERESOLVE\b",
                r"Could not resolve dependency",
                r"unable to resolve dependency tree",
                r"conflicting (?:peer )?dependenc",
                r"version conflict",
                r"No matching version found",
                r"\bETARGET\b",
                r"\bnotarget\b",
            )
        ],
    ),
    (
        Category.PEER_DEPENDENCY_CONFLICT,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"peer dep(?:endency)? missing",
                r"peerDependencies",
                r"requires a peer",
                r"unmet peer",
                r"\bpeer\s+@?[\w./-]+@",
            )
        ],
    ),
    (
        Category.NATIVE_MODULE_FAILURE,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"gyp ERR!",
                r"node-gyp",
                r"node-pre-gyp",
                r"prebuild-install",
                r"binding\.gyp",
                r"NODE_MODULE_VERSION",
                r"compiled against a different Node\.js version",
            )
        ],
    ),
    (
        Category.GIT_DEPENDENCY_FAILURE,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"git dep preparation failed",
                r"Could not resolve git",
                r"git\+(?:ssh|https?|git)://",
                r"Permission denied \(publickey\)",
                r"\bgit ls-remote\b",
                r"fatal: (?:repository|could not read)",
            )
        ],
    ),
    (
        Category.DEPENDENCY_NOT_FOUND,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"Cannot find module",
                r"Module not found",
                r"\bMODULE_NOT_FOUND\b",
                r"Can't resolve",
                r"\bE404\b",
                r"404 Not Found",
                r"is not in (?:the|this) (?:npm )?registry",
            )
        ],
    ),
    (
        Category.SYNTAX_ERROR,
        [
            re.compile(p, re.IGNORECASE)
            for p in (
                r"SyntaxError",
                r"Parse error",
                r"Unexpected token",
                r"Unexpected identifier",
                r"\bTS1\d{3}\b",
            )
        ],
    ),
    (
        Category.TYPE_ERROR,
        [
            re.compile(p)
            for p in (
                r"TypeError",
                r"\bTS2\d{3}\b",
                r"is not assignable to",
                r"Property '[^']+' does not exist",
            )
        ],
    ),
]

CATEGORY_PRIORITIES: dict[ValidationErrorCategory, int] = {
    Category.LOCKFILE_CONFLICT: 100,
    Category.DEPENDENCY_VERSION_CONFLICT: 90,
    Category.PEER_DEPENDENCY_CONFLICT: 85,
    Category.GIT_DEPENDENCY_FAILURE: 80,
    Category.NATIVE_MODULE_FAILURE: 75,
    Category.DEPENDENCY_NOT_FOUND: 70,
    Category.SYNTAX_ERROR: 40,
    Category.TYPE_ERROR: 30,
    Category.UNKNOWN: 10,
}

ERROR_START_PATTERNS = [
    re.compile(r"^npm ERR!"),
    re.compile(r"^error\s", re.IGNORECASE),
    re.compile(r"^Error:"),
    re.compile(r"^SyntaxError:"),
    re.compile(r"^TypeError:"),
    re.compile(r"^Cannot find module"),
    re.compile(r"^Module not found"),
    re.compile(r"ERESOLVE"),
    re.compile(r"node-gyp"),
    re.compile(r"gyp ERR!"),
    re.compile(r"^TS\d+:"),
    re.compile(r"^\s*\d+:\d+\s+error"),
    re.compile(r"^.+\(\d+,\d+\):\s*error"),
    re.compile(r"^.+:\d+:\d+\s*-\s*error"),
]

# npm/gyp log lines belong to one block until the next ``npm ERR! code``
BLOCK_PREFIXES = ("npm ERR!", "gyp ERR!")
NPM_BLOCK_START = re.compile(r"^npm ERR! code\s")

NOISE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^npm WARN",
        r"^warning",
        r"^info",
        r"^debug",
        r"^>\s",
        r"^Compiling",
        r"^Building",
        r"^Done in",
        r"^added \d+ packages",
        r"^npm ERR! A complete log of this run",
    )
]

MAX_MESSAGE_LENGTH = 2000

KNOWN_NATIVE_MODULES = [
    "bcrypt",
    "node-sass",
    "sharp",
    "canvas",
    "sqlite3",
    "fsevents",
    "deasync",
    "fibers",
]

_MODULE_NOT_FOUND = [
    re.compile(r"Cannot find module ['\"]([^'\"]+)['\"]"),
    re.compile(r"Can't resolve ['\"]([^'\"]+)['\"]"),
    re.compile(r"Module not found:.*?['\"]([^'\"]+)['\"]"),
]
_NOT_IN_REGISTRY = re.compile(
    r"['\"](@?[^'\"@\s]+)@([^'\"\s]+)['\"] is not in (?:the|this)", re.IGNORECASE
)
_REGISTRY_404 = re.compile(r"404 Not Found\s*-\s*GET\s+\S+/(@?[^\s/]+(?:%2[fF][^\s/]+)?)")
_ERESOLVE_PACKAGE = re.compile(
    r"Could not resolve dependency:?\s*(?:npm ERR!\s*)?(?:peer\s+)?"
    r"(@?[^\s@]+)@\"?([^\s\"]+)\"?"
)
_NO_MATCHING_VERSION = re.compile(r"No matching version found for (@?[^\s@]+)@(\S+)")
_CONFLICTING = re.compile(
    r"(?:requires|wants)\s+(?:a\s+)?(?:peer\s+)?(?:of\s+)?(@?[^\s@]+)@(\S+)"
)
_PEER_FROM = re.compile(
    r"peer\s+(@?[^\s@]+)@\"([^\"]+)\"\s+from\s+(@?[^\s@]+)@(\S+)"
)
_PEER_MISSING = re.compile(
    r"peer dep(?:endency)? missing:\s*(@?[^\s@,]+)@([^\s,]+)", re.IGNORECASE
)
_REQUIRES_PEER = re.compile(r"requires a peer of\s+(@?[^\s@]+)@(\S+)", re.IGNORECASE)
_NODE_MODULES_PATH = re.compile(r"node_modules/(@[^/\s]+/[^/\s]+|[^/\s@]+)")
_NATIVE_SUBJECT = re.compile(
    r"(?:node-gyp|gyp ERR!|prebuild-install).*?\b(?:for|in|building)\s+['\"]?([^'\"@\s,]+)",
    re.IGNORECASE,
)
_FAILED_FOR = re.compile(r"failed\s+for\s+['\"]?([A-Za-z0-9_-]+)", re.IGNORECASE)
_KNOWN_NATIVE = re.compile(
    r"\b(" + "|".join(re.escape(name) for name in KNOWN_NATIVE_MODULES) + r")\b"
)
_GITHUB_SLUG = re.compile(r"github\.com[/:]([\w.-]+)/([\w-]+(?:\.(?!git\b)[\w-]+)*)")
_GIT_SUBJECT = re.compile(
    r"(?:git dep preparation failed(?:\s+for)?|Could not resolve git dependency)"
    r"\s+['\"]?(@?[^'\"@\s:]+)",
    re.IGNORECASE,
)
_GENERIC_PACKAGE = re.compile(r"(@?[\w.-]+(?:/[\w.-]+)?)@([~^<>=]*\d[\w.*-]*)")


def _normalize_module_name(specifier: str) -> str | None:
    """Map an import specifier to its package name; None for file paths."""
    if specifier.startswith((".", "/")) or re.match(r"^[A-Za-z]:[\\/]", specifier):
        return None
    parts = specifier.split("/")
    if specifier.startswith("@"):
        return "/".join(parts[:2]) if len(parts) >= 2 else None
    return parts[0] or None


class ErrorAnalyzer:
    """Categorizes build errors and pulls out package details."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def analyze(self, result: CompilationResult) -> list[AnalyzedError]:
        """
        Analyze a compilation result.

        A successful result yields no errors. A failing one always yields at
        least one, falling back to a single ``unknown`` error.
        """
        if result.success:
            return []

        output = result.output or ""
        errors: dict[str, AnalyzedError] = {}

        try:
            for message in self._split_messages(output):
                category = self.categorize(message)
                if category is Category.UNKNOWN and self._is_noise(message):
                    continue
                info = self.extract_package_info(message, category)
                self._merge(errors, self._build_error(category, message, info))
        except Exception as e:
            # Classification must never take the repair loop down
            self.logger.warning(
                "Failed to analyze build output",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            errors = {}

        if not errors:
            message = output.strip()[:MAX_MESSAGE_LENGTH] or (
                f"Build failed with exit code {result.exit_code}"
            )
            return [self._build_error(Category.UNKNOWN, message, PackageInfo())]

        analyzed = list(errors.values())
        self.logger.debug(
            "Analyzed build output",
            error_count=len(analyzed),
            categories=sorted({e.category.value for e in analyzed}),
        )
        return analyzed

    def categorize(self, message: str) -> ValidationErrorCategory:
        for category, patterns in CATEGORY_PATTERNS:
            if any(pattern.search(message) for pattern in patterns):
                return category
        return Category.UNKNOWN

    def prioritize(self, errors: list[AnalyzedError]) -> list[AnalyzedError]:
        """Sort highest priority first; ties keep their original order."""
        return sorted(errors, key=lambda error: -error.priority)

    def extract_package_info(
        self, message: str, category: ValidationErrorCategory
    ) -> PackageInfo:
        """Pull a package name, version constraint and conflicts out of a message."""
        extractors = {
            Category.DEPENDENCY_NOT_FOUND: self._extract_missing_module,
            Category.DEPENDENCY_VERSION_CONFLICT: self._extract_version_conflict,
            Category.PEER_DEPENDENCY_CONFLICT: self._extract_peer_conflict,
            Category.NATIVE_MODULE_FAILURE: self._extract_native_module,
            Category.GIT_DEPENDENCY_FAILURE: self._extract_git_dependency,
        }
        extractor = extractors.get(category)
        info = extractor(message) if extractor else None
        conflicts = tuple(
            f"{name}@{version}" for name, version in _CONFLICTING.findall(message)
        )

        if info is None or info.package_name is None:
            if category in (Category.SYNTAX_ERROR, Category.TYPE_ERROR):
                return PackageInfo(conflicting_packages=conflicts)
            match = _GENERIC_PACKAGE.search(message)
            if match:
                info = PackageInfo(match.group(1), match.group(2))
            else:
                info = PackageInfo()

        return PackageInfo(
            package_name=info.package_name,
            version_constraint=info.version_constraint,
            conflicting_packages=info.conflicting_packages or conflicts,
        )

    def suggest_fix(
        self, error: AnalyzedError, package_manager: str = "npm"
    ) -> FixStrategy | None:
        """The first default strategy for the error, tailored to it."""
        candidates = default_strategies(error.category)
        if not candidates:
            return None
        return customize_strategy(candidates[0], error, package_manager)

    def _extract_missing_module(self, message: str) -> PackageInfo | None:
        for pattern in _MODULE_NOT_FOUND:
            match = pattern.search(message)
            if match:
                name = _normalize_module_name(match.group(1))
                if name:
                    return PackageInfo(name)
                return None
        match = _NOT_IN_REGISTRY.search(message)
        if match:
            return PackageInfo(match.group(1), match.group(2))
        match = _REGISTRY_404.search(message)
        if match:
            return PackageInfo(match.group(1).replace("%2f", "/").replace("%2F", "/"))
        return None

    def _extract_version_conflict(self, message: str) -> PackageInfo | None:
        for pattern in (_ERESOLVE_PACKAGE, _NO_MATCHING_VERSION):
            match = pattern.search(message)
            if match:
                return PackageInfo(match.group(1), match.group(2))
        return None

    def _extract_peer_conflict(self, message: str) -> PackageInfo | None:
        match = _PEER_FROM.search(message)
        if match:
            return PackageInfo(
                match.group(1),
                match.group(2),
                (f"{match.group(3)}@{match.group(4)}",),
            )
        for pattern in (_PEER_MISSING, _REQUIRES_PEER):
            match = pattern.search(message)
            if match:
                return PackageInfo(match.group(1), match.group(2))
        return None

    def _extract_native_module(self, message: str) -> PackageInfo | None:
        match = _NODE_MODULES_PATH.search(message)
        if match:
            return PackageInfo(match.group(1))
        match = _KNOWN_NATIVE.search(message)
        if match:
            return PackageInfo(match.group(1))
        for pattern in (_NATIVE_SUBJECT, _FAILED_FOR):
            match = pattern.search(message)
            if match:
                return PackageInfo(match.group(1))
        return None

    def _extract_git_dependency(self, message: str) -> PackageInfo | None:
        match = _GITHUB_SLUG.search(message)
        if match:
            return PackageInfo(match.group(2))
        match = _GIT_SUBJECT.search(message)
        if match:
            return PackageInfo(match.group(1))
        return None

    def _split_messages(self, output: str) -> list[str]:
        messages: list[str] = []
        current: list[str] = []

        for line in output.splitlines():
            if not line.strip():
                continue
            starts_error = any(p.search(line) for p in ERROR_START_PATTERNS)
            continues_block = (
                bool(current)
                and line.startswith(BLOCK_PREFIXES)
                and current[0].startswith(BLOCK_PREFIXES)
                and not NPM_BLOCK_START.match(line)
            )
            if starts_error and current and not continues_block:
                messages.append("\n".join(current))
                current = []
            if starts_error or current:
                current.append(line)

        if current:
            messages.append("\n".join(current))

        if not messages and output.strip():
            messages.append(output.strip())
        return messages

    def _is_noise(self, message: str) -> bool:
        first_line = message.lstrip().splitlines()[0] if message.strip() else ""
        return any(pattern.search(first_line) for pattern in NOISE_PATTERNS)

    def _build_error(
        self, category: ValidationErrorCategory, message: str, info: PackageInfo
    ) -> AnalyzedError:
        return AnalyzedError(
            category=category,
            message=message[:MAX_MESSAGE_LENGTH],
            package_name=info.package_name,
            version_constraint=info.version_constraint,
            conflicting_packages=list(info.conflicting_packages),
            priority=CATEGORY_PRIORITIES[category],
        )

    def _merge(self, errors: dict[str, AnalyzedError], error: AnalyzedError) -> None:
        key = f"{error.category.value}:{error.package_name or 'none'}"
        existing = errors.get(key)
        if existing is None:
            errors[key] = error
            return
        for conflict in error.conflicting_packages:
            if conflict not in existing.conflicting_packages:
                existing.conflicting_packages.append(conflict)
