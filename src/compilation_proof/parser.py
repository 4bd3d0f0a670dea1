"""
Parsing and categorization of compiler and bundler diagnostics.
"""

import re

from .data_models import (
    CategorizedError,
    ErrorCategory,
    FixSuggestion,
    empty_category_counts,
)

# file.ts(12,5): error TS2307: Cannot find module 'x'.
TS_PAREN_PATTERN = re.compile(r"^(.+?)\((\d+),(\d+)\):\s*error\s+(TS\d+):\s*(.+)$")
# file.ts:12:5 - error TS2307: Cannot find module 'x'.
TS_COLON_PATTERN = re.compile(r"^(.+?):(\d+):(\d+)\s*-\s*error\s+(TS\d+):\s*(.+)$")

MODULE_NOT_FOUND_PATTERN = re.compile(
    r"Module not found:\s*(?:Error:\s*)?(?:Can't resolve\s*)?['\"]?([^'\"\s]+)['\"]?"
)
GENERIC_ERROR_PATTERN = re.compile(r"Error:\s*(.+)")
MISSING_MODULE_PATTERN = re.compile(r"Cannot find module ['\"]([^'\"]+)['\"]")

MAX_SUGGESTION_DETAILS = 5
UNKNOWN_FILE = "unknown"

IMPORT_KEYWORDS = (
    "module",
    "resolve",
    "has no exported member",
    "is not exported",
    "import",
    "export",
)
SYNTAX_KEYWORDS = ("unexpected", "expected", "syntax", "parsing")
DEPENDENCY_KEYWORDS = ("peer dep", "dependency", "version", "npm err")
CONFIG_KEYWORDS = ("tsconfig", "config", "webpack", "vite", "babel", "rollup")

SUGGESTION_DESCRIPTIONS = {
    ErrorCategory.TYPE: "Fix type errors introduced by updated type definitions",
    ErrorCategory.IMPORT: "Resolve missing or renamed imports",
    ErrorCategory.SYNTAX: "Fix syntax the current toolchain no longer accepts",
    ErrorCategory.DEPENDENCY: "Reinstall dependencies and resolve version conflicts",
    ErrorCategory.CONFIG: "Update build configuration for the current toolchain",
}


def categorize_error(code: str, message: str) -> ErrorCategory:
    """
    Categorize a diagnostic.

    TypeScript codes are mapped by range first; anything else falls back to
    keywords in the message.
    """
    lower = (message or "").lower()

    ts_match = re.fullmatch(r"TS(\d+)", code or "")
    if ts_match:
        number = int(ts_match.group(1))
        if 1000 <= number < 2000:
            return ErrorCategory.SYNTAX
        if number in (2307, 2305):
            return ErrorCategory.IMPORT
        if number == 2304:
            if "module" in lower or "import" in lower:
                return ErrorCategory.IMPORT
            return ErrorCategory.TYPE
        if 2000 <= number < 3000:
            return ErrorCategory.TYPE
        if 5000 <= number < 7000:
            return ErrorCategory.CONFIG

    if code == "MODULE_NOT_FOUND" or any(k in lower for k in IMPORT_KEYWORDS):
        return ErrorCategory.IMPORT
    if any(k in lower for k in SYNTAX_KEYWORDS):
        return ErrorCategory.SYNTAX
    if any(k in lower for k in DEPENDENCY_KEYWORDS):
        return ErrorCategory.DEPENDENCY
    if any(k in lower for k in CONFIG_KEYWORDS):
        return ErrorCategory.CONFIG
    return ErrorCategory.TYPE


def _package_from_specifier(specifier: str) -> str | None:
    if specifier.startswith((".", "/")):
        return None
    parts = specifier.split("/")
    if specifier.startswith("@"):
        return "/".join(parts[:2]) if len(parts) >= 2 else None
    return parts[0] or None


def _install_hint(message: str) -> str | None:
    match = MISSING_MODULE_PATTERN.search(message)
    if not match:
        return None
    package = _package_from_specifier(match.group(1))
    return f"npm install {package}" if package else None


def parse_typescript_errors(output: str) -> list[CategorizedError]:
    """Parse tsc diagnostics in either layout, de-duplicated by (file, line, code)."""
    errors: list[CategorizedError] = []
    seen: set[tuple[str, int, str]] = set()

    for raw_line in output.splitlines():
        line = raw_line.strip()
        match = TS_PAREN_PATTERN.match(line) or TS_COLON_PATTERN.match(line)
        if not match:
            continue

        file, line_no, column, code, message = match.groups()
        key = (file.strip(), int(line_no), code)
        if key in seen:
            continue
        seen.add(key)

        category = categorize_error(code, message)
        errors.append(
            CategorizedError(
                file=file.strip(),
                line=int(line_no),
                column=int(column),
                code=code,
                message=message.strip(),
                category=category,
                suggested_fix=(
                    _install_hint(message) if category is ErrorCategory.IMPORT else None
                ),
            )
        )

    return errors


def parse_npm_errors(output: str) -> list[CategorizedError]:
    """Parse bundler and npm output that carries no compiler locations."""
    errors: list[CategorizedError] = []
    seen_modules: set[str] = set()
    generic_count = 0

    for raw_line in output.splitlines():
        line = raw_line.strip()

        module_match = MODULE_NOT_FOUND_PATTERN.search(line)
        if module_match:
            module = module_match.group(1)
            if module in seen_modules:
                continue
            seen_modules.add(module)
            message = f"Cannot find module '{module}'"
            errors.append(
                CategorizedError(
                    file=UNKNOWN_FILE,
                    line=0,
                    column=0,
                    code="MODULE_NOT_FOUND",
                    message=message,
                    category=categorize_error("MODULE_NOT_FOUND", message),
                    suggested_fix=_install_hint(message),
                )
            )
            continue

        generic_match = GENERIC_ERROR_PATTERN.search(line)
        if generic_match and "can't resolve" not in line.lower():
            generic_count += 1
            code = f"ERR{generic_count}"
            message = generic_match.group(1).strip()
            errors.append(
                CategorizedError(
                    file=UNKNOWN_FILE,
                    line=0,
                    column=0,
                    code=code,
                    message=message,
                    category=categorize_error(code, message),
                )
            )

    return errors


def parse_compilation_errors(output: str) -> list[CategorizedError]:
    """Compiler diagnostics if there are any, bundler/npm errors otherwise."""
    errors = parse_typescript_errors(output)
    if errors:
        return errors
    return parse_npm_errors(output)


def count_by_category(errors: list[CategorizedError]) -> dict[str, int]:
    counts = empty_category_counts()
    for error in errors:
        counts[error.category.value] += 1
    return counts


def generate_fix_suggestions(
    errors_by_category: dict[str, int], errors: list[CategorizedError]
) -> list[FixSuggestion]:
    """One suggestion per category that has errors."""
    suggestions: list[FixSuggestion] = []

    for category in ErrorCategory:
        if errors_by_category.get(category.value, 0) <= 0:
            continue

        in_category = [e for e in errors if e.category is category]
        details = [
            f"{error.location} {error.code}: {error.message}"
            for error in in_category[:MAX_SUGGESTION_DETAILS]
        ]
        suggestion = FixSuggestion(
            category=category,
            description=SUGGESTION_DESCRIPTIONS[category],
            details=details,
        )

        if category is ErrorCategory.IMPORT:
            packages: list[str] = []
            for error in in_category:
                match = MISSING_MODULE_PATTERN.search(error.message)
                package = _package_from_specifier(match.group(1)) if match else None
                if package and package not in packages:
                    packages.append(package)
            if packages:
                suggestion.auto_applicable = True
                suggestion.command = f"npm install {' '.join(packages)}"
                suggestion.description = (
                    f"Install missing packages: {', '.join(packages)}"
                )
        elif category is ErrorCategory.DEPENDENCY:
            suggestion.auto_applicable = True
            suggestion.command = "npm install"

        suggestions.append(suggestion)

    return suggestions
