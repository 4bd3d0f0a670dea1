"""
Configuration system for resurrection runs.

Settings are layered: built-in defaults, then an optional JSON config file,
then ``RESURRECTION_*`` environment variables, then explicit overrides from
the command line.
"""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from ..post_resurrection.data_models import ValidationOptions
from ..shared_utilities import DEFAULT_MAX_OUTPUT_BYTES, ResurrectionError, get_logger

ENV_PREFIX = "RESURRECTION_"
PACKAGE_MANAGERS = ("auto", "npm", "yarn", "pnpm")


class ResurrectionConfigError(ResurrectionError):
    """Raised when a configuration value is missing or invalid."""

    pass


@dataclass
class ResurrectionSettings:
    """All tunables of a resurrection run."""

    max_iterations: int = 10
    no_progress_threshold: int = 3
    compile_timeout_ms: int = 300_000
    typecheck_timeout_ms: int = 120_000
    build_timeout_ms: int = 300_000
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    max_batch_size: int = 10
    large_batch_threshold: int = 6
    max_retries: int = 3
    history_dir: str | None = None
    package_manager: str = "auto"
    build_command: str | None = None
    skip_native_modules: bool = False

    def validate(self) -> None:
        """
        Raises:
            ResurrectionConfigError: If any value is out of range
        """
        if self.max_iterations < 0:
            raise ResurrectionConfigError("max_iterations must be >= 0")
        for name in (
            "no_progress_threshold",
            "compile_timeout_ms",
            "typecheck_timeout_ms",
            "build_timeout_ms",
            "max_output_bytes",
            "max_batch_size",
            "large_batch_threshold",
            "max_retries",
        ):
            if getattr(self, name) < 1:
                raise ResurrectionConfigError(f"{name} must be at least 1")
        if self.package_manager not in PACKAGE_MANAGERS:
            raise ResurrectionConfigError(
                f"package_manager must be one of {', '.join(PACKAGE_MANAGERS)}, "
                f"got {self.package_manager!r}"
            )

    def to_validation_options(self) -> ValidationOptions:
        return ValidationOptions(
            max_iterations=self.max_iterations,
            package_manager=self.package_manager,
            build_command=self.build_command,
            skip_native_modules=self.skip_native_modules,
            timeout_ms=self.compile_timeout_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


def _coerce(name: str, raw: Any, target: type | str) -> Any:
    """Convert a config-file or environment value to the field's type."""
    annotation = str(target)
    if raw is None:
        return None
    try:
        if "bool" in annotation:
            if isinstance(raw, bool):
                return raw
            value = str(raw).strip().lower()
            if value in ("1", "true", "yes", "on"):
                return True
            if value in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if "int" in annotation:
            if isinstance(raw, bool):
                raise ValueError(raw)
            return int(raw)
    except (TypeError, ValueError) as e:
        raise ResurrectionConfigError(f"Invalid value for {name}: {raw!r}") from e
    return str(raw)


class SettingsManager:
    """Builds ``ResurrectionSettings`` from file, environment and overrides."""

    def __init__(
        self,
        config_file: str | Path | None = None,
        environ: dict[str, str] | None = None,
    ):
        """Initialize settings manager.

        Args:
            config_file: Optional JSON file with setting names as keys
            environ: Environment mapping, defaults to ``os.environ``
        """
        self.logger = get_logger(__name__)
        self.config_file = Path(config_file) if config_file else None
        self.environ = environ if environ is not None else os.environ
        self._field_types = {f.name: f.type for f in fields(ResurrectionSettings)}

    def load(self, overrides: dict[str, Any] | None = None) -> ResurrectionSettings:
        """
        Resolve the effective settings.

        ``None`` values in ``overrides`` are ignored so unset CLI options do
        not clobber lower layers.

        Raises:
            ResurrectionConfigError: On unreadable files, unknown keys or
                invalid values
        """
        values: dict[str, Any] = {}
        values.update(self._from_file())
        values.update(self._from_environment())
        for name, value in (overrides or {}).items():
            if value is None:
                continue
            if name not in self._field_types:
                raise ResurrectionConfigError(f"Unknown setting: {name}")
            values[name] = value

        settings = replace(ResurrectionSettings(), **values)
        settings.validate()
        self.logger.debug("Settings resolved", **settings.to_dict())
        return settings

    def _from_file(self) -> dict[str, Any]:
        if self.config_file is None:
            return {}
        if not self.config_file.exists():
            raise ResurrectionConfigError(f"Config file not found: {self.config_file}")

        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ResurrectionConfigError(
                f"Failed to load config {self.config_file}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ResurrectionConfigError("Config file must contain a JSON object")

        values = {}
        for name, raw in data.items():
            if name not in self._field_types:
                raise ResurrectionConfigError(f"Unknown setting in config file: {name}")
            values[name] = _coerce(name, raw, self._field_types[name])

        self.logger.info(
            "Loaded configuration file", path=str(self.config_file), keys=len(values)
        )
        return values

    def _from_environment(self) -> dict[str, Any]:
        values = {}
        for name, field_type in self._field_types.items():
            raw = self.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            values[name] = _coerce(name, raw, field_type)
        return values
