"""
Base output formatter for console and machine-readable reports.

Tools render their results as a human-readable table by default and can emit
the same data as JSON or YAML for other tooling.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class OutputFormat:
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"

    @classmethod
    def choices(cls) -> list[str]:
        return [cls.TABLE, cls.JSON, cls.YAML]


class BaseOutputFormatter(ABC):
    """
    Abstract base class for output formatters.

    Subclasses only need to provide the table rendering; JSON and YAML work
    from the same dictionary.
    """

    def __init__(self):
        self._format_handlers = {
            OutputFormat.TABLE: self._format_table,
            OutputFormat.JSON: self._format_json,
            OutputFormat.YAML: self._format_yaml,
        }

    def format(
        self, data: dict[str, Any], format_type: str = OutputFormat.TABLE, **kwargs
    ) -> str:
        """
        Format data according to the specified format type.

        Args:
            data: Data to format
            format_type: One of ``OutputFormat.choices()``
            **kwargs: Additional format-specific options

        Returns:
            Formatted string output
        """
        handler = self._format_handlers.get(format_type)
        if not handler:
            raise ValueError(f"Unsupported format type: {format_type}")

        return handler(data, **kwargs)

    def save(
        self,
        data: dict[str, Any],
        output_path: str | Path,
        format_type: str = OutputFormat.JSON,
        **kwargs,
    ) -> None:
        """Write formatted data to a file, creating parent directories."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.format(data, format_type, **kwargs), encoding="utf-8")

    @abstractmethod
    def _format_table(self, data: dict[str, Any], **kwargs) -> str:
        """Format data as a human-readable table."""
        pass

    def _format_json(self, data: dict[str, Any], **kwargs) -> str:
        indent = kwargs.get("indent", 2)
        sort_keys = kwargs.get("sort_keys", False)
        return json.dumps(data, indent=indent, sort_keys=sort_keys, default=str)

    def _format_yaml(self, data: dict[str, Any], **kwargs) -> str:
        import yaml

        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


class TableFormatter:
    """Helper class for creating formatted text tables."""

    @staticmethod
    def create_table(
        headers: list[str],
        rows: list[list[str]],
        column_widths: list[int] | None = None,
        alignment: str = "left",
    ) -> str:
        """
        Create a formatted text table.

        Args:
            headers: Column headers
            rows: Data rows
            column_widths: Optional fixed column widths
            alignment: Text alignment (left, center, right)

        Returns:
            Formatted table as string
        """
        if not column_widths:
            column_widths = [len(h) for h in headers]
            for row in rows:
                for i, cell in enumerate(row):
                    column_widths[i] = max(column_widths[i], len(str(cell)))

        if alignment == "center":
            formats = [f"{{:^{w}}}" for w in column_widths]
        elif alignment == "right":
            formats = [f"{{:>{w}}}" for w in column_widths]
        else:
            formats = [f"{{:<{w}}}" for w in column_widths]

        lines = []
        header_row = " | ".join(
            fmt.format(h) for fmt, h in zip(formats, headers, strict=False)
        )
        lines.append(header_row)
        lines.append("-" * len(header_row))

        for row in rows:
            lines.append(
                " | ".join(
                    fmt.format(str(cell))
                    for fmt, cell in zip(formats, row, strict=False)
                )
            )

        return "\n".join(lines)
