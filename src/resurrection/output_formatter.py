"""
Output formatting for resurrection results.
"""

from typing import Any

from ..post_resurrection.data_models import strategy_from_dict
from ..shared_utilities import BaseOutputFormatter, TableFormatter

MAX_LISTED_ERRORS = 20


def _status(success: bool) -> str:
    return "✅ PASS" if success else "❌ FAIL"


def _describe_strategy(data: dict[str, Any]) -> str:
    try:
        return strategy_from_dict(data).describe()
    except ValueError:
        return str(data.get("type", "unknown"))


class ResurrectionFormatter(BaseOutputFormatter):
    """
    Renders pipeline results.

    JSON and YAML output use the ``to_dict()`` form unchanged; the table view
    is chosen with the ``view`` keyword (baseline, verdict, validation, plan,
    rollback, history, report).
    """

    def __init__(self):
        super().__init__()
        self._views = {
            "baseline": self._baseline_table,
            "verdict": self._verdict_table,
            "validation": self._validation_table,
            "plan": self._plan_table,
            "rollback": self._rollback_table,
            "history": self._history_table,
            "report": self._report_table,
        }

    def _format_table(self, data: dict[str, Any], **kwargs) -> str:
        view = kwargs.get("view", "report")
        renderer = self._views.get(view)
        if renderer is None:
            raise ValueError(f"Unsupported table view: {view}")
        return "\n".join(renderer(data, **kwargs))

    def _baseline_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        title = kwargs.get("title", "Compilation Check")
        lines = [
            f"🔎 {title}: {_status(data['success'])}",
            f"Strategy: {data.get('strategy')}  Project: {data.get('project_kind')}",
            f"Errors: {data['error_count']}",
            "=" * 60,
        ]

        counts = data.get("errors_by_category", {})
        if any(counts.values()):
            lines.append("")
            lines.append(
                TableFormatter.create_table(
                    ["Category", "Errors"],
                    [[category, str(count)] for category, count in counts.items() if count],
                )
            )

        errors = data.get("errors", [])
        if errors:
            lines.append("")
            lines.append(
                TableFormatter.create_table(
                    ["Location", "Code", "Category", "Message"],
                    [
                        [
                            f"{e['file']}:{e['line']}",
                            e["code"],
                            e["category"],
                            e["message"][:80],
                        ]
                        for e in errors[:MAX_LISTED_ERRORS]
                    ],
                )
            )
            if len(errors) > MAX_LISTED_ERRORS:
                lines.append(f"... and {len(errors) - MAX_LISTED_ERRORS} more")

        suggestions = data.get("suggested_fixes", [])
        if suggestions:
            lines.append("")
            lines.append("Suggested fixes:")
            for suggestion in suggestions:
                auto = " (auto)" if suggestion.get("auto_applicable") else ""
                lines.append(f"  - {suggestion['description']}{auto}")
                if suggestion.get("command"):
                    lines.append(f"      $ {suggestion['command']}")
        return lines

    def _verdict_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        headline = "🎉 RESURRECTED" if data["resurrected"] else "🪦 NOT RESURRECTED"
        lines = [f"Verdict: {headline}", "=" * 60]
        for sentence in kwargs.get("summary") or []:
            lines.append(sentence)

        fixed = data.get("errors_fixed_by_category", {})
        remaining = data.get("errors_remaining_by_category", {})
        rows = [
            [category, str(fixed.get(category, 0)), str(remaining.get(category, 0))]
            for category in fixed
            if fixed.get(category) or remaining.get(category)
        ]
        lines.append("")
        lines.append(
            f"Errors fixed: {data['errors_fixed']}  "
            f"Errors remaining: {data['errors_remaining']}  "
            f"New errors: {len(data.get('new_errors', []))}"
        )
        if rows:
            lines.append(
                TableFormatter.create_table(["Category", "Fixed", "Remaining"], rows)
            )
        if data.get("match_mode") == "fuzzy":
            lines.append("Match mode: fuzzy (file, code)")
        return lines

    def _validation_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        lines = [
            f"🔧 Post-Resurrection Validation: {_status(data['success'])}",
            f"State: {data['state']}  Iterations: {data['iterations']}  "
            f"Duration: {data['duration_ms']}ms",
            data["summary"],
            "=" * 60,
        ]

        fixes = data.get("applied_fixes", [])
        if fixes:
            lines.append("")
            lines.append(
                TableFormatter.create_table(
                    ["Iter", "Error", "Strategy", "Applied"],
                    [
                        [
                            str(fix["iteration"]),
                            fix["error"]["category"],
                            _describe_strategy(fix["strategy"]),
                            "yes" if fix["success"] else "no",
                        ]
                        for fix in fixes
                    ],
                )
            )

        remaining = data.get("remaining_errors", [])
        if remaining:
            lines.append("")
            lines.append("Remaining errors:")
            for error in remaining[:MAX_LISTED_ERRORS]:
                package = f" [{error['package_name']}]" if error.get("package_name") else ""
                lines.append(f"  - {error['category']}{package}: {error['message'][:100]}")

        proof = data.get("compilation_proof")
        if proof:
            lines.append("")
            lines.append(
                f"Proof: {proof['build_command']} exit={proof['exit_code']} "
                f"sha256={proof['output_hash'][:16]}"
            )
        return lines

    def _plan_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        batches = data.get("batches", [])
        lines = [f"📋 Update Plan: {len(batches)} batch(es)", "=" * 60]
        for batch in batches:
            lines.append("")
            lines.append(
                f"{batch['id']}  priority={batch['priority']}  "
                f"risk={batch['estimated_risk']}"
            )
            lines.append(
                TableFormatter.create_table(
                    ["Package", "From", "To", "Security"],
                    [
                        [
                            item["package_name"],
                            item["current_version"],
                            item["target_version"],
                            "yes" if item.get("fixes_vulnerabilities") else "",
                        ]
                        for item in batch["packages"]
                    ],
                )
            )
        return lines

    def _rollback_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        if data["success"]:
            lines = [
                "↩️  Rollback: ✅ PASS",
                f"Reverted: {(data.get('rolled_back_commit') or '')[:8]}",
            ]
            message = (data.get("rolled_back_message") or "").strip()
            if message:
                lines.append(f"Message: {message.splitlines()[0]}")
            lines.append(f"HEAD is now: {(data.get('current_commit') or '')[:8]}")
            return lines
        return ["↩️  Rollback: ❌ FAIL", f"Error: {data.get('error')}"]

    def _history_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        fixes = data.get("fixes", [])
        lines = [
            f"📚 Fix History: {data['repo_id']}",
            f"Last resurrection: {data.get('last_resurrection') or 'never'}",
            "=" * 60,
        ]
        if not fixes:
            lines.append("No fixes recorded.")
            return lines
        lines.append(
            TableFormatter.create_table(
                ["Pattern", "Strategy", "Successes", "Last Used"],
                [
                    [
                        fix["error_pattern"],
                        _describe_strategy(fix["strategy"]),
                        str(fix["success_count"]),
                        fix.get("last_used", ""),
                    ]
                    for fix in fixes
                ],
            )
        )
        return lines

    def _report_table(self, data: dict[str, Any], **kwargs) -> list[str]:
        lines = [
            f"🧟 Resurrection Report: {data['repo_path']}",
            f"Started: {data['started_at']}  Duration: {data['duration_ms']}ms",
            "",
        ]
        lines.extend(self._baseline_table(data["baseline"], title="Baseline"))
        lines.append("")

        results = data.get("batch_results", [])
        if results:
            lines.append(
                TableFormatter.create_table(
                    ["Batch", "Succeeded", "Failed", "Rolled Back"],
                    [
                        [
                            result["batch_id"],
                            str(result["succeeded"]),
                            str(result["failed"]),
                            str(result["rolled_back"]),
                        ]
                        for result in results
                    ],
                )
            )
            lines.append("")

        if data.get("validation"):
            lines.extend(self._validation_table(data["validation"]))
            lines.append("")

        lines.extend(self._baseline_table(data["final"], title="Final"))
        lines.append("")
        lines.extend(self._verdict_table(data["verdict"], **kwargs))

        for entry in data.get("transformation_log", []):
            lines.append(entry)
        for step, error in data.get("step_errors", {}).items():
            lines.append(f"⚠️  Step '{step}' failed: {error}")
        return lines
