"""
Main CLI entry point for build resurrection.
"""

import json
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv

from ..compilation_proof import CompilationProofEngine, format_verdict_summary
from ..dependency_batches import (
    BatchPlanner,
    DependencyInfo,
    ResurrectionPlanItem,
    RollbackService,
)
from ..post_resurrection import (
    CompilationRunner,
    FixHistoryStore,
    PostResurrectionValidator,
)
from ..shared_utilities import (
    LoggingObserver,
    OutputFormat,
    configure_logging,
    get_logger,
)
from ..shared_utilities.telemetry import trace_function
from .config import ResurrectionConfigError, ResurrectionSettings, SettingsManager
from .core import ResurrectionPipeline
from .output_formatter import ResurrectionFormatter

# Load environment variables from .env file
load_dotenv()


class ProgressIndicator(LoggingObserver):
    """Echoes pipeline progress to stderr unless quiet."""

    def __init__(self, quiet: bool = False):
        """Initialize progress indicator.

        Args:
            quiet: If True, suppress progress output
        """
        super().__init__()
        self.quiet = quiet

    def message(self, text: str) -> None:
        if not self.quiet:
            click.echo(text, err=True)

    def on_iteration_start(self, iteration: int, max_iterations: int) -> None:
        if max_iterations > 0:
            percentage = (iteration / max_iterations) * 100
            self.message(f"[{percentage:6.1f}%] Validation iteration {iteration}")
        else:
            self.message(f"[  ---  ] Validation iteration {iteration}")

    def on_batch_started(self, batch: Any, index: int, total: int) -> None:
        percentage = (index / total) * 100 if total else 100.0
        self.message(
            f"[{percentage:6.1f}%] Applying {batch.id} ({len(batch.packages)} package(s))"
        )

    def on_package_update_completed(self, item: Any, outcome: Any) -> None:
        if outcome.success:
            self.message(f"           ✅ {item.package_name} -> {item.target_version}")
        else:
            rolled = " (rolled back)" if outcome.rolled_back else ""
            self.message(f"           ❌ {item.package_name}{rolled}")

    def on_compilation_check(self, label: str, result: Any) -> None:
        state = "compiles" if result.success else f"{result.error_count} error(s)"
        self.message(f"[  ---  ] {label.title()} compilation: {state}")


COMMON_OPTIONS = [
    click.option(
        "--format",
        "output_format",
        type=click.Choice(OutputFormat.choices()),
        default=OutputFormat.TABLE,
        help="Output format",
        show_default=True,
    ),
    click.option(
        "-o",
        "--output",
        "output_file",
        type=click.Path(),
        help="Output file (default: stdout)",
    ),
    click.option(
        "-q",
        "--quiet",
        is_flag=True,
        help="Suppress progress indicators",
    ),
    click.option(
        "--config",
        "config_file",
        type=click.Path(exists=True, dir_okay=False),
        help="JSON settings file",
    ),
]


def common_options(func):
    """Attach the options every subcommand shares."""
    for option in reversed(COMMON_OPTIONS):
        func = option(func)
    return func


def load_settings(config_file: str | None, **overrides) -> ResurrectionSettings:
    try:
        return SettingsManager(config_file).load(overrides)
    except ResurrectionConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e


def emit(
    data: dict[str, Any],
    output_format: str,
    output_file: str | None,
    view: str,
    **kwargs,
) -> None:
    formatter = ResurrectionFormatter()
    if output_file:
        formatter.save(data, output_file, output_format, view=view, **kwargs)
        click.echo(f"Output saved to {output_file}")
    else:
        click.echo(formatter.format(data, output_format, view=view, **kwargs))


def load_plan(plan_file: str | Path) -> list[ResurrectionPlanItem]:
    """Read plan items from a JSON list (or ``{"items": [...]}``)."""
    with open(plan_file, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ValueError("Plan file must contain a list of plan items")
    return [ResurrectionPlanItem.from_dict(item) for item in data]


@click.group()
@click.option("--log-level", envvar="LOG_LEVEL", help="Logging level (default: INFO)")
def cli(log_level: str | None) -> None:
    """
    Resurrect JavaScript/TypeScript repositories that no longer build.

    Examples:

        # Prove the repository is broken
        resurrect baseline ./my-app

        # Preview how an update plan is batched
        resurrect plan plan.json

        # Apply the plan, repair the build and print a verdict
        resurrect run ./my-app --plan plan.json

        # Machine-readable output
        resurrect run ./my-app --plan plan.json --format json -o report.json
    """
    configure_logging(level=log_level.upper() if log_level else None)


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@common_options
@trace_function("resurrect_baseline", include_args=True)
def baseline(
    repo: str,
    output_format: str,
    output_file: str | None,
    quiet: bool,
    config_file: str | None,
) -> None:
    """Run the compilation proof and report categorized errors."""
    logger = get_logger(__name__)
    settings = load_settings(config_file)

    try:
        engine = CompilationProofEngine(
            typecheck_timeout_ms=settings.typecheck_timeout_ms,
            build_timeout_ms=settings.build_timeout_ms,
            max_output_bytes=settings.max_output_bytes,
            observer=ProgressIndicator(quiet),
        )
        result = engine.run_baseline_compilation(repo)
        emit(result.to_dict(), output_format, output_file, "baseline", title="Baseline")
    except Exception as e:
        logger.error("Baseline failed", error_type=type(e).__name__, error_message=str(e))
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@click.option("--max-iterations", type=int, help="Repair loop budget")
@click.option(
    "--package-manager",
    type=click.Choice(["auto", "npm", "yarn", "pnpm"]),
    help="Package manager (default: auto-detect)",
)
@click.option("--build-command", help="Script to run instead of the detected one")
@click.option(
    "--skip-native-modules/--no-skip-native-modules",
    default=None,
    help="Remove failing native modules instead of substituting them",
)
@common_options
@trace_function("resurrect_validate", include_args=True)
def validate(
    repo: str,
    max_iterations: int | None,
    package_manager: str | None,
    build_command: str | None,
    skip_native_modules: bool | None,
    output_format: str,
    output_file: str | None,
    quiet: bool,
    config_file: str | None,
) -> None:
    """Compile, analyze and auto-fix until the build passes or gives up."""
    logger = get_logger(__name__)
    settings = load_settings(
        config_file,
        max_iterations=max_iterations,
        package_manager=package_manager,
        build_command=build_command,
        skip_native_modules=skip_native_modules,
    )

    try:
        validator = PostResurrectionValidator(
            runner=CompilationRunner(max_output_bytes=settings.max_output_bytes),
            history_store=FixHistoryStore(settings.history_dir),
            observer=ProgressIndicator(quiet),
            no_progress_threshold=settings.no_progress_threshold,
        )
        result = validator.validate(repo, settings.to_validation_options())
    except Exception as e:
        logger.error(
            "Validation failed", error_type=type(e).__name__, error_message=str(e)
        )
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e

    emit(result.to_dict(), output_format, output_file, "validation")


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-batch-size", type=int, help="Largest batch allowed")
@common_options
def plan(
    plan_file: str,
    max_batch_size: int | None,
    output_format: str,
    output_file: str | None,
    quiet: bool,
    config_file: str | None,
) -> None:
    """Show how a plan would be split into ordered batches."""
    settings = load_settings(config_file, max_batch_size=max_batch_size)

    try:
        items = load_plan(plan_file)
        planner = BatchPlanner(
            max_batch_size=settings.max_batch_size,
            large_batch_threshold=settings.large_batch_threshold,
        )
        batches = planner.reorder_for_safety(planner.create_batches(items))
    except (OSError, ValueError, KeyError) as e:
        click.echo(f"Error: Invalid plan file: {e}", err=True)
        raise click.Abort() from e

    emit(
        {"batches": [batch.to_dict() for batch in batches]},
        output_format,
        output_file,
        "plan",
    )


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@common_options
@click.pass_context
def rollback(
    ctx: click.Context,
    repo: str,
    output_format: str,
    output_file: str | None,
    quiet: bool,
    config_file: str | None,
) -> None:
    """Revert the most recent commit (git reset --hard HEAD~1)."""
    result = RollbackService().rollback_last_commit(repo)
    emit(result.to_dict(), output_format, output_file, "rollback")
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--plan",
    "plan_file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="JSON list of plan items",
)
@click.option("--max-iterations", type=int, help="Repair loop budget")
@click.option("--max-retries", type=int, help="Attempts for transient update failures")
@common_options
@trace_function("resurrect_run", include_args=True)
@click.pass_context
def run(
    ctx: click.Context,
    repo: str,
    plan_file: str,
    max_iterations: int | None,
    max_retries: int | None,
    output_format: str,
    output_file: str | None,
    quiet: bool,
    config_file: str | None,
) -> None:
    """Run the full pipeline: baseline, batched updates, repair, verdict."""
    logger = get_logger(__name__)
    settings = load_settings(
        config_file, max_iterations=max_iterations, max_retries=max_retries
    )

    try:
        items = load_plan(plan_file)
    except (OSError, ValueError, KeyError) as e:
        click.echo(f"Error: Invalid plan file: {e}", err=True)
        raise click.Abort() from e

    dependencies = [
        DependencyInfo(
            name=item.package_name,
            current_version=item.current_version,
            latest_version=item.target_version,
        )
        for item in items
    ]

    try:
        pipeline = ResurrectionPipeline(settings, observer=ProgressIndicator(quiet))
        report = pipeline.run(repo, items, dependencies)
    except Exception as e:
        logger.error("Pipeline failed", error_type=type(e).__name__, error_message=str(e))
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e

    emit(
        report.to_dict(),
        output_format,
        output_file,
        "report",
        summary=format_verdict_summary(report.verdict),
    )
    if not report.verdict.final_compilation.success:
        ctx.exit(1)


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@click.option("--clear", is_flag=True, help="Delete the stored history and exit")
@common_options
def history(
    repo: str,
    clear: bool,
    output_format: str,
    output_file: str | None,
    quiet: bool,
    config_file: str | None,
) -> None:
    """Show fixes that previously worked for this repository."""
    settings = load_settings(config_file)
    store = FixHistoryStore(settings.history_dir)

    if clear:
        store.clear(repo)
        click.echo(f"Fix history cleared for {repo}")
        return

    emit(store.get_history(repo).to_dict(), output_format, output_file, "history")


if __name__ == "__main__":
    cli()
