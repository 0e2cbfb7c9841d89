"""Main CLI application for akit."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn
from rich.table import Table

from akit import __version__
from akit.config.parser import ConfigError
from akit.config.settings import InstallerSettings, load_settings
from akit.core.installer import BatchResult, InstallationEngine
from akit.core.paths import LocalPathValidator
from akit.core.progress import (
    AutoConfirm,
    Confirmation,
    ConfirmationGate,
    InstallProgress,
    ProgressEvent,
    ProgressSink,
    UninstallConfirmation,
    UninstallProgress,
    VariantChangeConfirmation,
    VariantChangeProgress,
)
from akit.core.resolver import ContentResolutionError, PackageContentResolver
from akit.core.state import StateNotInitializedError
from akit.tools import get_tool, list_tools

# Create the main Typer app
app = typer.Typer(
    name="akit",
    help="Install curated agent content bundles for AI coding tools",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

# Set up logger for the akit package
logger = logging.getLogger("akit")


@dataclass
class CliOptions:
    """Global options shared by every command."""

    home: Path | None = None
    config_file: Path | None = None
    packages_dir: Path | None = None
    state_file: Path | None = None


@dataclass
class Runtime:
    settings: InstallerSettings
    resolver: PackageContentResolver
    paths: LocalPathValidator
    engine: InstallationEngine


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2=DEBUG, 3+=DEBUG with source paths
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    # Only add handler if not already configured
    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for h in logger.handlers:
            h.setLevel(level)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {escape(message)}")


class RichProgressSink(ProgressSink):
    """Renders progress events with a rich progress bar or status lines."""

    def __init__(self, progress: Progress | None = None) -> None:
        self.progress = progress
        self._task: TaskID | None = None

    def report(self, event: ProgressEvent) -> None:
        if isinstance(event, InstallProgress):
            if self.progress is None:
                return
            if self._task is None:
                self._task = self.progress.add_task("Copying", total=event.total_files)
            self.progress.update(
                self._task,
                total=event.total_files,
                completed=event.files_completed,
                description=event.current_file,
            )
        elif isinstance(event, UninstallProgress):
            console.print(
                f"  Removing {event.category}/{event.name} ({event.percentage}%)", style="dim"
            )
        elif isinstance(event, VariantChangeProgress):
            logger.info("Variant change: %s %s", event.stage, event.details or "")


class PromptConfirmation(ConfirmationGate):
    """Asks the user with typer.confirm."""

    def confirm(self, summary: Confirmation) -> bool:
        if isinstance(summary, UninstallConfirmation):
            console.print(f"Uninstalling [cyan]{summary.tool_id}[/cyan] ({summary.variant})")
            console.print(f"  Location: {summary.target_path}")
            console.print(f"  Files to remove: {summary.file_count}")
            return typer.confirm("Proceed with uninstall?", default=False)

        if isinstance(summary, VariantChangeConfirmation):
            console.print(
                f"Changing variant {summary.from_variant} → {summary.to_variant} "
                f"({summary.direction})"
            )
            console.print(f"  Items to add: {summary.files_to_add}")
            console.print(f"  Items to remove: {summary.files_to_remove}")
            return typer.confirm("Proceed?", default=False)

        return False


def get_runtime(ctx: typer.Context) -> Runtime:
    """Build settings and collaborators, exiting on configuration errors."""
    options: CliOptions = ctx.obj or CliOptions()
    try:
        settings = load_settings(
            home_dir=options.home,
            config_file=options.config_file,
            packages_dir=options.packages_dir,
            state_file=options.state_file,
        )
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    resolver = PackageContentResolver.from_settings(settings)
    paths = LocalPathValidator(settings)
    return Runtime(
        settings=settings,
        resolver=resolver,
        paths=paths,
        engine=InstallationEngine(settings, resolver, paths),
    )


def resolve_target(runtime: Runtime, tool: str, path: str | None) -> Path:
    """Work out and sanitize the install directory of a tool."""
    try:
        target = runtime.paths.expand(path) if path else runtime.paths.default_path(tool)
    except ValueError as e:
        print_error(f"{e}. Use --path to choose an install location")
        raise typer.Exit(1) from e

    check = runtime.paths.sanitize(target)
    if not check.valid:
        print_error(f"{tool}: {check.error}")
        raise typer.Exit(1)
    return check.path


def parse_path_overrides(values: list[str] | None) -> dict[str, str]:
    """Parse repeated TOOL=PATH options."""
    overrides: dict[str, str] = {}
    for value in values or []:
        tool, sep, path = value.partition("=")
        if not sep or not tool or not path:
            print_error(f"Invalid --path value '{value}'. Expected TOOL=PATH")
            raise typer.Exit(1)
        overrides[tool] = path
    return overrides


def print_batch_result(result: BatchResult) -> None:
    for tool_result in result.results:
        if tool_result.success:
            print_success(
                f"Installed {tool_result.tool_id} ({tool_result.variant}) "
                f"to {tool_result.target_path}"
            )
            for warning in tool_result.warnings:
                print_warning(f"  {warning}")
        else:
            print_error(f"Failed to install {tool_result.tool_id}: {tool_result.error}")

    for tool in result.skipped:
        console.print(f"  Skipped {tool} (already processed)", style="dim")

    if result.failed:
        print_warning(
            "Run 'akit resume' after fixing the problem, or 'akit clear-state' to start over"
        )


@app.callback()
def callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v info, -vv debug, -vvv trace)",
        ),
    ] = 0,
    home: Annotated[
        Path | None,
        typer.Option("--home", help="Home directory (defaults to the current user's)"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", help="Settings file (defaults to ~/.akit/config.yaml)"),
    ] = None,
    packages_dir: Annotated[
        Path | None,
        typer.Option("--packages-dir", help="Directory containing tool content packages"),
    ] = None,
    state_file: Annotated[
        Path | None,
        typer.Option("--state-file", help="Location of the installation state file"),
    ] = None,
) -> None:
    """akit - install agent content bundles for AI coding tools."""
    setup_logging(verbose)
    ctx.obj = CliOptions(
        home=home, config_file=config, packages_dir=packages_dir, state_file=state_file
    )


@app.command()
def version() -> None:
    """Show the akit version."""
    console.print(f"akit {__version__}")


@app.command()
def tools(ctx: typer.Context) -> None:
    """List supported tools and whether a package is available."""
    runtime = get_runtime(ctx)
    available = set(runtime.resolver.list_tools())

    table = Table(title="Supported Tools")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Default Path", style="dim")
    table.add_column("Package", style="green")

    for name in list_tools():
        profile = get_tool(name)
        table.add_row(
            name,
            profile.display_name,
            str(runtime.paths.default_path(name)),
            "yes" if name in available else "no",
        )

    console.print(table)


@app.command()
def variants(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool to show variants for")],
) -> None:
    """Show the variants a tool's package offers."""
    runtime = get_runtime(ctx)

    try:
        names = runtime.resolver.list_variants(tool)
    except ContentResolutionError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    table = Table(title=f"Variants for {tool}")
    table.add_column("Variant", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Agents", justify="right")
    table.add_column("Skills", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right", style="green")

    for name in names:
        metadata = runtime.resolver.metadata(tool, name)
        contents = runtime.resolver.resolve(tool, name)
        size = runtime.resolver.size(tool, name)
        table.add_row(
            name,
            metadata.description,
            str(len(contents.agents)),
            str(len(contents.skills)),
            str(contents.total_files),
            size.formatted_size,
        )

    console.print(table)


@app.command()
def install(
    ctx: typer.Context,
    variant: Annotated[
        str | None,
        typer.Option("--variant", "-V", help="Variant to install (lite, standard, pro)"),
    ] = None,
    tool: Annotated[
        list[str] | None,
        typer.Option("--tool", "-t", help="Tool to install (repeatable, defaults to all packaged)"),
    ] = None,
    path: Annotated[
        list[str] | None,
        typer.Option("--path", "-p", help="Install location override as TOOL=PATH (repeatable)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Don't ask for confirmation"),
    ] = False,
) -> None:
    """Install a variant for one or more tools."""
    runtime = get_runtime(ctx)
    selected_variant = variant or runtime.settings.default_variant
    selected_tools = list(tool or runtime.resolver.list_tools())

    if not selected_tools:
        print_error(f"No tool packages found in {runtime.settings.packages_dir}")
        raise typer.Exit(1)

    overrides = parse_path_overrides(path)
    targets = {
        name: str(resolve_target(runtime, name, overrides.get(name))) for name in selected_tools
    }

    if runtime.engine.ledger.has_interrupted():
        print_warning("An interrupted installation exists (see 'akit status')")
        if not yes and not typer.confirm("Discard it and start a new installation?", default=False):
            raise typer.Exit(1)

    table = Table(title=f"Installing {selected_variant} variant")
    table.add_column("Tool", style="cyan")
    table.add_column("Location", style="dim")
    for name in selected_tools:
        table.add_row(name, targets[name])
    console.print(table)

    if not yes and not typer.confirm("Proceed with installation?", default=True):
        raise typer.Exit(1)

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as bar:
        result = runtime.engine.install_many(
            selected_variant, selected_tools, targets, progress=RichProgressSink(bar)
        )

    print_batch_result(result)
    if not result.all_successful:
        raise typer.Exit(1)


@app.command()
def resume(ctx: typer.Context) -> None:
    """Resume an interrupted installation."""
    runtime = get_runtime(ctx)

    try:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as bar:
            result = runtime.engine.resume(progress=RichProgressSink(bar))
    except StateNotInitializedError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    print_batch_result(result)
    if not result.all_successful:
        raise typer.Exit(1)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the interrupted installation, if any."""
    runtime = get_runtime(ctx)
    ledger = runtime.engine.ledger

    if ledger.load() is None:
        console.print("No interrupted installation")
        return

    summary = ledger.resume_summary()
    if summary is None:
        console.print("No interrupted installation")
        return

    console.print(f"Session [cyan]{summary.session_id}[/cyan] ({summary.variant}, {summary.stage})")
    console.print(f"  Started: {summary.started_at}")
    console.print(f"  Last updated: {summary.last_updated}")
    console.print(
        f"  Tools: {summary.completed_tools} completed, {summary.failed_tools} failed, "
        f"{summary.remaining_tools} remaining of {summary.total_tools}"
    )
    if summary.current_tool:
        console.print(
            f"  Current: {summary.current_tool} "
            f"({summary.files_completed}/{summary.total_files} files, {summary.percent_complete}%)"
        )
    if summary.failed_tools_list:
        console.print(f"  Failed: {', '.join(summary.failed_tools_list)}")


@app.command("clear-state")
def clear_state(ctx: typer.Context) -> None:
    """Discard the interrupted installation record."""
    runtime = get_runtime(ctx)
    runtime.engine.ledger.clear()
    print_success("Installation state cleared")


@app.command()
def verify(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool to verify")],
    path: Annotated[
        str | None,
        typer.Option("--path", "-p", help="Install location (defaults to the tool's)"),
    ] = None,
) -> None:
    """Verify an installation against its manifest."""
    runtime = get_runtime(ctx)
    target = resolve_target(runtime, tool, path)
    report = runtime.engine.verify(tool, target)

    table = Table(title=f"{tool} at {target}")
    table.add_column("Category", style="cyan")
    table.add_column("Expected", justify="right")
    table.add_column("Found", justify="right")
    table.add_column("Missing", style="red")
    for category, check in report.components.items():
        table.add_row(category, str(check.expected), str(check.found), ", ".join(check.missing))
    console.print(table)

    for warning in report.warnings:
        print_warning(warning.message)

    if not report.valid:
        for issue in report.issues:
            print_error(issue.message)
        raise typer.Exit(1)

    print_success(f"{tool} ({report.variant}) verified")


@app.command()
def uninstall(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool to uninstall")],
    path: Annotated[
        str | None,
        typer.Option("--path", "-p", help="Install location (defaults to the tool's)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Don't ask for confirmation"),
    ] = False,
) -> None:
    """Remove everything akit installed for a tool."""
    runtime = get_runtime(ctx)
    target = resolve_target(runtime, tool, path)
    gate = AutoConfirm() if yes else PromptConfirmation()

    result = runtime.engine.uninstall(tool, target, gate=gate, progress=RichProgressSink())

    if result.cancelled:
        print_warning("Uninstall cancelled")
        return

    for warning in result.warnings:
        print_warning(warning)

    if not result.success:
        for error in result.errors:
            print_error(error)
        raise typer.Exit(1)

    print_success(
        f"{tool} uninstalled ({result.files_removed} files, "
        f"{result.directories_removed} directories removed)"
    )
    if result.backup_path:
        console.print(f"  Backup: {result.backup_path}")


@app.command()
def upgrade(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Installed tool to change")],
    variant: Annotated[str, typer.Argument(help="Variant to switch to")],
    path: Annotated[
        str | None,
        typer.Option("--path", "-p", help="Install location (defaults to the tool's)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Don't ask for confirmation"),
    ] = False,
) -> None:
    """Upgrade or downgrade an installed tool to another variant."""
    runtime = get_runtime(ctx)
    target = resolve_target(runtime, tool, path)
    gate = AutoConfirm() if yes else PromptConfirmation()

    result = runtime.engine.change_variant(
        tool, variant, target, gate=gate, progress=RichProgressSink()
    )

    if result.cancelled:
        print_warning("Variant change cancelled")
        return

    if not result.success:
        print_error(result.error or "Variant change failed")
        if result.backup_path:
            console.print(f"  Backup of the previous installation: {result.backup_path}")
        raise typer.Exit(1)

    if result.from_variant == variant:
        print_success(f"{tool} is already on the {variant} variant")
        return

    print_success(
        f"{tool} changed from {result.from_variant} to {variant} ({result.direction}): "
        f"{result.files_added} added, {result.files_removed} removed"
    )
    if result.backup_path:
        console.print(f"  Backup: {result.backup_path}")
