"""Command-line interface for Diff Review."""

import logging
import sys
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from diff_review import __version__
from diff_review.config import Config, load_config, session_id_problem, validate_config
from diff_review.engine.rounds import ReviewRound
from diff_review.engine.store import open_findings
from diff_review.formatter import format_round_summary
from diff_review.git.diff_source import (
    DiffSourceError,
    collect_snapshots,
    filter_snapshots,
    resolve_repo_root,
)
from diff_review.server.runner import serve_review
from diff_review.storage import JsonSessionStore

# Progress and diagnostics go to stderr so stdout carries only results
console = Console(stderr=True)
stdout_console = Console()

USAGE = "Usage: diff-review review [--base origin/dev] [--files path/to/a.ts,path/to/b.ts]"


def setup_logging(verbose: bool = False) -> None:
    """Send log records through rich on stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _parse_files(ctx: click.Context, param: click.Parameter, value: str | None) -> list[str] | None:
    if value is None:
        return None
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    if value.startswith("--") or not parsed:
        raise click.BadParameter(f"expects a comma-separated list.\n{USAGE}")
    return parsed


def _parse_base(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return None
    if not value.strip() or value.startswith("--"):
        raise click.BadParameter(f"expects a branch, tag, or ref name.\n{USAGE}")
    return value.strip()


def _parse_session(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return None
    problem = session_id_problem(value)
    if problem:
        raise click.BadParameter(problem)
    return value


def _read_config(config_path: str | None) -> Config:
    try:
        return load_config(Path(config_path) if config_path else None)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/red] {escape(str(e))}")
        sys.exit(1)


def _load_checked_config(config_path: str | None) -> Config:
    config = _read_config(config_path)
    errors = validate_config(config)
    if errors:
        for error in errors:
            console.print(f"[red]Config error:[/red] {escape(error)}")
        sys.exit(1)
    return config


def _output_root(scope_root: Path, config: Config) -> Path:
    return scope_root / config.output_dir


def _relative_exclude(repo_root: Path, output_root: Path) -> list[str]:
    try:
        return [output_root.resolve().relative_to(repo_root.resolve()).as_posix()]
    except ValueError:
        return []


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """Diff Review - annotate a diff with findings across review rounds."""
    setup_logging(verbose)


@cli.command("review")
@click.option("--base", callback=_parse_base, help="Review HEAD against merge-base with this ref")
@click.option("--files", "files_filter", callback=_parse_files, help="Comma-separated paths")
@click.option(
    "--session", "session_id", callback=_parse_session, help="Session identifier (default from config)"
)
@click.option("--no-browser", is_flag=True, help="Don't open the review page automatically")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def review(
    base: str | None,
    files_filter: list[str] | None,
    session_id: str | None,
    no_browser: bool,
    config_path: str | None,
) -> None:
    """Run one review round and print the findings summary.

    Without --base the working tree is reviewed against HEAD. With --base the
    branch is reviewed against its merge-base with that ref.
    """
    config = _load_checked_config(config_path)
    session = session_id or config.session_id
    scope_root = Path.cwd()
    output_root = _output_root(scope_root, config)

    try:
        repo_root = resolve_repo_root(scope_root)
        files = collect_snapshots(
            repo_root,
            scope_root,
            base=base,
            exclude=_relative_exclude(repo_root, output_root),
        )
    except DiffSourceError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    scoped = filter_snapshots(files, files_filter)
    if not scoped:
        available = "\n".join(f"- {f.path}" for f in files) or "- none"
        console.print("No files matched --files filter.")
        console.print(escape(USAGE))
        console.print(f"\nAvailable files:\n{escape(available)}")
        sys.exit(1)

    controller = ReviewRound(
        JsonSessionStore(output_root),
        session,
        scoped,
        filter=files_filter,
        base=base,
        repo_root=str(repo_root),
        scope_root=str(scope_root),
    )
    launch = controller.begin()
    console.print(
        f"🔍 Round {launch.round}: {len(scoped)} files, "
        f"{len(launch.existing_findings)} open findings"
    )

    served = serve_review(
        controller,
        launch,
        host=config.server.host,
        port=config.server.port,
        open_browser=config.server.open_browser and not no_browser,
    )
    click.echo(format_round_summary(served.result, url=served.url, opened=served.opened))


@cli.command("show")
@click.option(
    "--session", "session_id", callback=_parse_session, help="Session identifier (default from config)"
)
@click.option("--all", "show_all", is_flag=True, help="Include closed and resolved findings")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def show(session_id: str | None, show_all: bool, config_path: str | None) -> None:
    """Show the findings recorded for a session."""
    config = _load_checked_config(config_path)
    session = session_id or config.session_id
    state = JsonSessionStore(_output_root(Path.cwd(), config)).load(session)
    findings = state.findings if show_all else open_findings(state.findings)

    stdout_console.print(f"\n[bold]Session {escape(session)}[/bold] - completed rounds: {state.round}\n")
    if not findings:
        stdout_console.print("[dim]No findings[/dim]")
        return

    table = Table(title="Findings")
    table.add_column("ID")
    table.add_column("Round", justify="right")
    table.add_column("Status")
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("Location")
    table.add_column("Comment")

    for f in findings:
        status = f.status.value
        if f.close_reason is not None:
            status += f" ({f.close_reason.value})"
        table.add_row(
            f.id,
            str(f.round),
            status,
            f.severity.value,
            f.category.value,
            f"{f.file}:{f.start_line}-{f.end_line} ({f.side.value})",
            escape(f.comment),
        )

    stdout_console.print(table)


@cli.group("config")
def config_group() -> None:
    """Inspect the .diff-review.yaml settings."""
    pass


@config_group.command("validate")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def config_validate(config_path: str | None) -> None:
    """Check the settings and exit 1 if any are unusable."""
    errors = validate_config(_read_config(config_path))
    if errors:
        console.print("[red]Configuration is invalid:[/red]")
        for error in errors:
            console.print(f"  • {escape(error)}")
        sys.exit(1)
    console.print("[green]✓ Configuration is valid[/green]")


@config_group.command("show")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def config_show(config_path: str | None) -> None:
    """Print the effective settings."""
    config = _read_config(config_path)

    console.print("\n[bold]Current Configuration[/bold]\n")
    console.print(f"[bold]Output directory:[/bold] {escape(config.output_dir)}")
    console.print(f"[bold]Default session:[/bold] {escape(config.session_id)}")
    console.print(f"[bold]Server:[/bold] {config.server.host}:{config.server.port or 'auto'}")
    console.print(f"[bold]Open browser:[/bold] {'yes' if config.server.open_browser else 'no'}")


if __name__ == "__main__":
    cli()
