"""
CLI interface for Claude Radar.

Provides command-line access to sessions, statistics and project usage.
"""

import dataclasses
import logging
import sys
from datetime import datetime, timedelta
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from claude_radar.config.loader import RadarConfig, resolve_config
from claude_radar.core.model_info import model_info
from claude_radar.core.monitor import UsageMonitor, UsageSnapshot
from claude_radar.core.plans import TokenPlan
from claude_radar.core.sessions import Session, SessionPolicy
from claude_radar.core.status import (
    evaluate_status,
    predicted_end_time,
    status_message,
    time_until_session_end,
)
from claude_radar.logging_setup import configure_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML configuration file"
    ),
    plan: Optional[str] = typer.Option(
        None,
        "--plan",
        "-p",
        help="Token plan: pro, max5, max20 or custom_max (auto-detect)"
    ),
    path: Optional[str] = typer.Option(
        None,
        "--path",
        help="Override Claude data directory (must be under ~/.claude or ~/.config/claude)"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """Claude Radar - Claude usage sessions and burn rate."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)

    try:
        config = resolve_config(config_path)
        overrides = {}
        if plan is not None:
            overrides["plan"] = TokenPlan(plan.lower())
        if path is not None:
            overrides["data_path"] = path
        if overrides:
            config = dataclasses.replace(config, **overrides)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    ctx.obj = config
    if ctx.invoked_subcommand is None:
        console.print("Claude Radar - Use --help to see available commands")


def _create_monitor(config: RadarConfig) -> UsageMonitor:
    return UsageMonitor(config=config)


@app.command()
def status(ctx: typer.Context):
    """Show the currently active session."""
    snapshot = _create_monitor(ctx.obj).build_snapshot()
    _display_current_session(snapshot)


@app.command()
def sessions(
    ctx: typer.Context,
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        help="Number of sessions to show"
    ),
    aligned: bool = typer.Option(
        False,
        "--aligned",
        help="Align sessions to wall-clock hours"
    )
):
    """List recent sessions, most recent first."""
    config = ctx.obj
    if aligned:
        config = dataclasses.replace(config, session_policy=SessionPolicy.HOUR_ALIGNED)
    snapshot = _create_monitor(config).build_snapshot()

    if not snapshot.sessions:
        _print_no_data()
        return

    table = Table(title="Recent Sessions")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Tokens", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Burn rate", justify="right")
    table.add_column("Model")
    table.add_column("Active")

    for session in snapshot.sessions[:limit]:
        table.add_row(
            _format_time(session.start_time),
            _format_time(session.end_time),
            _format_tokens(session.token_count),
            _format_tokens(session.token_limit),
            _format_currency(session.cost),
            _format_burn_rate(session.burn_rate),
            model_info(session.primary_model).short_name,
            "[green]yes[/]" if session.is_active else "no"
        )
    console.print(table)


@app.command()
def projects(
    ctx: typer.Context,
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        help="Number of projects to show"
    )
):
    """Show token usage per project."""
    snapshot = _create_monitor(ctx.obj).build_snapshot()

    if not snapshot.projects:
        _print_no_data()
        return

    table = Table(title="Project Usage")
    table.add_column("Project")
    table.add_column("Tokens", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Days", justify="right")
    table.add_column("Avg/day", justify="right")
    table.add_column("Last used")

    for project in snapshot.projects[:limit]:
        table.add_row(
            project.name,
            _format_tokens(project.total_tokens),
            f"{project.percentage:.1f}%",
            str(project.session_count),
            _format_tokens(project.average_tokens_per_session),
            _format_time(project.last_used)
        )
    console.print(table)


@app.command()
def stats(ctx: typer.Context):
    """Show overall usage statistics."""
    snapshot = _create_monitor(ctx.obj).build_snapshot()
    statistics = snapshot.statistics

    if statistics.total_sessions == 0:
        _print_no_data()
        return

    console.print("\n[bold]Usage Statistics[/bold]")
    console.print("-" * 40)
    console.print(f"Total sessions: {statistics.total_sessions}")
    console.print(f"Total tokens: {_format_tokens(statistics.total_tokens_used)}")
    console.print(f"Total cost: {_format_currency(statistics.total_cost)}")
    console.print(f"Average tokens/session: {_format_tokens(statistics.average_tokens_per_session)}")
    console.print(f"Average cost/session: {_format_currency(statistics.average_cost_per_session)}")
    if statistics.peak_usage_day is not None:
        console.print(f"Peak session: {_format_time(statistics.peak_usage_day)}")
    console.print(f"Current streak: {statistics.current_streak} day(s)")


@app.command()
def watch(
    ctx: typer.Context,
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between refreshes (defaults to the configured interval)"
    ),
    iterations: Optional[int] = typer.Option(
        None,
        "--iterations",
        help="Stop after this many refreshes"
    )
):
    """Refresh the active session periodically."""
    monitor = _create_monitor(ctx.obj)
    try:
        monitor.run(interval=interval, iterations=iterations, on_snapshot=_display_current_session)
    except KeyboardInterrupt:
        monitor.stop()


def _print_no_data():
    console.print("\n[bold yellow]No Claude usage data found[/]")
    console.print("Usage logs are read from ~/.claude/projects and ~/.config/claude/projects\n")


def _format_tokens(count: int) -> str:
    return f"{count:,}"


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_burn_rate(rate: Optional[float]) -> str:
    if rate is None:
        return "-"
    return f"{rate:.1f} tokens/min"


def _format_duration(delta: Optional[timedelta], elapsed_label: str = "Expired") -> str:
    """Format a duration as '1d 4h', '2h 13m' or '45m'."""
    if delta is None:
        return "-"
    total_seconds = int(delta.total_seconds())
    if total_seconds <= 0:
        return elapsed_label
    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _format_time(moment: Optional[datetime]) -> str:
    if moment is None:
        return "-"
    return moment.astimezone().strftime("%Y-%m-%d %H:%M")


def _display_current_session(snapshot: UsageSnapshot):
    """Display the active session with its pace and predictions."""
    session: Optional[Session] = snapshot.current_session
    now = snapshot.refreshed_at

    console.print("\n[bold]Current Session[/bold]")
    console.print("-" * 40)

    if session is None:
        console.print("No active session")
        return

    report = evaluate_status(session, now)
    predicted = predicted_end_time(session, now)

    console.print(f"Tokens: {_format_tokens(session.token_count)}/{_format_tokens(session.token_limit)}"
                  f" ({session.progress * 100:.1f}%)")
    console.print(f"Status: {report.description} - {status_message(session)}")
    console.print(f"Burn rate: {_format_burn_rate(session.burn_rate)}")
    console.print(f"Time to limit: {_format_duration(session.time_remaining, 'Limit reached')}")
    console.print(f"Predicted end: {predicted.astimezone().strftime('%H:%M') if predicted else '-'}")
    console.print(f"Session resets in: {_format_duration(time_until_session_end(session, now))}")
    console.print(f"Cost: {_format_currency(session.cost)}")

    for breakdown in session.model_breakdown:
        console.print(f"  {model_info(breakdown.model_type).short_name}: "
                      f"{_format_tokens(breakdown.token_count)} ({breakdown.percentage:.0f}%)")

    if snapshot.detected_limit is not None:
        console.print(f"Detected plan limit: {_format_tokens(snapshot.detected_limit)}")


if __name__ == "__main__":
    app()
