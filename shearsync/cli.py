"""shearsync CLI - main entry point."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import settings

app = typer.Typer(
    name="shearsync",
    help="shearsync - booking sync and client re-engagement",
    no_args_is_help=True,
)
console = Console()

# Sub-command groups
accounts_app = typer.Typer(help="Account management")
backfill_app = typer.Typer(help="Month-by-month historical backfill")
clients_app = typer.Typer(help="Resolved clients")
nudge_app = typer.Typer(help="Nudge candidate selection")

app.add_typer(accounts_app, name="accounts")
app.add_typer(backfill_app, name="backfill")
app.add_typer(clients_app, name="clients")
app.add_typer(nudge_app, name="nudge")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _output_result(result: dict[str, Any], json_output: bool = False) -> None:
    """Output result as JSON."""
    if json_output:
        console.print_json(json.dumps(result, default=str))
    else:
        console.print_json(json.dumps(result, default=str, indent=2))


async def _require_account(db, slug: str):
    from .services import account_svc

    account = await account_svc.get_account_by_slug(db, slug)
    if account is None:
        console.print(f"[red]Unknown account: {slug}[/red]")
        raise typer.Exit(1)
    return account


# ============================================================================
# Database / Account Commands
# ============================================================================


@app.command("init-db")
def init_db_cmd():
    """Create database tables."""
    from .database import init_db

    asyncio.run(init_db())
    console.print("[green]Database initialized[/green]")


@accounts_app.command("create")
def accounts_create(
    name: str = typer.Argument(..., help="Business name"),
    slug: str = typer.Option(..., "--slug", "-s", help="Unique account slug"),
    provider: str = typer.Option("acuity", "--provider", "-p", help="acuity or square"),
    timezone: str = typer.Option("UTC", "--timezone", help="IANA timezone"),
):
    """Create an account."""
    from .database import async_session_factory
    from .services import account_svc

    async def _create():
        async with async_session_factory() as db:
            return await account_svc.create_account(
                db, name=name, slug=slug, booking_provider=provider, timezone=timezone
            )

    try:
        account = asyncio.run(_create())
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Created account[/green] {account.slug} ({account.id})")


@accounts_app.command("list")
def accounts_list():
    """List accounts."""
    from .database import async_session_factory
    from .services import account_svc

    async def _list():
        async with async_session_factory() as db:
            return await account_svc.list_accounts(db)

    accounts = asyncio.run(_list())
    table = Table(title=f"Accounts ({len(accounts)})")
    table.add_column("Slug", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Provider", style="green")
    table.add_column("ID", style="dim")
    for account in accounts:
        table.add_row(account.slug, account.name, account.booking_provider, str(account.id))
    console.print(table)


# ============================================================================
# Pull Commands
# ============================================================================


@app.command("pull")
def pull(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
    granularity: str = typer.Option("month", "--granularity", "-g", help="day/week/month/quarter/year"),
    year: int = typer.Option(None, "--year", "-y", help="Year (defaults to current)"),
    quarter: str = typer.Option(None, "--quarter", "-q", help="Q1-Q4"),
    month: str = typer.Option(None, "--month", "-m", help="Month name, e.g. January"),
    week: int = typer.Option(None, "--week", "-w", help="Week number within the month"),
    day: int = typer.Option(None, "--day", "-d", help="Day of month"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute counts without writing"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Pull appointments for a date range and reconcile them."""
    from .adapters import get_adapter
    from .database import async_session_factory
    from .errors import SyncError
    from .sync.sync_engine import PullOptions, pull_options_to_date_range, run_pull

    options = PullOptions(
        granularity=granularity,
        year=year or date.today().year,
        quarter=quarter,
        month=month or date.today().strftime("%B"),
        week_number=week,
        day=day,
    )

    async def _pull():
        start, end = pull_options_to_date_range(options)
        async with async_session_factory() as db:
            account = await _require_account(db, account_slug)
            async with get_adapter(account) as adapter:
                return await run_pull(
                    db, account, adapter, start, end, dry_run=dry_run, granularity=options.granularity
                )

    try:
        summary = asyncio.run(_pull())
    except SyncError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if json_output:
        _output_result(summary.model_dump(mode="json"), json_output=True)
        return

    table = Table(title=f"Pull {summary.start} .. {summary.end}" + (" (dry run)" if dry_run else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="white", justify="right")
    for metric in (
        "fetched", "resolved", "new_clients", "appointments_upserted",
        "skipped", "revenue_preserved", "deleted", "failed",
    ):
        table.add_row(metric.replace("_", " "), str(getattr(summary, metric)))
    for result in summary.aggregations:
        table.add_row(result.table, "error" if result.error else str(result.rows_upserted))
    console.print(table)
    for error in summary.errors:
        console.print(f"[yellow]{error}[/yellow]")
    for result in summary.aggregations:
        if result.error:
            console.print(f"[yellow]{result.table}: {result.error}[/yellow]")


# ============================================================================
# Backfill Commands
# ============================================================================


@backfill_app.command("plan")
def backfill_plan(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
    start_year: int = typer.Option(..., "--start-year", help="First year to backfill"),
):
    """Create pending status rows for every month since start-year."""
    from .database import async_session_factory
    from .sync.backfill import plan_backfill

    async def _plan():
        async with async_session_factory() as db:
            account = await _require_account(db, account_slug)
            return await plan_backfill(db, account, start_year)

    created = asyncio.run(_plan())
    console.print(f"[green]Planned {len(created)} new periods[/green]")


def _run_backfill_command(account_slug: str, mode: str) -> None:
    from .database import async_session_factory
    from .sync.backfill import resume_backfill, retry_failed_periods, run_backfill

    runners = {
        "run": run_backfill,
        "resume": resume_backfill,
        "retry-failed": retry_failed_periods,
    }

    async def _run():
        async with async_session_factory() as db:
            account = await _require_account(db, account_slug)
        return await runners[mode](async_session_factory, account.id)

    report = asyncio.run(_run())
    console.print(
        f"[bold]{mode}[/bold]: [green]{report.completed} completed[/green], "
        f"[red]{report.failed} failed[/red]"
    )


@backfill_app.command("run")
def backfill_run(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
):
    """Run all pending periods (priority phase first)."""
    _run_backfill_command(account_slug, "run")


@backfill_app.command("resume")
def backfill_resume(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
):
    """Resume an interrupted backfill, including failed periods."""
    _run_backfill_command(account_slug, "resume")


@backfill_app.command("retry-failed")
def backfill_retry_failed(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
):
    """Retry failed periods that still have retries left."""
    _run_backfill_command(account_slug, "retry-failed")


@backfill_app.command("status")
def backfill_status(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
):
    """Show per-month sync status."""
    from .database import async_session_factory
    from .services import sync_status_svc

    async def _status():
        async with async_session_factory() as db:
            account = await _require_account(db, account_slug)
            return await sync_status_svc.list_statuses(db, account.id)

    statuses = asyncio.run(_status())
    colors = {"completed": "green", "failed": "red", "retrying": "yellow", "processing": "cyan"}
    table = Table(title=f"Backfill ({len(statuses)} periods)")
    table.add_column("Period", style="cyan")
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Appts", justify="right")
    table.add_column("Error", style="dim", max_width=40)
    for s in statuses:
        color = colors.get(s.status, "white")
        table.add_row(
            s.period,
            s.sync_phase,
            f"[{color}]{s.status}[/{color}]",
            str(s.retry_count),
            str(s.appointment_count),
            s.error_message or "-",
        )
    console.print(table)


# ============================================================================
# Client / Nudge Commands
# ============================================================================


@clients_app.command("list")
def clients_list(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
    limit: int = typer.Option(20, "--limit", "-l", help="Max clients to return"),
    query: str = typer.Option(None, "--query", "-q", help="Search name/email/phone"),
):
    """List resolved clients, most recent visit first."""
    from .database import async_session_factory
    from .services import client_svc

    async def _list():
        async with async_session_factory() as db:
            account = await _require_account(db, account_slug)
            return await client_svc.list_clients(db, account.id, search=query, limit=limit)

    clients, total = asyncio.run(_list())
    table = Table(title=f"Clients ({len(clients)} of {total})")
    table.add_column("Name", style="cyan")
    table.add_column("Phone", style="green")
    table.add_column("Email", style="white")
    table.add_column("First", style="dim")
    table.add_column("Last", style="dim")
    table.add_column("Visits", justify="right")
    table.add_column("Source", style="yellow")
    for c in clients:
        table.add_row(
            c.full_name,
            c.phone_normalized or "-",
            c.email or "-",
            str(c.first_appt or "-"),
            str(c.last_appt or "-"),
            str(c.total_appointments),
            c.first_source or "-",
        )
    console.print(table)


@nudge_app.command("select")
def nudge_select(
    account_slug: str = typer.Option(..., "--account", "-a", help="Account slug"),
    limit: int = typer.Option(10, "--limit", "-l", help="Number of clients to select"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Rank clients for an SMS nudge."""
    from .database import async_session_factory
    from .nudge.selection import select_clients

    async def _select():
        async with async_session_factory() as db:
            account = await _require_account(db, account_slug)
            return await select_clients(db, account, limit)

    result = asyncio.run(_select())

    if json_output:
        _output_result(result.model_dump(mode="json"), json_output=True)
        return

    table = Table(title=f"Nudge candidates ({len(result.clients)} of {result.total_available_clients})")
    table.add_column("Name", style="cyan")
    table.add_column("Phone", style="green")
    table.add_column("Type", style="white")
    table.add_column("Since", justify="right")
    table.add_column("Overdue", justify="right")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Phase", style="dim")
    for c in result.clients:
        table.add_row(
            c.display_name or "-",
            c.phone_normalized,
            c.visiting_type or "-",
            str(c.days_since_last_visit),
            str(c.days_overdue),
            f"{c.score:.0f}" + (" *" if c.holiday_cohort else ""),
            c.phase,
        )
    console.print(table)


if __name__ == "__main__":
    app()
