#!/usr/bin/env python3
"""
clinicrm CLI

Command-line interface for the clinic follow-up CRM: sign in, browse
patients and follow-ups, view dashboard figures, and manage demo data
and spreadsheet imports.
"""

import asyncio
import random
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from clinicrm import __version__
from clinicrm.config import get_app_config
from clinicrm.context import CRMContext, build_context
from clinicrm.db.filters import OrderBy
from clinicrm.errors import CRMError
from clinicrm.logging import setup_logging
from clinicrm.notify import Notifier
from clinicrm.services.followups import filter_follow_ups, pending_follow_ups, recent_follow_ups
from clinicrm.services.bulk_import import write_template

console = Console()

STATUS_COLORS = {
    "Pending": "yellow",
    "Contacted": "blue",
    "Interested": "green",
    "Not Interested": "red",
    "Booked": "magenta",
    "Cold": "dim",
}


def _context() -> CRMContext:
    return build_context(notifier=Notifier(console))


def run_async(func):
    """Run an async command body; CRM errors become a red message and exit code 1."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(func(*args, **kwargs))
        except CRMError as e:
            console.print(f"[red]Error:[/red] {e.message}")
            raise SystemExit(1)

    return wrapper


async def _restored(ctx: CRMContext) -> CRMContext:
    """Resume the persisted session before running a command."""
    await ctx.auth.restore()
    return ctx


def _require_profile(ctx: CRMContext):
    if ctx.auth.profile is None:
        console.print("[red]Not signed in.[/red] Run [bold]clinicrm login[/bold] or [bold]clinicrm bypass[/bold] first.")
        raise SystemExit(1)
    return ctx.auth.profile


@click.group()
@click.version_option(version=__version__, prog_name="clinicrm")
@click.option("--log-level", default=None, help="Logging level (default: CLINICRM_LOG_LEVEL)")
def cli(log_level: Optional[str]):
    """
    clinicrm - patient follow-up CRM for medical clinics.
    """
    config = get_app_config()
    setup_logging(log_level or config.log_level, log_to_file=config.log_to_file)


# =============================================================================
# SESSION
# =============================================================================

@cli.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
@run_async
async def login(email: str, password: str):
    """
    Sign in with email and password.

    Example:

        clinicrm login doctor@clinic.ae
    """
    ctx = _context()
    profile = await ctx.auth.login(email, password)
    if profile is not None:
        console.print(f"Role: [cyan]{profile.role.value}[/cyan]")


@cli.command()
@run_async
async def bypass():
    """Start an admin bypass session (demo use only)."""
    ctx = _context()
    profile = await ctx.auth.bypass_auth()
    console.print(f"[dim]Bypass profile {profile.id} saved to {ctx.config.storage_dir}[/dim]")


@cli.command()
@run_async
async def logout():
    """End the current session."""
    ctx = await _restored(_context())
    if not ctx.auth.is_authenticated:
        console.print("[dim]No active session[/dim]")
        return
    await ctx.auth.logout()
    console.print("[green]✓ Signed out[/green]")


@cli.command()
@run_async
async def whoami():
    """Show the signed-in staff member."""
    ctx = await _restored(_context())
    profile = _require_profile(ctx)

    mode = "[yellow]admin bypass[/yellow]" if ctx.auth.is_bypass else "Supabase Auth"
    console.print(Panel(
        f"[bold]{profile.name}[/bold]\n"
        f"Email: {profile.email}\n"
        f"Role: {profile.role.value}\n"
        f"Clinic: {profile.clinic_id or '-'}\n"
        f"Session: {mode}",
        title="Current User",
        border_style="blue",
    ))


# =============================================================================
# DATA
# =============================================================================

@cli.command()
@click.option("--status", "-s", multiple=True, help="Only patients with this status (repeatable)")
@click.option("--search", help="Name pattern, e.g. 'john*'")
@click.option("--order", default="created_at", show_default=True, help="Column to sort by")
@click.option("--asc", is_flag=True, help="Sort ascending instead of descending")
@click.option("--page", type=int, default=0, show_default=True, help="Zero-based page")
@click.option("--limit", "-n", type=int, default=None, help="Rows per page")
@run_async
async def patients(status, search: Optional[str], order: str, asc: bool, page: int, limit: Optional[int]):
    """
    List patients visible to the signed-in user.

    Example:

        clinicrm patients --status Cold --search 'sara*'
    """
    ctx = await _restored(_context())
    profile = _require_profile(ctx)

    filters = {"status": list(status), "name": search}
    result = await ctx.patients(
        profile,
        filters=filters,
        order_by=OrderBy(order, ascending=asc),
        page=page,
        limit=limit,
    )
    if result.error is not None and not result.data:
        raise SystemExit(1)

    table = Table(title=f"Patients ({result.count} total, page {page})")
    table.add_column("Name")
    table.add_column("Phone")
    table.add_column("Treatment")
    table.add_column("Status")
    table.add_column("Created")

    for row in result.data:
        color = STATUS_COLORS.get(row.get("status"), "white")
        table.add_row(
            row.get("name") or "",
            row.get("phone") or "",
            row.get("treatment_type") or row.get("treatment_category") or "-",
            f"[{color}]{row.get('status')}[/{color}]",
            str(row.get("created_at") or "")[:10],
        )

    console.print(table)
    if result.origin == "cache":
        console.print("[dim]Showing cached demo data[/dim]")


@cli.command()
@click.option("--pending", is_flag=True, help="Only follow-ups awaiting a response")
@click.option("--kind", type=click.Choice(["call", "message"]), help="Calls or messages")
@click.option("--response", help="Response to match (Yes, No, Maybe, 'No Answer', Opt-out)")
@run_async
async def followups(pending: bool, kind: Optional[str], response: Optional[str]):
    """Show recent follow-ups, or those still pending."""
    ctx = await _restored(_context())
    profile = _require_profile(ctx)

    items = filter_follow_ups(await ctx.follow_up_view(profile), kind=kind, response=response)
    items = pending_follow_ups(items) if pending else recent_follow_ups(items)

    table = Table(title="Pending Follow-ups" if pending else "Recent Follow-ups")
    table.add_column("Date")
    table.add_column("Patient")
    table.add_column("Clinic")
    table.add_column("Type")
    table.add_column("Response")
    table.add_column("Notes")

    for item in items:
        notes = item.notes or ""
        table.add_row(
            f"{item.date} {item.time[:5]}",
            item.patient_name,
            item.clinic_name,
            item.type,
            item.response.value if item.response else "[dim]none[/dim]",
            notes[:40] + "..." if len(notes) > 40 else notes,
        )

    console.print(table)


@cli.command()
@run_async
async def stats():
    """Dashboard figures for the signed-in user."""
    ctx = await _restored(_context())
    profile = _require_profile(ctx)
    dashboard = await ctx.dashboard(profile)
    if dashboard.is_sample:
        console.print("[yellow]No patients yet; showing sample figures[/yellow]")

    counts = dashboard.follow_up_counts
    console.print(Panel(
        f"Follow-ups: [bold]{counts.total}[/bold] "
        f"({counts.call} calls, {counts.message} messages)\n"
        f"Pending patients: {counts.pending}\n"
        f"Interested: [green]{counts.interested}[/green]  "
        f"Not interested: [red]{counts.not_interested}[/red]",
        title="Overview",
        border_style="blue",
    ))

    status_table = Table(title="Patients by Status")
    status_table.add_column("Status")
    status_table.add_column("Count", justify="right")
    for status_name, count in sorted(dashboard.status_counts.items()):
        color = STATUS_COLORS.get(status_name, "white")
        status_table.add_row(f"[{color}]{status_name}[/{color}]", str(count))
    console.print(status_table)

    if dashboard.conversion_trend:
        trend_table = Table(title="Weekly Conversion")
        trend_table.add_column("Week of")
        trend_table.add_column("Patients", justify="right")
        trend_table.add_column("Interested", justify="right")
        trend_table.add_column("Rate", justify="right")
        for week in dashboard.conversion_trend:
            trend_table.add_row(week.week, str(week.total), str(week.interested), f"{week.rate:.0f}%")
        console.print(trend_table)

    if dashboard.follow_up_trend:
        daily_table = Table(title="Recent Follow-up Activity")
        daily_table.add_column("Date")
        daily_table.add_column("Calls", justify="right")
        daily_table.add_column("Messages", justify="right")
        daily_table.add_column("Responses", justify="right")
        for day in dashboard.follow_up_trend:
            daily_table.add_row(day.date, str(day.calls), str(day.messages), str(day.responses))
        console.print(daily_table)


@cli.command()
@click.option("--clinic", "clinic_id", default=None, help="Clinic id (default: your clinic)")
@click.option("--last", "last_contact", default=None, help="Last contact time, ISO format")
@run_async
async def outreach(clinic_id: Optional[str], last_contact: Optional[str]):
    """Show the clinic's outreach window and the next allowed contact time."""
    ctx = await _restored(_context())
    profile = _require_profile(ctx)
    window = await ctx.outreach_window(clinic_id or profile.clinic_id)

    now = datetime.now()
    last = datetime.fromisoformat(last_contact) if last_contact else now
    next_time = window.next_contact_time(last)
    excluded = ", ".join(sorted(window.excluded_days)) or "none"

    console.print(Panel(
        f"Window: {window.start.strftime('%H:%M')} - {window.end.strftime('%H:%M')}\n"
        f"Excluded: {excluded}\n"
        f"Interval: {int(window.interval.total_seconds() // 60)} minutes\n"
        f"Open now: {'[green]yes[/green]' if window.is_open(now) else '[red]no[/red]'}\n"
        f"Next contact: {next_time.strftime('%Y-%m-%d %H:%M') if next_time else '-'}",
        title="Outreach",
        border_style="blue",
    ))


# =============================================================================
# DEMO DATA
# =============================================================================

@cli.group()
def demo():
    """Generate or clear demo data."""


@demo.command("generate")
@click.option("--seed", type=int, help="Random seed for reproducibility")
@run_async
async def demo_generate(seed: Optional[int]):
    """Populate an empty clinic with demo patients and follow-ups."""
    ctx = await _restored(_context())
    _require_profile(ctx)

    rng = random.Random(seed) if seed is not None else None
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task("Generating demo data...", total=None)
        dataset = await ctx.demo_generator(rng=rng).generate_demo_data()

    if dataset is None:
        return
    if dataset.patients_simulated or dataset.follow_ups_simulated:
        console.print("[yellow]The database refused the inserts; demo rows are kept locally.[/yellow]")


@demo.command("clear")
@click.confirmation_option(prompt="This deletes all patients and follow-ups. Continue?")
@run_async
async def demo_clear():
    """Delete all patients and follow-ups and the local demo cache."""
    ctx = await _restored(_context())
    results = await ctx.demo_generator().clear_demo_data()
    for table_name, ok in results.items():
        mark = "[green]✓[/green]" if ok else "[red]✗[/red]"
        console.print(f"{mark} {table_name}")
    if not all(results.values()):
        raise SystemExit(1)


# =============================================================================
# IMPORT
# =============================================================================

@cli.command("import")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@run_async
async def import_patients(file_path: str):
    """
    Import patients from a .csv, .xlsx or .xls file.

    Example:

        clinicrm import ./patients.xlsx
    """
    ctx = await _restored(_context())
    _require_profile(ctx)

    report = await ctx.importer().import_file(file_path)
    console.print(f"\n[bold]{report.filename}:[/bold] {report.success_count} imported, {report.error_count} failed")
    for message in report.errors[:20]:
        console.print(f"  [red]•[/red] {message}")
    if len(report.errors) > 20:
        console.print(f"  [dim]... and {len(report.errors) - 20} more[/dim]")


@cli.command()
@click.argument("file_path", type=click.Path(dir_okay=False))
def template(file_path: str):
    """Write the patient import template (.csv or .xlsx)."""
    path = write_template(Path(file_path))
    console.print(f"[green]✓ Template written to {path}[/green]")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
