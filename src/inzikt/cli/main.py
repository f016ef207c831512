"""Inzikt CLI — main entry point."""

import asyncio
import json

import click
from rich.console import Console
from rich.table import Table

from inzikt.log import configure_logging

console = Console()


async def _with_store(fn):
    from inzikt.core.store import JobStore
    from inzikt.db.session import get_session_factory

    async with get_session_factory()() as session:
        return await fn(JobStore(session))


def _scheduler(store):
    from inzikt.config import get_settings
    from inzikt.core.registry import build_default_registry
    from inzikt.core.scheduler import Scheduler

    return Scheduler(
        store,
        build_default_registry(),
        handler_timeout=get_settings().job_handler_timeout_seconds,
    )


def _summarize(value, limit: int = 60) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else text[: limit - 1] + "…"


@click.group()
@click.version_option(package_name="inzikt")
def cli():
    """Inzikt — scheduled and background job runner."""
    configure_logging()


@cli.command()
def tick():
    """Run every due scheduled job once (what the cron endpoint does)."""

    async def _tick(store):
        return await _scheduler(store).run_due_jobs()

    result = asyncio.run(_with_store(_tick))

    if not result.results:
        console.print("[dim]No jobs due.[/dim]")
        return

    table = Table(title=f"Ran {result.jobs_run} job(s)")
    table.add_column("Job", style="cyan")
    table.add_column("Execution")
    table.add_column("Status")
    table.add_column("Result / error")
    for r in result.results:
        colour = "green" if r.succeeded else "red"
        table.add_row(
            r.job_id,
            r.execution_id or "-",
            f"[{colour}]{r.status.value}[/{colour}]",
            _summarize(r.result if r.succeeded else r.error),
        )
    console.print(table)


@cli.command("run-job")
@click.argument("job_id")
def run_job(job_id: str):
    """Run one scheduled job now, regardless of its schedule."""
    from inzikt.core.errors import JobNotFoundError

    async def _run(store):
        return await _scheduler(store).run_job_now(job_id)

    try:
        outcome = asyncio.run(_with_store(_run))
    except JobNotFoundError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise SystemExit(1) from exc

    if outcome.succeeded:
        console.print(f"[green]✓[/green] Execution {outcome.execution_id} completed")
        console.print_json(json.dumps(outcome.result, default=str))
    else:
        console.print(f"[red]✗[/red] Execution {outcome.execution_id} failed: {outcome.error}")
        raise SystemExit(1)


@cli.command("seed-default-jobs")
@click.option("--user-id", default=None, help="Also schedule analysis/import jobs for this user")
@click.option("--provider", "providers", multiple=True, help="Provider to import from (repeatable)")
def seed_default_jobs(user_id: str | None, providers: tuple[str, ...]):
    """Create the default system jobs (and optionally a user's jobs)."""
    from inzikt.core.defaults import setup_system_jobs, setup_user_jobs

    async def _seed(store):
        created = await setup_system_jobs(store)
        if user_id:
            created += await setup_user_jobs(store, user_id, list(providers))
        return created

    created = asyncio.run(_with_store(_seed))
    if created:
        for name in created:
            console.print(f"[green]✓[/green] {name}")
    else:
        console.print("[dim]Default jobs already exist.[/dim]")
