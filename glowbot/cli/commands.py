"""GlowBot CLI — Typer-based command-line interface."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from glowbot import __version__

app = typer.Typer(
    name="glowbot",
    help="glowbot - recurring content-generation scheduler",
    no_args_is_help=True,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"glowbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """glowbot - recurring content-generation scheduler."""


# ════════════════════════════════════════════════════════════
# run: start API server
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int = typer.Option(8000, "--port", "-p", help="Port number"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host address"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server (uvicorn). Active jobs are armed on startup."""
    import uvicorn

    console.print(f"[green]Starting glowbot scheduler on {host}:{port}[/green]")
    uvicorn.run("glowbot.api.app:app", host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# status: config + DB info
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show configuration and job store status."""
    from glowbot.core.config.loader import load_config
    from glowbot.memory.store import JobStore

    config = load_config()
    store = JobStore(config.database.path)
    jobs = store.list_jobs()

    table = Table(title="glowbot status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("DB Path", config.database.path)
    table.add_row("Scheduler enabled", str(config.scheduler.enabled))
    table.add_row("Failure threshold", str(config.scheduler.failure_threshold))
    table.add_row("Generator", config.generation.endpoint)
    table.add_row("Jobs", str(len(jobs)))
    table.add_row("Active jobs", str(sum(1 for j in jobs if j.is_active)))

    console.print(table)


# ════════════════════════════════════════════════════════════
# jobs: job management (sub-command group)
# ════════════════════════════════════════════════════════════

jobs_app = typer.Typer(help="Inspect scheduled jobs")
app.add_typer(jobs_app, name="jobs")


@jobs_app.command("list")
def jobs_list(
    active: bool = typer.Option(False, "--active", help="Only active jobs"),
) -> None:
    """List scheduled jobs."""
    from glowbot.core.config.loader import load_config
    from glowbot.memory.store import JobStore

    config = load_config()
    store = JobStore(config.database.path)
    jobs = store.list_jobs(active_only=active)

    if not jobs:
        console.print("[dim]No scheduled jobs found.[/dim]")
        return

    table = Table(title="Scheduled Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Schedule", style="yellow")
    table.add_column("Niches", style="blue")
    table.add_column("Active", style="green")
    table.add_column("Runs", justify="right")
    table.add_column("Failures", justify="right", style="red")

    for job in jobs:
        table.add_row(
            str(job.id),
            job.name,
            f"{job.schedule_time} {job.timezone}",
            ", ".join(job.niches),
            str(job.is_active),
            str(job.total_runs),
            str(job.consecutive_failures),
        )

    console.print(table)


@jobs_app.command("disable-all")
def jobs_disable_all(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Mark every job inactive in the store (offline; a running server keeps its timers)."""
    from glowbot.core.config.loader import load_config
    from glowbot.memory.store import JobStore

    if not yes:
        typer.confirm("Disable every scheduled job?", abort=True)

    config = load_config()
    store = JobStore(config.database.path)
    ids = store.active_job_ids()
    for job_id in ids:
        store.set_active(job_id, False)
    console.print(f"[yellow]Disabled {len(ids)} job(s).[/yellow]")


# ════════════════════════════════════════════════════════════
# stop: emergency stop against a running server
# ════════════════════════════════════════════════════════════


@app.command()
def stop(
    url: str = typer.Option("http://localhost:8000", "--url", help="Server base URL"),
    token: str | None = typer.Option(None, "--token", help="Bearer token (when auth is enabled)"),
) -> None:
    """Trigger the emergency stop on a running server."""
    import httpx

    headers = {"Authorization": f"Bearer {token}"} if token else {}
    try:
        resp = httpx.post(f"{url.rstrip('/')}/emergency-stop", headers=headers, timeout=30.0)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Emergency stop failed:[/red] {e}")
        raise typer.Exit(1)

    report = resp.json()
    console.print(
        f"[bold red]Emergency stop:[/bold red] {report['timers_stopped']} timer(s), "
        f"{report['jobs_stopped']} job(s) disabled, {report['runs_cancelled']} run(s) cancelled"
    )
    for err in report.get("errors", []):
        console.print(f"  [yellow]![/yellow] {err}")


# ════════════════════════════════════════════════════════════
# token: mint a UI session token
# ════════════════════════════════════════════════════════════


@app.command()
def token(
    subject: str = typer.Argument(help="Operator name to embed in the token"),
) -> None:
    """Print a JWT for the control surface (requires auth.jwt_secret_key)."""
    from glowbot.api.auth import create_access_token
    from glowbot.core.config.loader import load_config

    config = load_config()
    if not config.auth_enabled:
        console.print("[red]auth.jwt_secret_key is not set; tokens are not required.[/red]")
        raise typer.Exit(1)

    console.print(
        create_access_token(
            subject,
            config.auth.jwt_secret_key,
            config.auth.jwt_algorithm,
            config.auth.access_token_expire_minutes,
        )
    )
