"""FixDispatch server CLI."""

import asyncio
import logging
import subprocess
from pathlib import Path

import typer
from pydantic import SecretStr
from rich.console import Console
from rich.table import Table

from fixdispatch import __version__
from fixdispatch.config import get_settings
from fixdispatch.db.enums import DispatchStatus

app = typer.Typer(
    name="fixdispatch",
    help="FixDispatch - outbound dispatch queue for fix actions",
    no_args_is_help=True,
)

console = Console()

db_app = typer.Typer(help="Database management commands")
app.add_typer(db_app, name="db")

STATUS_STYLES = {
    DispatchStatus.PENDING.value: "yellow",
    DispatchStatus.IN_FLIGHT.value: "cyan",
    DispatchStatus.SENT.value: "green",
    DispatchStatus.FAILED.value: "red",
    DispatchStatus.DEAD.value: "bold red",
}


def run_async(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def serve(
    api_only: bool = typer.Option(False, "--api-only", help="Run only the API server"),
    worker_only: bool = typer.Option(False, "--worker-only", help="Run only the dispatch worker"),
    log_level: str = typer.Option("info", "--log-level", help="Logging level"),
    shutdown_timeout: int = typer.Option(
        30, "--shutdown-timeout", help="Timeout for graceful shutdown in seconds"
    ),
):
    """Start the API server and the dispatch scheduler."""
    import signal

    import uvicorn

    from fixdispatch.dispatch.worker import DispatchWorker
    from fixdispatch.main import create_app

    if api_only and worker_only:
        console.print("[red]--api-only and --worker-only are mutually exclusive[/red]")
        raise typer.Exit(1)

    _configure_logging(log_level)
    settings = get_settings()

    async def run_all():
        worker = DispatchWorker(settings)
        uvicorn_server: uvicorn.Server | None = None
        shutdown_event = asyncio.Event()

        async def graceful_shutdown(sig: signal.Signals | None = None) -> None:
            if sig:
                console.print(f"\n[yellow]Received {sig.name}, shutting down...[/yellow]")
            else:
                console.print("\n[yellow]Shutting down...[/yellow]")

            shutdown_event.set()

            if uvicorn_server is not None:
                uvicorn_server.should_exit = True
                console.print("[dim]Stopping API server...[/dim]")

            console.print("[dim]Stopping dispatch worker...[/dim]")
            await worker.stop(timeout=shutdown_timeout)
            console.print("[green]Shutdown complete[/green]")

        loop = asyncio.get_running_loop()

        def signal_handler(sig: signal.Signals) -> None:
            loop.create_task(graceful_shutdown(sig))

        try:
            loop.add_signal_handler(signal.SIGTERM, lambda: signal_handler(signal.SIGTERM))
            loop.add_signal_handler(signal.SIGINT, lambda: signal_handler(signal.SIGINT))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

        tasks = []

        if not worker_only:
            config = uvicorn.Config(
                create_app(settings, worker=worker),
                host=settings.api_host,
                port=settings.api_port,
                log_level=log_level.lower(),
            )
            uvicorn_server = uvicorn.Server(config)
            tasks.append(asyncio.create_task(uvicorn_server.serve()))
            console.print(
                f"[green]API server started on {settings.api_host}:{settings.api_port}[/green]"
            )

        if not api_only:
            if worker.start():
                console.print(
                    f"[green]Dispatch worker started "
                    f"(interval: {settings.scheduler_interval}s)[/green]"
                )
            else:
                console.print("[yellow]Dispatch scheduler disabled[/yellow]")

        if not settings.dispatch_endpoint_url:
            console.print("[yellow]No dispatch endpoint configured; deliveries will fail[/yellow]")

        if tasks:
            await asyncio.gather(*tasks)
        elif worker.running:
            await worker.wait()
        else:
            await shutdown_event.wait()

        # Let an in-progress batch finish before the loop closes
        await worker.stop(timeout=shutdown_timeout)

    try:
        asyncio.run(run_all())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")


@app.command("run-once")
def run_once(
    limit: int = typer.Option(None, "--limit", "-n", help="Maximum items to process"),
    log_level: str = typer.Option("warning", "--log-level", help="Logging level"),
):
    """Process one batch of due items and print the results."""
    from fixdispatch.db.session import close_engine
    from fixdispatch.dispatch.worker import DispatchWorker

    _configure_logging(log_level)

    async def run():
        worker = DispatchWorker(get_settings())
        try:
            return await worker.run_once(limit)
        finally:
            await worker.client.aclose()
            await close_engine()

    results = run_async(run())

    if not results:
        console.print("[dim]No dispatch items due[/dim]")
        return

    table = Table(title="Dispatch Results")
    table.add_column("ID", style="dim")
    table.add_column("Outcome")
    table.add_column("Attempts")
    table.add_column("Next Attempt")
    table.add_column("Error")

    for result in results:
        if result.success:
            outcome = "[green]sent[/green]"
        elif result.dead_lettered:
            outcome = "[bold red]dead[/bold red]"
        else:
            outcome = "[red]failed[/red]"
        table.add_row(
            str(result.id),
            outcome,
            str(result.attempts),
            str(result.next_attempt_at or "-"),
            (result.error or "")[:60],
        )

    console.print(table)


@app.command()
def enqueue(
    project_id: str = typer.Argument(..., help="Project the fix belongs to"),
    url: str = typer.Option(None, "--url", help="Target URL"),
    field: str = typer.Option(None, "--field", help="Field to change"),
    value: str = typer.Option(None, "--value", help="New value"),
    priority: int = typer.Option(0, "--priority", "-p", help="Higher is serviced first"),
    requested_by: str = typer.Option(None, "--requested-by"),
    platform: str = typer.Option(None, "--platform"),
    external_id: str = typer.Option(None, "--external-id"),
    notes: str = typer.Option(None, "--notes"),
):
    """Enqueue a fix action for delivery."""
    from fixdispatch.db.session import async_session, close_engine
    from fixdispatch.dispatch.store import create_item
    from fixdispatch.schemas import DispatchItemCreate

    payload = DispatchItemCreate(
        project_id=project_id,
        url=url,
        field=field,
        value=value,
        priority=priority,
        requested_by=requested_by,
        platform=platform,
        external_id=external_id,
        notes=notes,
    )

    async def create():
        try:
            async with async_session() as session:
                item = await create_item(session, payload)
                await session.commit()
                return item
        finally:
            await close_engine()

    item = run_async(create())
    console.print(f"[green]Enqueued dispatch item {item.id} (priority {item.priority})[/green]")


@app.command()
def stats(
    project_id: str = typer.Option(None, "--project", help="Limit to one project"),
):
    """Show dispatch item counts by status."""
    from fixdispatch.db.session import async_session, close_engine
    from fixdispatch.dispatch.store import count_by_status

    async def count():
        try:
            async with async_session() as session:
                return await count_by_status(session, project_id=project_id)
        finally:
            await close_engine()

    counts = run_async(count())

    table = Table(title="Dispatch Queue")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, total in counts.items():
        style = STATUS_STYLES.get(status, "white")
        table.add_row(f"[{style}]{status}[/{style}]", str(total))

    console.print(table)


@app.command("list")
def list_command(
    project_id: str = typer.Option(None, "--project", help="Limit to one project"),
    status: DispatchStatus = typer.Option(None, "--status", help="Filter by status"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum items to show"),
):
    """List dispatch items, newest first."""
    from fixdispatch.db.session import async_session, close_engine
    from fixdispatch.dispatch.store import list_items

    async def fetch():
        try:
            async with async_session() as session:
                return await list_items(session, project_id=project_id, status=status, limit=limit)
        finally:
            await close_engine()

    items = run_async(fetch())

    if not items:
        console.print("[dim]No dispatch items found[/dim]")
        return

    table = Table(title="Dispatch Items")
    table.add_column("ID", style="dim")
    table.add_column("Project")
    table.add_column("Status")
    table.add_column("Priority", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Last Error")

    for item in items:
        style = STATUS_STYLES.get(item.status, "white")
        table.add_row(
            str(item.id),
            item.project_id,
            f"[{style}]{item.status}[/{style}]",
            str(item.priority),
            str(item.attempts),
            (item.last_error or "")[:60],
        )

    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"FixDispatch version {__version__}")


@app.command()
def show_config():
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="FixDispatch Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for field_name in type(settings).model_fields:
        value = getattr(settings, field_name)
        # Hide sensitive values
        if isinstance(value, SecretStr):
            value = "********"
        table.add_row(field_name, str(value))

    console.print(table)


# Database commands


@db_app.command("upgrade")
def db_upgrade(
    revision: str = typer.Argument("head", help="Revision to upgrade to"),
):
    """Upgrade database to a revision."""
    _run_alembic("upgrade", revision)


@db_app.command("downgrade")
def db_downgrade(
    revision: str = typer.Argument(..., help="Revision to downgrade to"),
):
    """Downgrade database to a revision."""
    _run_alembic("downgrade", revision)


@db_app.command("current")
def db_current():
    """Show current database revision."""
    _run_alembic("current")


@db_app.command("history")
def db_history():
    """Show revision history."""
    _run_alembic("history")


def _run_alembic(*args):
    """Run alembic command."""
    project_dir = Path(__file__).parent.parent.parent
    alembic_ini = project_dir / "alembic.ini"

    if not alembic_ini.exists():
        console.print(f"[red]alembic.ini not found at {alembic_ini}[/red]")
        raise typer.Exit(1)

    cmd = ["alembic", "-c", str(alembic_ini), *args]
    result = subprocess.run(cmd, cwd=project_dir)
    if result.returncode != 0:
        raise typer.Exit(result.returncode)


if __name__ == "__main__":
    app()
