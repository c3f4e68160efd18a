"""Typer CLI for Registry-Sync."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="registry-sync", help="Registry-Sync: asset registry event indexer")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(3000, help="Bind port"),
):
    """Start the read API; the listener starts too when the chain is configured."""
    import uvicorn
    from registry_sync.app import create_app
    from registry_sync.common.config import get_settings
    from registry_sync.common.logging import setup_logging

    setup_logging(get_settings().log_level)

    console.print(f"[bold green]Starting Registry-Sync on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


async def _run_backfill(from_block: int):
    from registry_sync.common.config import get_settings
    from registry_sync.common.logging import setup_logging
    from registry_sync.deps import get_backfill_controller, get_db

    setup_logging(get_settings().log_level)
    db = get_db()
    await db.init()
    await db.create_all()
    try:
        return await get_backfill_controller().sync(from_block)
    finally:
        await db.close()


@app.command()
def sync(
    from_block: int = typer.Option(0, "--from-block", min=0, help="First block to replay"),
):
    """Replay historical events from FROM_BLOCK up to the chain head."""
    from registry_sync.common.exceptions import RegistrySyncError

    try:
        report = asyncio.run(_run_backfill(from_block))
    except RegistrySyncError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)

    table = Table(title=f"Blocks {report.from_block}–{report.to_block}")
    table.add_column("Chunks")
    table.add_column("Registrations")
    table.add_column("Transfers")
    table.add_column("Failed chunks")
    table.add_row(
        f"{report.chunks_processed}/{report.chunks_total}",
        str(report.registered),
        str(report.transferred),
        str(len(report.failed_chunks)),
    )
    console.print(table)
    for failure in report.failed_chunks:
        console.print(
            f"[yellow]Skipped {failure.from_block}–{failure.to_block}:[/yellow] {failure.error}"
        )
    if not report.complete:
        raise typer.Exit(2)


async def _run_listener():
    from registry_sync.common.config import get_settings
    from registry_sync.common.logging import setup_logging
    from registry_sync.deps import get_db, get_live_controller

    setup_logging(get_settings().log_level)
    db = get_db()
    await db.init()
    await db.create_all()
    live = get_live_controller()
    await live.start()
    try:
        await asyncio.Event().wait()
    finally:
        await live.stop()
        await db.close()


@app.command()
def listen():
    """Apply new contract events as they are mined, until interrupted."""
    from registry_sync.common.exceptions import RegistrySyncError

    console.print("[bold green]Listening for registry events (Ctrl+C to stop)[/bold green]")
    try:
        asyncio.run(_run_listener())
    except KeyboardInterrupt:
        console.print("Listener stopped")
    except RegistrySyncError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:3000", help="Server URL"),
):
    """Check Registry-Sync server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
