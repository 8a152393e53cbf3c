"""
Occasion Notifier CLI - Command line interface for running jobs.

Usage:
    notifier --help                 Show all commands
    notifier tick                   Enqueue users whose target hour has arrived
    notifier recover                Re-emit missed deliveries from the lookback window
    notifier consume                Drain the delivery queue
    notifier purge-dead-letters     Drop dead letters past retention
"""

import asyncio

import typer

app = typer.Typer(
    name="notifier",
    help="Occasion Notifier CLI - Job runner for yearly event notifications",
    no_args_is_help=True,
)


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def tick():
    """Run one scheduling tick and enqueue due deliveries."""
    from app.core.errors import DispatchFailedError
    from app.core.logging import setup_logging
    from app.jobs.tick import run_tick

    setup_logging()

    try:
        stats = asyncio.run(run_tick())
    except DispatchFailedError as e:
        _print_error(str(e))
        raise typer.Exit(1)

    _print_success(f"Scheduled {stats['scheduled']}, enqueued {stats['enqueued']}")
    if stats["failed"]:
        _print_warning(f"{stats['failed']} tasks in {stats['failed_batches']} batches failed")


@app.command()
def recover():
    """Run the recovery sweep over the lookback window."""
    from app.core.logging import setup_logging
    from app.jobs.recovery import run_recovery

    setup_logging()

    stats = asyncio.run(run_recovery())
    _print_success(
        f"Candidates {stats['candidates']}, recovered {stats['recovered']}, "
        f"skipped {stats['skipped']}"
    )
    if stats["errors"]:
        _print_warning(f"{stats['errors']} users failed")


@app.command()
def consume(
    max_polls: int | None = typer.Option(
        None, "--max-polls", "-m", help="Receive calls before stopping (default from config.yml)"
    ),
):
    """Drain the delivery queue through the webhook sink."""
    from app.core.errors import ConfigurationError
    from app.core.logging import setup_logging
    from app.jobs.consume import run_consumer

    setup_logging()

    try:
        stats = asyncio.run(run_consumer(max_polls=max_polls))
    except ConfigurationError as e:
        _print_error(str(e))
        raise typer.Exit(1)

    _print_success(
        f"Received {stats['received']}, committed {stats['committed'] + stats['committed_race']}"
    )
    if stats["failed"]:
        _print_warning(f"{stats['failed']} tasks failed and stay on the queue")


@app.command("purge-dead-letters")
def purge_dead_letters(
    retention_days: int | None = typer.Option(
        None, "--retention-days", "-d", help="Override the retention period"
    ),
):
    """Drop dead letters older than the retention period."""
    from app.core.logging import setup_logging
    from app.jobs.consume import run_purge

    setup_logging()

    purged = asyncio.run(run_purge(retention_days=retention_days))
    _print_success(f"Purged {purged} dead letters")


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
