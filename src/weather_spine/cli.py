"""CLI for Weather Spine."""

from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
import structlog

from weather_spine.config import get_settings
from weather_spine.errors import NotFound, WeatherSpineError
from weather_spine.observability import configure_logging

app = typer.Typer(
    name="weather-spine",
    help="Weather Spine - fan-out/fan-in weather image jobs",
    no_args_is_help=True,
)

logger = structlog.get_logger()


def setup():
    """Initialize application."""
    configure_logging()


def teardown():
    """Cleanup application."""
    if get_settings().status_store_type == "postgres":
        from weather_spine.db import close_pool

        close_pool()


def _format_time(value) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


# =============================================================================
# Database Commands
# =============================================================================

db_app = typer.Typer(help="Database operations")
app.add_typer(db_app, name="db")


@db_app.command("migrate")
def db_migrate(
    migrations_dir: Optional[Path] = typer.Option(
        None,
        help="Directory containing migration files",
    ),
):
    """Run database migrations."""
    setup()
    try:
        from weather_spine.db import init_db

        if migrations_dir is not None and not migrations_dir.exists():
            typer.echo(f"Migrations directory not found: {migrations_dir}")
            raise typer.Exit(1)

        applied = init_db(migrations_dir)
        for filename in applied:
            typer.echo(f"  [apply] {filename}")
        typer.echo("Migrations complete" if applied else "Database is up to date")
    finally:
        teardown()


# =============================================================================
# Job Commands
# =============================================================================

job_app = typer.Typer(help="Job operations")
app.add_typer(job_app, name="job")


@job_app.command("start")
def job_start(
    max_items: Optional[int] = typer.Option(None, help="Maximum number of stations"),
):
    """Start a job and print its id."""
    setup()
    try:
        from weather_spine.intake import JobIntake

        try:
            accepted = JobIntake().start_job(max_items=max_items)
        except WeatherSpineError as e:
            typer.echo(f"Could not start job: {e.message}")
            raise typer.Exit(1)

        typer.echo(f"Job accepted: {accepted.job_id}")
        typer.echo(f"  Created: {_format_time(accepted.created_at)}")
    finally:
        teardown()


@job_app.command("status")
def job_status(job_id: str = typer.Argument(..., help="Job ID")):
    """Show a job's progress."""
    setup()
    try:
        from weather_spine.status import get_status_store

        try:
            record = get_status_store().get(job_id)
        except NotFound:
            typer.echo(f"Job not found: {job_id}")
            raise typer.Exit(1)

        typer.echo(f"\nJob: {job_id}")
        typer.echo("-" * 60)
        typer.echo(f"  Status:    {record.status.value}")
        typer.echo(f"  Progress:  {record.processed}/{record.total}")
        typer.echo(f"  Started:   {_format_time(record.start_time)}")
        typer.echo(f"  Completed: {_format_time(record.completed_time)}")
        if record.error_message:
            typer.echo(f"  Error:     {record.error_message}")

        for entry in sorted(record.results, key=lambda r: r.ordinal):
            name = entry.metadata.get("station_name", "")
            typer.echo(f"    [{entry.ordinal:03d}] {entry.artifact_path}  {name}")
    finally:
        teardown()


@job_app.command("list")
def job_list(limit: int = typer.Option(20, help="Maximum jobs to show")):
    """List jobs, most recently started first."""
    setup()
    try:
        from weather_spine.status import get_status_store, sort_history

        records = sort_history(get_status_store().list())[:limit]
        if not records:
            typer.echo("No jobs")
            return

        typer.echo(f"\nJobs ({len(records)}):")
        typer.echo("-" * 80)
        for record in records:
            typer.echo(
                f"  {record.job_id} | {record.status.value:<10} | "
                f"{record.processed:>3}/{record.total:<3} | {_format_time(record.start_time)}"
            )
    finally:
        teardown()


@job_app.command("stuck")
def job_stuck(
    minutes: Optional[int] = typer.Option(None, help="Age threshold (default from settings)"),
):
    """List jobs still processing after the threshold."""
    setup()
    try:
        from weather_spine.status import find_stuck_jobs, get_status_store

        threshold = minutes if minutes is not None else get_settings().stuck_job_minutes
        stuck = find_stuck_jobs(get_status_store().list(), timedelta(minutes=threshold))
        if not stuck:
            typer.echo(f"No jobs processing for more than {threshold} minutes")
            return

        typer.echo(f"\nStuck jobs ({len(stuck)}):")
        typer.echo("-" * 80)
        for record in stuck:
            missing = sorted(set(range(record.total)) - record.completed_ordinals)
            typer.echo(
                f"  {record.job_id} | {record.processed}/{record.total} | "
                f"started {_format_time(record.start_time)} | missing {missing}"
            )
    finally:
        teardown()


@job_app.command("smoke")
def job_smoke():
    """Process one station end to end without queues or a job record."""
    setup()
    try:
        from weather_spine.smoke import SmokeTest

        try:
            result = SmokeTest().run()
        except WeatherSpineError as e:
            typer.echo(f"Smoke test failed: {e.message}")
            raise typer.Exit(1)

        typer.echo(f"Smoke test passed: {result.job_id}")
        typer.echo(f"  Station:  {result.station.get('station_name', '-')}")
        typer.echo(f"  Artifact: {result.artifact_path} ({result.size_bytes} bytes)")
    finally:
        teardown()


# =============================================================================
# DLQ Commands
# =============================================================================

dlq_app = typer.Typer(help="Dead Letter Queue operations")
app.add_typer(dlq_app, name="dlq")


@dlq_app.command("list")
def dlq_list(limit: int = typer.Option(50, help="Maximum items to show")):
    """List dead-lettered messages."""
    setup()
    try:
        from weather_spine.orchestration import get_dead_letter_store

        items = get_dead_letter_store().list(limit=limit)
        if not items:
            typer.echo("DLQ is empty")
            return

        typer.echo(f"\nDLQ Items ({len(items)}):")
        typer.echo("-" * 80)
        for item in items:
            typer.echo(
                f"  {item.id[:12]}... | {item.queue} | job {item.job_id or 'N/A'} | "
                f"attempts: {item.attempts} | {item.error[:40]}"
            )
    finally:
        teardown()


# =============================================================================
# Worker Commands
# =============================================================================

worker_app = typer.Typer(help="Celery worker management")
app.add_typer(worker_app, name="worker")


@worker_app.command("start")
def worker_start(
    concurrency: int = typer.Option(4, help="Number of worker processes"),
    queues: Optional[str] = typer.Option(None, help="Comma-separated queue names"),
    loglevel: str = typer.Option("INFO", help="Log level"),
):
    """Start a Celery worker consuming the intake and units queues."""
    import subprocess
    import sys

    settings = get_settings()
    queues = queues or f"{settings.intake_queue},{settings.units_queue}"

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "weather_spine.celery_app",
        "worker",
        f"--concurrency={concurrency}",
        f"--queues={queues}",
        f"--loglevel={loglevel}",
    ]

    typer.echo(f"Starting worker: {' '.join(cmd)}")
    subprocess.run(cmd)


# =============================================================================
# Server Commands
# =============================================================================


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind"),
    port: Optional[int] = typer.Option(None, help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "weather_spine.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


# =============================================================================
# Main
# =============================================================================


def main():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
