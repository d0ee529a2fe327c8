"""CLI entry point for axle-server."""

import asyncio

import typer
import uvicorn

from axle_server import __version__
from axle_server.core.config import settings

app = typer.Typer(
    name="axle-server",
    help="Daily health scoring and workout suggestion service",
    no_args_is_help=True,
)


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind to (overrides config)"),
    port: int = typer.Option(None, help="Port to bind to (overrides config)"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server (and the daily scheduler).

    Example:
        axle-server serve
        axle-server serve --host 0.0.0.0 --port 8080 --reload
    """
    uvicorn.run(
        "axle_server.app:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("run-daily")
def run_daily() -> None:
    """Run the daily suggestion job once and print the summary.

    Exits non-zero if the job could not run at all.
    """
    from axle_server.app import configure_logging
    from axle_server.core.database import close_database
    from axle_server.models.job_run import JobTrigger
    from axle_server.services.daily_job import DailySuggestionJob

    configure_logging()

    async def _run() -> dict[str, int]:
        try:
            summary = await DailySuggestionJob().run(JobTrigger.CLI)
            return summary.to_dict()
        finally:
            await close_database()

    try:
        result = asyncio.run(_run())
    except Exception as e:
        typer.echo(f"Daily job failed: {e}", err=True)
        raise typer.Exit(code=1) from e

    for key, value in result.items():
        typer.echo(f"{key}: {value}")


@app.command("init-db")
def init_db() -> None:
    """Create database tables from the models (development)."""
    from axle_server.core.database import close_database, create_tables

    async def _create() -> None:
        try:
            await create_tables()
        finally:
            await close_database()

    asyncio.run(_create())
    typer.echo("Database tables created")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"axle-server v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
