"""CLI entry point: bookcatalog.

Subcommands:
    bookcatalog serve --port 8080    # Run the REST API under uvicorn
    bookcatalog init-db              # Create tables and indexes
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import uvicorn
from dotenv import load_dotenv

from bookcatalog.core.config import Settings
from bookcatalog.core.database import create_engine, create_schema
from bookcatalog.core.logging import get_logger, setup_logging


@click.group()
def main() -> None:
    """Book catalog service.

    A ``.env`` file in the working directory is loaded first; variables
    already set in the environment take precedence.
    """
    load_dotenv(Path.cwd() / ".env", override=False)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8080, show_default=True, type=int, help="Bind port.")
@click.option("--reload", is_flag=True, help="Reload on code changes (development).")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the REST API."""
    uvicorn.run(
        "bookcatalog.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


async def _init_db(settings: Settings) -> None:
    engine = create_engine(settings)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


@main.command("init-db")
def init_db() -> None:
    """Create the books table and its indexes on the configured database."""
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_format)
    log = get_logger("bookcatalog.cli")
    try:
        asyncio.run(_init_db(settings))
    except Exception as exc:
        log.error("cli.init_db_failed", error=str(exc))
        raise click.ClickException(f"schema creation failed: {exc}") from exc
    log.info("cli.init_db_done")
    click.echo("schema created")


if __name__ == "__main__":
    main()
