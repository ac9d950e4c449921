"""
passkey-server command line interface.

Commands for running the server and maintaining its database.
"""

import asyncio
import sys
from typing import Optional

import click

from passkey_server import __version__
from passkey_server.config import Settings
from passkey_server.database import close_db, create_engine, create_session_factory, init_db
from passkey_server.services.challenge_store import SQLChallengeStore


def _settings(database_url: Optional[str]) -> Settings:
    settings = Settings()
    if database_url:
        settings.database_url = database_url
    return settings


@click.group()
@click.version_option(version=__version__, prog_name="passkey-server")
def main():
    """passkey-server - WebAuthn ceremony orchestration."""


@main.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=3000, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload")
def serve(host: str, port: int, reload: bool):
    """Start the ceremony server."""
    import uvicorn

    click.echo(f"Server is running on http://{host}:{port}")
    uvicorn.run("passkey_server.main:app", host=host, port=port, reload=reload)


@main.group()
def db():
    """Database management commands."""


@db.command("init")
@click.option("--database-url", help="Database URL")
def db_init(database_url: Optional[str]):
    """Initialize database tables."""
    settings = _settings(database_url)

    async def run():
        engine = create_engine(settings)
        try:
            await init_db(engine)
        finally:
            await close_db(engine)

    try:
        asyncio.run(run())
    except Exception as e:
        click.echo(f"Database initialization failed: {e}", err=True)
        sys.exit(1)
    click.echo("Database initialized successfully")


@main.group()
def challenges():
    """Challenge store commands."""


@challenges.command("purge")
@click.option("--database-url", help="Database URL")
def challenges_purge(database_url: Optional[str]):
    """Delete expired challenges."""
    settings = _settings(database_url)

    async def run() -> int:
        engine = create_engine(settings)
        try:
            await init_db(engine)
            store = SQLChallengeStore(
                create_session_factory(engine),
                ttl_seconds=settings.challenge_ttl_seconds,
            )
            return await store.purge_expired()
        finally:
            await close_db(engine)

    try:
        removed = asyncio.run(run())
    except Exception as e:
        click.echo(f"Challenge purge failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"Removed {removed} expired challenges")


@main.command()
def config():
    """Show the effective configuration."""
    settings = Settings()

    click.echo("passkey-server configuration:")
    click.echo(f"RP ID: {settings.rp_id}")
    click.echo(f"RP Name: {settings.rp_name}")
    click.echo(f"Origins: {', '.join(settings.rp_origins)}")
    click.echo(f"Registration user verification: {settings.registration_user_verification}")
    click.echo(f"Authentication user verification: {settings.authentication_user_verification}")
    click.echo(f"Resident key: {settings.resident_key}")
    click.echo(f"Challenge TTL: {settings.challenge_ttl_seconds}s")
    click.echo(f"Storage backend: {settings.storage_backend}")
    click.echo(f"Database URL: {settings.database_url}")


@main.command()
def version():
    """Show version information."""
    click.echo(f"passkey-server v{__version__}")


if __name__ == "__main__":
    main()
