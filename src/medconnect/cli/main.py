"""MedConnect operator CLI.

Usage:
    medconnect serve                                  # Run the API with uvicorn
    medconnect create-admin ops@clinic.io             # Create an ADMIN user (prompts for password)
    medconnect clean-tokens                           # Purge expired refresh tokens once
"""

from __future__ import annotations

import asyncio

import click

from medconnect.config import settings


def _run(coro):
    """Run an async coroutine from a synchronous Click handler."""
    return asyncio.run(coro)


async def _create_admin(email: str, password: str) -> str:
    from medconnect.auth.password import hash_password
    from medconnect.db.engine import async_session_factory, engine
    from medconnect.db.models import Role
    from medconnect.services.credential_store import CredentialStore

    try:
        async with async_session_factory() as db:
            store = CredentialStore(db)
            if await store.find_user_by_email(email):
                raise click.ClickException(f"User {email} already exists")
            user = await store.create_user(
                {
                    "email": email,
                    "password_hash": hash_password(password, settings.bcrypt_rounds),
                    "role": Role.ADMIN.value,
                }
            )
            return str(user.id)
    finally:
        await engine.dispose()


async def _clean_tokens() -> int:
    from medconnect.db.engine import async_session_factory, engine
    from medconnect.services.token_cleanup import TokenCleanupWorker

    try:
        return await TokenCleanupWorker(async_session_factory).run_once()
    finally:
        await engine.dispose()


@click.group()
def cli():
    """MedConnect backend administration."""


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to MEDCONNECT_HOST).")
@click.option("--port", default=None, type=int, help="Port (defaults to MEDCONNECT_PORT).")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes.")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "medconnect.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@cli.command("create-admin")
@click.argument("email")
@click.password_option(help="Password for the new admin.")
def create_admin(email: str, password: str):
    """Create an ADMIN user (admins have no agent profile)."""
    user_id = _run(_create_admin(email, password))
    click.echo(f"Created admin {email} ({user_id})")


@cli.command("clean-tokens")
def clean_tokens():
    """Delete every refresh token whose expiry has passed."""
    deleted = _run(_clean_tokens())
    click.echo(f"Deleted {deleted} expired refresh token(s)")


if __name__ == "__main__":
    cli()
