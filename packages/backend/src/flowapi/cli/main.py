"""Flow CLI — drive the onboarding API from a terminal.

Usage:
    flowapi login --token <google-id-token>          # IdP token → app tokens
    flowapi signup-check --token <google-id-token>   # Is this identity free?
    flowapi signup --token T --dni 123 --name Ana ... # Register with profile
    flowapi get-user ana@example.com                 # Stored profile
    flowapi inspect-token <access-token>             # Decode an app token locally
    flowapi init-db                                  # Create the users table
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("FLOW_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Flow API."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _report(r: httpx.Response) -> None:
    """Print the response body; exit non-zero on an error status."""
    if r.is_success:
        click.secho(f"{r.status_code} OK", fg="green", err=True)
        if r.content:
            click.echo(_pretty_json(r.json()))
        return
    try:
        message = r.json().get("message", r.text)
    except ValueError:
        message = r.text
    click.secho(f"{r.status_code} {message}", fg="red", err=True)
    sys.exit(1)


async def _post(path: str, body: dict, token: Optional[str] = None) -> httpx.Response:
    async with _client() as c:
        return await c.post(path, json=body, headers=_auth(token) if token else None)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="flowapi")
def main():
    """Flow API — log in, sign up, and inspect users and tokens."""


_token_option = click.option("--token", "-t", required=True, help="IdP token (e.g. a Google ID token)")
_idp_option = click.option("--idp", default="google", show_default=True, help="Identity provider")


@main.command()
@_token_option
@_idp_option
def login(token: str, idp: str):
    """Exchange an IdP token for Flow access/refresh tokens."""
    _report(_run(_post("/auth/login", {"idp": idp}, token)))


@main.command("signup-check")
@_token_option
@_idp_option
def signup_check(token: str, idp: str):
    """Signup step 1: check that the IdP identity is not registered yet."""
    _report(_run(_post("/users/signup", {"step": "1", "idp": idp}, token)))


@main.command()
@_token_option
@_idp_option
@click.option("--dni", required=True)
@click.option("--name", required=True)
@click.option("--lastname-main", required=True)
@click.option("--lastname-secondary", required=True)
@click.option("--address", required=True)
def signup(token: str, idp: str, dni: str, name: str, lastname_main: str,
           lastname_secondary: str, address: str):
    """Signup step 2: register the IdP identity with a profile."""
    body = {
        "step": "2",
        "idp": idp,
        "user_info": {
            "dni": dni,
            "name": name,
            "lastname_main": lastname_main,
            "lastname_secondary": lastname_secondary,
            "address": address,
        },
    }
    _report(_run(_post("/users/signup", body, token)))


@main.command("get-user")
@click.argument("email")
def get_user(email: str):
    """Show the stored profile for EMAIL."""

    async def _get():
        async with _client() as c:
            return await c.get(f"/users/{email}")

    _report(_run(_get()))


@main.command("inspect-token")
@click.argument("token")
@click.option("--secret", envvar="FLOW_JWT_SECRET", required=True,
              help="Signing secret (defaults to FLOW_JWT_SECRET)")
def inspect_token(token: str, secret: str):
    """Verify a Flow token locally and print its claims."""
    from flowapi.auth.jwt import TokenError, TokenIssuer

    try:
        claims = TokenIssuer(secret=secret).verify_token(token)
    except TokenError as e:
        click.secho(str(e), fg="red", err=True)
        sys.exit(1)
    click.echo(_pretty_json(claims))


@main.command("init-db")
def init_db():
    """Create database tables (uses FLOW_DATABASE_URL)."""
    from flowapi.db.engine import create_schema, engine

    async def _init():
        await create_schema()
        await engine.dispose()

    _run(_init())
    click.secho("Database schema ready", fg="green")


if __name__ == "__main__":
    main()
