"""Ignitor CLI — run the server and poke at a running one.

Usage:
    ignitor serve                      # Start uvicorn on IGNITOR_HOST:IGNITOR_PORT
    ignitor serve --reload --port 9000
    ignitor config                     # Effective settings as JSON
    ignitor health                     # GET /health on a running server
    ignitor channels                   # Live SSE channels and client counts
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Optional

import click
import httpx

from ignitor import __version__

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("IGNITOR_API_URL", DEFAULT_API_URL).rstrip("/")


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


async def _get(path: str) -> httpx.Response:
    async with httpx.AsyncClient(base_url=_api_url(), timeout=10.0) as client:
        return await client.get(path)


def _fetch(path: str) -> dict:
    try:
        resp = asyncio.run(_get(path))
    except httpx.HTTPError as e:
        click.secho(f"Error: cannot reach {_api_url()}: {e}", fg="red", err=True)
        sys.exit(1)
    if resp.status_code >= 400:
        click.secho(f"Error: {resp.status_code} {resp.text}", fg="red", err=True)
        sys.exit(1)
    return resp.json()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="ignitor")
def main():
    """Ignitor — backend application scaffold."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: IGNITOR_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: IGNITOR_PORT)")
@click.option("--reload", is_flag=True, help="Restart on code changes (development)")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Start the HTTP server."""
    import uvicorn

    from ignitor.config import settings

    uvicorn.run(
        "ignitor.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,  # configure_logging() owns the handlers
    )


@main.command()
def config():
    """Print the effective settings (secrets included — don't paste them)."""
    from ignitor.config import Settings

    click.echo(_pretty_json(Settings().model_dump()))


@main.command()
def health():
    """Health of a running server."""
    data = _fetch("/health")
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"{data.get('status')}  (uptime {data.get('uptime')})", fg=color, bold=True)
    click.echo(_pretty_json(data))


@main.command()
def channels():
    """Active SSE channels on a running server."""
    data = _fetch("/api/v1/realtime/channels")
    rows = data.get("channels", [])
    if not rows:
        click.echo("No active channels.")
        return
    click.secho(f"{'CHANNEL'.ljust(40)}  CLIENTS", bold=True)
    for row in rows:
        click.echo(f"{row['name'][:40].ljust(40)}  {row['clients']}")
    click.echo(f"\n{data.get('total_clients', 0)} client(s) total")


if __name__ == "__main__":
    main()
