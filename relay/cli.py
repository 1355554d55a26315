from __future__ import annotations

import json
from typing import Optional

import httpx
import typer
import uvicorn

from relay.core.config import get_settings

cli = typer.Typer(name="rev-relay", help="Rev voice relay")


def _base_url(url: Optional[str]) -> str:
    if url:
        return url.rstrip("/")
    settings = get_settings()
    host = "127.0.0.1" if settings.host in ("0.0.0.0", "") else settings.host
    return f"http://{host}:{settings.port}"


@cli.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
) -> None:
    """Start the relay (HTTP + /ws channel)."""
    settings = get_settings()
    uvicorn.run("relay.main:app", host=host or settings.host, port=port or settings.port)


@cli.command()
def status(url: Optional[str] = typer.Option(None, "--url", help="Relay base URL")) -> None:
    """Print /health and /api-status of a running relay."""
    base = _base_url(url)
    try:
        health = httpx.get(f"{base}/health", timeout=5.0).json()
        api = httpx.get(f"{base}/api-status", timeout=5.0).json()
    except httpx.HTTPError as exc:
        typer.echo(f"Could not reach relay at {base}: {exc}")
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"health": health, "api": api}, ensure_ascii=False))


@cli.command("set-key")
def set_key(
    api_key: str = typer.Argument(..., help="Gemini API key"),
    url: Optional[str] = typer.Option(None, "--url", help="Relay base URL"),
) -> None:
    """Send a Gemini API key to a running relay."""
    base = _base_url(url)
    try:
        response = httpx.post(f"{base}/set-api-key", json={"apiKey": api_key.strip()}, timeout=10.0)
    except httpx.HTTPError as exc:
        typer.echo(f"Could not reach relay at {base}: {exc}")
        raise typer.Exit(code=1)
    data = response.json()
    if response.status_code != 200:
        typer.echo(data.get("error") or "Failed to configure API key")
        raise typer.Exit(code=1)
    typer.echo(data.get("message", "API key set successfully"))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
