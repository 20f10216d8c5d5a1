import asyncio
import json
import logging
import sys

import click

from .clients import create_clients, create_http_client
from .config import get_settings
from .data_models.search import Query
from .services import DEFAULT_AUTOCOMPLETE_LIMIT, SearchEngine
from .version import __version__


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log at DEBUG level.")
def cli(*, verbose: bool) -> None:
    """Gallery search CLI - tag search and proxy routes for the gallery front end."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.option("--host", default="localhost", help="Host to bind.")
@click.option("--port", default=8080, help="Port to bind.", type=int)
def serve(host: str, port: int) -> None:
    """Start the HTTP server."""
    import uvicorn

    from .app import create_app

    settings = _load_settings()
    click.echo("Starting gallery search server")
    click.echo(f"Version: {__version__}")
    click.echo(f"Server URL: http://{host}:{port}")
    click.echo(f"Search endpoint: http://{host}:{port}/api/search")
    click.echo("Press CTRL+C to stop")
    uvicorn.run(create_app(settings), host=host, port=port)


@cli.command()
@click.argument("tags", default="")
@click.option("--page", default="1", help="1-based page number.")
@click.option("--limit", default="42", help="Page size.")
@click.option(
    "--mode",
    default="unified",
    type=click.Choice(["unified", "historical", "external"], case_sensitive=False),
    help="Backing sources to search.",
)
def search(tags: str, page: str, limit: str, mode: str) -> None:
    """Run one search and print the JSON response."""
    settings = _load_settings()
    query = Query.from_params(tags, page, limit, mode, max_limit=settings.max_limit)

    async def run() -> dict:
        async with create_http_client(settings) as http:
            engine = SearchEngine.from_settings(settings, *create_clients(settings, http))
            response = await engine.search(query)
            return response.to_json()

    click.echo(json.dumps(asyncio.run(run()), indent=2))


@cli.command()
@click.argument("text")
@click.option("--limit", default=DEFAULT_AUTOCOMPLETE_LIMIT, type=int, help="Maximum suggestions.")
def autocomplete(text: str, limit: int) -> None:
    """Suggest tags completing the last word of TEXT."""
    settings = _load_settings()

    async def run() -> list[dict]:
        async with create_http_client(settings) as http:
            engine = SearchEngine.from_settings(settings, *create_clients(settings, http))
            suggestions = await engine.autocomplete(text, limit)
            return [s.model_dump() for s in suggestions]

    click.echo(json.dumps(asyncio.run(run()), indent=2))


def _load_settings():
    try:
        return get_settings()
    except ValueError as e:
        click.echo(str(e), err=True)
        sys.stderr.flush()
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()
