"""Command-line interface for SitemapCore."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from sitemapcore import __version__
from sitemapcore.config import Config, load_config
from sitemapcore.errors import SitemapCoreError
from sitemapcore.observability import configure_logging
from sitemapcore.service import SitemapService

console = Console(stderr=True)
logger = structlog.get_logger(__name__)


def _load(ctx: click.Context) -> Config:
    config = load_config(ctx.obj["config_path"])
    if ctx.obj["log_level"]:
        config.monitoring.log_level = ctx.obj["log_level"]
    configure_logging(config.monitoring)
    return config


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """SitemapCore - resilient sitemap metadata crawler."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["log_level"] = log_level


@cli.command()
@click.argument("sitemap_url")
@click.option("--workers", type=int, default=None, help="Initial worker count (default from configuration)")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.option("--output", "-o", type=click.Path(), help="Write the JSON result to a file")
@click.pass_context
def crawl(ctx: click.Context, sitemap_url: str, workers: Optional[int], as_json: bool, output: Optional[str]) -> None:
    """Scrape title and description for every page in a sitemap."""
    config = _load(ctx)

    async def run_crawl() -> Dict[str, Any]:
        async with SitemapService(config) as service:
            return await service.scrape_sitemap(sitemap_url, workers=workers)

    try:
        data = asyncio.run(run_crawl())
    except SitemapCoreError as e:
        console.print(f"[red]❌ Crawl failed: {e}[/red]")
        sys.exit(1)

    payload = json.dumps({"success": True, "data": data}, indent=2)
    if output:
        Path(output).write_text(payload, encoding="utf-8")
        console.print(f"[green]✅ Results written to {output}[/green]")

    if as_json:
        click.echo(payload)
        return

    table = Table(title=f"Sitemap: {data['sitemapUrl']}")
    table.add_column("URL", style="cyan", overflow="fold")
    table.add_column("Title", style="magenta")
    table.add_column("Status")
    for item in data["urls"]:
        if item["success"]:
            status = "✅ OK"
        elif item["isRateLimit"]:
            status = "⏳ Rate limited"
        else:
            status = "❌ Fallback"
        table.add_row(item["url"], item["title"], status)
    Console().print(table)

    failed = sum(1 for item in data["urls"] if not item["success"])
    console.print(f"[green]Processed {data['totalUrls']} URLs[/green] ({failed} fallbacks)")


@cli.command()
@click.option("--host", default=None, help="Host to bind to (default from configuration)")
@click.option("--port", default=None, type=int, help="Port to bind to (default from configuration)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Start the HTTP API."""
    from sitemapcore.web import run_web_server

    config = _load(ctx)
    console.print(f"[green]🚀 Starting API at http://{host or config.web.host}:{port or config.web.port}[/green]")
    run_web_server(config, host=host, port=port)


@cli.command()
@click.pass_context
def validate_config(ctx: click.Context) -> None:
    """Validate the current configuration."""
    try:
        config = load_config(ctx.obj["config_path"])
    except Exception as e:
        console.print(f"[red]❌ Configuration validation failed: {e}[/red]")
        sys.exit(1)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("extraction.api_url", config.extraction.api_url)
    table.add_row("extraction.api_key", "set" if config.extraction.api_key else "missing")
    table.add_row("batch.initial_workers", str(config.batch.initial_workers))
    table.add_row("retry.max_retries", str(config.retry.max_retries))
    for name, interval in sorted(config.resilience.rate_limits.items()):
        table.add_row(f"resilience.rate_limits.{name}", f"{interval}s")
    Console().print(table)

    if not config.extraction.api_key:
        console.print("[yellow]⚠️ No Firecrawl API key configured[/yellow]")
    console.print("[green]✅ Configuration is valid![/green]")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
