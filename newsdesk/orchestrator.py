import asyncio
import sys

import click
from rich import box
from rich.console import Console
from rich.table import Table

from .config import Settings, get_filter_rules, get_settings, validate_config
from .logging import setup_logging
from .processing.cleanup import CleanupError, CleanupResult, CleanupScope, run_cleanup
from .processing.domains import DomainBlocklist, extract_domain
from .processing.international import InternationalFilter
from .processing.relevance import RelevanceFilter
from .server import run_server
from .storage.articles import ArticleStore
from .storage.kv_store import KVStore, StoreError

console = Console()


async def run_cleanup_pass(settings: Settings, scope: CleanupScope) -> CleanupResult:
    """Run one cleanup pass against the configured store."""
    rules = get_filter_rules()
    store = KVStore.from_url(settings.redis_url)
    try:
        return await run_cleanup(
            ArticleStore(store),
            RelevanceFilter(rules.relevance_keywords),
            rules.filterable_origins,
            scope=scope,
            batch_size=settings.removal_batch_size,
            retention_days=settings.retention_window_days,
        )
    finally:
        await store.close()


def display_cleanup_result(result: CleanupResult, scope: CleanupScope) -> None:
    table = Table(title=f"Cleanup ({scope.value})", box=box.ROUNDED)
    table.add_column("Scanned", justify="right")
    table.add_column("Removed", justify="right", style="red")
    table.add_column("Kept", justify="right", style="green")
    table.add_row(str(result.scanned), str(result.removed), str(result.kept))
    console.print(table)


@click.group()
@click.option("--log-level", default="WARNING", help="Log level")
@click.option("--json-logs/--console-logs", default=False, help="Emit JSON log lines")
def cli(log_level, json_logs):
    """newsdesk - newsletter ingestion, filtering and analysis service."""
    setup_logging(log_level=log_level, json_logging=json_logs)


@cli.command()
@click.option("--host", help="Bind address (default from API_HOST)")
@click.option("--port", type=int, help="Port (default from API_PORT)")
@click.option("--mock", is_flag=True, help="Use mock LLM clients")
def serve(host, port, mock):
    """Serve the HTTP API."""
    settings = get_settings()
    if host:
        settings.api_host = host
    if port:
        settings.api_port = port
    if mock:
        settings.mock = True
    run_server(settings)


@cli.command()
@click.option(
    "--scope",
    type=click.Choice([s.value for s in CleanupScope]),
    default=CleanupScope.ALL.value,
    show_default=True,
    help="Scan every article, or only the retention window",
)
def cleanup(scope):
    """Remove newsletter articles without AI/legal keywords."""
    settings = get_settings()
    cleanup_scope = CleanupScope.parse(scope)

    try:
        result = asyncio.run(run_cleanup_pass(settings, cleanup_scope))
    except CleanupError as e:
        display_cleanup_result(e.result, cleanup_scope)
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)
    except StoreError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    display_cleanup_result(result, cleanup_scope)


@cli.command("check-url")
@click.argument("url")
@click.option("--title", default="", help="Article title")
@click.option("--summary", default="", help="Article summary")
@click.option("--source", default="", help="Source name")
def check_url(url, title, summary, source):
    """Show how the content filters classify an article."""
    rules = get_filter_rules()
    blocklist = DomainBlocklist(rules.blocked_domains)
    international = InternationalFilter(
        rules.international_tlds, rules.international_news_sources, rules.international_keywords
    )
    relevance = RelevanceFilter(rules.relevance_keywords)

    found = international.match(title, summary, url, source)
    keyword = relevance.matched_keyword(f"{title} {summary}")

    table = Table(title=extract_domain(url), box=box.ROUNDED, show_header=False)
    table.add_column("Check")
    table.add_column("Result")
    table.add_row("Blocked domain", "[red]yes[/red]" if blocklist.is_blocked(url) else "[green]no[/green]")
    table.add_row("International", f"[red]{found.reason}[/red]" if found else "[green]no[/green]")
    table.add_row("AI/legal keyword", f"[green]{keyword}[/green]" if keyword else "[yellow]none[/yellow]")
    console.print(table)


@cli.command("validate-config")
def validate_config_command():
    """Validate configuration and exit."""
    if validate_config(get_settings()):
        console.print("[green]✓[/green] Configuration is valid")
    else:
        console.print("[red]✗[/red] Configuration validation failed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
