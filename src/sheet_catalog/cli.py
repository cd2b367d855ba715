"""Command line interface for administering the sheet catalog."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .application.catalog import CatalogRepository
from .application.queries import analytics, browse, suggest, total_searches
from .domain.value_objects import ALL_CATEGORIES, Category
from .exceptions import SheetCatalogError
from .infrastructure.external.supabase_adapter import create_supabase_backend
from .models.config import CatalogConfig, load_config

console = Console()

CATEGORY_CHOICES = [ALL_CATEGORIES] + [c.value for c in Category]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


async def _run_with_catalog(ctx: click.Context, fn: Callable[[CatalogRepository], Awaitable[Any]]) -> Any:
    """Open a catalog against the configured backend, run ``fn``, close it."""
    config: CatalogConfig = ctx.obj["config"]
    factory = ctx.obj.get("catalog_factory")
    if factory is not None:
        return await fn(factory(config))

    backend = create_supabase_backend(config.backend)
    try:
        email, password = ctx.obj.get("email"), ctx.obj.get("password")
        if email and password:
            await backend.auth.sign_in(email, password)
        catalog = CatalogRepository(backend.store, backend.blobs, config.library.root_admin_email)
        return await fn(catalog)
    finally:
        await backend.close()


def _run(ctx: click.Context, fn: Callable[[CatalogRepository], Awaitable[Any]]) -> Any:
    try:
        return asyncio.run(_run_with_catalog(ctx, fn))
    except SheetCatalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(package_name="sheet-catalog")
@click.option('--config', 'config_path', type=click.Path(exists=True, path_type=Path),
              help='Configuration file path')
@click.option('--email', envvar='SHEET_CATALOG_EMAIL', help='Sign in as this account')
@click.option('--password', envvar='SHEET_CATALOG_PASSWORD', help='Password for --email')
@click.option('--verbose', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], email: Optional[str],
        password: Optional[str], verbose: bool):
    """Browse and administer the music sheet catalog."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    if "config" not in ctx.obj:
        base = load_config(config_path) if config_path else CatalogConfig.default()
        ctx.obj["config"] = CatalogConfig.from_env(base)
    ctx.obj["email"] = email
    ctx.obj["password"] = password


@cli.command()
@click.option('--query', '-q', default='', help='Filter by song name')
@click.option('--category', '-c', type=click.Choice(CATEGORY_CHOICES), default=ALL_CATEGORIES)
@click.option('--page', '-p', type=click.IntRange(min=1), default=1)
@click.pass_context
def songs(ctx: click.Context, query: str, category: str, page: int):
    """List the library one page at a time."""
    config: CatalogConfig = ctx.obj["config"]
    result = _run(ctx, lambda catalog: catalog.list_songs())
    if result.is_failure():
        _fail(str(result.error()))

    view = browse(result.value(), query, category, page, config.library.page_size)
    table = Table(title="Songs")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Categories")
    table.add_column("Instrument")
    table.add_column("Keys")
    table.add_column("Searches", justify="right")
    for song in view.items:
        table.add_row(
            song.id,
            song.name,
            ", ".join(sorted(c.value for c in song.categories)),
            song.instrument.value,
            ", ".join(song.keys),
            f"{song.search_count:,}",
        )
    console.print(table)
    console.print(f"Page {view.page}/{view.total_pages}, {view.total_items} total")


@cli.command('suggest')
@click.argument('query')
@click.option('--limit', '-n', type=click.IntRange(min=1), default=None, help='Suggestions to show')
@click.pass_context
def suggest_command(ctx: click.Context, query: str, limit: Optional[int]):
    """Suggest song names matching QUERY, as a search box would."""
    config: CatalogConfig = ctx.obj["config"]
    result = _run(ctx, lambda catalog: catalog.list_songs())
    if result.is_failure():
        _fail(str(result.error()))

    matches = suggest(result.value(), query, limit or config.library.suggestion_limit)
    if not matches:
        console.print(f"[yellow]No songs match {query!r}[/yellow]")
        return
    for song in matches:
        console.print(f"{song.name} [dim]({', '.join(song.keys)})[/dim]")


@cli.command()
@click.option('--category', '-c', type=click.Choice(CATEGORY_CHOICES), default=ALL_CATEGORIES)
@click.option('--limit', '-n', type=click.IntRange(min=1), default=None, help='Rows to show')
@click.pass_context
def top(ctx: click.Context, category: str, limit: Optional[int]):
    """Show songs ranked by search count."""
    config: CatalogConfig = ctx.obj["config"]
    result = _run(ctx, lambda catalog: catalog.list_songs())
    if result.is_failure():
        _fail(str(result.error()))

    all_songs = result.value()
    ranked = analytics(all_songs, category)[:limit or config.library.top_songs_limit]
    table = Table(title="Most searched")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Searches", justify="right", style="green")
    for rank, song in enumerate(ranked, 1):
        table.add_row(str(rank), song.name, f"{song.search_count:,}")
    console.print(table)
    console.print(f"{total_searches(all_songs):,} searches overall")


@cli.command()
@click.argument('song_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete(ctx: click.Context, song_id: str, yes: bool):
    """Delete SONG_ID with its keys, favorites and stored files."""
    if not yes and not click.confirm(f"Delete song {song_id} and all its files?"):
        console.print("[yellow]Cancelled[/yellow]")
        return

    result = _run(ctx, lambda catalog: catalog.delete_song(song_id))
    if not result.success:
        _fail(f"Error: {result.error}")
    console.print(f"[green]Deleted song {song_id}[/green]")
    if result.storage_warning:
        console.print(f"[yellow]Warning: {result.storage_warning}[/yellow]")


@cli.command()
@click.pass_context
def admins(ctx: click.Context):
    """List admin grants."""
    config: CatalogConfig = ctx.obj["config"]
    result = _run(ctx, lambda catalog: catalog.list_admins())
    if result.is_failure():
        _fail(str(result.error()))

    table = Table(title="Admins")
    table.add_column("Email", style="cyan")
    table.add_column("Root")
    table.add_row(config.library.root_admin_email, "yes")
    for grant in result.value():
        if grant.email != config.library.root_admin_email:
            table.add_row(grant.email, "")
    console.print(table)


@cli.command()
@click.argument('email')
@click.pass_context
def grant(ctx: click.Context, email: str):
    """Grant admin access to the registered account EMAIL."""
    result = _run(ctx, lambda catalog: catalog.grant_admin(email))
    if result.is_failure():
        _fail(f"Error: {result.error()}")
    console.print(f"[green]{result.value().email} is now an admin[/green]")


@cli.command()
@click.argument('email')
@click.pass_context
def revoke(ctx: click.Context, email: str):
    """Revoke admin access from EMAIL."""
    result = _run(ctx, lambda catalog: catalog.revoke_admin(email))
    if result.is_failure():
        _fail(f"Error: {result.error()}")
    if result.value():
        console.print(f"[green]Revoked admin access from {email}[/green]")
    else:
        console.print(f"[yellow]{email} was not an admin[/yellow]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
