"""Main CLI entry point and application setup."""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click
import msgspec
import yaml
from click.exceptions import Exit
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from layerstore import __version__
from layerstore.backends import Storage
from layerstore.config import StackConfig, build_storage, load_config
from layerstore.exceptions import ConfigurationError, KeyNotFoundError
from layerstore.layered import LayeredStorage

T = TypeVar("T")


@dataclass
class Context:
    """CLI context that holds shared resources."""

    config: StackConfig
    console: Console
    debug: bool = False


def setup_logging(
    verbose: bool = False, quiet: bool = False, debug: bool = False
) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.WARNING
    elif verbose or debug:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
        if not debug
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_console(no_color: bool = False, width: int | None = None) -> Console:
    """Create Rich console with appropriate settings."""
    return Console(
        no_color=no_color,
        width=width or 120,
        highlight=not no_color,
        color_system=None if no_color else "auto",
    )


def run_with_storage(ctx: click.Context, operation: Callable[[Storage], Awaitable[T]]) -> T:
    """Build the configured storage, run ``operation`` on it and close it."""

    async def runner() -> T:
        storage = build_storage(ctx.obj.config)
        try:
            return await operation(storage)
        finally:
            await storage.close()

    return asyncio.run(runner())


def parse_entry(text: str) -> dict[str, Any]:
    """Parse an entry given as a JSON object on the command line."""
    try:
        entry = msgspec.json.decode(text)
    except msgspec.DecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}") from e
    if not isinstance(entry, dict):
        raise click.BadParameter("Entry must be a JSON object")
    return entry


def format_json(data: Any) -> str:
    return msgspec.json.format(msgspec.json.encode(data), indent=2).decode("utf-8")


def format_yaml(data: Any) -> str:
    return yaml.safe_dump(
        msgspec.to_builtins(data), allow_unicode=True, sort_keys=False
    ).rstrip()


def entries_table(entries: list[Any], key_field: str) -> Table:
    """Render entries as a table, key column first."""
    rows = [msgspec.to_builtins(entry) for entry in entries]
    columns = list(dict.fromkeys([key_field, *(name for row in rows for name in row)]))

    table = Table(title=f"Entries ({len(rows)})")
    for name in columns:
        table.add_column(name, style="cyan" if name == key_field else None)
    for row in rows:
        table.add_row(*(escape(str(row.get(name, ""))) for name in columns))
    return table


class LayerstoreGroup(click.Group):
    """Custom group that turns errors into a message and exit code."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeyboardInterrupt:
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print("[yellow]Interrupted[/yellow]")
            ctx.exit(130)
        except (click.ClickException, click.Abort, Exit, SystemExit):
            raise
        except Exception as e:
            debug = getattr(ctx.obj, "debug", False) if ctx.obj else False
            if debug:
                raise
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print(f"[red]Error:[/red] {escape(str(e))}")
            else:
                click.echo(f"Error: {e}", err=True)
            ctx.exit(1)


@click.group(cls=LayerstoreGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.version_option(
    version=__version__, prog_name="layerstore", message="layerstore version %(version)s"
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
    config: Path | None,
) -> None:
    """Inspect and edit layered storages.

    The storage stack is read from the configuration file given with
    --config, or from the default configuration locations.
    """
    setup_logging(verbose=verbose, quiet=quiet, debug=debug)

    try:
        stack = load_config(config)
    except ConfigurationError as e:
        if debug:
            raise
        click.echo(f"Error loading config file: {e}", err=True)
        ctx.exit(1)

    ctx.obj = Context(
        config=stack,
        console=create_console(no_color=no_color),
        debug=debug,
    )


@cli.command()
@click.pass_context
def keys(ctx: click.Context) -> None:
    """List every key in the storage."""
    found = run_with_storage(ctx, lambda storage: storage.get_keys())
    for key in found:
        click.echo(str(key))


@cli.command()
@click.argument("key")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="Output format",
)
@click.pass_context
def get(ctx: click.Context, key: str, output_format: str) -> None:
    """Show one entry."""
    coerced = ctx.obj.config.coerce_key(key)
    entry = run_with_storage(ctx, lambda storage: storage.get(coerced))
    if entry is None:
        raise KeyNotFoundError(coerced, "get")

    click.echo(format_yaml(entry) if output_format == "yaml" else format_json(entry))


@cli.command(name="list")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format",
)
@click.pass_context
def list_cmd(ctx: click.Context, output_format: str) -> None:
    """List every entry."""

    async def collect(storage: Storage) -> list[Any]:
        return [entry async for entry in storage.stream_all()]

    entries = run_with_storage(ctx, collect)

    if output_format == "json":
        click.echo(format_json(entries))
    elif output_format == "yaml":
        click.echo(format_yaml(entries))
    elif not entries:
        ctx.obj.console.print("[yellow]No entries found[/yellow]")
    else:
        ctx.obj.console.print(entries_table(entries, ctx.obj.config.key_field))


@cli.command()
@click.argument("entry_json", metavar="JSON")
@click.pass_context
def add(ctx: click.Context, entry_json: str) -> None:
    """Create an entry from a JSON object."""
    entry = parse_entry(entry_json)

    async def create(storage: Storage) -> Any:
        await storage.create(entry)
        return storage.entry_key(entry)

    key = run_with_storage(ctx, create)
    ctx.obj.console.print(f"[green]✓[/green] Created {escape(str(key))}")


@cli.command()
@click.argument("entry_json", metavar="JSON")
@click.pass_context
def update(ctx: click.Context, entry_json: str) -> None:
    """Replace an entry with a JSON object."""
    entry = parse_entry(entry_json)

    async def replace(storage: Storage) -> Any:
        await storage.update(entry)
        return storage.entry_key(entry)

    key = run_with_storage(ctx, replace)
    ctx.obj.console.print(f"[green]✓[/green] Updated {escape(str(key))}")


@cli.command()
@click.argument("key")
@click.pass_context
def delete(ctx: click.Context, key: str) -> None:
    """Delete an entry from every layer."""
    coerced = ctx.obj.config.coerce_key(key)
    run_with_storage(ctx, lambda storage: storage.delete(coerced))
    ctx.obj.console.print(f"[green]✓[/green] Deleted {escape(str(coerced))}")


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Copy entries missing from a layer into it."""

    async def backfill(storage: Storage) -> tuple[int, int]:
        entries = await storage.get_all()
        layer_count = len(storage.layers) if isinstance(storage, LayeredStorage) else 1
        return len(entries), layer_count

    count, layer_count = run_with_storage(ctx, backfill)
    ctx.obj.console.print(
        f"[green]✓[/green] Synchronized {count} entries across {layer_count} layer(s)"
    )


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
