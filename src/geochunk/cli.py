from __future__ import annotations

import asyncio
import math
from pathlib import Path
from typing import Sequence

import click
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from .chunked_loader import ChunkLoader
from .cli_errors import CLIError, ConfigError, FileError, handle_cli_errors
from .config import GeoChunkSettings
from .constants import BYTES_PER_MB, CHUNKS_DIRNAME, MAXMIND_CITY_FILENAME
from .context import GeoContext
from .downloader import download_geoip_dbs
from .logging_config import setup_logging
from .manifest import ChunkManifest, get_chunked_metadata
from .preload import PreloadCoordinator
from .resolver import IPResolver
from .splitter import split_database

console = Console()
config = GeoChunkSettings()

DEFAULT_INPUT = str(Path(config.DB_ROOT) / MAXMIND_CITY_FILENAME)
DEFAULT_OUTPUT = str(Path(config.DB_ROOT) / CHUNKS_DIRNAME)


@click.group()
@click.version_option(version="1.0.0")
def cli() -> None:
    """
    geochunk: chunked GeoIP database loader and country resolver.
    """
    setup_logging(config.LOG_LEVEL, config.MASK_SENSITIVE_DATA, log_file=config.LOG_FILE)


def _print_manifest(manifest: ChunkManifest, chunks_dir: Path) -> None:
    table = Table(title=f"Chunked database: {chunks_dir}")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("Original file", manifest.original_file)
    table.add_row("Original size", f"{manifest.total_size / BYTES_PER_MB:.2f} MB")
    table.add_row("Compressed size", f"{manifest.total_compressed_size / BYTES_PER_MB:.2f} MB")
    table.add_row("Compression", f"{manifest.compression_ratio}%")
    table.add_row("Chunks", str(manifest.num_chunks))
    table.add_row("Created", manifest.created_at or "-")
    console.print(table)


def _split(input_file: str, output_dir: str, chunk_size_mb: int) -> ChunkManifest:
    source = Path(input_file)
    if not source.is_file():
        raise FileError(f"Input file not found: {input_file}")
    if chunk_size_mb <= 0:
        raise CLIError(f"Chunk size must be positive, got {chunk_size_mb}")

    expected = max(1, math.ceil(source.stat().st_size / (chunk_size_mb * BYTES_PER_MB)))
    with Progress(console=console) as progress:
        task = progress.add_task("Compressing chunks", total=expected)
        manifest = split_database(
            source,
            output_dir,
            chunk_size_mb,
            on_chunk=lambda _info: progress.advance(task),
        )
    return manifest


@cli.command()
@click.argument("input_file", required=False, default=DEFAULT_INPUT)
@click.argument("output_dir", required=False, default=DEFAULT_OUTPUT)
@click.argument("chunk_size_mb", required=False, default=config.CHUNK_SIZE_MB, type=int)
@handle_cli_errors(context="Split operation")
def split(input_file: str, output_dir: str, chunk_size_mb: int) -> None:
    """Split INPUT_FILE into gzip chunks of CHUNK_SIZE_MB inside OUTPUT_DIR."""
    click.echo(f"Input file:   {input_file}")
    click.echo(f"Output dir:   {output_dir}")
    click.echo(f"Chunk size:   {chunk_size_mb} MB")

    manifest = _split(input_file, output_dir, chunk_size_mb)

    click.echo(
        f"\n Split {manifest.total_size} bytes into {manifest.num_chunks} chunks "
        f"({manifest.compression_ratio}% reduction)"
    )
    click.echo(f"Chunks saved to: {output_dir}")


@cli.command()
@click.option("--db-root", default=config.DB_ROOT, type=click.Path(file_okay=False))
@click.option("--verify", is_flag=True, help="Reassemble the chunks and check every size.")
@handle_cli_errors(context="Info")
def info(db_root: str, verify: bool) -> None:
    """Show metadata of the chunked database without loading it."""
    chunks_dir = Path(db_root) / CHUNKS_DIRNAME
    manifest = get_chunked_metadata(chunks_dir)
    if manifest is None:
        raise ConfigError(f"No chunked database found in {chunks_dir}")

    _print_manifest(manifest, chunks_dir)

    if verify:
        blob = ChunkLoader().read_blob_sync(chunks_dir)
        click.echo(f"✅ Reassembled {len(blob)} bytes from {manifest.num_chunks} chunks")


async def _lookup_logic_async(context: GeoContext, addresses: Sequence[str]) -> list[tuple[str, str | None]]:
    await PreloadCoordinator(context).preload()
    resolver = IPResolver(context)
    return [(ip, await resolver.resolve_async(ip)) for ip in addresses]


@cli.command()
@click.argument("addresses", nargs=-1, required=True)
@click.option("--db-root", default=config.DB_ROOT, type=click.Path(file_okay=False))
@click.option(
    "--format",
    "chunked_format",
    default=config.CHUNKED_FORMAT,
    type=click.Choice(["nested", "flat"]),
    help="Record layout of a chunked database.",
)
@handle_cli_errors(context="Lookup")
def lookup(addresses: tuple[str, ...], db_root: str, chunked_format: str) -> None:
    """Resolve the country code of each IP address in ADDRESSES."""
    context = GeoContext(db_root, cache_capacity=config.CACHE_CAPACITY, chunked_format=chunked_format)
    # Surface a missing database as an error instead of a column of blanks
    context.select()

    results = asyncio.run(_lookup_logic_async(context, addresses))

    table = Table()
    table.add_column("IP address")
    table.add_column("Country", justify="center")
    for ip, country_code in results:
        table.add_row(ip, country_code or "-")
    console.print(table)


async def _update_databases_logic_async(split_city: bool, chunk_size_mb: int) -> None:
    console.print("Updating GeoIP databases...")
    success = await download_geoip_dbs(config.MAXMIND_LICENSE_KEY, config.DB_ROOT)
    if not success:
        console.print("❌ Some databases failed to update.")
        console.print("   Check the MAXMIND_LICENSE_KEY environment variable.")
        return

    console.print("✅ All databases updated successfully!")
    if split_city:
        manifest = _split(DEFAULT_INPUT, DEFAULT_OUTPUT, chunk_size_mb)
        console.print(f"✅ Split into {manifest.num_chunks} chunks in {DEFAULT_OUTPUT}")


@cli.command()
@click.option("--split/--no-split", "split_city", default=False, help="Split the City database.")
@click.option("--chunk-size-mb", type=int, default=config.CHUNK_SIZE_MB)
@handle_cli_errors(context="Database update")
def update_databases(split_city: bool, chunk_size_mb: int) -> None:
    """Download GeoLite2 databases into the database root."""
    asyncio.run(_update_databases_logic_async(split_city, chunk_size_mb))


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":  # pragma: no cover - module execution convenience
    main()
