"""
Split a database file into gzip-compressed chunks plus a manifest.

This is a build-time step: deployment targets with per-file size limits
ship the chunks instead of the original ``.mmdb`` and the loader puts the
file back together at startup.
"""

from __future__ import annotations

import gzip
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .async_file_ops import ensure_directory
from .constants import BYTES_PER_MB, CHUNK_FILENAME_TEMPLATE, DEFAULT_CHUNK_SIZE_MB, GZIP_LEVEL
from .manifest import ChunkInfo, ChunkManifest, write_manifest

logger = logging.getLogger(__name__)


def chunk_filename(index: int) -> str:
    return CHUNK_FILENAME_TEMPLATE.format(index=index)


def _compression_ratio(total_size: int, compressed_size: int) -> str:
    if total_size == 0:
        return "0.0"
    return f"{(1 - compressed_size / total_size) * 100:.1f}"


def split_database(
    input_file: str | Path,
    output_dir: str | Path,
    chunk_size_mb: int = DEFAULT_CHUNK_SIZE_MB,
    *,
    chunk_size: Optional[int] = None,
    on_chunk: Optional[Callable[[ChunkInfo], None]] = None,
) -> ChunkManifest:
    """
    Split ``input_file`` into compressed chunks inside ``output_dir``.

    Args:
        input_file: Database file to split
        output_dir: Directory receiving ``chunk_NNN.gz`` files and the manifest
        chunk_size_mb: Nominal chunk size in megabytes
        chunk_size: Exact chunk size in bytes; overrides ``chunk_size_mb``
        on_chunk: Optional callback invoked after each chunk is written

    Returns:
        The manifest that was written

    Raises:
        FileNotFoundError: If ``input_file`` doesn't exist
        ValueError: If the chunk size is not positive
    """
    source = Path(input_file)
    if not source.is_file():
        raise FileNotFoundError(f"Input file not found: {source}")

    size = chunk_size if chunk_size is not None else chunk_size_mb * BYTES_PER_MB
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")

    destination = ensure_directory(output_dir)
    data = source.read_bytes()
    total_size = len(data)
    num_chunks = math.ceil(total_size / size)
    logger.info(
        "Splitting %s (%d bytes) into %d chunk(s) of %d bytes", source, total_size, num_chunks, size
    )

    chunks: list[ChunkInfo] = []
    total_compressed = 0

    for index in range(num_chunks):
        piece = data[index * size : (index + 1) * size]
        compressed = gzip.compress(piece, compresslevel=GZIP_LEVEL)
        filename = chunk_filename(index)
        (destination / filename).write_bytes(compressed)

        info = ChunkInfo(
            index=index,
            original_size=len(piece),
            compressed_size=len(compressed),
            filename=filename,
        )
        chunks.append(info)
        total_compressed += len(compressed)
        logger.debug(
            "Chunk %d/%d: %d -> %d bytes", index + 1, num_chunks, len(piece), len(compressed)
        )
        if on_chunk is not None:
            on_chunk(info)

    manifest = ChunkManifest(
        original_file=source.name,
        total_size=total_size,
        chunk_size=size,
        num_chunks=num_chunks,
        chunks=chunks,
        total_compressed_size=total_compressed,
        compression_ratio=_compression_ratio(total_size, total_compressed),
        created_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
    write_manifest(destination, manifest)
    logger.info(
        "Wrote %d chunk(s) to %s (%s%% reduction)",
        num_chunks,
        destination,
        manifest.compression_ratio,
    )
    return manifest
