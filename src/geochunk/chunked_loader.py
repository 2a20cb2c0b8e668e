"""
Rebuild a database from gzip chunks and open a lookup provider on it.

The loader keeps the provider it builds for the lifetime of the instance.
Chunks are processed strictly in index order on one execution path, so
assembly needs the destination buffer plus a single chunk. The finished
buffer is then frozen into ``bytes`` once, which briefly doubles the
footprint; the reader keeps that ``bytes`` object and the buffer is freed.
"""

from __future__ import annotations

import gzip
import io
import logging
import threading
import time
import zlib
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import maxminddb
from maxminddb.errors import InvalidDatabaseError

from .async_file_ops import read_bytes_async, read_file_async, run_in_pool
from .errors import (
    ChunkNotFoundError,
    IntegrityError,
    InvalidDatabaseFileError,
    ManifestNotFoundError,
)
from .manifest import ChunkInfo, ChunkManifest, manifest_path, parse_manifest, read_manifest
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

# Truncated or damaged gzip members surface as any of these
DECOMPRESS_ERRORS = (OSError, EOFError, zlib.error)


class Provider(Protocol):
    """Anything that maps an IP address to a raw database record."""

    def get(self, ip_address: str) -> Any: ...


def open_reader(data: bytes | bytearray, name: str = "<memory>") -> Provider:
    """
    Open a MaxMind DB reader over an in-memory buffer.

    Pass ``bytes``: ``BytesIO`` shares an immutable initial value and a full
    ``read()`` hands the same object back, so the reader holds no second
    copy. A ``bytearray`` is copied once here.

    Raises:
        InvalidDatabaseFileError: If ``data`` is not a MaxMind DB
    """
    buffer = io.BytesIO(data if isinstance(data, bytes) else bytes(data))
    # MODE_FD reads the whole file object and reports its ``name`` in errors
    buffer.name = name  # type: ignore[attr-defined]
    try:
        return maxminddb.open_database(buffer, mode=maxminddb.MODE_FD)
    except (InvalidDatabaseError, ValueError) as exc:
        raise InvalidDatabaseFileError(name, exc) from exc


class ChunkLoader:
    """Reassemble chunked databases with single-flight semantics."""

    def __init__(
        self,
        open_provider: Callable[..., Provider] = open_reader,
        decompress: Callable[[bytes], bytes] = gzip.decompress,
    ) -> None:
        self._open_provider = open_provider
        self._decompress = decompress
        self._provider: Optional[Provider] = None
        self._manifest: Optional[ChunkManifest] = None
        self._lock = threading.Lock()
        self._flight: SingleFlight[Provider] = SingleFlight()

    @property
    def provider(self) -> Optional[Provider]:
        return self._provider

    @property
    def manifest(self) -> Optional[ChunkManifest]:
        """Manifest of the database currently loaded, if any."""
        return self._manifest

    @property
    def is_loaded(self) -> bool:
        return self._provider is not None

    def clear(self) -> None:
        """Drop the cached provider so the next load starts from disk."""
        with self._lock:
            self._provider = None
            self._manifest = None
            self._flight.reset()

    # -- reassembly -------------------------------------------------------

    def _inflate(self, chunk: ChunkInfo, compressed: bytes) -> bytes:
        try:
            return self._decompress(compressed)
        except DECOMPRESS_ERRORS as exc:
            raise IntegrityError(
                f"Chunk {chunk.index} could not be decompressed: {exc}", chunk_index=chunk.index
            ) from exc

    def _check_chunk(self, chunk: ChunkInfo, data: bytes) -> None:
        if len(data) != chunk.original_size:
            raise IntegrityError(
                f"Chunk {chunk.index} size mismatch: expected {chunk.original_size}, "
                f"got {len(data)}",
                chunk_index=chunk.index,
            )

    def read_blob_sync(self, chunks_dir: str | Path) -> bytearray:
        """Reassemble the original file from ``chunks_dir`` on the calling thread."""
        directory = Path(chunks_dir)
        manifest = read_manifest(directory)
        return self._assemble_sync(directory, manifest)

    def _assemble_sync(self, directory: Path, manifest: ChunkManifest) -> bytearray:
        buffer = bytearray(manifest.total_size)
        view = memoryview(buffer)
        offset = 0
        for chunk in manifest.chunks:
            path = directory / chunk.filename
            try:
                compressed = path.read_bytes()
            except FileNotFoundError as exc:
                raise ChunkNotFoundError(chunk.index, path) from exc
            data = self._inflate(chunk, compressed)
            self._check_chunk(chunk, data)
            view[offset : offset + len(data)] = data
            offset += len(data)
            logger.debug("Chunk %d: %d bytes at offset %d", chunk.index, len(data), offset)
        view.release()
        return buffer

    async def read_blob(self, chunks_dir: str | Path) -> bytearray:
        """Reassemble the original file without blocking the event loop."""
        directory = Path(chunks_dir)
        manifest = await self._read_manifest_async(directory)
        return await self._assemble_async(directory, manifest)

    async def _read_manifest_async(self, directory: Path) -> ChunkManifest:
        path = manifest_path(directory)
        try:
            text = await read_file_async(path)
        except FileNotFoundError as exc:
            raise ManifestNotFoundError(path) from exc
        return parse_manifest(text, path)

    async def _assemble_async(self, directory: Path, manifest: ChunkManifest) -> bytearray:
        buffer = bytearray(manifest.total_size)
        view = memoryview(buffer)
        offset = 0
        for chunk in manifest.chunks:
            path = directory / chunk.filename
            try:
                compressed = await read_bytes_async(path)
            except FileNotFoundError as exc:
                raise ChunkNotFoundError(chunk.index, path) from exc
            data = await run_in_pool(self._inflate, chunk, compressed)
            self._check_chunk(chunk, data)
            view[offset : offset + len(data)] = data
            offset += len(data)
            logger.debug("Chunk %d: %d bytes at offset %d", chunk.index, len(data), offset)
        view.release()
        return buffer

    # -- provider ---------------------------------------------------------

    def load_sync(self, chunks_dir: str | Path) -> Provider:
        """Build (once) and return the provider, blocking the calling thread."""
        if self._provider is not None:
            return self._provider

        with self._lock:
            if self._provider is not None:
                return self._provider

            directory = Path(chunks_dir)
            started = time.monotonic()
            logger.info("Loading chunked database from %s", directory)
            manifest = read_manifest(directory)
            blob = bytes(self._assemble_sync(directory, manifest))
            provider = self._open_provider(blob, manifest.original_file or str(directory))
            self._provider = provider
            self._manifest = manifest
            logger.info(
                "Chunked database loaded: %d chunk(s), %d bytes in %.0fms",
                manifest.num_chunks,
                manifest.total_size,
                (time.monotonic() - started) * 1000,
            )
            return provider

    async def load(self, chunks_dir: str | Path) -> Provider:
        """Build (once) and return the provider without blocking the event loop.

        Concurrent callers share a single in-flight load. A failed load is
        not cached; the next call starts over.
        """
        if self._provider is not None:
            return self._provider
        return await self._flight.run(lambda: self._load_async(Path(chunks_dir)))

    async def _load_async(self, directory: Path) -> Provider:
        if self._provider is not None:
            return self._provider

        started = time.monotonic()
        logger.info("Loading chunked database from %s", directory)
        manifest = await self._read_manifest_async(directory)
        blob = bytes(await self._assemble_async(directory, manifest))
        provider = await run_in_pool(
            self._open_provider, blob, manifest.original_file or str(directory)
        )
        self._provider = provider
        self._manifest = manifest
        logger.info(
            "Chunked database loaded: %d chunk(s), %d bytes in %.0fms",
            manifest.num_chunks,
            manifest.total_size,
            (time.monotonic() - started) * 1000,
        )
        return provider
