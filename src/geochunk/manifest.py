"""Manifest describing how a database file was split into gzip chunks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .constants import BYTES_PER_MB, MANIFEST_FILENAME
from .errors import ManifestError, ManifestNotFoundError

logger = logging.getLogger(__name__)


def _require_int(data: Mapping[str, Any], key: str, where: str) -> int:
    value = data.get(key)
    # bool is an int subclass but never a valid size
    if not isinstance(value, int) or isinstance(value, bool):
        raise ManifestError(f"{where}: '{key}' must be an integer, got {value!r}")
    if value < 0:
        raise ManifestError(f"{where}: '{key}' must not be negative, got {value}")
    return value


@dataclass(frozen=True)
class ChunkInfo:
    index: int
    original_size: int
    compressed_size: int
    filename: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkInfo":
        if not isinstance(data, Mapping):
            raise ManifestError(f"Chunk entry must be an object, got {type(data).__name__}")
        where = f"chunk {data.get('index')!r}"
        filename = data.get("filename")
        if not isinstance(filename, str) or not filename:
            raise ManifestError(f"{where}: 'filename' must be a non-empty string")
        return cls(
            index=_require_int(data, "index", where),
            original_size=_require_int(data, "originalSize", where),
            compressed_size=_require_int(data, "compressedSize", where),
            filename=filename,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "originalSize": self.original_size,
            "compressedSize": self.compressed_size,
            "filename": self.filename,
        }


@dataclass
class ChunkManifest:
    """Parsed ``metadata.json``.

    ``compression_ratio`` and ``created_at`` are informational and never
    used when reassembling.
    """

    original_file: str
    total_size: int
    chunk_size: int
    num_chunks: int
    chunks: List[ChunkInfo] = field(default_factory=list)
    total_compressed_size: int = 0
    compression_ratio: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkManifest":
        if not isinstance(data, Mapping):
            raise ManifestError("Manifest must be a JSON object")

        raw_chunks = data.get("chunks")
        if not isinstance(raw_chunks, list):
            raise ManifestError("Manifest: 'chunks' must be a list")

        chunks = [ChunkInfo.from_dict(entry) for entry in raw_chunks]
        total_compressed = data.get("totalCompressedSize")
        if not isinstance(total_compressed, int) or isinstance(total_compressed, bool):
            total_compressed = sum(chunk.compressed_size for chunk in chunks)

        return cls(
            original_file=str(data.get("originalFile", "")),
            total_size=_require_int(data, "totalSize", "Manifest"),
            chunk_size=_require_int(data, "chunkSize", "Manifest"),
            num_chunks=_require_int(data, "numChunks", "Manifest"),
            chunks=chunks,
            total_compressed_size=total_compressed,
            compression_ratio=str(data.get("compressionRatio", "")),
            created_at=str(data.get("createdAt", "")),
        )

    def validate(self) -> "ChunkManifest":
        """Check the structural invariants needed for exact reconstruction."""
        if self.num_chunks != len(self.chunks):
            raise ManifestError(
                f"Manifest declares {self.num_chunks} chunks but lists {len(self.chunks)}"
            )

        for expected, chunk in enumerate(self.chunks):
            if chunk.index != expected:
                raise ManifestError(
                    f"Chunk indices must be contiguous from 0: expected {expected}, "
                    f"got {chunk.index}",
                    chunk_index=chunk.index,
                )
            if Path(chunk.filename).name != chunk.filename or chunk.filename in (".", ".."):
                raise ManifestError(
                    f"Chunk {chunk.index} filename must not contain path components: "
                    f"{chunk.filename!r}",
                    chunk_index=chunk.index,
                )

        declared = sum(chunk.original_size for chunk in self.chunks)
        if declared != self.total_size:
            raise ManifestError(
                f"Chunk sizes add up to {declared} bytes but totalSize is {self.total_size}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalFile": self.original_file,
            "totalSize": self.total_size,
            "totalSizeMB": round(self.total_size / BYTES_PER_MB, 2),
            "chunkSize": self.chunk_size,
            "numChunks": self.num_chunks,
            "totalCompressedSize": self.total_compressed_size,
            "totalCompressedSizeMB": f"{self.total_compressed_size / BYTES_PER_MB:.2f}",
            "compressionRatio": self.compression_ratio,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "createdAt": self.created_at,
        }


def manifest_path(chunks_dir: str | Path) -> Path:
    return Path(chunks_dir) / MANIFEST_FILENAME


def has_chunked_database(chunks_dir: str | Path) -> bool:
    """Check if a chunked database exists in ``chunks_dir``."""
    return manifest_path(chunks_dir).is_file()


def parse_manifest(text: str, source: str | Path = MANIFEST_FILENAME) -> ChunkManifest:
    """Parse and validate manifest JSON text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Invalid JSON in {source}: {exc.msg} (line {exc.lineno})") from exc
    return ChunkManifest.from_dict(data).validate()


def read_manifest(chunks_dir: str | Path) -> ChunkManifest:
    """
    Read and validate the manifest in ``chunks_dir``.

    Raises:
        ManifestNotFoundError: If ``metadata.json`` is absent
        ManifestError: If the manifest is malformed or inconsistent
    """
    path = manifest_path(chunks_dir)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestNotFoundError(path) from exc
    return parse_manifest(text, path)


def get_chunked_metadata(chunks_dir: str | Path) -> Optional[ChunkManifest]:
    """Return the manifest without loading any chunk, or None when absent."""
    if not has_chunked_database(chunks_dir):
        return None
    return read_manifest(chunks_dir)


def write_manifest(chunks_dir: str | Path, manifest: ChunkManifest) -> Path:
    path = manifest_path(chunks_dir)
    path.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")
    logger.debug("Manifest written to %s", path)
    return path
