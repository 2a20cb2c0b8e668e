"""Exception hierarchy for database loading and lookups."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class GeoDatabaseError(Exception):
    """Base class for every error raised while preparing the database."""


class ConfigurationError(GeoDatabaseError):
    """No recognized database exists at any priority location."""


class IntegrityError(GeoDatabaseError):
    """Reassembled data disagrees with its manifest."""

    def __init__(self, message: str, chunk_index: Optional[int] = None):
        self.chunk_index = chunk_index
        super().__init__(message)


class ManifestError(IntegrityError):
    """The manifest itself is malformed or internally inconsistent."""


class ManifestNotFoundError(GeoDatabaseError, FileNotFoundError):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"Metadata file not found: {self.path}")


class ChunkNotFoundError(GeoDatabaseError, FileNotFoundError):
    def __init__(self, index: int, path: Path):
        self.chunk_index = index
        self.path = Path(path)
        super().__init__(f"Chunk {index} file not found: {self.path}")


class InvalidDatabaseFileError(GeoDatabaseError):
    """The bytes handed to the reader are not a valid MaxMind DB."""

    def __init__(self, name: str, reason: object):
        self.name = name
        super().__init__(f"Invalid database {name}: {reason}")


class NotPreloadedError(GeoDatabaseError):
    """A blocking lookup hit a chunked database that was never preloaded."""


class LookupFailure(GeoDatabaseError):
    """A single lookup failed inside the provider.

    Never escapes the resolver; it only appears in logs.
    """
