"""Process context owning the provider, its record format and the cache."""

from __future__ import annotations

import gzip
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

from .async_file_ops import read_bytes_async, run_in_pool
from .cache import ResolutionCache
from .chunked_loader import ChunkLoader, Provider, open_reader
from .config import GeoChunkSettings
from .constants import CACHE_CAPACITY, DEFAULT_DB_ROOT
from .errors import NotPreloadedError
from .selector import DatabaseFormat, DatabaseSelection, select_database
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)


class GeoContext:
    """
    Everything a resolver needs, in one explicit object.

    The provider is built at most once per context, either by the async
    path (shared by all concurrent callers) or by the blocking path. Tests
    create a fresh context or call ``clear()`` for isolation.
    """

    def __init__(
        self,
        db_root: str | Path = DEFAULT_DB_ROOT,
        *,
        cache_capacity: int = CACHE_CAPACITY,
        chunked_format: DatabaseFormat | str = DatabaseFormat.NESTED,
        open_provider: Callable[..., Provider] = open_reader,
        decompress: Callable[[bytes], bytes] = gzip.decompress,
    ) -> None:
        self.db_root = Path(db_root)
        self.chunked_format = DatabaseFormat.parse(chunked_format)
        self.cache = ResolutionCache(cache_capacity)
        self.loader = ChunkLoader(open_provider=open_provider, decompress=decompress)
        self._open_provider = open_provider
        self._provider: Optional[Provider] = None
        self._format: Optional[DatabaseFormat] = None
        self._selection: Optional[DatabaseSelection] = None
        self._lock = threading.Lock()
        self._flight: SingleFlight[Tuple[Provider, DatabaseFormat]] = SingleFlight()

    @classmethod
    def from_settings(cls, settings: Optional[GeoChunkSettings] = None, **kwargs) -> "GeoContext":
        settings = settings or GeoChunkSettings()
        kwargs.setdefault("cache_capacity", settings.CACHE_CAPACITY)
        kwargs.setdefault("chunked_format", settings.CHUNKED_FORMAT)
        return cls(settings.DB_ROOT, **kwargs)

    @property
    def provider(self) -> Optional[Provider]:
        return self._provider

    @property
    def format(self) -> Optional[DatabaseFormat]:
        return self._format

    @property
    def selection(self) -> Optional[DatabaseSelection]:
        return self._selection

    @property
    def is_ready(self) -> bool:
        return self._provider is not None

    def select(self) -> DatabaseSelection:
        return select_database(self.db_root, chunked_format=self.chunked_format)

    def _install(
        self, selection: DatabaseSelection, provider: Provider
    ) -> Tuple[Provider, DatabaseFormat]:
        self._selection = selection
        self._format = selection.format
        self._provider = provider
        return provider, selection.format

    def _open_monolithic(self, path: Path) -> Provider:
        started = time.monotonic()
        provider = self._open_provider(path.read_bytes(), str(path))
        logger.info(
            "Loaded database %s in %.0fms", path.name, (time.monotonic() - started) * 1000
        )
        return provider

    # -- blocking ---------------------------------------------------------

    def get_provider_sync(self) -> Tuple[Provider, DatabaseFormat]:
        """
        Return the provider, opening a monolithic database on first use.

        Raises:
            NotPreloadedError: If the database is chunked and nothing built it yet
            ConfigurationError: If no database exists
        """
        if self._provider is not None and self._format is not None:
            return self._provider, self._format

        with self._lock:
            if self._provider is not None and self._format is not None:
                return self._provider, self._format

            selection = self.select()
            if selection.is_chunked:
                provider = self.loader.provider
                if provider is None:
                    raise NotPreloadedError(
                        f"Chunked database at {selection.locator} is not loaded yet; "
                        "preload it at startup before using blocking lookups"
                    )
                return self._install(selection, provider)

            return self._install(selection, self._open_monolithic(selection.locator))

    # -- non-blocking -----------------------------------------------------

    async def get_provider(self) -> Tuple[Provider, DatabaseFormat]:
        """Return the provider, building it if needed; concurrent callers share one build."""
        if self._provider is not None and self._format is not None:
            return self._provider, self._format
        return await self._flight.run(self._initialize)

    async def _initialize(self) -> Tuple[Provider, DatabaseFormat]:
        if self._provider is not None and self._format is not None:
            return self._provider, self._format

        selection = await run_in_pool(self.select)
        if selection.is_chunked:
            provider = await self.loader.load(selection.locator)
        else:
            started = time.monotonic()
            data = await read_bytes_async(selection.locator)
            provider = await run_in_pool(self._open_provider, data, str(selection.locator))
            logger.info(
                "Loaded database %s in %.0fms",
                selection.locator.name,
                (time.monotonic() - started) * 1000,
            )
        return self._install(selection, provider)

    def clear(self) -> None:
        """Forget the provider and every cached answer."""
        with self._lock:
            self._provider = None
            self._format = None
            self._selection = None
            self._flight.reset()
        self.loader.clear()
        self.cache.clear()
