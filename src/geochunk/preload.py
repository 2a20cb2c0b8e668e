"""
Database preloader.

Builds the provider once at startup, before the host starts serving
lookups. A failed preload never stops the host from starting; the resolver
falls back to loading on demand.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .context import GeoContext
from .errors import GeoDatabaseError
from .resolver import get_default_resolver
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)


class PreloadCoordinator:
    def __init__(self, context: GeoContext) -> None:
        self.context = context
        self._preloaded = False
        self._flight: SingleFlight[None] = SingleFlight()

    @property
    def is_preloaded(self) -> bool:
        # A cleared context needs a fresh preload
        return self._preloaded and self.context.is_ready

    async def preload(self) -> None:
        """Load the database once; concurrent calls wait for the same attempt."""
        if self.is_preloaded:
            logger.debug("GeoIP database already preloaded")
            return

        if self._flight.in_flight:
            logger.info("Waiting for GeoIP preload to complete...")
        await self._flight.run(self._preload)

    async def _preload(self) -> None:
        if self.is_preloaded:
            return

        started = time.monotonic()
        try:
            await self.context.get_provider()
        except (GeoDatabaseError, OSError) as exc:
            logger.error(f"Failed to preload GeoIP database: {exc}")
            return

        selection = self.context.selection
        kind = "chunked" if selection and selection.is_chunked else "monolithic"
        logger.info(
            f"GeoIP database preloaded in {(time.monotonic() - started) * 1000:.0f}ms "
            f"({kind}, {selection.locator if selection else self.context.db_root})"
        )
        manifest = self.context.loader.manifest
        if selection and selection.is_chunked and manifest is not None:
            logger.info(
                f"Using chunked database ({manifest.num_chunks} chunks, "
                f"{manifest.total_compressed_size / (1024 * 1024):.1f}MB compressed)"
            )
        self._preloaded = True


_default_coordinator: Optional[PreloadCoordinator] = None


def get_default_coordinator() -> PreloadCoordinator:
    """Coordinator for the default resolver's context."""
    global _default_coordinator
    context = get_default_resolver().context
    if _default_coordinator is None or _default_coordinator.context is not context:
        _default_coordinator = PreloadCoordinator(context)
    return _default_coordinator


async def preload_geoip_database() -> None:
    """Main entry point for preloading the default context."""
    await get_default_coordinator().preload()


def is_geoip_preloaded() -> bool:
    return _default_coordinator is not None and _default_coordinator.is_preloaded


async def register() -> None:
    """Startup hook for host processes; call once before serving requests."""
    await preload_geoip_database()
