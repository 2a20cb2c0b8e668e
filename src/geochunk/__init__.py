"""
geochunk - Chunked GeoIP database loader and IP resolution cache

Rebuilds a MaxMind DB file from size-limited gzip chunks at startup and
serves memoized IP to country-code lookups.
"""

__version__ = "1.0.0"


# Lazy imports to avoid loading maxminddb and aiohttp when not needed
def __getattr__(name):
    """Lazy loading of package components to avoid unnecessary imports."""
    if name == "GeoContext":
        from .context import GeoContext

        return GeoContext
    elif name == "IPResolver":
        from .resolver import IPResolver

        return IPResolver
    elif name == "PreloadCoordinator":
        from .preload import PreloadCoordinator

        return PreloadCoordinator
    elif name == "ChunkLoader":
        from .chunked_loader import ChunkLoader

        return ChunkLoader
    elif name in ("resolve_country", "resolve_country_async", "resolve_from_two_addresses"):
        from . import resolver

        return getattr(resolver, name)
    elif name == "split_database":
        from .splitter import split_database

        return split_database
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


# Define the public API of the package
__all__ = [
    "GeoContext",
    "IPResolver",
    "PreloadCoordinator",
    "ChunkLoader",
    "resolve_country",
    "resolve_country_async",
    "resolve_from_two_addresses",
    "split_database",
    "__version__",
]
