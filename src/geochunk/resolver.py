"""IP address -> ISO 3166-1 alpha-2 country code resolution."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional

from maxminddb.errors import InvalidDatabaseError

from .cache import NOT_FOUND
from .chunked_loader import Provider
from .constants import UNRESOLVABLE_ADDRESSES
from .context import GeoContext
from .errors import GeoDatabaseError, LookupFailure
from .selector import DatabaseFormat

logger = logging.getLogger(__name__)


def _iso_code(section: Any) -> Optional[str]:
    if isinstance(section, Mapping):
        code = section.get("iso_code")
        if isinstance(code, str) and code:
            return code
    return None


def extract_country_code(record: Any, fmt: DatabaseFormat) -> Optional[str]:
    """
    Pull the country code out of a raw database record.

    ``FLAT`` records carry the code at the top level (``country_code``, or
    ``country`` in the older IPinfo layout). ``NESTED`` records keep it under
    ``country.iso_code`` and fall back to ``registered_country.iso_code``.
    """
    if not isinstance(record, Mapping):
        return None

    if fmt is DatabaseFormat.FLAT:
        for key in ("country_code", "country"):
            code = record.get(key)
            if isinstance(code, str) and code:
                return code
        return None

    if fmt is DatabaseFormat.NESTED:
        return _iso_code(record.get("country")) or _iso_code(record.get("registered_country"))

    raise ValueError(f"Unsupported database format: {fmt!r}")


def _is_unresolvable(ip: Optional[str]) -> bool:
    return not ip or ip in UNRESOLVABLE_ADDRESSES


class IPResolver:
    """Memoized country lookups against a ``GeoContext``.

    Every failure ends up as ``None`` for the caller; the reason is logged.
    """

    def __init__(self, context: GeoContext) -> None:
        self.context = context

    def _query(self, provider: Provider, fmt: DatabaseFormat, ip: str) -> Optional[str]:
        try:
            record = provider.get(ip)
        except (ValueError, InvalidDatabaseError, OSError) as exc:
            # ValueError covers malformed addresses and undecodable records
            raise LookupFailure(f"Lookup failed for {ip}: {exc}") from exc
        return extract_country_code(record, fmt)

    def _from_cache(self, ip: str) -> tuple[bool, Optional[str]]:
        cached = self.context.cache.get(ip)
        if cached is None:
            return False, None
        return True, None if cached is NOT_FOUND else str(cached)

    def resolve(self, ip: str) -> Optional[str]:
        """
        Resolve ``ip`` on the calling thread.

        Chunked databases must have been preloaded; a monolithic database is
        opened synchronously on first use.
        """
        if _is_unresolvable(ip):
            return None

        hit, value = self._from_cache(ip)
        if hit:
            return value

        try:
            provider, fmt = self.context.get_provider_sync()
            country_code = self._query(provider, fmt, ip)
        except LookupFailure as exc:
            logger.debug(str(exc))
            return None
        except (GeoDatabaseError, OSError) as exc:
            logger.warning(f"GeoIP database unavailable: {exc}")
            return None

        self.context.cache.put(ip, country_code)
        return country_code

    async def resolve_async(self, ip: str) -> Optional[str]:
        """Resolve ``ip``, building the provider in the background if needed."""
        if _is_unresolvable(ip):
            return None

        hit, value = self._from_cache(ip)
        if hit:
            return value

        try:
            provider, fmt = await self.context.get_provider()
            country_code = self._query(provider, fmt, ip)
        except LookupFailure as exc:
            logger.debug(str(exc))
            return None
        except (GeoDatabaseError, OSError) as exc:
            logger.warning(f"GeoIP database unavailable: {exc}")
            return None

        self.context.cache.put(ip, country_code)
        return country_code

    def resolve_from_two_addresses(
        self, ipv4: Optional[str] = None, ipv6: Optional[str] = None
    ) -> Optional[str]:
        """Try the IPv4 address first and fall back to IPv6 when it gives nothing."""
        for ip in (ipv4, ipv6):
            if _is_unresolvable(ip):
                continue
            country_code = self.resolve(ip)  # type: ignore[arg-type]
            if country_code:
                return country_code
        return None

    async def resolve_from_two_addresses_async(
        self, ipv4: Optional[str] = None, ipv6: Optional[str] = None
    ) -> Optional[str]:
        for ip in (ipv4, ipv6):
            if _is_unresolvable(ip):
                continue
            country_code = await self.resolve_async(ip)  # type: ignore[arg-type]
            if country_code:
                return country_code
        return None

    def cache_stats(self) -> Dict[str, int]:
        return self.context.cache.stats()

    def clear_cache(self) -> None:
        self.context.cache.clear()


_default_lock = threading.Lock()
_default_resolver: Optional[IPResolver] = None


def get_default_resolver() -> IPResolver:
    """Resolver bound to a context built from ``GeoChunkSettings``."""
    global _default_resolver
    if _default_resolver is None:
        with _default_lock:
            if _default_resolver is None:
                _default_resolver = IPResolver(GeoContext.from_settings())
    return _default_resolver


def reset_default_context() -> None:
    """Drop the default resolver and its context."""
    global _default_resolver
    with _default_lock:
        _default_resolver = None


def resolve_country(ip: str) -> Optional[str]:
    return get_default_resolver().resolve(ip)


async def resolve_country_async(ip: str) -> Optional[str]:
    return await get_default_resolver().resolve_async(ip)


def resolve_from_two_addresses(ipv4: Optional[str] = None, ipv6: Optional[str] = None) -> Optional[str]:
    return get_default_resolver().resolve_from_two_addresses(ipv4, ipv6)


def get_cache_stats() -> Dict[str, int]:
    return get_default_resolver().cache_stats()


def clear_cache() -> None:
    get_default_resolver().clear_cache()
