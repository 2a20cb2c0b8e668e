"""Pick which on-disk database to load, by priority."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .constants import (
    CHUNKS_DIRNAME,
    IPINFO_COUNTRY_FILENAME,
    IPINFO_LITE_FILENAME,
    MAXMIND_CITY_FILENAME,
)
from .errors import ConfigurationError
from .manifest import has_chunked_database

logger = logging.getLogger(__name__)


class DatabaseFormat(Enum):
    FLAT = "flat"  # {"country_code": "US"} / {"country": "US"} (IPinfo)
    NESTED = "nested"  # {"country": {"iso_code": "US"}} (MaxMind)

    @classmethod
    def parse(cls, value: "str | DatabaseFormat") -> "DatabaseFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown database format {value!r}; expected one of "
                f"{', '.join(member.value for member in cls)}"
            ) from None


@dataclass(frozen=True)
class DatabaseSelection:
    locator: Path
    format: DatabaseFormat
    is_chunked: bool


# Monolithic candidates after the chunked directory, smallest first
MONOLITHIC_CANDIDATES = (
    (IPINFO_COUNTRY_FILENAME, DatabaseFormat.FLAT),
    (IPINFO_LITE_FILENAME, DatabaseFormat.FLAT),
    (MAXMIND_CITY_FILENAME, DatabaseFormat.NESTED),
)


def select_database(
    root_dir: str | Path,
    *,
    chunked_format: DatabaseFormat = DatabaseFormat.NESTED,
) -> DatabaseSelection:
    """
    Choose the database under ``root_dir``; the first match wins.

    Priority: chunked directory with a manifest, IPinfo ``country.mmdb``,
    ``ipinfo_lite.mmdb``, MaxMind ``GeoLite2-City.mmdb``. Only existence is
    checked; file contents are never opened here.

    Raises:
        ConfigurationError: If none of the candidates exist
    """
    root = Path(root_dir)

    chunks_dir = root / CHUNKS_DIRNAME
    if has_chunked_database(chunks_dir):
        logger.debug("Selected chunked database at %s", chunks_dir)
        return DatabaseSelection(locator=chunks_dir, format=chunked_format, is_chunked=True)

    for filename, fmt in MONOLITHIC_CANDIDATES:
        candidate = root / filename
        if candidate.is_file():
            logger.debug("Selected %s database at %s", fmt.value, candidate)
            return DatabaseSelection(locator=candidate, format=fmt, is_chunked=False)

    names = ", ".join(filename for filename, _ in MONOLITHIC_CANDIDATES)
    raise ConfigurationError(
        f"No GeoIP database found. Add {CHUNKS_DIRNAME}/ or one of {names} to {root}"
    )
