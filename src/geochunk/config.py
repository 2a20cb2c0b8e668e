import os
from dataclasses import dataclass
from typing import Optional

from .constants import CACHE_CAPACITY, DEFAULT_CHUNK_SIZE_MB, DEFAULT_DB_ROOT, DOWNLOAD_TIMEOUT


@dataclass
class GeoChunkSettings:
    """Centralized configuration for database loading and lookups"""

    # Database location
    DB_ROOT: str = os.getenv("GEOCHUNK_DB_ROOT", DEFAULT_DB_ROOT)
    # Record layout of chunked databases ("nested" for MaxMind, "flat" for IPinfo)
    CHUNKED_FORMAT: str = os.getenv("GEOCHUNK_CHUNKED_FORMAT", "nested")

    # Splitting
    CHUNK_SIZE_MB: int = int(os.getenv("GEOCHUNK_CHUNK_SIZE_MB", str(DEFAULT_CHUNK_SIZE_MB)))

    # Memory management
    CACHE_CAPACITY: int = int(os.getenv("GEOCHUNK_CACHE_CAPACITY", str(CACHE_CAPACITY)))

    # Downloads
    MAXMIND_LICENSE_KEY: Optional[str] = os.getenv("MAXMIND_LICENSE_KEY")
    DOWNLOAD_TIMEOUT: int = int(os.getenv("GEOIP_DOWNLOAD_TIMEOUT", str(DOWNLOAD_TIMEOUT)))

    # Logging
    MASK_SENSITIVE_DATA: bool = True
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[str] = os.getenv("GEOCHUNK_LOG_FILE") or None
