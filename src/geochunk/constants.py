"""Centralized constants for all modules."""

# Database layout
DEFAULT_DB_ROOT = "data/geoip"
CHUNKS_DIRNAME = "chunks"
MANIFEST_FILENAME = "metadata.json"
CHUNK_FILENAME_TEMPLATE = "chunk_{index:03d}.gz"

# Monolithic database files, in selection priority order
IPINFO_COUNTRY_FILENAME = "country.mmdb"
IPINFO_LITE_FILENAME = "ipinfo_lite.mmdb"
MAXMIND_CITY_FILENAME = "GeoLite2-City.mmdb"
MAXMIND_COUNTRY_FILENAME = "GeoLite2-Country.mmdb"

# Splitting
DEFAULT_CHUNK_SIZE_MB = 5
BYTES_PER_MB = 1024 * 1024
GZIP_LEVEL = 9

# Resolution cache
CACHE_CAPACITY = 10000

# Addresses that never resolve to a country
UNRESOLVABLE_ADDRESSES = frozenset({"", "::"})

# Timeouts (seconds)
DOWNLOAD_TIMEOUT = 300
