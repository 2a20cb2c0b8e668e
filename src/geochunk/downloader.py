"""GeoIP database acquisition"""

import logging
import os
import tarfile
from pathlib import Path
from typing import Dict, Optional

import aiohttp

from .async_file_ops import ensure_directory
from .constants import (
    CHUNKS_DIRNAME,
    DEFAULT_DB_ROOT,
    DOWNLOAD_TIMEOUT,
    IPINFO_COUNTRY_FILENAME,
    IPINFO_LITE_FILENAME,
    MANIFEST_FILENAME,
    MAXMIND_CITY_FILENAME,
    MAXMIND_COUNTRY_FILENAME,
)


class DownloadError(Exception):
    """A database archive could not be fetched or unpacked."""


class DatabaseDownloader:
    """Download MaxMind GeoLite2 databases into the database root"""

    GEOIP_URLS = {
        "country": (
            "https://download.maxmind.com/app/geoip_download?"
            "edition_id=GeoLite2-Country&license_key={key}&suffix=tar.gz"
        ),
        "city": (
            "https://download.maxmind.com/app/geoip_download?"
            "edition_id=GeoLite2-City&license_key={key}&suffix=tar.gz"
        ),
    }

    TARGET_FILES = {
        "country": MAXMIND_COUNTRY_FILENAME,
        "city": MAXMIND_CITY_FILENAME,
    }

    def __init__(
        self,
        license_key: Optional[str] = None,
        db_root: str | Path = DEFAULT_DB_ROOT,
        timeout: int = DOWNLOAD_TIMEOUT,
    ):
        self.license_key = license_key or os.getenv("MAXMIND_LICENSE_KEY")
        self.db_root = Path(db_root)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    async def download_databases(self, editions: tuple[str, ...] = ("country", "city")) -> bool:
        """
        Download GeoLite2 databases.

        Returns:
            True if every edition was downloaded, False otherwise
        """
        if not self.license_key:
            self.logger.info("GeoIP download not configured (MAXMIND_LICENSE_KEY not set); skipping.")
            return False

        ensure_directory(self.db_root)
        success = True

        async with aiohttp.ClientSession() as session:
            for db_type in editions:
                url = self.GEOIP_URLS[db_type].format(key=self.license_key)

                try:
                    self.logger.info(f"Downloading GeoLite2-{db_type.title()}...")
                    await self._download_and_extract(session, url, db_type)
                    self.logger.info(f"GeoLite2-{db_type.title()} downloaded successfully")

                except (aiohttp.ClientError, DownloadError, tarfile.TarError, OSError) as e:
                    self.logger.error(f"Failed to download GeoLite2-{db_type.title()}: {e}")
                    success = False

        return success

    async def _download_and_extract(
        self,
        session: aiohttp.ClientSession,
        url: str,
        db_type: str,
    ) -> Path:
        """Download an archive and extract its .mmdb into the database root"""

        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            ssl=True,
        ) as response:
            if response.status != 200:
                raise DownloadError(f"HTTP {response.status}")

            tar_path = self.db_root / f"geoip-{db_type}.tar.gz"
            content = await response.read()
            tar_path.write_bytes(content)

        db_file = self.db_root / self.TARGET_FILES[db_type]
        try:
            with tarfile.open(tar_path) as tar:
                for member in tar.getmembers():
                    if not member.name.endswith(".mmdb"):
                        continue
                    extracted = tar.extractfile(member)
                    if extracted is None:
                        continue
                    db_file.write_bytes(extracted.read())
                    return db_file
            raise DownloadError(f"No .mmdb file in GeoLite2-{db_type.title()} archive")
        finally:
            tar_path.unlink(missing_ok=True)

    def verify_databases(self) -> Dict[str, bool]:
        """Report which recognized databases exist and are non-empty"""
        candidates = {
            f"{CHUNKS_DIRNAME}/{MANIFEST_FILENAME}": self.db_root / CHUNKS_DIRNAME / MANIFEST_FILENAME,
            IPINFO_COUNTRY_FILENAME: self.db_root / IPINFO_COUNTRY_FILENAME,
            IPINFO_LITE_FILENAME: self.db_root / IPINFO_LITE_FILENAME,
            MAXMIND_CITY_FILENAME: self.db_root / MAXMIND_CITY_FILENAME,
            MAXMIND_COUNTRY_FILENAME: self.db_root / MAXMIND_COUNTRY_FILENAME,
        }

        status: Dict[str, bool] = {}
        for name, path in candidates.items():
            present = path.is_file() and path.stat().st_size > 0
            status[name] = present
            if present:
                self.logger.info(f"{name} exists ({path.stat().st_size} bytes)")
            else:
                self.logger.debug(f"{name} missing or empty")
        return status


async def download_geoip_dbs(
    license_key: Optional[str] = None, db_root: str | Path = DEFAULT_DB_ROOT
) -> bool:
    """Main entry point for GeoIP download"""
    downloader = DatabaseDownloader(license_key=license_key, db_root=db_root)
    success = await downloader.download_databases()

    if success:
        downloader.verify_databases()

    return success
