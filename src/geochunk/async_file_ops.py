"""
Async file operations for geochunk
Provides non-blocking file I/O using a shared thread pool executor

Reading a multi-megabyte database and inflating its chunks are blocking
calls. Running them in executor threads keeps the event loop free to serve
other requests while a database is being assembled.
"""

import asyncio
import atexit
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

FILE_IO_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="geochunk-file-io")


def ensure_directory(path: Path | str) -> Path:
    """Ensure ``path`` exists on disk and return it as a ``Path``."""

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


async def run_in_pool(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking callable in the file I/O pool and await its result."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(FILE_IO_POOL, func, *args)


async def read_bytes_async(file_path: str | Path) -> bytes:
    """
    Read a binary file without blocking the event loop.

    Args:
        file_path: Path to the file to read

    Returns:
        File contents as bytes

    Raises:
        FileNotFoundError: If the file doesn't exist
        IOError: If the file can't be read for any other reason
    """
    path = Path(file_path)

    try:
        content = await run_in_pool(path.read_bytes)
        logger.debug(f"Read {len(content)} bytes from {path}")
        return content

    except FileNotFoundError:
        logger.error(f"File not found: {path}")
        raise

    except Exception as exc:
        logger.error(f"Failed to read {path}: {exc}")
        raise IOError(f"Failed to read {path}") from exc


async def read_file_async(file_path: str | Path, encoding: str = "utf-8") -> str:
    """Read a text file without blocking the event loop."""
    path = Path(file_path)

    def read_sync() -> str:
        return path.read_text(encoding=encoding)

    try:
        return await run_in_pool(read_sync)
    except FileNotFoundError:
        logger.error(f"File not found: {path}")
        raise
    except Exception as exc:
        logger.error(f"Failed to read {path}: {exc}")
        raise IOError(f"Failed to read {path}") from exc


def start_file_pool() -> None:
    """
    Re-initialize the file I/O thread pool.

    Useful in test environments where the pool might be shut down between
    test runs.
    """
    global FILE_IO_POOL

    if FILE_IO_POOL is None or FILE_IO_POOL._shutdown:
        logger.debug("Creating new FILE_IO_POOL (previous was shut down)")
        FILE_IO_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="geochunk-file-io")
    else:
        logger.debug("FILE_IO_POOL already active, no recreation needed")


def shutdown_file_pool() -> None:
    """Gracefully shut down the file I/O thread pool."""
    if FILE_IO_POOL and not FILE_IO_POOL._shutdown:
        FILE_IO_POOL.shutdown(wait=True)
        logger.debug("File I/O thread pool shut down gracefully")


# Pytest manages the pool lifecycle itself via fixtures
if "pytest" not in sys.modules:
    atexit.register(shutdown_file_pool)
