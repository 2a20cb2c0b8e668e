import asyncio
import inspect
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from geochunk.async_file_ops import start_file_pool
from geochunk.splitter import split_database


def pytest_configure(config):
    """Register compatibility markers and defaults."""

    config.addinivalue_line("markers", "asyncio: mark a test as requiring the event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute ``async`` tests using a minimal event loop implementation."""

    testfunction = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testfunction):
        return None

    signature = inspect.signature(testfunction)
    call_args = {
        name: value for name, value in pyfuncitem.funcargs.items() if name in signature.parameters
    }

    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(testfunction(**call_args))
        loop.run_until_complete(loop.shutdown_asyncgens())
    finally:
        asyncio.set_event_loop(None)
        loop.close()

    return True


@pytest.fixture(scope="session", autouse=True)
def file_pool_management():
    """Session-scoped fixture to manage thread pool lifecycle."""
    start_file_pool()
    yield


@pytest.fixture
def fs(tmp_path, monkeypatch):
    """Lightweight stand-in for the pyfakefs fixture."""

    class SimpleFS:
        def __init__(self, base_path: Path):
            self.base_path = base_path

        def create_file(self, relative_path: str, contents: str | bytes = "") -> Path:
            target = self.base_path / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(contents, bytes):
                target.write_bytes(contents)
            else:
                target.write_text(contents)
            return target

    monkeypatch.chdir(tmp_path)
    return SimpleFS(tmp_path)


@pytest.fixture
def mocker():
    """Basic replacement for pytest-mock's mocker fixture."""

    from unittest.mock import AsyncMock, MagicMock, Mock, patch

    active_patchers = []

    class SimpleMocker:
        def patch(self, target, *args, **kwargs):
            patcher = patch(target, *args, **kwargs)
            active_patchers.append(patcher)
            return patcher.start()

        def stopall(self):
            while active_patchers:
                active_patchers.pop().stop()

    SimpleMocker.AsyncMock = AsyncMock  # type: ignore[attr-defined]
    SimpleMocker.MagicMock = MagicMock  # type: ignore[attr-defined]
    SimpleMocker.Mock = Mock  # type: ignore[attr-defined]

    helper = SimpleMocker()
    try:
        yield helper
    finally:
        helper.stopall()


class StubProvider:
    """Provider answering from a dict and counting every query."""

    def __init__(self, records=None, blob=b""):
        self.records = dict(records or {})
        self.blob = bytes(blob)
        self.queries = []

    def get(self, ip_address):
        self.queries.append(ip_address)
        if ip_address == "bad-address":
            raise ValueError(f"'{ip_address}' does not appear to be an IPv4 or IPv6 address")
        return self.records.get(ip_address)

    def count(self, ip_address):
        return self.queries.count(ip_address)


@pytest.fixture
def stub_records():
    return {
        "8.8.8.8": {"country": {"iso_code": "US"}},
        "1.1.1.1": {"country": {"iso_code": "AU"}},
        "2001:4860:4860::8888": {"country": {"iso_code": "US"}},
        "5.5.5.5": {"registered_country": {"iso_code": "DE"}},
    }


@pytest.fixture
def provider_factory(stub_records):
    """``open_provider`` replacement that records every provider it builds."""

    class Factory:
        def __init__(self):
            self.built = []
            self.records = stub_records

        def __call__(self, data, name="<memory>"):
            provider = StubProvider(self.records, data)
            self.built.append(provider)
            return provider

    return Factory()


@pytest.fixture
def db_root(tmp_path):
    root = tmp_path / "geoip"
    root.mkdir()
    return root


@pytest.fixture
def chunked_db(db_root):
    """A chunked database under ``db_root/chunks`` built from a known blob."""
    blob = bytes(range(256)) * 40  # 10240 bytes
    source = db_root / "GeoLite2-City.source"
    source.write_bytes(blob)
    split_database(source, db_root / "chunks", chunk_size=3000)
    source.unlink()
    return blob
