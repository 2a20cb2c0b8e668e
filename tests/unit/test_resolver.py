import asyncio

import pytest

from geochunk import resolver as resolver_module
from geochunk.context import GeoContext
from geochunk.resolver import IPResolver, extract_country_code
from geochunk.selector import DatabaseFormat


@pytest.fixture
def city_root(db_root):
    (db_root / "GeoLite2-City.mmdb").write_bytes(b"city-db")
    return db_root


@pytest.fixture
def resolver(city_root, provider_factory):
    return IPResolver(GeoContext(city_root, open_provider=provider_factory))


class TestExtractCountryCode:
    def test_nested_primary(self):
        record = {"country": {"iso_code": "CN"}, "registered_country": {"iso_code": "HK"}}
        assert extract_country_code(record, DatabaseFormat.NESTED) == "CN"

    def test_nested_falls_back_to_registered_country(self):
        record = {"continent": {"code": "EU"}, "registered_country": {"iso_code": "DE"}}
        assert extract_country_code(record, DatabaseFormat.NESTED) == "DE"

    def test_nested_without_codes(self):
        assert extract_country_code({"country": {"names": {}}}, DatabaseFormat.NESTED) is None

    def test_flat_country_field(self):
        assert extract_country_code({"country": "JP"}, DatabaseFormat.FLAT) == "JP"

    def test_flat_prefers_country_code(self):
        record = {"country": "United States", "country_code": "US"}
        assert extract_country_code(record, DatabaseFormat.FLAT) == "US"

    def test_flat_ignores_nested_shape(self):
        assert extract_country_code({"country": {"iso_code": "US"}}, DatabaseFormat.FLAT) is None

    @pytest.mark.parametrize("record", [None, "US", 42, []])
    def test_non_mapping_records(self, record):
        assert extract_country_code(record, DatabaseFormat.NESTED) is None


def test_resolves_known_addresses(resolver):
    assert resolver.resolve("8.8.8.8") == "US"
    assert resolver.resolve("1.1.1.1") == "AU"
    assert resolver.resolve("5.5.5.5") == "DE"


@pytest.mark.parametrize("ip", ["", "::", None])
def test_unresolvable_inputs_skip_cache_and_provider(resolver, ip):
    assert resolver.resolve(ip) is None
    assert resolver.cache_stats()["size"] == 0
    assert not resolver.context.is_ready


def test_repeated_lookup_is_memoized(resolver):
    resolver.resolve("8.8.8.8")
    resolver.resolve("8.8.8.8")

    assert resolver.context.provider.count("8.8.8.8") == 1


def test_not_found_is_cached(resolver):
    assert resolver.resolve("203.0.113.1") is None
    assert resolver.resolve("203.0.113.1") is None

    assert resolver.context.provider.count("203.0.113.1") == 1
    assert resolver.cache_stats()["size"] == 1


def test_provider_errors_become_none_and_are_not_cached(resolver):
    assert resolver.resolve("bad-address") is None
    assert resolver.resolve("bad-address") is None

    assert resolver.context.provider.count("bad-address") == 2
    assert "bad-address" not in resolver.context.cache


def test_missing_database_returns_none(db_root, provider_factory, caplog):
    resolver = IPResolver(GeoContext(db_root, open_provider=provider_factory))

    assert resolver.resolve("8.8.8.8") is None
    assert "GeoIP database unavailable" in caplog.text
    assert resolver.cache_stats()["size"] == 0


def test_blocking_lookup_on_unloaded_chunks_returns_none(db_root, chunked_db, provider_factory, caplog):
    resolver = IPResolver(GeoContext(db_root, open_provider=provider_factory))

    assert resolver.resolve("8.8.8.8") is None
    assert "not loaded yet" in caplog.text
    assert provider_factory.built == []


@pytest.mark.asyncio
async def test_async_lookup_loads_chunks_on_demand(db_root, chunked_db, provider_factory):
    resolver = IPResolver(GeoContext(db_root, open_provider=provider_factory))

    results = await asyncio.gather(
        resolver.resolve_async("8.8.8.8"),
        resolver.resolve_async("1.1.1.1"),
        resolver.resolve_async("203.0.113.1"),
    )

    assert results == ["US", "AU", None]
    assert len(provider_factory.built) == 1
    # Warm now, so the blocking form works too
    assert resolver.resolve("5.5.5.5") == "DE"


@pytest.mark.asyncio
async def test_async_lookup_with_truncated_chunk_returns_none(db_root, chunked_db, provider_factory, caplog):
    chunk = db_root / "chunks" / "chunk_001.gz"
    data = chunk.read_bytes()
    chunk.write_bytes(data[: len(data) // 2])
    resolver = IPResolver(GeoContext(db_root, open_provider=provider_factory))

    assert await resolver.resolve_async("8.8.8.8") is None
    assert "GeoIP database unavailable" in caplog.text
    assert "8.8.8.8" not in resolver.context.cache


class TestInvalidDatabaseFile:
    @pytest.fixture
    def resolver(self, db_root):
        (db_root / "country.mmdb").write_bytes(b"not a maxmind database")
        return IPResolver(GeoContext(db_root))

    def test_blocking_lookup_returns_none(self, resolver, caplog):
        assert resolver.resolve("8.8.8.8") is None
        assert "Invalid database" in caplog.text
        assert not resolver.context.is_ready

    @pytest.mark.asyncio
    async def test_async_lookup_returns_none(self, resolver, caplog):
        assert await resolver.resolve_async("8.8.8.8") is None
        assert "Invalid database" in caplog.text
        assert resolver.cache_stats()["size"] == 0


@pytest.mark.asyncio
async def test_async_unresolvable_inputs(resolver):
    assert await resolver.resolve_async("") is None
    assert await resolver.resolve_async("::") is None
    assert not resolver.context.is_ready


def test_flat_database(db_root, provider_factory):
    (db_root / "country.mmdb").write_bytes(b"ipinfo")
    provider_factory.records = {"8.8.8.8": {"country": "US", "country_name": "United States"}}
    resolver = IPResolver(GeoContext(db_root, open_provider=provider_factory))

    assert resolver.resolve("8.8.8.8") == "US"


class TestTwoAddresses:
    def test_prefers_ipv4(self, resolver):
        assert resolver.resolve_from_two_addresses("1.1.1.1", "2001:4860:4860::8888") == "AU"
        assert resolver.context.provider.count("2001:4860:4860::8888") == 0

    def test_falls_back_to_ipv6(self, resolver):
        assert resolver.resolve_from_two_addresses("203.0.113.1", "2001:4860:4860::8888") == "US"

    def test_skips_empty_and_unspecified(self, resolver):
        assert resolver.resolve_from_two_addresses("", "::") is None
        assert resolver.resolve_from_two_addresses(None, "2001:4860:4860::8888") == "US"

    def test_nothing_found(self, resolver):
        assert resolver.resolve_from_two_addresses("203.0.113.1", "2001:db8::1") is None

    @pytest.mark.asyncio
    async def test_async_variant(self, resolver):
        result = await resolver.resolve_from_two_addresses_async("203.0.113.1", "2001:4860:4860::8888")
        assert result == "US"


def test_clear_cache(resolver):
    resolver.resolve("8.8.8.8")
    resolver.clear_cache()
    resolver.resolve("8.8.8.8")
    assert resolver.context.provider.count("8.8.8.8") == 2


class TestDefaultSurface:
    @pytest.fixture(autouse=True)
    def default_context(self, city_root, provider_factory, monkeypatch):
        resolver_module.reset_default_context()
        monkeypatch.setattr(
            resolver_module.GeoContext,
            "from_settings",
            classmethod(lambda cls, *args, **kwargs: cls(city_root, open_provider=provider_factory)),
        )
        yield
        resolver_module.reset_default_context()

    def test_module_functions(self):
        assert resolver_module.resolve_country("8.8.8.8") == "US"
        assert resolver_module.resolve_country("1.1.1.1") == "AU"
        assert resolver_module.resolve_country("") is None
        assert resolver_module.resolve_country("::") is None
        assert resolver_module.resolve_from_two_addresses("203.0.113.1", "2001:4860:4860::8888") == "US"
        assert resolver_module.get_cache_stats() == {"size": 4, "capacity": 10000}

        resolver_module.clear_cache()
        assert resolver_module.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_async_module_function(self):
        assert await resolver_module.resolve_country_async("8.8.8.8") == "US"
