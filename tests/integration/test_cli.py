import json
import logging
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from geochunk.cli import cli
from geochunk.context import GeoContext


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI group installs handlers bound to the runner's captured streams."""
    root = logging.getLogger()
    handlers, filters, level = root.handlers[:], root.filters[:], root.level
    yield
    root.handlers[:] = handlers
    root.filters[:] = filters
    root.setLevel(level)


def test_split_creates_chunks(runner, tmp_path):
    source = tmp_path / "GeoLite2-City.mmdb"
    source.write_bytes(b"\xab" * (3 * 1024 * 1024 + 10))
    out = tmp_path / "chunks"

    result = runner.invoke(cli, ["split", str(source), str(out), "1"])

    assert result.exit_code == 0, result.output
    assert "into 4 chunks" in result.output
    metadata = json.loads((out / "metadata.json").read_text())
    assert metadata["numChunks"] == 4
    assert metadata["totalSize"] == 3 * 1024 * 1024 + 10


def test_split_missing_input_fails(runner, tmp_path):
    result = runner.invoke(cli, ["split", str(tmp_path / "missing.mmdb"), str(tmp_path / "out")])
    assert result.exit_code == 2
    assert "Input file not found" in result.output


def test_split_uses_default_paths(runner, fs):
    fs.create_file("data/geoip/GeoLite2-City.mmdb", contents=b"db" * 100)

    result = runner.invoke(cli, ["split"])

    assert result.exit_code == 0, result.output
    assert (fs.base_path / "data/geoip/chunks/chunk_000.gz").exists()


def test_info_shows_metadata(runner, tmp_path, chunked_db, db_root):
    result = runner.invoke(cli, ["info", "--db-root", str(db_root), "--verify"])

    assert result.exit_code == 0, result.output
    assert "GeoLite2-City.source" in result.output
    assert "Reassembled 10240 bytes from 4 chunks" in result.output


def test_info_without_chunks(runner, db_root):
    result = runner.invoke(cli, ["info", "--db-root", str(db_root)])
    assert result.exit_code == 3
    assert "No chunked database found" in result.output


def test_info_verify_detects_corruption(runner, chunked_db, db_root):
    import gzip

    (db_root / "chunks" / "chunk_002.gz").write_bytes(gzip.compress(b"bad"))

    result = runner.invoke(cli, ["info", "--db-root", str(db_root), "--verify"])

    assert result.exit_code == 4
    assert "Chunk 2 size mismatch" in result.output


def test_lookup_resolves_addresses(runner, db_root, provider_factory, mocker):
    (db_root / "GeoLite2-City.mmdb").write_bytes(b"city-db")
    def context_factory(*args, **kwargs):
        kwargs["open_provider"] = provider_factory
        return GeoContext(*args, **kwargs)

    mocker.patch("geochunk.cli.GeoContext", side_effect=context_factory)

    result = runner.invoke(cli, ["lookup", "8.8.8.8", "1.1.1.1", "203.0.113.1", "--db-root", str(db_root)])

    assert result.exit_code == 0, result.output
    assert "US" in result.output
    assert "AU" in result.output
    assert "203.0.113.1" in result.output


def test_lookup_without_database(runner, db_root):
    result = runner.invoke(cli, ["lookup", "8.8.8.8", "--db-root", str(db_root)])
    assert result.exit_code == 3
    assert "No GeoIP database found" in result.output


def test_cli_invalid_command(runner):
    result = runner.invoke(cli, ["invalid-command"])
    assert result.exit_code != 0
    assert "No such command" in result.output


def test_update_databases_success(runner, mocker):
    mocker.patch("geochunk.cli.download_geoip_dbs", AsyncMock(return_value=True))
    result = runner.invoke(cli, ["update-databases"])
    assert result.exit_code == 0
    assert "All databases updated successfully" in result.output


def test_update_databases_failure(runner, mocker):
    mocker.patch("geochunk.cli.download_geoip_dbs", AsyncMock(return_value=False))
    result = runner.invoke(cli, ["update-databases"])
    assert result.exit_code == 0
    assert "Some databases failed to update" in result.output
