"""Tests for ouiwatch.cli (argument handling and output)."""
from __future__ import annotations

import json

import httpx
import pytest

from ouiwatch import cli


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("pathlib.Path.home", lambda: home)
    monkeypatch.setattr(cli, "setup_logging", lambda level: None)


@pytest.fixture
def fake_network(monkeypatch, server):
    """Route every httpx.Client the downloader creates to the fake server."""
    real_client = httpx.Client
    monkeypatch.setattr(
        httpx, "Client", lambda **kwargs: real_client(transport=httpx.MockTransport(server))
    )
    return server


class TestLookupCommand:
    def test_offline_lookup_text(self, manuf_file, capsys):
        cli.main(["--manuf-path", str(manuf_file), "lookup", "--offline", "00:00:0C:11:22:33", "FF:FF:FF:00:00:00"])
        out = capsys.readouterr().out.splitlines()
        assert "vendor=Cisco (Cisco Systems, Inc) prefix=00:00:0C" in out[0]
        assert "vendor=unknown" in out[1]

    def test_offline_lookup_json(self, manuf_file, capsys):
        cli.main(["--manuf-path", str(manuf_file), "lookup", "--offline", "--json", "00:1B:C5:00:00:01"])
        data = json.loads(capsys.readouterr().out)
        assert data[0]["found"] is True
        assert data[0]["result"]["organization"] == "Converg"

    def test_lookup_from_file(self, manuf_file, tmp_path, capsys):
        macs = tmp_path / "macs.txt"
        macs.write_text("# inventory\nAC:DE:48:00:00:01\n\n08:00:2B:00:00:01\n")
        cli.main(["--manuf-path", str(manuf_file), "lookup", "--offline", "--file", str(macs)])
        out = capsys.readouterr().out
        assert "vendor=Private" in out
        assert "vendor=DEC" in out

    def test_lookup_requires_macs(self, manuf_file):
        with pytest.raises(SystemExit):
            cli.main(["--manuf-path", str(manuf_file), "lookup", "--offline"])

    def test_missing_database_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--manuf-path", str(tmp_path / "nope.gz"), "lookup", "--offline", "00:00:0C:00:00:00"])
        assert "failed to load OUI database" in str(exc_info.value)

    def test_lookup_downloads_missing_file(self, tmp_path, fake_network, capsys):
        path = tmp_path / "cache" / "manuf.gz"
        cli.main(["--manuf-path", str(path), "--url", "https://downloads.example.test/manuf.gz",
                  "lookup", "AC:DE:48:00:00:01"])
        assert path.exists()
        assert len(fake_network.requests) == 1
        assert "vendor=Private" in capsys.readouterr().out


class TestUpdateCommand:
    def test_update_writes_file(self, tmp_path, fake_network, capsys):
        path = tmp_path / "manuf.gz"
        cli.main(["--manuf-path", str(path), "update"])
        assert path.exists()
        assert "(7 entries)" in capsys.readouterr().out

    def test_update_failure_exits(self, tmp_path, fake_network):
        fake_network.status = 500
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--manuf-path", str(tmp_path / "manuf.gz"), "update"])
        assert "update failed (download)" in str(exc_info.value)


class TestStatusCommand:
    def test_status_json(self, manuf_file, capsys):
        cli.main(["--manuf-path", str(manuf_file), "status", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["entries"] == 7
        assert data["manuf_path"] == str(manuf_file)
        assert data["stale"] in (True, False)
