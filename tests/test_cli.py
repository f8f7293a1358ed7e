"""Tests for the remsync command line interface.

The storage client is replaced by ``FakeRemoteStore`` (or a MagicMock),
so no HTTP is involved.  Logging setup and .env loading are patched out.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from jose import jwt

from conftest import FakeRemoteStore, make_doc
from remsync import cli
from remsync.core.models import NodeType
from remsync.errors import AuthError, RemoteError


@pytest.fixture(autouse=True)
def _quiet(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def token_env(monkeypatch):
    monkeypatch.setenv("REMSYNC_DEVICE_TOKEN", "device-token")


def _install(monkeypatch, remote) -> list:
    """Make ``cli.StorageClient(config)`` return *remote*."""
    configs = []

    def _factory(config):
        configs.append(config)
        remote.config = config
        return remote

    monkeypatch.setattr(cli, "StorageClient", _factory)
    return configs


class TestRegister:
    def test_prints_token(self, monkeypatch, capsys):
        client = MagicMock()
        client.register_device.return_value = "new-device-token"
        _install(monkeypatch, client)

        code = cli.main(["register", "abcd", "--id", "dev-1"])

        assert code == cli.EXIT_OK
        assert capsys.readouterr().out.strip() == "new-device-token"
        client.register_device.assert_called_once_with(
            "abcd", "desktop-linux", "dev-1"
        )

    def test_default_id_is_uuid(self, monkeypatch):
        client = MagicMock()
        client.register_device.return_value = "t"
        _install(monkeypatch, client)

        cli.main(["register", "abcd", "--desc", "desktop-macos"])

        _, desc, device_id = client.register_device.call_args[0]
        assert desc == "desktop-macos"
        assert len(device_id) == 36

    def test_auth_failure(self, monkeypatch, capsys):
        client = MagicMock()
        client.register_device.side_effect = AuthError(
            "register device", "bad code", status=400
        )
        _install(monkeypatch, client)

        assert cli.main(["register", "nope"]) == cli.EXIT_FATAL
        assert "bad code" in capsys.readouterr().err


class TestConfigErrors:
    def test_missing_token(self, capsys):
        assert cli.main(["ls"]) == cli.EXIT_FATAL
        assert "Device token not found" in capsys.readouterr().err

    def test_bad_max_parallel(self, token_env, tmp_path):
        code = cli.main(
            ["pull", str(tmp_path), "--max-parallel", "0"]
        )
        assert code == cli.EXIT_FATAL

    def test_bad_yaml(self, tmp_path, capsys):
        cfg = tmp_path / ".remsync" / "config.yml"
        cfg.parent.mkdir()
        cfg.write_text("remote: [unclosed\n", encoding="utf-8")
        assert cli.main(["ls"]) == cli.EXIT_FATAL
        assert "Configuration error" in capsys.readouterr().err

    def test_cli_flag_beats_env(self, token_env, monkeypatch):
        configs = _install(monkeypatch, FakeRemoteStore([]))
        cli.main(["--device-token", "cli-token", "ls"])
        assert configs[0].device_token == "cli-token"


class TestShowTokens:
    def test_prints_both(self, monkeypatch, capsys):
        device = jwt.encode({"auth0-userid": "auth0|1"}, "k", algorithm="HS256")
        user = jwt.encode(
            {"auth0-profile": {"UserID": "auth0|1"}}, "k", algorithm="HS256"
        )
        monkeypatch.setenv("REMSYNC_DEVICE_TOKEN", device)
        client = MagicMock()
        client.acquire_user_token.return_value = user
        _install(monkeypatch, client)

        assert cli.main(["show-tokens"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "Device token:" in out
        assert "User token:" in out
        assert '"auth0-userid": "auth0|1"' in out
        assert '"UserID": "auth0|1"' in out


class TestLs:
    def test_prints_tree(self, token_env, monkeypatch, capsys):
        _install(
            monkeypatch,
            FakeRemoteStore(
                [
                    make_doc(
                        "f", name="Notes", node_type=NodeType.COLLECTION
                    ),
                    make_doc("d", name="Shopping", parent="f"),
                ]
            ),
        )

        assert cli.main(["ls"]) == cli.EXIT_OK
        assert capsys.readouterr().out == (
            "+-[dir] Notes\n| +-[doc] Shopping\n"
        )

    def test_remote_error(self, token_env, monkeypatch):
        _install(
            monkeypatch,
            FakeRemoteStore(list_error=RemoteError("list documents", "down")),
        )
        assert cli.main(["ls"]) == cli.EXIT_FATAL


class TestFetchBlob:
    def test_writes_file(self, token_env, monkeypatch, tmp_path, capsys):
        _install(monkeypatch, FakeRemoteStore(blobs={"doc-1": b"zipbytes"}))
        out = tmp_path / "doc.zip"

        assert cli.main(["fetch-blob", "doc-1", str(out)]) == cli.EXIT_OK
        assert out.read_bytes() == b"zipbytes"
        assert "Wrote 8 bytes" in capsys.readouterr().out

    def test_invalid_id(self, token_env, monkeypatch, tmp_path):
        _install(monkeypatch, FakeRemoteStore())
        code = cli.main(["fetch-blob", "../x", str(tmp_path / "o")])
        assert code == cli.EXIT_FATAL


class TestPull:
    def test_pull_into_store(self, token_env, monkeypatch, tmp_path, capsys):
        store = tmp_path / "store"
        store.mkdir()
        _install(monkeypatch, FakeRemoteStore([make_doc("a", name="Book")]))

        assert cli.main(["pull", str(store)]) == cli.EXIT_OK
        captured = capsys.readouterr()
        assert "Fetched:" in captured.out
        assert "Book (a)" in captured.out
        assert "[fetching]" in captured.err
        assert (store / "a.zip").exists()

    def test_failures_exit_one(self, token_env, monkeypatch, tmp_path):
        store = tmp_path / "store"
        store.mkdir()
        _install(
            monkeypatch,
            FakeRemoteStore([make_doc("a")], fail_fetch={"a"}),
        )
        assert cli.main(["pull", str(store)]) == cli.EXIT_FAILURES

    def test_missing_store(self, token_env, monkeypatch, tmp_path):
        _install(monkeypatch, FakeRemoteStore([]))
        code = cli.main(["pull", str(tmp_path / "missing")])
        assert code == cli.EXIT_FATAL

    def test_create(self, token_env, monkeypatch, tmp_path):
        _install(monkeypatch, FakeRemoteStore([make_doc("a")]))
        store = tmp_path / "new" / "store"

        assert cli.main(["pull", str(store), "--create"]) == cli.EXIT_OK
        assert (store / "a.metadata").exists()

    def test_json(self, token_env, monkeypatch, tmp_path, capsys):
        store = tmp_path / "store"
        store.mkdir()
        _install(monkeypatch, FakeRemoteStore([make_doc("a")]))

        assert cli.main(["pull", str(store), "--json"]) == cli.EXIT_OK
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert data["counts"]["fetched"] == 1
        assert captured.err == ""

    def test_dry_run(self, token_env, monkeypatch, tmp_path, capsys):
        store = tmp_path / "store"
        store.mkdir()
        remote = FakeRemoteStore([make_doc("a")])
        _install(monkeypatch, remote)

        assert cli.main(["pull", str(store), "--dry-run"]) == cli.EXIT_OK
        assert "[CREATE LOCAL]" in capsys.readouterr().out
        assert remote.fetched == []
        assert list(store.iterdir()) == []

    def test_store_path_from_config(self, token_env, monkeypatch, tmp_path):
        store = tmp_path / "configured"
        store.mkdir()
        cfg = tmp_path / ".remsync" / "config.yml"
        cfg.parent.mkdir()
        cfg.write_text(f"store:\n  path: {store}\n", encoding="utf-8")
        _install(monkeypatch, FakeRemoteStore([make_doc("a")]))

        assert cli.main(["pull"]) == cli.EXIT_OK
        assert (store / "a.zip").exists()

    def test_no_store_path(self, token_env, monkeypatch, capsys):
        _install(monkeypatch, FakeRemoteStore([]))
        assert cli.main(["pull"]) == cli.EXIT_FATAL
        assert "store.path" in capsys.readouterr().err

    def test_max_parallel_passed(self, token_env, monkeypatch, tmp_path):
        store = tmp_path / "store"
        store.mkdir()
        configs = _install(monkeypatch, FakeRemoteStore([]))
        cli.main(["pull", str(store), "--max-parallel", "7"])
        assert configs[0].max_parallel_fetches == 7


class TestInit:
    def test_creates_config(self, tmp_path, capsys):
        assert cli.main(["init"]) == cli.EXIT_OK
        assert (tmp_path / ".remsync" / "config.yml").exists()
        assert "Created starter config" in capsys.readouterr().out

    def test_existing(self, tmp_path, capsys):
        cli.main(["init"])
        capsys.readouterr()
        assert cli.main(["init"]) == cli.EXIT_OK
        assert "already exists" in capsys.readouterr().out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])
    assert exc_info.value.code == 0
    assert "remsync version" in capsys.readouterr().out


def test_command_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_store_path_expanded(token_env, monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / "rm").mkdir()
    _install(monkeypatch, FakeRemoteStore([]))
    assert cli.main(["pull", "~/rm"]) == cli.EXIT_OK
    assert Path(tmp_path / "rm").is_dir()
