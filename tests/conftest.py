"""Shared pytest fixtures for remsync tests."""

from __future__ import annotations

import threading
from collections.abc import Iterator

import pytest

from remsync.config import Config
from remsync.core.models import DocsResponse, NodeType
from remsync.errors import RemoteError


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require the live remote service",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring the live remote service"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep real REMSYNC_* settings and config files out of tests."""
    for key in (
        "REMSYNC_AUTH_SERVER",
        "REMSYNC_DISCOVERY_SERVER",
        "REMSYNC_DEVICE_TOKEN",
        "REMSYNC_MAX_PARALLEL_FETCHES",
        "REMSYNC_TIMEOUT",
        "REMSYNC_DEBUG",
        "REMSYNC_CONFIG",
        "LOG_LEVEL",
        "XDG_CONFIG_HOME",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


def make_doc(
    doc_id: str,
    version: int = 1,
    name: str | None = None,
    parent: str = "",
    node_type: NodeType = NodeType.DOCUMENT,
    **extra,
) -> DocsResponse:
    """Build a listing entry with sensible defaults."""
    return DocsResponse(
        id=doc_id,
        version=version,
        name=name if name is not None else f"Doc {doc_id}",
        parent=parent,
        node_type=node_type,
        **extra,
    )


class FakeRemoteStore:
    """In-memory ``RemoteStore`` for driver tests.

    Args:
        docs: The listing to return.
        blobs: Blob bytes per id; ids without an entry get ``b"blob-<id>"``.
        fail_fetch: Ids whose fetch raises ``RemoteError``.
        fail_midstream: Exceptions to raise after the first chunk, per id.
        list_error: If set, ``list_documents`` raises it.
    """

    def __init__(
        self,
        docs: list[DocsResponse] | None = None,
        blobs: dict[str, bytes] | None = None,
        fail_fetch: set[str] | None = None,
        list_error: Exception | None = None,
        fail_midstream: dict[str, Exception] | None = None,
    ) -> None:
        self.docs = list(docs or [])
        self.blobs = dict(blobs or {})
        self.fail_fetch = set(fail_fetch or ())
        self.list_error = list_error
        self.fail_midstream = dict(fail_midstream or {})
        self.fetched: list[str] = []
        self._lock = threading.Lock()

    def list_documents(self) -> list[DocsResponse]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.docs)

    def blob_for(self, doc_id: str) -> bytes:
        return self.blobs.get(doc_id, f"blob-{doc_id}".encode())

    def fetch_blob(self, doc_id: str) -> Iterator[bytes]:
        with self._lock:
            self.fetched.append(doc_id)
        if doc_id in self.fail_fetch:
            raise RemoteError(f"fetch blob {doc_id}", "boom", status=500)
        data = self.blob_for(doc_id)
        # Two chunks, to exercise streaming.
        yield data[: len(data) // 2]
        if doc_id in self.fail_midstream:
            raise self.fail_midstream[doc_id]
        yield data[len(data) // 2 :]


@pytest.fixture
def fake_remote():
    """Factory fixture for ``FakeRemoteStore`` instances."""
    return FakeRemoteStore


@pytest.fixture
def store(tmp_path):
    """An empty local store directory."""
    path = tmp_path / "store"
    path.mkdir()
    return path


@pytest.fixture
def mock_config():
    """A valid Config with a device token."""
    return Config(
        auth_server="https://auth.example.com/",
        discovery_server="https://discovery.example.com/",
        device_token="device-token",
        timeout=30,
    )
