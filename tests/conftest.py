from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

import server
from helpers import RemoteStub
from server import app, get_fetcher
from toolberry_backend.fetch import RemoteFetcher


@pytest.fixture()
def temp_root(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "temp"
    monkeypatch.setattr(server, "TEMP_ROOT", root)
    return root


@pytest.fixture()
def remote() -> RemoteStub:
    return RemoteStub()


@pytest.fixture()
def client(temp_root, remote):
    app.dependency_overrides[get_fetcher] = lambda: RemoteFetcher(transport=httpx.MockTransport(remote))
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_fetcher, None)
