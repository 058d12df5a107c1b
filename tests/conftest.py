from collections.abc import Iterator
import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from torrent_search.config import get_settings
from torrent_search.db import get_engine
from torrent_search.main import create_app


class FakeSources:
    """Stands in for ``httpx.get`` so tests control what each source URL serves."""

    def __init__(self) -> None:
        self._responses: dict[str, tuple[int, bytes]] = {}
        self._redirects: dict[str, str] = {}
        self.calls: list[tuple[str, float]] = []

    def add_json(self, url: str, payload: object, *, status_code: int = 200) -> None:
        self._responses[url] = (status_code, json.dumps(payload).encode("utf-8"))

    def add_body(self, url: str, body: bytes, *, status_code: int = 200) -> None:
        self._responses[url] = (status_code, body)

    def add_redirect(self, url: str, location: str) -> None:
        self._redirects[url] = location

    def get(self, url: str, *, timeout: float, follow_redirects: bool = False) -> httpx.Response:
        self.calls.append((url, timeout))
        request = httpx.Request("GET", url)
        if url in self._redirects:
            location = self._redirects[url]
            if follow_redirects:
                return self.get(location, timeout=timeout, follow_redirects=True)
            return httpx.Response(301, headers={"Location": location}, request=request)
        if url not in self._responses:
            raise httpx.ConnectError("connection refused", request=request)
        status_code, body = self._responses[url]
        return httpx.Response(status_code, content=body, request=request)


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()


@pytest.fixture
def fake_sources(monkeypatch: pytest.MonkeyPatch) -> FakeSources:
    sources = FakeSources()
    monkeypatch.setattr("torrent_search.services.index.source_client.httpx.get", sources.get)
    return sources


@pytest.fixture
def app_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("INDEX_PATH", str(tmp_path / "index" / "torrents.db"))
    monkeypatch.setenv("SWEEP_DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'sweeps.db'}")
    monkeypatch.setenv("SWEEP_ON_STARTUP", "false")
    monkeypatch.setenv("KUBECONFIG", str(tmp_path / "no-kubeconfig"))
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
    monkeypatch.delenv("EXTERNAL_ENDPOINTS", raising=False)
    monkeypatch.delenv("SEARCH_ENDPOINT", raising=False)
    monkeypatch.delenv("HEALTH_ENDPOINT", raising=False)
    return tmp_path


@pytest.fixture
def client(app_env: Path) -> Iterator[TestClient]:
    with TestClient(create_app()) as test_client:
        yield test_client
