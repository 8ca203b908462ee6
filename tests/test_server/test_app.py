"""HTTP-level tests for the ASGI application."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from modcache.cache import DiskCache
from modcache.models import Settings
from modcache.output import OutputManager, set_output
from modcache.server import create_app

ZIP_PAYLOAD = b"PK\x03\x04" + b"\x00" * 200_000
INFO_BODY = b'{"Version":"v1.0.0","Time":"2023-01-01T00:00:00Z"}'


def _upstream(request: httpx.Request) -> httpx.Response:
    routes = {
        "/example.com/@v/list": lambda: httpx.Response(200, content=b"v1.0.0\n"),
        "/example.com/@v/v1.0.0.info": lambda: httpx.Response(200, content=INFO_BODY),
        "/example.com/@v/v1.0.0.mod": lambda: httpx.Response(200, content=b"module example.com\n"),
        "/example.com/@v/v1.0.0.zip": lambda: httpx.Response(200, content=ZIP_PAYLOAD),
        "/broken.example/@v/v1.0.0.info": lambda: httpx.Response(200, content=b"not-json"),
        "/gone.example/@v/list": lambda: httpx.Response(410, text="gone"),
    }
    if request.url.path.startswith("/down.example/"):
        raise httpx.ConnectError("connection refused")
    route = routes.get(request.url.path)
    if route is None:
        return httpx.Response(404, text="not found")
    return route()


@pytest.fixture
def client(
    tmp_path: Path,
    disk_cache: DiskCache,
    mock_client: Callable[..., httpx.AsyncClient],
) -> TestClient:
    set_output(OutputManager(no_color=True, quiet=True))
    settings = Settings(cache_dir=str(tmp_path / "cache"))
    app = create_app(settings, client=mock_client(_upstream), cache=disk_cache)
    return TestClient(app)


class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/healthz"])
    def test_health(self, client: TestClient, path: str) -> None:
        response = client.get(path)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestRouting:
    def test_unknown_path_is_plain_text_404(self, client: TestClient) -> None:
        response = client.get("/example.com/@latest")
        assert response.status_code == 404
        assert response.text == "Not found"
        assert response.headers["content-type"].startswith("text/plain")

    def test_non_get_is_405(self, client: TestClient) -> None:
        response = client.post("/example.com/@v/list")
        assert response.status_code == 405
        assert response.headers["content-type"].startswith("text/plain")

    def test_traversal_key_is_404(self, client: TestClient, tmp_path: Path) -> None:
        response = client.get("/example.com/..%2F..%2Fescape/@v/list")
        assert response.status_code == 404
        assert not (tmp_path / "escape").exists()


class TestVerbs:
    @pytest.mark.parametrize(
        "path, content_type, body",
        [
            ("/example.com/@v/list", "text/plain; charset=utf-8", b"v1.0.0\n"),
            ("/example.com/@v/v1.0.0.info", "application/json", INFO_BODY),
            ("/example.com/@v/v1.0.0.mod", "text/plain; charset=utf-8", b"module example.com\n"),
        ],
    )
    def test_buffered_verbs(
        self, client: TestClient, disk_cache: DiskCache, path: str, content_type: str, body: bytes
    ) -> None:
        response = client.get(path)
        assert response.status_code == 200
        assert response.headers["content-type"] == content_type
        assert response.content == body
        assert disk_cache.read(path) == body

    def test_cached_list_is_served_as_stored(self, client: TestClient, disk_cache: DiskCache) -> None:
        disk_cache.write("offline.example/@v/list", b"v1.0.0\nv1.1.0\n")
        response = client.get("/offline.example/@v/list")
        assert response.status_code == 200
        assert response.text == "v1.0.0\nv1.1.0\n"

    def test_archive_miss_then_hit(self, client: TestClient, disk_cache: DiskCache) -> None:
        first = client.get("/example.com/@v/v1.0.0.zip")
        assert first.status_code == 200
        assert first.headers["content-type"] == "application/zip"
        assert first.headers["content-length"] == str(len(ZIP_PAYLOAD))
        assert first.content == ZIP_PAYLOAD
        assert disk_cache.read("example.com/@v/v1.0.0.zip") == ZIP_PAYLOAD

        second = client.get("/example.com/@v/v1.0.0.zip")
        assert second.headers["content-length"] == str(len(ZIP_PAYLOAD))
        assert second.content == ZIP_PAYLOAD


class TestUpstreamFailures:
    def test_status_is_passed_through(self, client: TestClient, disk_cache: DiskCache) -> None:
        response = client.get("/gone.example/@v/list")
        assert response.status_code == 410
        assert response.text == "Upstream error: 410"
        assert not disk_cache.exists("gone.example/@v/list")

    def test_missing_module_is_404(self, client: TestClient) -> None:
        response = client.get("/example.com/@v/v9.9.9.mod")
        assert response.status_code == 404
        assert response.text == "Upstream error: 404"

    def test_invalid_info_is_502(self, client: TestClient, disk_cache: DiskCache) -> None:
        response = client.get("/broken.example/@v/v1.0.0.info")
        assert response.status_code == 502
        assert response.text.startswith("Invalid JSON")
        assert not disk_cache.exists("broken.example/@v/v1.0.0.info")

    def test_unreachable_upstream_is_502(self, client: TestClient) -> None:
        response = client.get("/down.example/@v/list")
        assert response.status_code == 502
        assert response.text.startswith("Failed to fetch")
        assert response.headers["content-type"].startswith("text/plain")


def _asgi_get(path: str) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver")],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }


async def _call_then_disconnect(app, path: str) -> list[dict]:
    """Send a GET whose client hangs up right after the request."""
    incoming = [
        {"type": "http.request", "body": b"", "more_body": False},
        {"type": "http.disconnect"},
    ]
    sent: list[dict] = []

    async def receive() -> dict:
        if incoming:
            return incoming.pop(0)
        await asyncio.sleep(3600)
        return {"type": "http.disconnect"}

    async def send(message: dict) -> None:
        sent.append(message)

    await app(_asgi_get(path), receive, send)
    return sent


class TestClientDisconnect:
    @pytest.mark.parametrize(
        "key", ["example.com/@v/list", "example.com/@v/v1.0.0.info", "example.com/@v/v1.0.0.zip"]
    )
    def test_disconnect_cancels_upstream_fetch(
        self,
        tmp_path: Path,
        disk_cache: DiskCache,
        mock_client: Callable[..., httpx.AsyncClient],
        key: str,
    ) -> None:
        completed: list[str] = []

        async def _slow_upstream(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.5)
            completed.append(request.url.path)
            return httpx.Response(200, content=b'{"Version":"v1.0.0"}')

        set_output(OutputManager(no_color=True, quiet=True))
        app = create_app(
            Settings(cache_dir=str(tmp_path / "cache")),
            client=mock_client(_slow_upstream),
            cache=disk_cache,
        )

        async def _run() -> list[dict]:
            messages = await _call_then_disconnect(app, f"/{key}")
            # Give a fetch that was not cancelled time to finish and persist.
            await asyncio.sleep(0.7)
            return messages

        started = time.monotonic()
        sent = asyncio.run(_run())

        assert completed == []
        assert not disk_cache.exists(key)
        assert sent[0]["status"] == 499
        assert time.monotonic() - started < 5
