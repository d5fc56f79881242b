"""Shared fixtures for the offlinecache tests."""

import threading
from pathlib import Path

import pytest

from offlinecache.config import CacheConfig, Config, StoreConfig, WorkerConfig
from offlinecache.models import CachedResponse
from offlinecache.network import NetworkError
from offlinecache.store import CacheStore

ORIGIN = "https://example.com"


def ok_response(url: str, body: bytes = b"ok", content_type: str = "text/html") -> CachedResponse:
    """Build a 200 response as the network would return it."""
    return CachedResponse(url=url, status=200, reason="OK", headers={"Content-Type": content_type}, body=body)


class FakeFetcher:
    """In-memory stand-in for Fetcher.

    Routes map a URL to a CachedResponse, or to an exception to raise.
    Unknown URLs fail like an unreachable network. Every call is recorded.
    """

    def __init__(self, routes: dict | None = None) -> None:
        self.routes: dict = dict(routes or {})
        self.calls: list[str] = []
        self.bypass_calls: list[str] = []
        self.forwarded: list[tuple[str, str, bytes | None]] = []
        self._lock = threading.Lock()

    def fetch(self, url: str, headers: dict | None = None, bypass_cache: bool = False) -> CachedResponse:
        with self._lock:
            self.calls.append(url)
            if bypass_cache:
                self.bypass_calls.append(url)
        result = self.routes.get(url)
        if result is None:
            raise NetworkError(f"Fetch failed for {url}: unreachable")
        if isinstance(result, Exception):
            raise result
        return result

    def forward(self, method: str, url: str, headers: dict | None = None, body: bytes | None = None) -> CachedResponse:
        with self._lock:
            self.forwarded.append((method, url, body))
        result = self.routes.get(url)
        if result is None:
            raise NetworkError(f"{method} failed for {url}: unreachable")
        if isinstance(result, Exception):
            raise result
        return result

    def go_offline(self) -> None:
        """Make every further fetch fail."""
        self.routes.clear()


@pytest.fixture
def store_path(tmp_path: Path) -> str:
    """Create a temporary store path."""
    return str(tmp_path / "cache.db")


@pytest.fixture
def store(store_path: str) -> CacheStore:
    """Create a partition store in a temporary directory."""
    cache_store = CacheStore(store_path)
    yield cache_store
    cache_store.close()


@pytest.fixture
def fetcher() -> FakeFetcher:
    """Create an empty fake fetcher (everything unreachable)."""
    return FakeFetcher()


@pytest.fixture
def config(store_path: str) -> Config:
    """Create a configuration with a small fallback list."""
    return Config(
        origin=ORIGIN,
        cache=CacheConfig(
            prefix="site",
            seed_version="1.0.0",
            fallback_files=("/", "/index.html", "/offline.html"),
            external_resources=("https://fonts.example/",),
        ),
        store=StoreConfig(path=store_path),
        worker=WorkerConfig(max_workers=4),
    )
