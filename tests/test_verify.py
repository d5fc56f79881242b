"""Tests for the verify module."""

import json

from conftest import ORIGIN, FakeFetcher, ok_response

from offlinecache.config import Config
from offlinecache.paths import cache_key
from offlinecache.store import CacheStore
from offlinecache.verify import verify

MANIFEST_URL = ORIGIN + "/assets/cache-manifest.json"


def serve_manifest(fetcher: FakeFetcher, version: str, files: list[str]) -> None:
    body = json.dumps({"version": version, "staticFiles": files}).encode()
    fetcher.routes[MANIFEST_URL] = ok_response(MANIFEST_URL, body, "application/json")


def fill(store: CacheStore, partition: str, paths: list[str]) -> None:
    for path in paths:
        store.put(partition, cache_key(ORIGIN + path), ok_response(ORIGIN + path))


class TestVerify:
    """Tests for verify function."""

    def test_complete_partition_is_ok(self, config: Config, store: CacheStore, fetcher: FakeFetcher) -> None:
        """A partition holding the required files and the manifest count passes."""
        serve_manifest(fetcher, "2", ["/assets/app.js", "/assets/styles.css"])
        fill(store, "site-static-2", ["/", "/index.html", "/offline.html", "/assets/app.js", "/assets/styles.css"])

        result = verify(config, store, fetcher)

        assert result.ok
        assert result.version == "2"
        assert result.partition == "site-static-2"
        assert result.entries == 5
        assert result.expected == 2

    def test_missing_partition(self, config: Config, store: CacheStore, fetcher: FakeFetcher) -> None:
        """No static partition for the manifest's version fails."""
        serve_manifest(fetcher, "3", [])
        fill(store, "site-static-2", ["/", "/index.html"])

        result = verify(config, store, fetcher)

        assert not result.ok
        assert result.partition_exists is False
        assert result.partition == "site-static-3"

    def test_missing_required_files(self, config: Config, store: CacheStore, fetcher: FakeFetcher) -> None:
        """Missing root, index or offline document fails."""
        serve_manifest(fetcher, "2", [])
        fill(store, "site-static-2", ["/"])

        result = verify(config, store, fetcher)

        assert not result.ok
        assert result.missing == ("/index.html", "/offline.html")

    def test_fewer_entries_than_manifest(self, config: Config, store: CacheStore, fetcher: FakeFetcher) -> None:
        """A partition smaller than the manifest fails."""
        serve_manifest(fetcher, "2", [f"/assets/{n}.js" for n in range(5)])
        fill(store, "site-static-2", ["/", "/index.html", "/offline.html"])

        result = verify(config, store, fetcher)

        assert not result.ok
        assert result.missing == ()
        assert result.entries < result.expected

    def test_unreachable_manifest_checks_seed_version(
        self, config: Config, store: CacheStore, fetcher: FakeFetcher
    ) -> None:
        """Without a manifest the seed version's partition is checked."""
        fill(store, "site-static-1.0.0", ["/", "/index.html", "/offline.html"])

        result = verify(config, store, fetcher)

        assert result.ok
        assert result.version == "1.0.0"

    def test_unreachable_manifest_checks_last_deployed_version(
        self, config: Config, store: CacheStore, fetcher: FakeFetcher
    ) -> None:
        """Without a manifest the newest deployed generation is checked, not the seed."""
        fill(store, "site-static-2", ["/", "/index.html", "/offline.html"])

        result = verify(config, store, fetcher)

        assert result.ok
        assert result.version == "2"
        assert result.partition == "site-static-2"
