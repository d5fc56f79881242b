"""Tests for the manifest module."""

import json

from conftest import ORIGIN, FakeFetcher, ok_response

from offlinecache.manifest import ManifestLoader, parse_manifest
from offlinecache.models import CachedResponse, Manifest

MANIFEST_URL = ORIGIN + "/assets/cache-manifest.json"


def manifest_response(data: object) -> CachedResponse:
    return ok_response(MANIFEST_URL, json.dumps(data).encode("utf-8"), "application/json")


class TestParseManifest:
    """Tests for parse_manifest function."""

    def test_parses_version_and_files(self) -> None:
        """Version and file list are read in order."""
        manifest = parse_manifest({"version": "2", "staticFiles": ["/b.js", "/a.js"]}, "1")

        assert manifest == Manifest(version="2", static_files=("/b.js", "/a.js"))

    def test_missing_version_keeps_previous(self) -> None:
        """A manifest without version keeps the previous one."""
        assert parse_manifest({"staticFiles": []}, "1").version == "1"

    def test_empty_version_keeps_previous(self) -> None:
        """An empty version string keeps the previous one."""
        assert parse_manifest({"version": "", "staticFiles": []}, "1").version == "1"

    def test_non_string_version_keeps_previous(self) -> None:
        """A numeric version is not trusted."""
        assert parse_manifest({"version": 3}, "1").version == "1"

    def test_skips_non_string_entries(self) -> None:
        """Non-string file entries are dropped."""
        manifest = parse_manifest({"version": "2", "staticFiles": ["/a.js", 5, None, "/b.js"]}, "1")

        assert manifest.static_files == ("/a.js", "/b.js")

    def test_non_list_files_ignored(self) -> None:
        """A staticFiles value that isn't a list yields no files."""
        assert parse_manifest({"version": "2", "staticFiles": "/a.js"}, "1").static_files == ()

    def test_non_object_document(self) -> None:
        """A JSON array is not a manifest."""
        assert parse_manifest(["/a.js"], "1") == Manifest(version="1")


class TestManifestLoader:
    """Tests for ManifestLoader class."""

    def test_url(self) -> None:
        """The manifest URL is the origin plus the well-known path."""
        loader = ManifestLoader(FakeFetcher(), ORIGIN, "/assets/cache-manifest.json")

        assert loader.url == MANIFEST_URL

    def test_loads_manifest_bypassing_cache(self) -> None:
        """The manifest is always fetched fresh."""
        fetcher = FakeFetcher({MANIFEST_URL: manifest_response({"version": "7", "staticFiles": ["/a.js"]})})

        manifest = ManifestLoader(fetcher, ORIGIN, "/assets/cache-manifest.json").load("1")

        assert manifest == Manifest(version="7", static_files=("/a.js",))
        assert fetcher.bypass_calls == [MANIFEST_URL]

    def test_network_failure_returns_empty(self) -> None:
        """An unreachable manifest degrades to fallback files only."""
        manifest = ManifestLoader(FakeFetcher(), ORIGIN, "/assets/cache-manifest.json").load("1")

        assert manifest == Manifest(version="1")

    def test_http_error_returns_empty(self) -> None:
        """A 404 manifest degrades to fallback files only."""
        fetcher = FakeFetcher({MANIFEST_URL: CachedResponse(url=MANIFEST_URL, status=404, reason="Not Found")})

        manifest = ManifestLoader(fetcher, ORIGIN, "/assets/cache-manifest.json").load("1")

        assert manifest == Manifest(version="1")

    def test_invalid_json_returns_empty(self) -> None:
        """A manifest that isn't JSON degrades to fallback files only."""
        fetcher = FakeFetcher({MANIFEST_URL: ok_response(MANIFEST_URL, b"<html>oops</html>")})

        manifest = ManifestLoader(fetcher, ORIGIN, "/assets/cache-manifest.json").load("1")

        assert manifest == Manifest(version="1")
