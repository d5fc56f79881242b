"""Tests for the paths module."""

import pytest

from offlinecache.paths import (
    PrecacheSet,
    build_precache_set,
    cache_key,
    normalize_path,
    origin_of,
    url_for_path,
)


class TestNormalizePath:
    """Tests for normalize_path function."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("/", "/"),
            ("index.html", "/index.html"),
            ("/assets//app.js", "/assets/app.js"),
            ("//assets///img//logo.svg", "/assets/img/logo.svg"),
            ("/assets/", "/assets"),
            ("/assets///", "/assets"),
            ("  /about  ", "/about"),
            ("https://example.com/a//b/", "/a/b"),
            ("https://example.com", "/"),
        ],
    )
    def test_normalizes(self, raw: str, expected: str) -> None:
        """Paths get one leading slash, no duplicates and no trailing slash."""
        assert normalize_path(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, 42, ["/"]])
    def test_rejects_empty_and_non_strings(self, raw: object) -> None:
        """Empty input and non-strings produce no path."""
        assert normalize_path(raw) is None

    @pytest.mark.parametrize("raw", ["/a//b/", "x", "/", "//", "/a/ ", " a / b /"])
    def test_is_idempotent(self, raw: str) -> None:
        """Normalizing a normalized path changes nothing."""
        once = normalize_path(raw)
        assert normalize_path(once) == once

    def test_root_slashes_collapse_to_root(self) -> None:
        """A path of only slashes is the root."""
        assert normalize_path("///") == "/"


class TestCacheKey:
    """Tests for cache_key function."""

    def test_drops_fragment(self) -> None:
        """Fragments never reach the cache key."""
        assert cache_key("https://example.com/page#top") == "https://example.com/page"

    def test_keeps_query(self) -> None:
        """Query strings distinguish entries."""
        assert cache_key("https://example.com/a?x=1") != cache_key("https://example.com/a?x=2")

    def test_equivalent_urls_share_key(self) -> None:
        """Duplicate and trailing slashes map to the same key."""
        assert cache_key("https://example.com//assets//app.js") == cache_key("https://example.com/assets/app.js/")

    def test_lowercases_scheme_and_host(self) -> None:
        """Scheme and host are case-insensitive."""
        assert cache_key("HTTPS://Example.COM/Page") == "https://example.com/Page"

    def test_root(self) -> None:
        """An origin without path keys as the root."""
        assert cache_key("https://example.com") == "https://example.com/"


class TestUrlHelpers:
    """Tests for origin_of and url_for_path functions."""

    def test_origin_of(self) -> None:
        """Origin keeps scheme, host and port only."""
        assert origin_of("https://Example.com:8443/a/b?c=1") == "https://example.com:8443"

    def test_origin_of_drops_default_port(self) -> None:
        """The scheme's default port is omitted."""
        assert origin_of("http://h:80/x") == "http://h"
        assert origin_of("https://h:443") == "https://h"
        assert origin_of("https://h:443/") == origin_of("https://h/")

    def test_origin_of_keeps_other_port(self) -> None:
        """A non-default port is part of the origin."""
        assert origin_of("https://h:8443") == "https://h:8443"
        assert origin_of("http://h:443/") == "http://h:443"

    def test_origin_of_ipv6_host(self) -> None:
        """IPv6 hosts keep their brackets."""
        assert origin_of("http://[::1]:8080/") == "http://[::1]:8080"
        assert origin_of("http://[::1]:80/") == "http://[::1]"

    def test_origin_of_invalid_port(self) -> None:
        """An unparsable port is dropped instead of raising."""
        assert origin_of("http://h:notaport/x") == "http://h"

    def test_url_for_path(self) -> None:
        """A trailing slash on the origin is not doubled."""
        assert url_for_path("https://example.com/", "/index.html") == "https://example.com/index.html"


class TestBuildPrecacheSet:
    """Tests for build_precache_set function."""

    def test_root_pair_comes_first(self) -> None:
        """Root and root index are attempted before anything else."""
        result = build_precache_set(["/offline.html"], ["/assets/app.js", "/index.html"])

        assert list(result)[:2] == ["/", "/index.html"]

    def test_fallbacks_precede_manifest(self) -> None:
        """Fallback paths come before manifest entries, which keep their order."""
        result = build_precache_set(["/offline.html"], ["/b.js", "/a.js"])

        assert list(result) == ["/", "/index.html", "/offline.html", "/b.js", "/a.js"]

    def test_deduplicates_after_normalization(self) -> None:
        """Paths equal after normalization appear once."""
        result = build_precache_set(["/", "/offline.html"], ["offline.html", "/offline.html/", "//"])

        assert list(result) == ["/", "/index.html", "/offline.html"]

    def test_drops_invalid_entries(self) -> None:
        """Empty and non-string manifest entries are skipped."""
        result = build_precache_set([], ["", None, 7, "/ok.css"])

        assert "/ok.css" in result
        assert len(result) == 3

    def test_always_contains_fallbacks(self) -> None:
        """An empty manifest still yields the fallback paths."""
        result = build_precache_set(["/offline.html", "/assets/styles.css"], [])

        for path in ("/", "/index.html", "/offline.html", "/assets/styles.css"):
            assert path in result

    def test_membership(self) -> None:
        """Membership works on normalized paths."""
        precache = PrecacheSet(("/", "/a.js"))

        assert "/a.js" in precache
        assert "/b.js" not in precache
        assert len(precache) == 2
