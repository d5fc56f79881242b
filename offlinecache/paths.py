"""Path normalization, cache keys and precache set construction."""

import re
import string
from collections.abc import Iterable
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urlsplit, urlunsplit

ROOT_PATH = "/"
ROOT_INDEX_PATH = "/index.html"

# Always attempted first so navigation works even under a fetch budget.
FORCED_FIRST = (ROOT_PATH, ROOT_INDEX_PATH)

DEFAULT_PORTS = {"http": 80, "https": 443}

_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def normalize_path(value: object) -> str | None:
    """Normalize a resource path to its canonical absolute form.

    Produces a leading slash, collapses duplicate slashes and drops any
    trailing slash except for the root. Values carrying a scheme contribute
    only their path component.

    Args:
        value: Raw path from a manifest, config file or request URL.

    Returns:
        The normalized path, or None if the value is empty or not a string.
    """
    if not isinstance(value, str):
        return None

    path = value.strip()
    if not path:
        return None

    if "://" in path:
        path = urlsplit(path).path or ROOT_PATH

    path = _DUPLICATE_SLASHES.sub("/", "/" + path)
    if len(path) > 1:
        path = path.rstrip("/" + string.whitespace) or ROOT_PATH
    return path


def cache_key(url: str) -> str:
    """Derive the partition key for a request URL.

    The fragment is dropped and the path normalized, so equivalent URLs
    share one entry. Query strings are part of the key.
    """
    url, _ = urldefrag(url)
    parts = urlsplit(url)
    path = normalize_path(parts.path) or ROOT_PATH
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def origin_of(url: str) -> str:
    """Return the scheme://host[:port] origin of a URL.

    The port is omitted when it is the scheme's default.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"

    try:
        port = parts.port
    except ValueError:
        port = None

    if port is None or port == DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def url_for_path(origin: str, path: str) -> str:
    """Build the absolute URL of a normalized path on the given origin."""
    return origin.rstrip("/") + path


@dataclass(frozen=True)
class PrecacheSet:
    """Ordered, de-duplicated set of normalized paths to keep warm.

    Iteration follows attempt order; membership tests are constant time.
    """

    paths: tuple[str, ...] = ()
    _members: frozenset[str] = field(default=frozenset(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_members", frozenset(self.paths))

    def __contains__(self, path: object) -> bool:
        return path in self._members

    def __iter__(self):
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self.paths)


def build_precache_set(fallback_files: Iterable[str], manifest_files: Iterable[str]) -> PrecacheSet:
    """Merge built-in fallback paths with manifest entries.

    Order is the root and root index first, then the remaining fallback
    paths, then manifest entries in manifest order. Invalid entries are
    dropped; the fallback paths are always included.

    Args:
        fallback_files: Built-in fallback paths.
        manifest_files: Paths listed by the manifest.

    Returns:
        The merged PrecacheSet.
    """
    ordered: list[str] = []
    seen: set[str] = set()

    for raw in (*FORCED_FIRST, *fallback_files, *manifest_files):
        path = normalize_path(raw)
        if path is None or path in seen:
            continue
        seen.add(path)
        ordered.append(path)

    return PrecacheSet(tuple(ordered))
