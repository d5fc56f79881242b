"""Data models shared by the cache worker, its strategies and the host proxy."""

from dataclasses import dataclass, field
from enum import Enum

# Methods the worker intercepts. Everything else passes through untouched.
READ_METHOD = "GET"

# Values for CachedResponse.source
SOURCE_NETWORK = "network"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "fallback"
SOURCE_SYNTHETIC = "synthetic"


class Strategy(Enum):
    """Retrieval policy chosen by the router for one request."""

    CACHE_FIRST = "cache-first"
    NETWORK_FIRST = "network-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"
    BYPASS = "bypass"
    PASS_THROUGH = "pass-through"


@dataclass(frozen=True)
class Request:
    """Descriptor of an incoming request, as handed over by the host.

    Attributes:
        url: Absolute URL of the requested resource.
        method: HTTP method (only GET is intercepted).
        navigate: True when the request is a top-level document navigation.
        headers: Request headers the host wants forwarded to origin.
    """

    url: str
    method: str = READ_METHOD
    navigate: bool = False
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CachedResponse:
    """An opaque response blob, either fresh from the network or from a partition.

    Attributes:
        url: URL the response was fetched from.
        status: HTTP status code.
        reason: HTTP reason phrase.
        headers: Response headers (hop-by-hop headers already stripped).
        body: Raw response body.
        source: Where the response came from (network, cache, fallback, synthetic).
    """

    url: str
    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    source: str = SOURCE_NETWORK

    @property
    def ok(self) -> bool:
        """Whether the status code is in the 2xx range."""
        return 200 <= self.status < 300

    def with_source(self, source: str) -> "CachedResponse":
        """Return a copy of this response tagged with a different source."""
        return CachedResponse(
            url=self.url,
            status=self.status,
            reason=self.reason,
            headers=dict(self.headers),
            body=self.body,
            source=source,
        )


@dataclass(frozen=True)
class Manifest:
    """Versioned list of resource paths to keep warm.

    Attributes:
        version: Version identifier of the deployment.
        static_files: Paths to precache, in manifest order.
    """

    version: str
    static_files: tuple[str, ...] = ()


@dataclass(frozen=True)
class PartitionNames:
    """Names of the two partitions making up one generation."""

    static: str
    dynamic: str

    def __contains__(self, name: object) -> bool:
        return name == self.static or name == self.dynamic

    def as_tuple(self) -> tuple[str, str]:
        return (self.static, self.dynamic)


@dataclass(frozen=True)
class PrecacheReport:
    """Outcome of one precache population run.

    Attributes:
        partition: Name of the partition that was populated.
        cached: Paths stored successfully, in attempt order.
        failed: (path, reason) pairs for every path that could not be stored.
    """

    partition: str
    cached: tuple[str, ...] = ()
    failed: tuple[tuple[str, str], ...] = ()

    @property
    def attempted(self) -> int:
        return len(self.cached) + len(self.failed)


@dataclass(frozen=True)
class CleanupReport:
    """Outcome of a stale generation cleanup.

    Attributes:
        deleted: Partition names that were removed.
        failed: (name, reason) pairs for partitions that could not be removed.
    """

    deleted: tuple[str, ...] = ()
    failed: tuple[tuple[str, str], ...] = ()
