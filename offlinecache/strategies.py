"""Retrieval strategies and the navigation fallback chain.

Every strategy returns a response; none of them lets a network or store
failure escape. When nothing else is available the caller gets a synthetic
503 with a short plain-text body.

- cache_first: any partition, else network (copy into static partition).
- network_first: network (copy into dynamic partition), else any
  partition, else the fallback chain for navigations.
- stale_while_revalidate: dynamic partition immediately while a background
  refresh updates it for the next caller; network on a miss.
- bypass: network only, no cache interaction.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass

from .generations import Generation
from .models import SOURCE_FALLBACK, CachedResponse, Request, Strategy
from .network import Fetcher, NetworkError, synthetic_unavailable
from .paths import cache_key, url_for_path
from .store import CacheStore, StoreError

logger = logging.getLogger(__name__)

CACHE_FIRST_UNAVAILABLE = "Offline content not available"
NETWORK_FIRST_UNAVAILABLE = "Content not available offline"
BYPASS_UNAVAILABLE = "Network unavailable"


class InFlightKeys:
    """Thread-safe set of cache keys with a refresh already under way."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set()

    def claim(self, key: str) -> bool:
        """Mark a key as refreshing. Returns False if it already was."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys


@dataclass(frozen=True)
class FetchContext:
    """Everything a strategy needs, passed explicitly per request.

    Attributes:
        store: Partition store.
        fetcher: Network fetcher.
        generation: Generation current when the request arrived.
        origin: Origin of the site the cache serves.
        offline_document: Path of the offline fallback document.
        home_document: Path of the home (root index) fallback document.
        background: Executor for work that outlives the request.
        refreshing: Keys with a background refresh in flight, shared by
            every context of one worker.
    """

    store: CacheStore
    fetcher: Fetcher
    generation: Generation
    origin: str
    offline_document: str
    home_document: str
    background: Executor | None = None
    refreshing: InFlightKeys | None = None


def _lookup(ctx: FetchContext, key: str, partitions: list[str] | None = None) -> CachedResponse | None:
    """Cache lookup that treats a store failure as a miss.

    A search across every partition tries the request's generation first.
    """
    try:
        if partitions is None:
            return ctx.store.match(key, prefer=ctx.generation.names.as_tuple())
        return ctx.store.match(key, partitions=partitions)
    except StoreError as e:
        logger.warning("Cache lookup failed key=%s: %s", key, e)
        return None


def _store_copy(ctx: FetchContext, partition: str, key: str, response: CachedResponse) -> None:
    """Store a response copy; a store failure is logged and ignored.

    Never recreates a partition deleted by a newer generation's cleanup.
    """
    try:
        ctx.store.put(partition, key, response, create=False)
    except StoreError as e:
        logger.warning("Cache write skipped partition=%s key=%s: %s", partition, key, e)


def _fetch(ctx: FetchContext, request: Request) -> CachedResponse:
    return ctx.fetcher.fetch(request.url, headers=request.headers)


def cache_first(ctx: FetchContext, request: Request) -> CachedResponse:
    """Serve from any partition without revalidation, else from the network."""
    key = cache_key(request.url)
    cached = _lookup(ctx, key)
    if cached is not None:
        logger.debug("Cache hit strategy=cache-first key=%s", key)
        return cached

    try:
        response = _fetch(ctx, request)
    except NetworkError as e:
        logger.error("Cache first failed key=%s: %s", key, e)
        return synthetic_unavailable(request.url, CACHE_FIRST_UNAVAILABLE)

    if response.ok:
        _store_copy(ctx, ctx.generation.names.static, key, response)
    return response


def network_first(ctx: FetchContext, request: Request) -> CachedResponse:
    """Serve fresh from the network, falling back to cache and the fallback chain."""
    key = cache_key(request.url)
    try:
        response = _fetch(ctx, request)
    except NetworkError as e:
        logger.info("Network failed, trying cache key=%s: %s", key, e)
    else:
        if response.ok:
            _store_copy(ctx, ctx.generation.names.dynamic, key, response)
        return response

    cached = _lookup(ctx, key)
    if cached is not None:
        logger.debug("Cache hit strategy=network-first key=%s", key)
        return cached

    if request.navigate:
        return serve_navigation_fallback(ctx, request)

    return synthetic_unavailable(request.url, NETWORK_FIRST_UNAVAILABLE)


def _revalidate(ctx: FetchContext, request: Request, key: str) -> CachedResponse | None:
    """Fetch a fresh copy into the dynamic partition. Returns None on network failure."""
    try:
        response = _fetch(ctx, request)
    except NetworkError as e:
        logger.info("Revalidation failed key=%s: %s", key, e)
        return None

    if response.ok:
        _store_copy(ctx, ctx.generation.names.dynamic, key, response)
    return response


def _revalidate_in_background(ctx: FetchContext, request: Request, key: str) -> None:
    try:
        _revalidate(ctx, request, key)
    except Exception:
        logger.exception("Background revalidation crashed key=%s", key)
    finally:
        if ctx.refreshing is not None:
            ctx.refreshing.release(key)


def _schedule_refresh(ctx: FetchContext, request: Request, key: str) -> None:
    """Start at most one refresh per key; later hits reuse the one in flight."""
    if ctx.refreshing is not None and not ctx.refreshing.claim(key):
        logger.debug("Revalidation already in flight key=%s", key)
        return

    if ctx.background is None:
        _revalidate_in_background(ctx, request, key)
        return

    try:
        ctx.background.submit(_revalidate_in_background, ctx, request, key)
    except RuntimeError as e:
        # Executor already shut down; the stale copy is still valid.
        logger.debug("Background revalidation not scheduled key=%s: %s", key, e)
        if ctx.refreshing is not None:
            ctx.refreshing.release(key)


def stale_while_revalidate(ctx: FetchContext, request: Request) -> CachedResponse:
    """Serve the dynamic partition's copy now and refresh it for the next caller.

    On a hit the refresh runs on ctx.background and keeps running after this
    call returns; hits arriving while it runs do not start another. On a
    miss the caller waits on the network instead.
    """
    key = cache_key(request.url)
    cached = _lookup(ctx, key, partitions=[ctx.generation.names.dynamic])

    if cached is not None:
        logger.debug("Cache hit strategy=stale-while-revalidate key=%s", key)
        _schedule_refresh(ctx, request, key)
        return cached

    response = _revalidate(ctx, request, key)
    if response is None:
        return synthetic_unavailable(request.url, NETWORK_FIRST_UNAVAILABLE)
    return response


def bypass(ctx: FetchContext, request: Request) -> CachedResponse:
    """Forward to the network with no cache interaction."""
    try:
        return _fetch(ctx, request)
    except NetworkError as e:
        logger.info("Bypass fetch failed url=%s: %s", request.url, e)
        return synthetic_unavailable(request.url, BYPASS_UNAVAILABLE)


def serve_navigation_fallback(ctx: FetchContext, request: Request) -> CachedResponse:
    """Degrade a failed navigation: offline document, then home document, then 503."""
    for path in (ctx.offline_document, ctx.home_document):
        key = cache_key(url_for_path(ctx.origin, path))
        cached = _lookup(ctx, key)
        if cached is not None:
            logger.info("Navigation fallback selected url=%s document=%s", request.url, path)
            return cached.with_source(SOURCE_FALLBACK)

    logger.warning("Navigation fallback exhausted url=%s", request.url)
    return synthetic_unavailable(request.url, NETWORK_FIRST_UNAVAILABLE)


STRATEGIES: dict[Strategy, Callable[[FetchContext, Request], CachedResponse]] = {
    Strategy.CACHE_FIRST: cache_first,
    Strategy.NETWORK_FIRST: network_first,
    Strategy.STALE_WHILE_REVALIDATE: stale_while_revalidate,
    Strategy.BYPASS: bypass,
}
