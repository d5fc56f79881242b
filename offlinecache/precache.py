"""Best-effort precache population of a static partition."""

import logging
from collections.abc import Iterable

from .models import PrecacheReport
from .network import Fetcher, NetworkError
from .paths import cache_key, url_for_path
from .store import Partition, StoreError

logger = logging.getLogger(__name__)


def populate(partition: Partition, paths: Iterable[str], fetcher: Fetcher, origin: str) -> PrecacheReport:
    """Fill a partition with the given paths, one at a time, in order.

    Never raises: a path that fails to fetch, answers with a non-2xx status
    or cannot be stored is logged and skipped, and population moves on.

    Args:
        partition: Partition to populate (normally the generation's static one).
        paths: Normalized paths in attempt order.
        fetcher: Network fetcher.
        origin: Origin the paths are resolved against.

    Returns:
        PrecacheReport with cached paths and (path, reason) failures.
    """
    cached: list[str] = []
    failed: list[tuple[str, str]] = []

    for path in paths:
        url = url_for_path(origin, path)
        try:
            response = fetcher.fetch(url, bypass_cache=True)
        except NetworkError as e:
            logger.warning("Precache failed path=%s: %s", path, e)
            failed.append((path, str(e)))
            continue

        if not response.ok:
            reason = f"HTTP {response.status} {response.reason}".strip()
            logger.warning("Precache failed path=%s: %s", path, reason)
            failed.append((path, reason))
            continue

        try:
            partition.put(cache_key(url), response)
        except StoreError as e:
            logger.warning("Precache store failed path=%s: %s", path, e)
            failed.append((path, str(e)))
            continue

        cached.append(path)

    if failed:
        logger.warning(
            "Precache completed with failures partition=%s cached=%d failed=%d",
            partition.name,
            len(cached),
            len(failed),
        )
    else:
        logger.info("Precache completed partition=%s cached=%d", partition.name, len(cached))

    return PrecacheReport(partition=partition.name, cached=tuple(cached), failed=tuple(failed))
