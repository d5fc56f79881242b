"""Request classification into retrieval strategies.

Decision order, first match wins:

1. Non-GET requests are not intercepted (PASS_THROUGH).
2. Navigations and HTML documents prefer fresh content (NETWORK_FIRST).
3. Paths in the precache set are immutable per version (CACHE_FIRST).
4. Other same-origin requests (NETWORK_FIRST).
5. Allow-listed external origins (STALE_WHILE_REVALIDATE).
6. Everything else goes to the network untouched by the cache (BYPASS).
"""

from collections.abc import Sequence
from urllib.parse import urlsplit

from .models import READ_METHOD, Request, Strategy
from .paths import PrecacheSet, normalize_path, origin_of

HTML_SUFFIX = ".html"


def classify(
    request: Request,
    precache: PrecacheSet,
    origin: str,
    external_resources: Sequence[str] = (),
) -> Strategy:
    """Pick the retrieval strategy for a request.

    Args:
        request: Incoming request descriptor.
        precache: Precache set of the current generation.
        origin: Origin of the site the cache serves.
        external_resources: URL prefixes eligible for stale-while-revalidate.

    Returns:
        The Strategy to apply.
    """
    if request.method.upper() != READ_METHOD:
        return Strategy.PASS_THROUGH

    path = normalize_path(urlsplit(request.url).path) or "/"
    if request.navigate or path.lower().endswith(HTML_SUFFIX):
        return Strategy.NETWORK_FIRST

    if path in precache:
        return Strategy.CACHE_FIRST

    if origin_of(request.url) == origin_of(origin):
        return Strategy.NETWORK_FIRST

    if any(request.url.startswith(prefix) for prefix in external_resources):
        return Strategy.STALE_WHILE_REVALIDATE

    return Strategy.BYPASS
