"""Origin fetches, pass-through forwarding and synthetic responses."""

import logging

import requests

from .models import SOURCE_NETWORK, SOURCE_SYNTHETIC, CachedResponse

logger = logging.getLogger(__name__)

# Headers that describe a single hop and must not be stored or replayed.
# requests decodes bodies, so the original encoding and length no longer apply.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-encoding",
        "content-length",
    }
)

# Sent on precache and manifest fetches so intermediaries revalidate.
CACHE_BYPASS_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

SERVICE_UNAVAILABLE = 503


class NetworkError(Exception):
    """Raised when a fetch fails without producing an HTTP response."""

    pass


def _strip_hop_by_hop(headers: object) -> dict[str, str]:
    """Copy response headers, dropping hop-by-hop ones."""
    return {k: v for k, v in dict(headers).items() if k.lower() not in HOP_BY_HOP_HEADERS}


def synthetic_unavailable(url: str, message: str) -> CachedResponse:
    """Build the terminal service-unavailable response.

    Args:
        url: URL of the request that could not be satisfied.
        message: Short plain-text body.
    """
    return CachedResponse(
        url=url,
        status=SERVICE_UNAVAILABLE,
        reason="Service Unavailable",
        headers={"Content-Type": "text/plain; charset=utf-8"},
        body=message.encode("utf-8"),
        source=SOURCE_SYNTHETIC,
    )


class Fetcher:
    """Fetches resources from the network with a timeout bound.

    Every fetch either returns a response (any status) or raises
    NetworkError; timeouts and connection errors are network failures.
    """

    def __init__(self, timeout: float = 10.0, user_agent: str = "OfflineCache/0.1") -> None:
        """Initialize the fetcher.

        Args:
            timeout: Seconds before a fetch is abandoned.
            user_agent: User-Agent header sent with every request.
        """
        self.timeout = timeout
        self.user_agent = user_agent

    def _headers(self, extra: dict[str, str] | None, bypass_cache: bool) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if extra:
            headers.update(extra)
        if bypass_cache:
            headers.update(CACHE_BYPASS_HEADERS)
        return headers

    def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        bypass_cache: bool = False,
    ) -> CachedResponse:
        """GET a URL.

        Args:
            url: Absolute URL to fetch.
            headers: Extra request headers.
            bypass_cache: Ask intermediaries to revalidate instead of serving a cached copy.

        Returns:
            The response, whatever its status code.

        Raises:
            NetworkError: On connection failure, timeout or invalid URL.
        """
        try:
            response = requests.get(
                url,
                headers=self._headers(headers, bypass_cache),
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Fetch failed for {url}: {e}") from e

        return CachedResponse(
            url=url,
            status=response.status_code,
            reason=response.reason or "",
            headers=_strip_hop_by_hop(response.headers),
            body=response.content,
            source=SOURCE_NETWORK,
        )

    def forward(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> CachedResponse:
        """Send a request untouched to the network (no cache interaction).

        Raises:
            NetworkError: On connection failure, timeout or invalid URL.
        """
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(headers, bypass_cache=False),
                data=body,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} failed for {url}: {e}") from e

        return CachedResponse(
            url=url,
            status=response.status_code,
            reason=response.reason or "",
            headers=_strip_hop_by_hop(response.headers),
            body=response.content,
            source=SOURCE_NETWORK,
        )
