"""HTTP proxy hosting the cache worker.

Turns incoming HTTP requests into request descriptors and hands them to
the worker's fetch handler:

- origin-form targets (``GET /page``) are resolved against the configured
  origin (reverse proxy);
- absolute-form targets (``GET https://fonts.example/x``) are forward
  proxy requests and keep their own origin;
- requests the worker does not intercept (non-GET) are forwarded to the
  network untouched.
"""

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional

from .config import ProxyConfig
from .models import CachedResponse, Request
from .network import Fetcher, NetworkError
from .worker import CacheWorker

logger = logging.getLogger(__name__)

# Request headers not forwarded to origin.
SKIPPED_REQUEST_HEADERS = frozenset(
    {"host", "connection", "keep-alive", "proxy-connection", "proxy-authorization", "te", "upgrade", "accept-encoding"}
)

# Upper bound on how long a handler waits for the worker's answer.
# Fetches are already bounded by the network timeout; this covers queueing.
RESPONSE_WAIT_SECONDS = 120

MAX_REQUEST_BODY = 10 * 1024 * 1024  # 10MB


class ProxyError(Exception):
    """Raised when the proxy server fails to start."""

    pass


class MalformedRequestError(Exception):
    """Raised when a request cannot be parsed (answered with 400)."""

    pass


class RequestTooLargeError(Exception):
    """Raised when a request body exceeds MAX_REQUEST_BODY (answered with 413)."""

    pass


def is_navigation(headers: Any) -> bool:
    """Detect a top-level document navigation from Fetch Metadata headers."""
    mode = (headers.get("Sec-Fetch-Mode") or "").lower()
    dest = (headers.get("Sec-Fetch-Dest") or "").lower()
    return mode == "navigate" or dest == "document"


class ProxyHandler(BaseHTTPRequestHandler):
    """HTTP request handler routing requests through the cache worker."""

    # Class-level references set by factory
    worker: Optional[CacheWorker] = None
    fetcher: Optional[Fetcher] = None
    origin: str = ""

    protocol_version = "HTTP/1.1"

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use Python logging instead of stderr."""
        logger.debug("Proxy %s - %s", self.address_string(), format % args)

    def _target_url(self) -> str:
        if self.path.startswith(("http://", "https://")):
            return self.path
        return self.origin + (self.path if self.path.startswith("/") else "/" + self.path)

    def _forward_headers(self) -> dict[str, str]:
        return {k: v for k, v in self.headers.items() if k.lower() not in SKIPPED_REQUEST_HEADERS}

    def _send_response(self, response: CachedResponse, include_body: bool = True) -> None:
        self.send_response(response.status, response.reason or None)
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(response.body)))
        self.send_header("X-Cache-Source", response.source)
        self.send_header("Connection", "close")
        self.end_headers()
        if include_body:
            self.wfile.write(response.body)
        self.close_connection = True

    def _send_error_text(self, code: int, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)
        self.close_connection = True

    def _read_body(self) -> bytes | None:
        raw = (self.headers.get("Content-Length") or "0").strip()
        try:
            length = int(raw)
        except ValueError:
            raise MalformedRequestError(f"Invalid Content-Length: {raw!r}")
        if length < 0:
            raise MalformedRequestError(f"Invalid Content-Length: {raw!r}")
        if length == 0:
            return None
        if length > MAX_REQUEST_BODY:
            raise RequestTooLargeError(f"Request body too large ({length} bytes)")
        return self.rfile.read(length)

    def _handle(self) -> None:
        """Dispatch one request through the worker, or forward it untouched."""
        if self.worker is None or self.fetcher is None:
            self._send_error_text(503, "Cache worker not available")
            return

        url = self._target_url()
        request = Request(
            url=url,
            method=self.command,
            navigate=is_navigation(self.headers),
            headers=self._forward_headers(),
        )

        try:
            future = self.worker.handle_fetch(request)
            if future is not None:
                response = future.result(timeout=RESPONSE_WAIT_SECONDS)
            else:
                response = self.fetcher.forward(self.command, url, request.headers, self._read_body())
        except NetworkError as e:
            logger.warning("Pass-through %s failed url=%s: %s", self.command, url, e)
            self._send_error_text(502, "Bad gateway")
            return
        except MalformedRequestError as e:
            self._send_error_text(400, str(e))
            return
        except RequestTooLargeError as e:
            self._send_error_text(413, str(e))
            return
        except Exception as e:
            logger.exception("Error handling request %s %s: %s", self.command, url, e)
            self._send_error_text(500, "Internal server error")
            return

        self._send_response(response, include_body=self.command != "HEAD")

    def do_GET(self) -> None:
        """Handle GET requests."""
        self._handle()

    do_HEAD = do_GET
    do_POST = do_GET
    do_PUT = do_GET
    do_PATCH = do_GET
    do_DELETE = do_GET
    do_OPTIONS = do_GET


def _create_handler_class(worker: CacheWorker, fetcher: Fetcher, origin: str) -> type:
    """Create a handler class with the worker and fetcher bound."""

    class BoundProxyHandler(ProxyHandler):
        pass

    BoundProxyHandler.worker = worker
    BoundProxyHandler.fetcher = fetcher
    BoundProxyHandler.origin = origin
    return BoundProxyHandler


class ProxyServer:
    """Threaded HTTP proxy serving the site through the cache worker."""

    def __init__(self, config: ProxyConfig, worker: CacheWorker, fetcher: Fetcher, origin: str) -> None:
        """Initialize the proxy server.

        Args:
            config: Proxy configuration.
            worker: Cache worker handling intercepted requests.
            fetcher: Fetcher used for pass-through requests.
            origin: Origin that origin-form requests are resolved against.
        """
        self.config = config
        self.worker = worker
        self.fetcher = fetcher
        self.origin = origin.rstrip("/")
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._shutdown_event = threading.Event()

    def start(self) -> None:
        """Start the proxy server in a background thread.

        Raises:
            ProxyError: If the server fails to start.
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Proxy server is already running")
            return

        try:
            handler_class = _create_handler_class(self.worker, self.fetcher, self.origin)
            self._server = ThreadingHTTPServer((self.config.host, self.config.port), handler_class)
            self._server.daemon_threads = True
            self._server.timeout = 1.0  # Allow periodic shutdown checks

            self._shutdown_event.clear()
            self._thread = threading.Thread(
                target=self._serve_forever,
                name="proxy-server",
                daemon=True,
            )
            self._thread.start()

            logger.info("Proxy server started on %s:%d for %s", self.config.host, self.config.port, self.origin)

        except OSError as e:
            self._server = None
            if e.errno == 98 or e.errno == 48:  # EADDRINUSE (Linux=98, macOS=48)
                raise ProxyError(
                    f"Port {self.config.port} is already in use. "
                    f"Another process may be using this port, or offlinecache is already running."
                )
            elif e.errno == 13:  # EACCES - Permission denied
                raise ProxyError(
                    f"Permission denied for port {self.config.port}. "
                    f"Ports below 1024 require root privileges. "
                    f"Use a port >= 1024 or run with elevated permissions."
                )
            else:
                raise ProxyError(f"Failed to start proxy server on port {self.config.port}: {e}")

    def _serve_forever(self) -> None:
        """Server loop that checks for shutdown."""
        while not self._shutdown_event.is_set():
            if self._server:
                self._server.handle_request()

    def stop(self) -> None:
        """Stop the proxy server gracefully."""
        if self._thread is None:
            return

        logger.info("Stopping proxy server...")
        self._shutdown_event.set()

        if self._thread.is_alive():
            self._thread.join(timeout=5.0)

        if self._server:
            self._server.server_close()

        self._server = None
        self._thread = None
        logger.info("Proxy server stopped")

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._thread is not None and self._thread.is_alive()
