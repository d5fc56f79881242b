"""Tests for the network module."""

from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from offlinecache.models import SOURCE_SYNTHETIC
from offlinecache.network import Fetcher, NetworkError, synthetic_unavailable


@pytest.fixture
def mock_response() -> MagicMock:
    """Create a requests response double."""
    response = MagicMock()
    response.status_code = 200
    response.reason = "OK"
    response.headers = {
        "Content-Type": "text/css",
        "Content-Length": "12",
        "Content-Encoding": "gzip",
        "Connection": "keep-alive",
        "ETag": '"abc"',
    }
    response.content = b"body{color:0}"
    return response


class TestFetch:
    """Tests for Fetcher.fetch method."""

    @patch("offlinecache.network.requests.get")
    def test_returns_response(self, mock_get: Mock, mock_response: MagicMock) -> None:
        """A successful fetch is converted to a CachedResponse."""
        mock_get.return_value = mock_response

        response = Fetcher(timeout=5).fetch("https://example.com/a.css")

        assert response.status == 200
        assert response.body == b"body{color:0}"
        assert response.headers == {"Content-Type": "text/css", "ETag": '"abc"'}
        assert mock_get.call_args.kwargs["timeout"] == 5

    @patch("offlinecache.network.requests.get")
    def test_non_2xx_is_a_response(self, mock_get: Mock, mock_response: MagicMock) -> None:
        """HTTP errors are responses, not network failures."""
        mock_response.status_code = 404
        mock_response.reason = "Not Found"
        mock_get.return_value = mock_response

        response = Fetcher().fetch("https://example.com/missing")

        assert response.status == 404
        assert not response.ok

    @patch("offlinecache.network.requests.get")
    def test_bypass_cache_sends_no_cache(self, mock_get: Mock, mock_response: MagicMock) -> None:
        """Bypass fetches ask intermediaries to revalidate."""
        mock_get.return_value = mock_response

        Fetcher(user_agent="Test/1").fetch("https://example.com/", bypass_cache=True)

        headers = mock_get.call_args.kwargs["headers"]
        assert headers["Cache-Control"] == "no-cache"
        assert headers["User-Agent"] == "Test/1"

    @patch("offlinecache.network.requests.get")
    def test_timeout_raises_network_error(self, mock_get: Mock) -> None:
        """Timeouts are network failures."""
        mock_get.side_effect = requests.Timeout("timed out")

        with pytest.raises(NetworkError, match="timed out"):
            Fetcher().fetch("https://example.com/")

    @patch("offlinecache.network.requests.get")
    def test_connection_error_raises_network_error(self, mock_get: Mock) -> None:
        """Connection errors are network failures."""
        mock_get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            Fetcher().fetch("https://example.com/")


class TestForward:
    """Tests for Fetcher.forward method."""

    @patch("offlinecache.network.requests.request")
    def test_forwards_method_and_body(self, mock_request: Mock, mock_response: MagicMock) -> None:
        """Pass-through requests keep method and body and don't follow redirects."""
        mock_request.return_value = mock_response

        Fetcher().forward("POST", "https://example.com/api", {"X-A": "1"}, b"payload")

        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://example.com/api")
        assert kwargs["data"] == b"payload"
        assert kwargs["headers"]["X-A"] == "1"
        assert kwargs["allow_redirects"] is False

    @patch("offlinecache.network.requests.request")
    def test_failure_raises_network_error(self, mock_request: Mock) -> None:
        """Forwarding failures raise NetworkError."""
        mock_request.side_effect = requests.ConnectionError("down")

        with pytest.raises(NetworkError):
            Fetcher().forward("DELETE", "https://example.com/x")


class TestSyntheticUnavailable:
    """Tests for synthetic_unavailable function."""

    def test_builds_503(self) -> None:
        """The synthetic response is a plain-text 503."""
        response = synthetic_unavailable("https://example.com/x", "Content not available offline")

        assert response.status == 503
        assert response.body == b"Content not available offline"
        assert response.headers["Content-Type"].startswith("text/plain")
        assert response.source == SOURCE_SYNTHETIC
