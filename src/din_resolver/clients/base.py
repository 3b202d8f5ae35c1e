"""Shared plumbing for the registry HTTP clients.

Every client talks JSON over one ``requests.Session``, spaces its requests by
``rate_limit_delay`` seconds, and never raises for a failed request: failures
come back as a ClientError value, so the caller decides whether one aborts
the run (registry feeds) or is recorded on the row (secondary lookups).
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_DELAY = 0.2  # seconds between requests
DEFAULT_TIMEOUT = 60.0  # full-collection dumps are slow
DEFAULT_USER_AGENT = "din-resolver/0.1.0"


@dataclass
class ClientError:
    """A request that did not produce usable JSON.

    Attributes:
        query: Label of the request (feed name or identifier)
        error_code: HTTP_ERROR, REQUEST_ERROR or PARSE_ERROR
        error_message: Description suitable for logs and error markers
        status_code: HTTP status, when the server answered
    """

    query: str
    error_code: str
    error_message: str
    status_code: int | None = None


class HTTPClientBase:
    """Rate-limited JSON-over-HTTP client.

    Subclasses build URLs and call ``_fetch_json``:

        >>> class FeedClient(HTTPClientBase):
        ...     def get_feed(self, name: str) -> Any | ClientError:
        ...         return self._fetch_json(f"https://api.example.org/{name}/", query=name)
    """

    def __init__(
        self,
        rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str | None = None,
    ):
        """Initialize the client.

        Args:
            rate_limit_delay: Minimum seconds between two requests
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header (default: DEFAULT_USER_AGENT)
        """
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self._next_request_at = 0.0
        self._session = requests.Session()
        self._session.headers["Accept"] = "application/json"
        self._session.headers["User-Agent"] = user_agent or DEFAULT_USER_AGENT

    def _throttle(self) -> None:
        wait = self._next_request_at - time.monotonic()
        if wait > 0:
            time.sleep(wait)
        self._next_request_at = time.monotonic() + self.rate_limit_delay

    def _request_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``url`` and decode the body.

        Raises:
            requests.HTTPError: On a non-success status
            requests.RequestException: On transport failures
            ValueError: If the body is not JSON
        """
        self._throttle()
        logger.debug(f"GET {url} params={params}")
        response = self._session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _fetch_json(self, url: str, query: str, params: dict[str, Any] | None = None) -> Any | ClientError:
        """Decoded JSON body, or a ClientError labelled with ``query``."""
        try:
            return self._request_json(url, params)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            return ClientError(query, "HTTP_ERROR", str(e), status_code=status)
        except ValueError as e:
            # requests' JSONDecodeError is also a RequestException, so this must come first
            return ClientError(query, "PARSE_ERROR", f"Response is not valid JSON: {e}")
        except requests.RequestException as e:
            return ClientError(query, "REQUEST_ERROR", str(e))

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HTTPClientBase":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
