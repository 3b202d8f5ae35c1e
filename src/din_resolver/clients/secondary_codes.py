"""Client for the secondary-code registry.

The registry is queried one identifier at a time. Its response nests a
mapping of full codes to detail objects::

    {"matches": {"AB-12-345": {"description": "..."}, ...}}

Some deployments wrap that under a top-level ``data`` key; both shapes are
handed back untouched and reduced by ``enrichment.parse_secondary_codes``.
"""

import logging
from typing import Any
from urllib.parse import quote

from din_resolver.clients.base import ClientError, HTTPClientBase

logger = logging.getLogger(__name__)

# The lookup service is shared; stay well under its limit
DEFAULT_RATE_LIMIT_DELAY = 0.5


class SecondaryCodeClient(HTTPClientBase):
    """Per-identifier lookup client.

    Example:
        >>> client = SecondaryCodeClient("https://codes.example.org/api/lookup/{identifier}")
        >>> result = client.lookup("02229000")
        >>> if not isinstance(result, ClientError):
        ...     print(sorted(result["matches"]))
    """

    def __init__(self, url_template: str, rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY, **kwargs: Any):
        """Initialize the client.

        Args:
            url_template: Lookup URL containing an ``{identifier}`` placeholder
            rate_limit_delay: Seconds to wait between requests (default: 0.5)
            **kwargs: Passed to HTTPClientBase (timeout, user_agent)

        Raises:
            ValueError: If the template has no ``{identifier}`` placeholder
        """
        if "{identifier}" not in url_template:
            raise ValueError(f"Lookup URL template must contain '{{identifier}}': {url_template}")
        super().__init__(rate_limit_delay=rate_limit_delay, **kwargs)
        self.url_template = url_template

    def lookup(self, identifier: str) -> dict[str, Any] | ClientError:
        """Fetch secondary-code matches for one identifier.

        Args:
            identifier: Resolved DIN-equivalent identifier

        Returns:
            Parsed JSON object on success, ClientError on failure
        """
        url = self.url_template.format(identifier=quote(identifier.strip(), safe=""))
        data = self._fetch_json(url, query=identifier)
        if isinstance(data, ClientError):
            logger.debug(f"Lookup failed for {identifier}: {data.error_code} {data.error_message}")
            return data
        if not isinstance(data, dict):
            return ClientError(
                query=identifier,
                error_code="PARSE_ERROR",
                error_message=f"Expected a JSON object, got {type(data).__name__}",
            )
        return data
