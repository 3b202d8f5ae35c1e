"""Health Canada Drug Product Database (DPD) API client.

The DPD API only offers full-collection dumps for the feeds we need, so the
registry is built by fetching everything and joining on ``drug_code``.

References:
    - API docs: https://health-products.canada.ca/api/documentation/dpd-documentation-en.html
"""

import logging
from typing import Any

from din_resolver.clients.base import ClientError, HTTPClientBase

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://health-products.canada.ca/api/drug"

# Feed name -> endpoint path
FEED_ENDPOINTS = {
    "products": "drugproduct/",
    "statuses": "status/",
    "ingredients": "activeingredient/",
}


class DrugProductClient(HTTPClientBase):
    """Client for the DPD full-collection endpoints.

    Example:
        >>> client = DrugProductClient()
        >>> products = client.get_products()
        >>> if isinstance(products, list):
        ...     print(products[0]["brand_name"])
    """

    BASE_URL = DEFAULT_BASE_URL

    def __init__(self, base_url: str | None = None, **kwargs: Any):
        """Initialize the client.

        Args:
            base_url: Override for the API base URL
            **kwargs: Passed to HTTPClientBase (rate_limit_delay, timeout, user_agent)
        """
        super().__init__(**kwargs)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    def get_feed(self, feed: str) -> list[dict[str, Any]] | ClientError:
        """Fetch one full collection.

        Args:
            feed: One of "products", "statuses", "ingredients"

        Returns:
            List of records on success, ClientError on failure or if the body is
            not a JSON array of objects
        """
        url = f"{self.base_url}/{FEED_ENDPOINTS[feed]}"
        data = self._fetch_json(url, query=feed, params={"lang": "en", "type": "json"})
        if isinstance(data, ClientError):
            return data
        if not isinstance(data, list):
            return ClientError(
                query=feed,
                error_code="PARSE_ERROR",
                error_message=f"Expected a JSON array, got {type(data).__name__}",
            )
        if not all(isinstance(record, dict) for record in data):
            return ClientError(
                query=feed,
                error_code="PARSE_ERROR",
                error_message="Expected every array element to be a JSON object",
            )
        logger.info(f"Fetched {len(data)} {feed} records")
        return data

    def get_products(self) -> list[dict[str, Any]] | ClientError:
        return self.get_feed("products")

    def get_statuses(self) -> list[dict[str, Any]] | ClientError:
        return self.get_feed("statuses")

    def get_active_ingredients(self) -> list[dict[str, Any]] | ClientError:
        return self.get_feed("ingredients")
