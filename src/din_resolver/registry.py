"""Registry assembly: fetch the three DPD feeds, join them, cache the result.

The feeds share ``drug_code`` as their key. The assembled Registry is keyed
by DIN and preserves product-feed order.
"""

from __future__ import annotations

import logging
from typing import Any

from din_resolver.clients.base import ClientError
from din_resolver.clients.drug_product import DrugProductClient
from din_resolver.errors import RegistryUnavailable
from din_resolver.models import Ingredient, MarketStatus, Registry, RegistryEntry
from din_resolver.store.chunked_cache import CacheHit, ChunkedCache

logger = logging.getLogger(__name__)

REGISTRY_CACHE_NAME = "registry"
DEFAULT_TTL_SECONDS = 6 * 60 * 60


def _code(record: dict[str, Any]) -> str:
    """Drug code as a string (the feeds return integers)."""
    value = record.get("drug_code")
    return "" if value is None else str(value).strip()


def _strength(record: dict[str, Any]) -> str:
    """Free-text strength of an ingredient record, with its unit if given."""
    strength = record.get("strength")
    if strength in (None, ""):
        strength = record.get("strength_value")
    text = "" if strength is None else str(strength).strip()
    unit = str(record.get("strength_unit") or "").strip()
    return f"{text} {unit}".strip() if text else ""


def build_registry(
    products: list[dict[str, Any]],
    statuses: list[dict[str, Any]],
    ingredients: list[dict[str, Any]],
) -> Registry:
    """Join the three feeds into one Registry.

    Args:
        products: Product feed records (drug_code, drug_identification_number, brand_name, ...)
        statuses: Status feed records (drug_code, status)
        ingredients: Active-ingredient feed records (drug_code, ingredient_name, strength, ...)

    Returns:
        Registry with one entry per distinct DIN, in product-feed order. Entries
        without a status record keep UNKNOWN; entries without ingredient
        records keep an empty list.
    """
    registry = Registry()
    by_code: dict[str, list[RegistryEntry]] = {}

    for product in products:
        din = str(product.get("drug_identification_number") or "").strip()
        if not din:
            continue
        if din in registry:
            logger.debug(f"Duplicate DIN {din} in product feed, keeping first record")
            continue
        entry = RegistryEntry(
            id=din,
            drug_code=_code(product),
            canonical_name=str(product.get("brand_name") or "").strip(),
        )
        registry.entries[din] = entry
        by_code.setdefault(entry.drug_code, []).append(entry)

    for status in statuses:
        for entry in by_code.get(_code(status), []):
            entry.market_status = MarketStatus.from_feed(status.get("status"))

    for record in ingredients:
        for entry in by_code.get(_code(record), []):
            entry.ingredients.append(
                Ingredient(
                    name=str(record.get("ingredient_name") or "").strip(),
                    strength_raw=_strength(record),
                )
            )

    return registry


class RegistryAssembler:
    """Load the registry from cache, or assemble it from the live feeds.

    Example:
        >>> assembler = RegistryAssembler(DrugProductClient(), ChunkedCache(store))
        >>> registry = assembler.load()
        >>> len(registry.marketed())
    """

    def __init__(
        self,
        client: DrugProductClient,
        cache: ChunkedCache,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        self.client = client
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def load(self) -> Registry:
        """Return the current registry snapshot.

        Raises:
            RegistryUnavailable: If the cache misses and any feed cannot be fetched
        """
        cached = self.cache.load(REGISTRY_CACHE_NAME, self.ttl_seconds)
        if isinstance(cached, CacheHit):
            try:
                registry = Registry.from_dict(cached.value)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Cached registry has unexpected shape, refetching: {e}")
            else:
                logger.info(f"Loaded registry from cache ({len(registry)} entries)")
                return registry
        else:
            logger.info(f"Registry cache miss ({cached.reason}), fetching feeds")

        products = self._fetch("products")
        statuses = self._fetch("statuses")
        ingredients = self._fetch("ingredients")
        registry = build_registry(products, statuses, ingredients)
        logger.info(f"Assembled registry: {len(registry)} entries, {len(registry.marketed())} marketed")

        if not self.cache.store(REGISTRY_CACHE_NAME, registry.to_dict(), self.ttl_seconds):
            logger.warning("Registry could not be cached; continuing with live data")
        return registry

    def _fetch(self, feed: str) -> list[dict[str, Any]]:
        result = self.client.get_feed(feed)
        if isinstance(result, ClientError):
            raise RegistryUnavailable(feed, f"{result.error_code}: {result.error_message}")
        return result
