"""API clients for the drug product registry and the secondary-code registry."""

from din_resolver.clients.base import ClientError, HTTPClientBase
from din_resolver.clients.drug_product import DrugProductClient
from din_resolver.clients.secondary_codes import SecondaryCodeClient

__all__ = ["ClientError", "DrugProductClient", "HTTPClientBase", "SecondaryCodeClient"]
