"""Exceptions that abort a whole invocation.

Per-row lookup failures and cache misses are not exceptions; they are
represented as values (ClientError, CacheMiss) and handled where they occur.
"""


class ConfigurationError(Exception):
    """A required column or setting is missing."""


class RegistryUnavailable(Exception):
    """A registry feed could not be fetched or parsed.

    Attributes:
        source: Name of the feed that failed (e.g., "products")
    """

    def __init__(self, source: str, message: str):
        super().__init__(f"Registry feed '{source}' unavailable: {message}")
        self.source = source
