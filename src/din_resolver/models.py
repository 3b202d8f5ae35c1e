"""Domain models for registry entries and spreadsheet rows.

The registry side (RegistryEntry, Registry) is built once per cache cycle and
treated as read-only. The row side (TargetRecord, EnrichmentRow) is produced
by the tabular adapter so the core never indexes cells by column position.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MarketStatus(Enum):
    """Registry eligibility status."""

    MARKETED = "Marketed"
    OTHER = "Other"
    UNKNOWN = "Unknown"

    @classmethod
    def from_feed(cls, status: str | None) -> MarketStatus:
        """Map a raw status string from the status feed."""
        if not status or not status.strip():
            return cls.UNKNOWN
        if status.strip().lower() == "marketed":
            return cls.MARKETED
        return cls.OTHER


class RecordKind(Enum):
    """Whether a row names a brand product or a generic ingredient list."""

    BRAND = "Brand"
    GENERIC = "Generic"

    @classmethod
    def parse(cls, value: str | None) -> RecordKind | None:
        """Parse a kind cell, case-insensitively. Returns None if unrecognized."""
        if not value:
            return None
        lowered = value.strip().lower()
        for kind in cls:
            if kind.value.lower() == lowered:
                return kind
        return None


@dataclass
class Ingredient:
    """One active ingredient with its free-text strength."""

    name: str
    strength_raw: str = ""


@dataclass
class RegistryEntry:
    """Canonical drug record from the product registry.

    Attributes:
        id: DIN-equivalent identifier returned by resolution
        drug_code: Registry-internal key shared by the product, status and ingredient feeds
        canonical_name: Brand name as published by the registry
        market_status: Eligibility status
        ingredients: Active ingredients in feed order (may be empty)
    """

    id: str
    drug_code: str
    canonical_name: str
    market_status: MarketStatus = MarketStatus.UNKNOWN
    ingredients: list[Ingredient] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "drug_code": self.drug_code,
            "canonical_name": self.canonical_name,
            "market_status": self.market_status.value,
            "ingredients": [[i.name, i.strength_raw] for i in self.ingredients],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryEntry:
        """Rebuild an entry from ``to_dict`` output."""
        return cls(
            id=data["id"],
            drug_code=data["drug_code"],
            canonical_name=data["canonical_name"],
            market_status=MarketStatus(data["market_status"]),
            ingredients=[Ingredient(name=name, strength_raw=strength) for name, strength in data["ingredients"]],
        )


@dataclass
class Registry:
    """Insertion-ordered mapping of identifier to RegistryEntry.

    Iteration order is product-feed order, which makes "first match"
    deterministic for a given snapshot.
    """

    entries: dict[str, RegistryEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self.entries.values())

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self.entries

    def get(self, entry_id: str) -> RegistryEntry | None:
        return self.entries.get(entry_id)

    def marketed(self) -> list[RegistryEntry]:
        """Entries eligible for matching, in insertion order."""
        return [e for e in self.entries.values() if e.market_status is MarketStatus.MARKETED]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict (entries as an ordered list)."""
        return {"entries": [e.to_dict() for e in self.entries.values()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Registry:
        """Rebuild a registry from ``to_dict`` output.

        Raises:
            KeyError, TypeError, ValueError: If the payload does not have the expected shape
        """
        registry = cls()
        for item in data["entries"]:
            entry = RegistryEntry.from_dict(item)
            registry.entries[entry.id] = entry
        return registry


@dataclass
class TargetRecord:
    """One spreadsheet row to resolve against the registry.

    Attributes:
        row_index: Zero-based position of the row in the source table
        kind: Brand or Generic
        name: Product or brand name as written
        strength_text: Free-text strength (e.g., "5mg/160mg")
        ingredients_text: Semicolon-delimited ingredient names
        form: Dosage form as written (informational)
        country_code: Country the row refers to
        identifier: Existing identifier in the result column (may be empty)
    """

    row_index: int
    kind: RecordKind
    name: str = ""
    strength_text: str = ""
    ingredients_text: str = ""
    form: str = ""
    country_code: str = ""
    identifier: str = ""


@dataclass
class EnrichmentRow:
    """One row taking part in secondary-code enrichment.

    ``secondary_code`` is written in place by the enricher.
    """

    row_index: int
    identifier: str = ""
    secondary_code: str = ""

    @property
    def needs_lookup(self) -> bool:
        return bool(self.identifier.strip()) and not self.secondary_code.strip()
