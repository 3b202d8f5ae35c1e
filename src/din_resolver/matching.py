"""Resolve free-text drug rows to a registry identifier.

Two resolution paths share one normalization toolkit:

- Brand path: match the brand name against registry names, first exactly
  (allowing an embedded dosage-form suffix), then with a trailing dosage-form
  suffix stripped from both sides. Several candidates are narrowed by
  strength.
- Generic path: match the ingredient list against entry ingredients, with the
  strength checked per ingredient.

Strengths are compared as "fingerprints": the numeric tokens of the text
concatenated with no separator. The fingerprint is lossy ("1" + "23" and
"12" + "3" collide) but every comparison applies it to both sides.
"""

from __future__ import annotations

import logging
import re

from din_resolver.models import RecordKind, Registry, RegistryEntry, TargetRecord

logger = logging.getLogger(__name__)

WHITESPACE_PATTERN = re.compile(r"\s+")
TRADEMARK_PATTERN = re.compile(r"[®™©]")
PARENTHETICAL_PATTERN = re.compile(r"\([^)]*\)")
NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")

# Dosage-form suffixes that brand names carry (extended release, controlled delivery, ...)
DOSAGE_SUFFIXES = ("er", "cd", "xl", "sr", "la", "cr", "dr", "xr")
DOSAGE_SUFFIX_PATTERN = re.compile(r"[\s-]+(?:" + "|".join(DOSAGE_SUFFIXES) + r")$", re.IGNORECASE)


def normalize_text(text: str | None) -> str:
    """Lowercase, trim, and collapse whitespace runs to one space.

    >>> normalize_text("  A   B ")
    'a b'
    """
    if not text:
        return ""
    return WHITESPACE_PATTERN.sub(" ", text).strip().lower()


def clean_search_term(text: str | None) -> str:
    """Strip trademark glyphs and parenthesized annotations.

    >>> clean_search_term("Lipitor® (atorvastatin)")
    'Lipitor'
    """
    if not text:
        return ""
    text = TRADEMARK_PATTERN.sub("", text)
    text = PARENTHETICAL_PATTERN.sub("", text)
    return text.strip()


def normalize_strength(text: str | None) -> str:
    """Concatenate every numeric token in order of appearance.

    >>> normalize_strength("500 mg / 12.5 mg")
    '50012.5'
    >>> normalize_strength("n/a")
    ''
    """
    if not text:
        return ""
    return "".join(NUMBER_PATTERN.findall(text))


def strip_dosage_suffix(text: str) -> str:
    """Remove one trailing dosage-form suffix token (ER, XL, CR, ...).

    >>> strip_dosage_suffix("tylenol er")
    'tylenol'
    """
    return DOSAGE_SUFFIX_PATTERN.sub("", text).strip()


def comparison_term(text: str | None) -> str:
    """Clean then normalize, the form used for every name comparison."""
    return normalize_text(clean_search_term(text))


def ingredient_tokens(ingredients_text: str | None) -> list[str]:
    """Split a semicolon-delimited ingredient list into comparison tokens.

    >>> ingredient_tokens("Amlodipine; Valsartan ;")
    ['amlodipine', 'valsartan']
    """
    if not ingredients_text:
        return []
    tokens = [comparison_term(segment) for segment in ingredients_text.split(";")]
    return [token for token in tokens if token]


def tokens_match_ingredients(tokens: list[str], entry: RegistryEntry) -> bool:
    """True if every token overlaps some ingredient name of the entry.

    Overlap is bidirectional substring containment, which tolerates salt-form
    suffixes such as "salmeterol" vs "salmeterol xinafoate".
    """
    names = [comparison_term(ingredient.name) for ingredient in entry.ingredients]
    names = [name for name in names if name]
    return all(any(token in name or name in token for name in names) for token in tokens)


def ingredient_fingerprints(entry: RegistryEntry) -> list[str]:
    return [normalize_strength(ingredient.strength_raw) for ingredient in entry.ingredients]


def strength_accepts(entry: RegistryEntry, target_fingerprint: str) -> bool:
    """Strength test used to break ties between brand candidates.

    Accepts when the sorted, joined ingredient fingerprints equal the target;
    when a multi-ingredient entry has every fingerprint inside the target;
    or when any single ingredient fingerprint equals the target.
    """
    fingerprints = ingredient_fingerprints(entry)
    if "".join(sorted(fingerprints)) == target_fingerprint:
        return True
    if len(fingerprints) > 1 and all(fp in target_fingerprint for fp in fingerprints):
        return True
    return any(fp == target_fingerprint for fp in fingerprints)


def generic_strength_matches(entry: RegistryEntry, target_fingerprint: str) -> bool:
    """Strength test for the generic path.

    Combination products need each ingredient fingerprint inside the target;
    single-ingredient products need an exact fingerprint match. An entry with
    no parseable strength is never excluded here.
    """
    fingerprints = ingredient_fingerprints(entry)
    if len(fingerprints) > 1:
        return all(fp in target_fingerprint for fp in fingerprints)
    if len(fingerprints) == 1:
        return not fingerprints[0] or fingerprints[0] == target_fingerprint
    return False


def _name_matches_exactly(entry_name: str, brand: str) -> bool:
    if entry_name == brand:
        return True
    return entry_name.startswith(brand + " ") or entry_name.startswith(brand + "-")


class MatchEngine:
    """Resolve TargetRecords against a Registry snapshot.

    Example:
        >>> engine = MatchEngine()
        >>> engine.resolve(record, registry)
        '02229000'
    """

    def resolve(self, record: TargetRecord, registry: Registry) -> str | None:
        """Return the identifier of the best-matching marketed entry, or None."""
        if record.kind is RecordKind.BRAND:
            return self.resolve_brand(record, registry)
        return self.resolve_generic(record, registry)

    def resolve_brand(self, record: TargetRecord, registry: Registry) -> str | None:
        eligible = registry.marketed()
        if not eligible:
            return None

        brand = comparison_term(record.name)
        if not brand:
            return None
        tokens = ingredient_tokens(record.ingredients_text)

        candidates = [entry for entry in eligible if _name_matches_exactly(normalize_text(entry.canonical_name), brand)]

        if not candidates:
            stripped = strip_dosage_suffix(brand)
            if stripped and stripped != brand:
                candidates = [
                    entry
                    for entry in eligible
                    if strip_dosage_suffix(normalize_text(entry.canonical_name)) == stripped
                    and (not tokens or tokens_match_ingredients(tokens, entry))
                ]
                if candidates:
                    logger.debug(f"Brand '{record.name}' matched after suffix stripping")

        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0].id

        target = normalize_strength(record.strength_text)
        for entry in candidates:
            if strength_accepts(entry, target):
                return entry.id
        logger.debug(f"Brand '{record.name}': no strength match among {len(candidates)} candidates, taking first")
        return candidates[0].id

    def resolve_generic(self, record: TargetRecord, registry: Registry) -> str | None:
        tokens = ingredient_tokens(record.ingredients_text)
        if not tokens:
            return None
        target = normalize_strength(record.strength_text)

        for entry in registry.marketed():
            if tokens_match_ingredients(tokens, entry) and generic_strength_matches(entry, target):
                return entry.id
        return None
