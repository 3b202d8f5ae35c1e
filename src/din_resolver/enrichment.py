"""Resumable secondary-code enrichment under a per-invocation time budget.

Each invocation processes rows from a persisted cursor until it either runs
out of rows or exceeds its time budget. On exhaustion of the budget the
cursor is saved and the run is reported SUSPENDED so the caller can schedule
a follow-up invocation. Nothing is carried in memory between invocations.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

from din_resolver.clients.base import ClientError
from din_resolver.models import EnrichmentRow
from din_resolver.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

CURSOR_KEY = "enrichment_cursor"
NO_MATCHES_MARKER = "No matches found"
ERROR_MARKER_PREFIX = "Error: "
PROGRESS_EVERY = 25

LookupFn = Callable[[str], dict[str, Any] | ClientError]


class EnrichmentState(Enum):
    """Where the enrichment run stands after an invocation.

    SUSPENDED runs hold a persisted cursor and wait for a scheduled follow-up;
    COMPLETED runs have cleared the cursor.
    """

    COMPLETED = "completed"
    SUSPENDED = "suspended"


@dataclass
class EnrichmentOutcome:
    """Result of one ``CheckpointedEnricher.run`` invocation.

    Attributes:
        state: COMPLETED if the loop reached the end of the rows, SUSPENDED if the budget ran out
        next_cursor: Index of the next unprocessed row
        looked_up: Rows for which a lookup was attempted this invocation
        errors: Lookups recorded as error markers this invocation
    """

    state: EnrichmentState
    next_cursor: int
    looked_up: int = 0
    errors: int = 0

    @property
    def completed(self) -> bool:
        return self.state is EnrichmentState.COMPLETED


def code_prefix(code: str) -> str:
    """Reduce a full code to its first two ``-``-separated segments.

    >>> code_prefix("AB-12-345")
    'AB-12'
    """
    return "-".join(code.split("-")[:2])


def parse_secondary_codes(data: dict[str, Any]) -> str:
    """Reduce a lookup response to ``"prefix: description"`` lines.

    Only the first description is kept for each prefix, in encounter order.

    Args:
        data: Lookup response containing a ``matches`` mapping (possibly under ``data``)

    Returns:
        Newline-joined lines, or NO_MATCHES_MARKER if there are no matches

    Raises:
        ValueError: If the response does not have the expected shape
    """
    container = data["data"] if isinstance(data.get("data"), dict) else data
    matches = container.get("matches")
    if not matches:
        return NO_MATCHES_MARKER
    if not isinstance(matches, dict):
        raise ValueError(f"Expected 'matches' to be an object, got {type(matches).__name__}")

    descriptions: dict[str, str] = {}
    for code, detail in matches.items():
        prefix = code_prefix(str(code))
        if prefix in descriptions:
            continue
        description = detail.get("description", "") if isinstance(detail, dict) else ""
        descriptions[prefix] = str(description or "").strip()

    return "\n".join(f"{prefix}: {description}" for prefix, description in descriptions.items())


def read_cursor(cursor_store: KeyValueStore) -> int:
    """Persisted start index, or 0 if absent or unreadable."""
    raw = cursor_store.get(CURSOR_KEY)
    if raw is None:
        return 0
    try:
        return max(int(raw), 0)
    except ValueError:
        logger.warning(f"Ignoring unreadable enrichment cursor {raw!r}")
        return 0


class CheckpointedEnricher:
    """Time-boxed enrichment loop with an externally persisted cursor.

    Example:
        >>> enricher = CheckpointedEnricher()
        >>> outcome = enricher.run(rows, properties, client.lookup, time_budget=270)
        >>> if not outcome.completed:
        ...     scheduler.schedule("enrich", delay_seconds=60)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize the enricher.

        Args:
            clock: Source of elapsed-time readings, injectable for tests
        """
        self._clock = clock

    def run(
        self,
        rows: Sequence[EnrichmentRow],
        cursor_store: KeyValueStore,
        lookup_fn: LookupFn,
        time_budget: float,
    ) -> EnrichmentOutcome:
        """Process rows from the persisted cursor until done or out of time.

        Args:
            rows: All rows of the table, in table order
            cursor_store: Property store holding the cursor
            lookup_fn: Called once per identifier needing enrichment
            time_budget: Seconds this invocation may spend before suspending

        Returns:
            EnrichmentOutcome; SUSPENDED outcomes carry the saved cursor
        """
        started = self._clock()
        start_index = read_cursor(cursor_store)
        looked_up = 0
        errors = 0

        if start_index:
            logger.info(f"Resuming enrichment at row {start_index} of {len(rows)}")

        for index in range(start_index, len(rows)):
            if self._clock() - started > time_budget:
                cursor_store.put(CURSOR_KEY, str(index))
                logger.info(f"Time budget exhausted; suspended at row {index} of {len(rows)}")
                return EnrichmentOutcome(EnrichmentState.SUSPENDED, index, looked_up, errors)

            row = rows[index]
            if not row.needs_lookup:
                continue

            row.secondary_code = self._lookup(row.identifier.strip(), lookup_fn)
            looked_up += 1
            if row.secondary_code.startswith(ERROR_MARKER_PREFIX):
                errors += 1
            if looked_up % PROGRESS_EVERY == 0:
                logger.info(f"Enrichment progress: row {index + 1} of {len(rows)} ({looked_up} lookups)")

        cursor_store.delete(CURSOR_KEY)
        logger.info(f"Enrichment complete: {looked_up} lookups, {errors} errors")
        return EnrichmentOutcome(EnrichmentState.COMPLETED, len(rows), looked_up, errors)

    def _lookup(self, identifier: str, lookup_fn: LookupFn) -> str:
        """Look up one identifier, turning any failure into an error marker."""
        try:
            result = lookup_fn(identifier)
            if isinstance(result, ClientError):
                return f"{ERROR_MARKER_PREFIX}{result.error_code} {result.error_message}".strip()
            return parse_secondary_codes(result)
        except (requests.RequestException, ValueError) as e:
            return f"{ERROR_MARKER_PREFIX}{e}"
        except Exception as e:
            logger.warning(f"Unexpected lookup failure for {identifier}: {type(e).__name__}: {e}")
            return f"{ERROR_MARKER_PREFIX}{type(e).__name__}: {e}"
