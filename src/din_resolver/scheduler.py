"""Follow-up scheduling for jobs that must resume in a later invocation.

A pending follow-up is a record in the property store, keyed by job name.
It holds the time at which the job becomes due and the parameters needed to
start it again (which table to read, which columns to use). Recording it
outside the process means it survives the process exiting. The
``din-run-pending`` command, run from cron or by hand, starts every due job.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from din_resolver.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending_run:"

# Jobs the scheduler knows how to track
ENRICH_JOB = "enrich"
KNOWN_JOBS = (ENRICH_JOB,)


@dataclass
class PendingRun:
    """A recorded follow-up invocation."""

    job: str
    due: datetime
    params: dict[str, str] = field(default_factory=dict)


def _pending_key(job: str) -> str:
    return f"{PENDING_PREFIX}{job}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class FollowUpScheduler:
    """Record, cancel and list pending follow-up invocations.

    Example:
        >>> scheduler = FollowUpScheduler(properties)
        >>> scheduler.schedule("enrich", delay_seconds=60, params={"input": "drugs.tsv"})
        >>> scheduler.due_runs()
        []
    """

    def __init__(self, properties: KeyValueStore, now: Callable[[], datetime] = _utc_now):
        self.properties = properties
        self._now = now

    def schedule(self, job: str, delay_seconds: float, params: dict[str, str] | None = None) -> PendingRun:
        """Record that ``job`` should run again after ``delay_seconds``.

        Any earlier pending run of the same job is replaced.
        """
        run = PendingRun(job=job, due=self._now() + timedelta(seconds=delay_seconds), params=dict(params or {}))
        self.properties.put(_pending_key(job), json.dumps({"due": run.due.isoformat(), "params": run.params}))
        logger.info(f"Scheduled follow-up of '{job}' at {run.due.isoformat()}")
        return run

    def cancel_all(self, job: str) -> None:
        """Remove any pending run of ``job``."""
        self.properties.delete(_pending_key(job))
        logger.info(f"Cancelled pending runs of '{job}'")

    def pending(self, job: str) -> PendingRun | None:
        """The pending run of ``job``, or None."""
        raw = self.properties.get(_pending_key(job))
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            due = datetime.fromisoformat(record["due"])
            params = {str(k): str(v) for k, v in record.get("params", {}).items()}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable pending-run record for '{job}': {e}")
            return None
        if due.tzinfo is None:
            due = due.replace(tzinfo=UTC)
        return PendingRun(job=job, due=due, params=params)

    def due_runs(self, jobs: tuple[str, ...] = KNOWN_JOBS) -> list[PendingRun]:
        """Pending runs that are due now."""
        now = self._now()
        due: list[PendingRun] = []
        for job in jobs:
            run = self.pending(job)
            if run is not None and run.due <= now:
                due.append(run)
        return due
