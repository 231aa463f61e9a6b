"""Storage interfaces for ingest jobs."""

from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Any, Protocol

from studyforge.jobs.models import UPDATABLE_FIELDS, JobRecord

EVENT_LIMIT = 100


def validate_changes(changes: Mapping[str, Any]) -> None:
  """Reject updates to fields that are fixed at creation time."""
  unknown = set(changes) - UPDATABLE_FIELDS
  if unknown:
    raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")


class JobsRepository(Protocol):
  """Repository contract for ingest job persistence.

  Every mutating call that takes ``expected_statuses`` checks the stored
  status under a row lock and raises PreconditionError when it differs, so a
  stale caller never overwrites a newer transition.
  """

  async def create_job(self, record: JobRecord, *, event: str | None = None) -> JobRecord:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job with its most recent timeline entries."""

  async def list_jobs(self, *, status: str | None = None, user_id: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[JobRecord], int]:
    """Return one page of jobs, newest first, with the total match count."""

  async def update_job(self, job_id: str, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any], event: str | None = None) -> JobRecord:
    """Apply field changes in one write, guarded by the expected statuses."""

  async def record_failure(self, job_id: str, *, message: str, expected_statuses: Collection[str] | None = None, status: str | None = None) -> JobRecord:
    """Append to the error log and optionally move the job to a failure status."""

  async def checkpoint_batch(self, job_id: str, *, expected_completed: int, items: list[dict[str, Any]], cards: list[dict[str, Any]]) -> JobRecord:
    """Append one batch of staged content and advance the cursor in a single write.

    The write only applies while the job is generating and its cursor still
    equals ``expected_completed``.
    """

  async def append_event(self, job_id: str, *, event_type: str, message: str) -> None:
    """Add an entry to the job timeline."""

  async def list_events(self, job_id: str, *, limit: int = EVENT_LIMIT) -> list[str]:
    """Return the most recent timeline entries in chronological order."""
