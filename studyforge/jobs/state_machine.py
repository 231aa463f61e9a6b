"""Status preconditions and transitions for ingest jobs."""

from __future__ import annotations

from collections.abc import Collection

from studyforge.jobs.models import EXTRACTION_FIRST, JobRecord, JobStatus, PipelineVariant
from studyforge.pipeline.errors import PreconditionError

# Statuses that publish a processing event when entered.
AUTO_ADVANCING: frozenset[str] = frozenset({"ingesting", "awaiting_split", "ready_for_planning", "generating"})

EXTRACT_FROM: frozenset[str] = frozenset({"ingesting"})
SPLIT_FROM: frozenset[str] = frozenset({"awaiting_split"})
PLAN_FROM: frozenset[str] = frozenset({"ready_for_planning"})
CONFIRM_PLAN_FROM: frozenset[str] = frozenset({"planning_done"})
START_GENERATION_FROM: frozenset[str] = frozenset({"ready_for_generation", "partially_failed"})
GENERATE_FROM: frozenset[str] = frozenset({"generating"})
SUGGEST_FROM: frozenset[str] = frozenset({"awaiting_assignment", "assignment_suggested"})
APPROVE_FROM: frozenset[str] = frozenset({"assignment_suggested"})
# A job stuck in ingesting (lost event, crash during OCR) can still be archived or reset.
ARCHIVE_FROM: frozenset[str] = frozenset({"ingesting", "completed", "error", "partially_failed", "awaiting_assignment", "assignment_suggested"})
REASSIGN_FROM: frozenset[str] = frozenset({"assignment_suggested", "completed", "archived", "error", "partially_failed"})
REGENERATE_FROM: frozenset[str] = frozenset({"generating", "partially_failed", "awaiting_assignment", "assignment_suggested", "completed", "error", "archived"})
RESET_FROM: frozenset[str] = frozenset(
  {
    "ingesting",
    "awaiting_split",
    "ready_for_planning",
    "planning_done",
    "ready_for_generation",
    "generating",
    "partially_failed",
    "awaiting_assignment",
    "assignment_suggested",
    "completed",
    "archived",
    "error",
  }
)


def post_extraction_status(variant: PipelineVariant) -> JobStatus:
  """Return the status a job enters once its source text is available."""
  if variant == EXTRACTION_FIRST:
    return "awaiting_split"
  return "ready_for_planning"


def require_status(job: JobRecord, expected: Collection[str]) -> None:
  """Raise PreconditionError unless the job is in one of the expected statuses."""
  if job.status not in expected:
    raise PreconditionError(job.job_id, expected, job.status)


def publishes_event(status: str) -> bool:
  """Return True when entering this status should schedule the next stage."""
  return status in AUTO_ADVANCING
