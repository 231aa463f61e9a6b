"""Processing-event consumer: run the stage registered for a job's current status."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from studyforge.jobs.models import JobRecord
from studyforge.pipeline.context import PipelineContext
from studyforge.pipeline.errors import JobNotFoundError, PipelineError, PreconditionError
from studyforge.pipeline.extraction import run_extraction
from studyforge.pipeline.generation import run_generation
from studyforge.pipeline.planning import run_planning, run_split

logger = logging.getLogger(__name__)

StageHandler = Callable[[PipelineContext, str], Awaitable[JobRecord]]


@dataclass(frozen=True)
class EventOutcome:
  """What the consumer did with one event."""

  job_id: str
  status: str | None
  handled: bool
  record: JobRecord | None = None
  reason: str | None = None


class StageRegistry:
  """Registry mapping auto-advancing statuses to stage handlers."""

  def __init__(self, handlers: dict[str, StageHandler]) -> None:
    self._handlers = handlers

  def resolve(self, status: str) -> StageHandler | None:
    return self._handlers.get(status)

  @property
  def statuses(self) -> frozenset[str]:
    return frozenset(self._handlers)


def default_registry() -> StageRegistry:
  return StageRegistry(
    {
      "ingesting": run_extraction,
      "awaiting_split": run_split,
      "ready_for_planning": run_planning,
      "generating": run_generation,
    }
  )


class PipelineEventConsumer:
  """Reload the job named by an event and run its next stage.

  Redelivered or stale events are harmless: the stage rejects a job that has
  already moved on with PreconditionError, which is logged and dropped.
  """

  def __init__(self, ctx: PipelineContext, registry: StageRegistry | None = None) -> None:
    self._ctx = ctx
    self._registry = registry or default_registry()

  async def handle(self, job_id: str) -> EventOutcome:
    job = await self._ctx.jobs.get_job(job_id)
    if job is None:
      logger.warning("Dropping event for unknown job %s", job_id)
      return EventOutcome(job_id=job_id, status=None, handled=False, reason="not_found")

    # Review statuses have no handler; the event is a no-op.
    handler = self._registry.resolve(job.status)
    if handler is None:
      logger.info("Job %s is %s; no stage to run", job_id, job.status)
      return EventOutcome(job_id=job_id, status=job.status, handled=False, reason="no_handler")

    try:
      record = await handler(self._ctx, job_id)
    except (PreconditionError, JobNotFoundError) as exc:
      logger.info("Dropping stale event for job %s: %s", job_id, exc)
      return EventOutcome(job_id=job_id, status=job.status, handled=False, reason="stale")
    except PipelineError as exc:
      # Stage failures are already recorded on the job.
      logger.warning("Stage for job %s (%s) failed: %s", job_id, job.status, exc)
      return EventOutcome(job_id=job_id, status=job.status, handled=True, reason=type(exc).__name__)

    logger.info("Job %s advanced %s -> %s", job_id, job.status, record.status)
    return EventOutcome(job_id=job_id, status=record.status, handled=True, record=record)
