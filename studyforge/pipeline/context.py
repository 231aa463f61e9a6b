"""Collaborators shared by every pipeline stage."""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from studyforge.ai.json_parser import extract_json_object
from studyforge.ai.providers.base import AIModel
from studyforge.config import Settings
from studyforge.jobs.models import JobRecord
from studyforge.jobs.state_machine import publishes_event
from studyforge.pipeline.errors import JobNotFoundError, MalformedOutputError
from studyforge.services.ocr_service import OcrService
from studyforge.services.storage_client import StorageObjectMetadata
from studyforge.services.tasks.interface import TaskEnqueuer
from studyforge.storage.content_repo import ContentStore
from studyforge.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SourceReader(Protocol):
  """Read access to uploaded source artifacts."""

  async def download(self, object_name: str) -> tuple[bytes, StorageObjectMetadata]: ...


@dataclass(frozen=True)
class PipelineLimits:
  chunk_max_chars: int = 2000
  planning_max_chars: int = 30000
  summary_max_chars: int = 25000

  @classmethod
  def from_settings(cls, settings: Settings) -> PipelineLimits:
    return cls(chunk_max_chars=settings.chunk_max_chars, planning_max_chars=settings.planning_max_chars, summary_max_chars=settings.summary_max_chars)


@dataclass(frozen=True)
class PipelineContext:
  """Service handles built once at startup and passed into each stage."""

  jobs: JobsRepository
  content: ContentStore
  enqueuer: TaskEnqueuer
  generation_model: AIModel
  quick_model: AIModel
  sources: SourceReader | None = None
  ocr: OcrService | None = None
  limits: PipelineLimits = PipelineLimits()

  async def load_job(self, job_id: str) -> JobRecord:
    job = await self.jobs.get_job(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    return job

  async def advance(self, job_id: str, *, expected: Collection[str], changes: Mapping[str, Any], event: str) -> JobRecord:
    """Persist a guarded transition, then publish an event if the new status auto-advances."""
    job = await self.jobs.update_job(job_id, expected_statuses=expected, changes=changes, event=event)
    await self.announce(job)
    return job

  async def announce(self, job: JobRecord) -> None:
    """Publish a processing event for statuses that schedule the next stage."""
    # Review statuses wait for an operator.
    if not publishes_event(job.status):
      return
    try:
      await self.enqueuer.enqueue(job.job_id)
    except Exception as exc:  # noqa: BLE001
      # The transition stays committed.
      logger.error("Failed to publish event for job %s status=%s", job.job_id, job.status, exc_info=True)
      await self.jobs.append_event(job.job_id, event_type="delivery_failure", message=f"Event delivery failed for status {job.status}: {exc}")


def parse_model_output(raw: str, model_type: type[ModelT]) -> ModelT:
  """Parse a generative response into a contract model, surfacing shape errors as malformed output."""
  payload = extract_json_object(raw)
  try:
    return model_type.model_validate(payload)
  except ValidationError as exc:
    raise MalformedOutputError(f"Response does not match {model_type.__name__}: {exc.error_count()} validation errors") from exc
