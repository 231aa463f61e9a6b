from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, status
from pydantic import BaseModel

from studyforge.api.deps import get_pipeline
from studyforge.config import Settings, get_settings
from studyforge.core.security import verify_task_secret
from studyforge.pipeline.service import IngestPipeline

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


class TaskPayload(BaseModel):
  job_id: str


async def _process_event(pipeline: IngestPipeline, job_id: str) -> None:
  try:
    outcome = await pipeline.process_event(job_id)
  except Exception:  # noqa: BLE001
    logger.error("Processing event for job %s crashed", job_id, exc_info=True)
    return
  logger.info("Event for job %s handled=%s status=%s reason=%s", job_id, outcome.handled, outcome.status, outcome.reason)


@router.post("/process-job", status_code=status.HTTP_202_ACCEPTED)
async def process_job_task(
  payload: TaskPayload,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  pipeline: Annotated[IngestPipeline, Depends(get_pipeline)],
  authorization: str | None = Header(default=None),
) -> dict[str, str]:
  """
  Handler for Cloud Tasks (and local dispatch).
  Accepts the event quickly and runs the job's next stage in the background.
  """
  verify_task_secret(settings, authorization=authorization)
  logger.info("Received task for job %s", payload.job_id)
  background_tasks.add_task(_process_event, pipeline, payload.job_id)
  return {"status": "accepted"}
