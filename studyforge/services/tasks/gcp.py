from __future__ import annotations

import json
import logging

from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from studyforge.config import Settings
from studyforge.services.tasks.interface import TaskEnqueuer
from studyforge.services.tasks.local import PROCESS_JOB_PATH

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Publishes job events to Google Cloud Tasks."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self.client = tasks_v2.CloudTasksClient()

  def build_task(self, job_id: str) -> dict:
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured.")
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")
    url = f"{self.settings.base_url.rstrip('/')}{PROCESS_JOB_PATH}"
    return {
      "http_request": {
        "http_method": tasks_v2.HttpMethod.POST,
        "url": url,
        "headers": {"Content-Type": "application/json", "Authorization": f"Bearer {self.settings.task_secret}"},
        "body": json.dumps({"job_id": job_id}).encode(),
      }
    }

  async def enqueue(self, job_id: str) -> None:
    """Create one Cloud Task carrying the job id."""
    if not self.settings.cloud_tasks_queue_path:
      raise RuntimeError("Cloud Tasks queue path not configured.")

    task = self.build_task(job_id)
    try:
      response = await run_in_threadpool(self.client.create_task, request={"parent": self.settings.cloud_tasks_queue_path, "task": task})
    except Exception:
      logger.error("Failed to enqueue task for job %s", job_id, exc_info=True)
      raise
    logger.info("Enqueued task %s for job %s", response.name, job_id)
