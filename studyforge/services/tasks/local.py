from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx

from studyforge.config import Settings
from studyforge.services.tasks.interface import TaskEnqueuer

logger = logging.getLogger(__name__)

PROCESS_JOB_PATH = "/internal/tasks/process-job"
LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})
# The task endpoint answers 202 before the stage runs.
DISPATCH_TIMEOUT_SECONDS = 30.0


def is_loopback(base_url: str) -> bool:
  return (urlparse(base_url).hostname or "").lower() in LOOPBACK_HOSTS


class LocalHttpEnqueuer(TaskEnqueuer):
  """Delivers job events by POSTing to this service's own task endpoint."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  def _client_for(self, base_url: str) -> httpx.AsyncClient:
    # Loopback targets are served in-process; proxies from the environment are never used.
    if is_loopback(base_url):
      from studyforge.main import app

      return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=base_url, trust_env=False)
    return httpx.AsyncClient(trust_env=False)

  async def enqueue(self, job_id: str) -> None:
    base_url = self.settings.base_url
    if not base_url:
      raise RuntimeError("STUDYFORGE_BASE_URL is required for local event delivery.")
    if not self.settings.task_secret:
      raise RuntimeError("STUDYFORGE_TASK_SECRET is required for local event delivery.")

    url = f"{base_url.rstrip('/')}{PROCESS_JOB_PATH}"
    headers = {"authorization": f"Bearer {self.settings.task_secret}"}
    try:
      async with self._client_for(base_url) as client:
        response = await client.post(url, json={"job_id": job_id}, headers=headers, timeout=DISPATCH_TIMEOUT_SECONDS)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.error("Event delivery for job %s rejected with %s: %s", job_id, exc.response.status_code, exc.response.text)
      raise
    except httpx.RequestError as exc:
      logger.error("Event delivery for job %s failed: %s", job_id, exc)
      raise
    logger.info("Delivered event for job %s to %s", job_id, url)
