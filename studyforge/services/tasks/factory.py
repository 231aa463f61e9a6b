from __future__ import annotations

from studyforge.config import Settings
from studyforge.services.tasks.interface import TaskEnqueuer


def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  if settings.task_service_provider == "gcp":
    from studyforge.services.tasks.gcp import CloudTasksEnqueuer

    return CloudTasksEnqueuer(settings)

  from studyforge.services.tasks.local import LocalHttpEnqueuer

  return LocalHttpEnqueuer(settings)
