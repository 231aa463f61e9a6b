from __future__ import annotations

from typing import Protocol


class TaskEnqueuer(Protocol):
  """Interface for publishing job processing events."""

  async def enqueue(self, job_id: str) -> None:
    """Schedule the next stage for a job."""
    ...
