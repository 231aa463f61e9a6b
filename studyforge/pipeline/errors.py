"""Typed failures raised by pipeline stages and commands."""

from __future__ import annotations

from collections.abc import Collection


class PipelineError(Exception):
  """Base class for every failure surfaced by the ingest pipeline."""


class InvalidInputError(PipelineError):
  """Caller supplied missing, empty, or malformed arguments."""


class NotFoundError(PipelineError):
  """A referenced job or taxonomy node does not exist."""


class JobNotFoundError(NotFoundError):
  """The referenced ingest job does not exist."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Ingest job {job_id} not found.")
    self.job_id = job_id


class PreconditionError(PipelineError):
  """A stage was invoked against a job outside its expected status."""

  def __init__(self, job_id: str, expected: Collection[str], actual: str) -> None:
    self.job_id = job_id
    self.expected = tuple(sorted(expected))
    self.actual = actual
    super().__init__(f"Job {job_id} is in status '{actual}', expected one of: {', '.join(self.expected)}.")


class ExternalServiceError(PipelineError):
  """An OCR, object store, or generative call failed."""


class ServiceUnavailableError(ExternalServiceError):
  """The external service could not be reached or rejected the call."""


class MalformedOutputError(ExternalServiceError):
  """The generative service answered with output that could not be parsed."""


class CommitIntegrityError(PipelineError):
  """The approval transaction failed and was rolled back."""


class SubjectNotFoundError(NotFoundError):
  """The referenced subject or unit does not exist."""
