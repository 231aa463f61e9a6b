"""Identifier utilities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime


def generate_job_id() -> str:
  """Return a new ingestion job identifier."""
  return str(uuid.uuid4())


def generate_item_id() -> str:
  """Return a new study item identifier."""
  return str(uuid.uuid4())


def now_iso() -> str:
  """Return the current UTC time in the persisted timestamp format."""
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
