"""Storage interfaces for the taxonomy, study items, and tag registry."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from studyforge.jobs.models import JobRecord
from studyforge.pipeline.taxonomy import SubjectRecord, TaxonomyFamily

ItemKind = Literal["question", "card"]


@dataclass
class StudyItemRecord:
  """A committed question item or recall card."""

  item_id: str
  kind: ItemKind
  family: TaxonomyFamily
  subject_key: str
  subject_name: str
  unit_key: str
  unit_name: str
  source_job_id: str
  source_index: int
  origin: str
  approved_by: str
  approved_at: str
  payload: dict[str, Any]
  tags: list[str] = field(default_factory=list)
  status: str = "approved"


class ContentUnitOfWork(Protocol):
  """All reads and writes of one transaction. Nothing is visible until commit."""

  async def lock_job(self, job_id: str) -> JobRecord:
    """Load a job under a row lock, raising JobNotFoundError when missing."""

  async def update_job(self, job_id: str, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any], event: str | None = None) -> JobRecord:
    """Apply guarded job changes inside the transaction."""

  async def get_subject_for_update(self, family: TaxonomyFamily, key: str) -> SubjectRecord | None:
    """Load a subject under a row lock."""

  async def save_subject(self, subject: SubjectRecord) -> None:
    """Insert or overwrite a subject with its units and totals."""

  async def add_study_items(self, items: Sequence[StudyItemRecord]) -> None:
    """Insert committed study items."""

  async def list_items_for_job(self, job_id: str) -> list[StudyItemRecord]:
    """Return committed items that came from a job, in commit order."""

  async def delete_items_for_job(self, job_id: str) -> list[StudyItemRecord]:
    """Delete and return every committed item that came from a job."""

  async def upsert_tags(self, names: Iterable[str]) -> None:
    """Register tags, ignoring ones that already exist."""

  async def commit(self) -> None:
    """Make every write of this unit of work visible at once."""


class ContentStore(Protocol):
  """Taxonomy reads plus the transactional write surface."""

  def unit_of_work(self) -> AbstractAsyncContextManager[ContentUnitOfWork]:
    """Open a transaction. Leaving the block without commit() rolls it back."""

  async def list_subjects(self, family: TaxonomyFamily) -> list[SubjectRecord]:
    """Return every subject of a family ordered by name."""

  async def get_subject(self, family: TaxonomyFamily, key: str) -> SubjectRecord | None:
    """Fetch one subject."""

  async def get_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str) -> str | None:
    """Return the long-form notes for a unit."""

  async def set_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str, notes: str, *, updated_by: str | None) -> None:
    """Store long-form notes for an existing unit, raising SubjectNotFoundError otherwise."""
