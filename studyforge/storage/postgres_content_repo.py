"""Postgres-backed taxonomy, study item, and tag storage."""

from __future__ import annotations

from collections.abc import AsyncIterator, Collection, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from studyforge.core.database import get_session_factory
from studyforge.jobs.models import JobRecord
from studyforge.pipeline.errors import SubjectNotFoundError
from studyforge.pipeline.taxonomy import StructuredUnits, SubjectRecord, TaxonomyFamily, units_from_json
from studyforge.schema.content import StudyItem, Subject, Tag, UnitNote
from studyforge.storage.content_repo import ContentStore, ContentUnitOfWork, StudyItemRecord
from studyforge.storage.postgres_jobs_repo import add_event, apply_job_changes, list_event_messages, lock_job_row, model_to_record


def _subject_to_record(row: Subject) -> SubjectRecord:
  family: TaxonomyFamily = "structured" if row.family == "structured" else "named"
  return SubjectRecord(
    family=family,
    key=row.key,
    name=row.name,
    units=units_from_json(family, row.units),
    item_count=int(row.item_count or 0),
    card_count=int(row.card_count or 0),
    created_at=row.created_at.isoformat() if row.created_at is not None else None,
    updated_at=row.updated_at.isoformat() if row.updated_at is not None else None,
  )


def _item_to_record(row: StudyItem) -> StudyItemRecord:
  return StudyItemRecord(
    item_id=row.item_id,
    kind=row.kind,  # type: ignore[arg-type]
    family=row.family,  # type: ignore[arg-type]
    subject_key=row.subject_key,
    subject_name=row.subject_name,
    unit_key=row.unit_key,
    unit_name=row.unit_name,
    source_job_id=row.source_job_id,
    source_index=int(row.source_index),
    origin=row.origin,
    approved_by=row.approved_by,
    approved_at=row.approved_at,
    payload=dict(row.payload or {}),
    tags=list(row.tags or []),
    status=row.status,
  )


class PostgresContentUnitOfWork(ContentUnitOfWork):
  """Unit of work bound to one AsyncSession transaction."""

  def __init__(self, session: AsyncSession) -> None:
    self._session = session

  async def lock_job(self, job_id: str) -> JobRecord:
    row = await lock_job_row(self._session, job_id)
    events = await list_event_messages(self._session, job_id)
    return model_to_record(row, events=events)

  async def update_job(self, job_id: str, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any], event: str | None = None) -> JobRecord:
    row = await lock_job_row(self._session, job_id)
    apply_job_changes(row, expected_statuses=expected_statuses, changes=changes)
    add_event(self._session, job_id, event_type="transition", message=event)
    await self._session.flush()
    return model_to_record(row, events=[])

  async def get_subject_for_update(self, family: TaxonomyFamily, key: str) -> SubjectRecord | None:
    stmt = select(Subject).where(Subject.family == family, Subject.key == key).with_for_update()
    row = (await self._session.execute(stmt)).scalar_one_or_none()
    if row is None:
      return None
    return _subject_to_record(row)

  async def save_subject(self, subject: SubjectRecord) -> None:
    stmt = select(Subject).where(Subject.family == subject.family, Subject.key == subject.key).with_for_update()
    row = (await self._session.execute(stmt)).scalar_one_or_none()
    if row is None:
      row = Subject(family=subject.family, key=subject.key, name=subject.name)
      self._session.add(row)
    row.units = subject.units.to_json()
    flag_modified(row, "units")
    row.item_count = subject.item_count
    row.card_count = subject.card_count
    await self._session.flush()

  async def add_study_items(self, items: Sequence[StudyItemRecord]) -> None:
    for item in items:
      self._session.add(
        StudyItem(
          item_id=item.item_id,
          kind=item.kind,
          family=item.family,
          subject_key=item.subject_key,
          subject_name=item.subject_name,
          unit_key=item.unit_key,
          unit_name=item.unit_name,
          source_job_id=item.source_job_id,
          source_index=item.source_index,
          origin=item.origin,
          status=item.status,
          approved_by=item.approved_by,
          approved_at=item.approved_at,
          tags=list(item.tags),
          payload=dict(item.payload),
        )
      )
    await self._session.flush()

  async def list_items_for_job(self, job_id: str) -> list[StudyItemRecord]:
    stmt = select(StudyItem).where(StudyItem.source_job_id == job_id).order_by(StudyItem.approved_at.asc(), StudyItem.kind.asc(), StudyItem.source_index.asc())
    rows = (await self._session.execute(stmt)).scalars().all()
    return [_item_to_record(row) for row in rows]

  async def delete_items_for_job(self, job_id: str) -> list[StudyItemRecord]:
    items = await self.list_items_for_job(job_id)
    await self._session.execute(delete(StudyItem).where(StudyItem.source_job_id == job_id))
    return items

  async def upsert_tags(self, names: Iterable[str]) -> None:
    unique = sorted({name for name in names if name})
    if not unique:
      return
    stmt = insert(Tag).values([{"name": name} for name in unique]).on_conflict_do_nothing(index_elements=[Tag.name])
    await self._session.execute(stmt)

  async def commit(self) -> None:
    await self._session.commit()


class PostgresContentStore(ContentStore):
  """Taxonomy reads and transactional writes against Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  @asynccontextmanager
  async def unit_of_work(self) -> AsyncIterator[ContentUnitOfWork]:
    async with self._session_factory() as session:
      try:
        yield PostgresContentUnitOfWork(session)
      finally:
        # Anything not committed by the caller is discarded.
        if session.in_transaction():
          await session.rollback()

  async def list_subjects(self, family: TaxonomyFamily) -> list[SubjectRecord]:
    async with self._session_factory() as session:
      stmt = select(Subject).where(Subject.family == family).order_by(Subject.name.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [_subject_to_record(row) for row in rows]

  async def get_subject(self, family: TaxonomyFamily, key: str) -> SubjectRecord | None:
    async with self._session_factory() as session:
      stmt = select(Subject).where(Subject.family == family, Subject.key == key)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return _subject_to_record(row) if row is not None else None

  async def get_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str) -> str | None:
    async with self._session_factory() as session:
      if family == "structured":
        subject = (await session.execute(select(Subject).where(Subject.family == family, Subject.key == subject_key))).scalar_one_or_none()
        if subject is None:
          return None
        units = units_from_json("structured", subject.units)
        unit = units.find(unit_key) if isinstance(units, StructuredUnits) else None
        return unit.notes if unit is not None else None
      stmt = select(UnitNote.notes).where(UnitNote.family == family, UnitNote.subject_key == subject_key, UnitNote.unit_key == unit_key)
      return (await session.execute(stmt)).scalar_one_or_none()

  async def set_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str, notes: str, *, updated_by: str | None) -> None:
    async with self._session_factory() as session:
      stmt = select(Subject).where(Subject.family == family, Subject.key == subject_key).with_for_update()
      subject_row = (await session.execute(stmt)).scalar_one_or_none()
      if subject_row is None:
        raise SubjectNotFoundError(f"Subject {family}/{subject_key} not found.")
      subject = _subject_to_record(subject_row)

      if isinstance(subject.units, StructuredUnits):
        # Structured units carry their notes inline.
        unit = subject.units.find(unit_key)
        if unit is None:
          raise SubjectNotFoundError(f"Unit {unit_key} not found in {family}/{subject_key}.")
        unit.notes = notes
        subject_row.units = subject.units.to_json()
        flag_modified(subject_row, "units")
      else:
        unit_name = subject.units.find_name(unit_key)
        if unit_name is None:
          raise SubjectNotFoundError(f"Unit {unit_key} not found in {family}/{subject_key}.")
        upsert = (
          insert(UnitNote)
          .values(family=family, subject_key=subject_key, unit_key=unit_key, unit_name=unit_name, notes=notes, updated_by=updated_by)
          .on_conflict_do_update(constraint="ux_unit_notes_unit", set_={"notes": notes, "updated_by": updated_by, "unit_name": unit_name})
        )
        await session.execute(upsert)
      await session.commit()
