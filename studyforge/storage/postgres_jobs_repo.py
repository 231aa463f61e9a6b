"""Postgres-backed repository for ingest jobs using SQLAlchemy."""

from __future__ import annotations

import copy
from collections.abc import Collection, Mapping
from typing import Any

from sqlalchemy import bindparam, func, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from studyforge.core.database import get_session_factory
from studyforge.jobs.models import JobRecord
from studyforge.pipeline.errors import JobNotFoundError, PreconditionError
from studyforge.schema.jobs import IngestJob, IngestJobEvent
from studyforge.storage.jobs_repo import EVENT_LIMIT, JobsRepository, validate_changes
from studyforge.utils.ids import now_iso

_JSON_FIELDS = frozenset(
  {
    "explanations",
    "quota",
    "key_tags",
    "chunks",
    "staged_items",
    "staged_cards",
    "suggestions",
    "committed_item_indexes",
    "committed_card_indexes",
    "negative_prompts",
    "errors",
  }
)


async def lock_job_row(session: AsyncSession, job_id: str) -> IngestJob:
  """Load a job row with FOR UPDATE, raising JobNotFoundError when missing."""
  stmt = select(IngestJob).where(IngestJob.job_id == job_id).with_for_update()
  row = (await session.execute(stmt)).scalar_one_or_none()
  if row is None:
    raise JobNotFoundError(job_id)
  return row


def apply_job_changes(row: IngestJob, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any]) -> None:
  """Check the status guard and copy changes onto a locked row."""
  if expected_statuses is not None and row.status not in expected_statuses:
    raise PreconditionError(row.job_id, expected_statuses, row.status)
  validate_changes(changes)
  for name, value in changes.items():
    setattr(row, name, copy.deepcopy(value))
    if name in _JSON_FIELDS:
      flag_modified(row, name)
  row.updated_at = now_iso()


def add_event(session: AsyncSession, job_id: str, *, event_type: str, message: str | None) -> None:
  if message and message.strip():
    session.add(IngestJobEvent(job_id=job_id, event_type=event_type, message=message))


async def list_event_messages(session: AsyncSession, job_id: str, *, limit: int = EVENT_LIMIT) -> list[str]:
  stmt = select(IngestJobEvent.message).where(IngestJobEvent.job_id == job_id).order_by(IngestJobEvent.created_at.desc(), IngestJobEvent.id.desc()).limit(limit)
  rows = (await session.execute(stmt)).scalars().all()
  return list(reversed([str(item) for item in rows]))


def model_to_record(row: IngestJob, *, events: list[str]) -> JobRecord:
  return JobRecord(
    job_id=row.job_id,
    user_id=row.user_id,
    variant=row.variant,  # type: ignore[arg-type]
    status=row.status,  # type: ignore[arg-type]
    title=row.title,
    created_at=row.created_at,
    updated_at=row.updated_at,
    source_path=row.source_path,
    content_kind=row.content_kind,
    source_text=row.source_text,
    explanations=list(row.explanations or []),
    quota=dict(row.quota) if row.quota is not None else None,
    key_tags=list(row.key_tags or []),
    suggested_subject=row.suggested_subject,
    suggested_unit=row.suggested_unit,
    chunks=list(row.chunks or []),
    total_batches=int(row.total_batches or 0),
    completed_batches=int(row.completed_batches or 0),
    staged_items=list(row.staged_items or []),
    staged_cards=list(row.staged_cards or []),
    suggestions=list(row.suggestions or []),
    committed_item_indexes=list(row.committed_item_indexes or []),
    committed_card_indexes=list(row.committed_card_indexes or []),
    negative_prompts=list(row.negative_prompts or []),
    errors=list(row.errors or []),
    approved_by=row.approved_by,
    completed_at=row.completed_at,
    events=events,
  )


def _record_to_model(record: JobRecord) -> IngestJob:
  return IngestJob(
    job_id=record.job_id,
    user_id=record.user_id,
    variant=record.variant,
    status=record.status,
    title=record.title,
    source_path=record.source_path,
    content_kind=record.content_kind,
    source_text=record.source_text,
    explanations=list(record.explanations),
    quota=record.quota,
    key_tags=list(record.key_tags),
    suggested_subject=record.suggested_subject,
    suggested_unit=record.suggested_unit,
    chunks=list(record.chunks),
    total_batches=record.total_batches,
    completed_batches=record.completed_batches,
    staged_items=list(record.staged_items),
    staged_cards=list(record.staged_cards),
    suggestions=list(record.suggestions),
    committed_item_indexes=list(record.committed_item_indexes),
    committed_card_indexes=list(record.committed_card_indexes),
    negative_prompts=list(record.negative_prompts),
    errors=list(record.errors),
    approved_by=record.approved_by,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
  )


class PostgresJobsRepository(JobsRepository):
  """Persist ingest jobs and their timeline to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord, *, event: str | None = None) -> JobRecord:
    async with self._session_factory() as session:
      session.add(_record_to_model(record))
      await session.flush()
      add_event(session, record.job_id, event_type="transition", message=event)
      await session.commit()
      return await self._load(session, record.job_id)

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(IngestJob, job_id)
      if row is None:
        return None
      events = await list_event_messages(session, row.job_id)
      return model_to_record(row, events=events)

  async def list_jobs(self, *, status: str | None = None, user_id: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[JobRecord], int]:
    async with self._session_factory() as session:
      stmt = select(IngestJob).order_by(IngestJob.created_at.desc()).limit(limit).offset(offset)
      count_stmt = select(func.count()).select_from(IngestJob)
      if status:
        stmt = stmt.where(IngestJob.status == status)
        count_stmt = count_stmt.where(IngestJob.status == status)
      if user_id:
        stmt = stmt.where(IngestJob.user_id == user_id)
        count_stmt = count_stmt.where(IngestJob.user_id == user_id)
      total = await session.scalar(count_stmt)
      rows = (await session.execute(stmt)).scalars().all()
      # Listings skip the timeline; callers fetch a single job for it.
      return [model_to_record(row, events=[]) for row in rows], int(total or 0)

  async def update_job(self, job_id: str, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any], event: str | None = None) -> JobRecord:
    async with self._session_factory() as session:
      row = await lock_job_row(session, job_id)
      apply_job_changes(row, expected_statuses=expected_statuses, changes=changes)
      add_event(session, job_id, event_type="transition", message=event)
      await session.commit()
      return await self._load(session, job_id)

  async def record_failure(self, job_id: str, *, message: str, expected_statuses: Collection[str] | None = None, status: str | None = None) -> JobRecord:
    async with self._session_factory() as session:
      row = await lock_job_row(session, job_id)
      changes: dict[str, Any] = {"errors": [*(row.errors or []), message]}
      if status is not None:
        changes["status"] = status
      apply_job_changes(row, expected_statuses=expected_statuses, changes=changes)
      add_event(session, job_id, event_type="failure", message=message)
      await session.commit()
      return await self._load(session, job_id)

  async def checkpoint_batch(self, job_id: str, *, expected_completed: int, items: list[dict[str, Any]], cards: list[dict[str, Any]]) -> JobRecord:
    async with self._session_factory() as session:
      stmt = (
        update(IngestJob)
        .where(IngestJob.job_id == job_id, IngestJob.status == "generating", IngestJob.completed_batches == expected_completed)
        .values(
          staged_items=IngestJob.staged_items.op("||")(bindparam("new_items", items, type_=JSONB)),
          staged_cards=IngestJob.staged_cards.op("||")(bindparam("new_cards", cards, type_=JSONB)),
          completed_batches=IngestJob.completed_batches + 1,
          updated_at=now_iso(),
        )
        .returning(IngestJob.job_id)
        .execution_options(synchronize_session=False)
      )
      updated = (await session.execute(stmt)).scalar_one_or_none()
      if updated is None:
        await session.rollback()
        row = await session.get(IngestJob, job_id)
        if row is None:
          raise JobNotFoundError(job_id)
        actual = row.status if row.status != "generating" else f"generating at batch {row.completed_batches}"
        raise PreconditionError(job_id, {f"generating at batch {expected_completed}"}, actual)
      add_event(session, job_id, event_type="checkpoint", message=f"Batch {expected_completed + 1} stored: {len(items)} questions, {len(cards)} cards.")
      await session.commit()
      return await self._load(session, job_id)

  async def append_event(self, job_id: str, *, event_type: str, message: str) -> None:
    async with self._session_factory() as session:
      add_event(session, job_id, event_type=event_type, message=message)
      await session.commit()

  async def list_events(self, job_id: str, *, limit: int = EVENT_LIMIT) -> list[str]:
    async with self._session_factory() as session:
      return await list_event_messages(session, job_id, limit=limit)

  async def _load(self, session: AsyncSession, job_id: str) -> JobRecord:
    row = await session.get(IngestJob, job_id, populate_existing=True)
    if row is None:
      raise JobNotFoundError(job_id)
    events = await list_event_messages(session, job_id)
    return model_to_record(row, events=events)
