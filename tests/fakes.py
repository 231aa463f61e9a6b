"""In-memory doubles for repositories, models and the event publisher."""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Collection, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from studyforge.ai.providers.base import AIModel, ModelResponse, SimpleModelResponse
from studyforge.jobs.models import JobRecord
from studyforge.pipeline.context import PipelineContext, PipelineLimits
from studyforge.pipeline.errors import JobNotFoundError, PreconditionError, SubjectNotFoundError
from studyforge.pipeline.taxonomy import StructuredUnits, SubjectRecord, TaxonomyFamily
from studyforge.storage.content_repo import ContentUnitOfWork, StudyItemRecord
from studyforge.storage.jobs_repo import EVENT_LIMIT, validate_changes
from studyforge.utils.ids import now_iso


@dataclass
class InMemoryDatabase:
  """Shared state behind both fake repositories."""

  jobs: dict[str, JobRecord] = field(default_factory=dict)
  events: dict[str, list[str]] = field(default_factory=dict)
  subjects: dict[tuple[str, str], SubjectRecord] = field(default_factory=dict)
  items: list[StudyItemRecord] = field(default_factory=list)
  tags: set[str] = field(default_factory=set)
  notes: dict[tuple[str, str, str], str] = field(default_factory=dict)


def _apply(job: JobRecord, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any]) -> None:
  if expected_statuses is not None and job.status not in expected_statuses:
    raise PreconditionError(job.job_id, expected_statuses, job.status)
  validate_changes(changes)
  for name, value in changes.items():
    setattr(job, name, copy.deepcopy(value))
  job.updated_at = now_iso()


class InMemoryJobsRepo:
  def __init__(self, db: InMemoryDatabase | None = None) -> None:
    self.db = db or InMemoryDatabase()
    self.checkpoints: list[int] = []

  def _event(self, job_id: str, message: str | None) -> None:
    if message and message.strip():
      self.db.events.setdefault(job_id, []).append(message)

  def _view(self, job_id: str) -> JobRecord:
    job = self.db.jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    view = copy.deepcopy(job)
    view.events = list(self.db.events.get(job_id, []))[-EVENT_LIMIT:]
    return view

  async def create_job(self, record: JobRecord, *, event: str | None = None) -> JobRecord:
    self.db.jobs[record.job_id] = copy.deepcopy(record)
    self._event(record.job_id, event)
    return self._view(record.job_id)

  async def get_job(self, job_id: str) -> JobRecord | None:
    if job_id not in self.db.jobs:
      return None
    return self._view(job_id)

  async def list_jobs(self, *, status: str | None = None, user_id: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[JobRecord], int]:
    matches = [job for job in self.db.jobs.values() if (status is None or job.status == status) and (user_id is None or job.user_id == user_id)]
    matches.sort(key=lambda job: job.created_at, reverse=True)
    return [copy.deepcopy(job) for job in matches[offset : offset + limit]], len(matches)

  async def update_job(self, job_id: str, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any], event: str | None = None) -> JobRecord:
    job = self.db.jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    _apply(job, expected_statuses=expected_statuses, changes=changes)
    self._event(job_id, event)
    return self._view(job_id)

  async def record_failure(self, job_id: str, *, message: str, expected_statuses: Collection[str] | None = None, status: str | None = None) -> JobRecord:
    job = self.db.jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    changes: dict[str, Any] = {"errors": [*job.errors, message]}
    if status is not None:
      changes["status"] = status
    _apply(job, expected_statuses=expected_statuses, changes=changes)
    self._event(job_id, message)
    return self._view(job_id)

  async def checkpoint_batch(self, job_id: str, *, expected_completed: int, items: list[dict[str, Any]], cards: list[dict[str, Any]]) -> JobRecord:
    job = self.db.jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    if job.status != "generating" or job.completed_batches != expected_completed:
      actual = job.status if job.status != "generating" else f"generating at batch {job.completed_batches}"
      raise PreconditionError(job_id, {f"generating at batch {expected_completed}"}, actual)
    job.staged_items = [*job.staged_items, *copy.deepcopy(items)]
    job.staged_cards = [*job.staged_cards, *copy.deepcopy(cards)]
    job.completed_batches += 1
    job.updated_at = now_iso()
    self.checkpoints.append(expected_completed)
    self._event(job_id, f"Batch {expected_completed + 1} stored")
    return self._view(job_id)

  async def append_event(self, job_id: str, *, event_type: str, message: str) -> None:
    self._event(job_id, message)

  async def list_events(self, job_id: str, *, limit: int = EVENT_LIMIT) -> list[str]:
    return list(self.db.events.get(job_id, []))[-limit:]


class InjectedFault(RuntimeError):
  """Raised by the fake unit of work when a fault is configured."""


class InMemoryUnitOfWork(ContentUnitOfWork):
  """Buffers every write on a copy of the database until commit()."""

  def __init__(self, store: InMemoryContentStore) -> None:
    self._store = store
    self._draft = copy.deepcopy(store.db)

  def _maybe_fail(self, operation: str) -> None:
    if operation in self._store.fail_on:
      raise InjectedFault(f"injected failure in {operation}")

  async def lock_job(self, job_id: str) -> JobRecord:
    job = self._draft.jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    return copy.deepcopy(job)

  async def update_job(self, job_id: str, *, expected_statuses: Collection[str] | None, changes: Mapping[str, Any], event: str | None = None) -> JobRecord:
    self._maybe_fail("update_job")
    job = self._draft.jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    _apply(job, expected_statuses=expected_statuses, changes=changes)
    if event:
      self._draft.events.setdefault(job_id, []).append(event)
    return copy.deepcopy(job)

  async def get_subject_for_update(self, family: TaxonomyFamily, key: str) -> SubjectRecord | None:
    subject = self._draft.subjects.get((family, key))
    return copy.deepcopy(subject) if subject is not None else None

  async def save_subject(self, subject: SubjectRecord) -> None:
    self._maybe_fail("save_subject")
    self._draft.subjects[(subject.family, subject.key)] = copy.deepcopy(subject)

  async def add_study_items(self, items: Sequence[StudyItemRecord]) -> None:
    self._maybe_fail("add_study_items")
    self._draft.items.extend(copy.deepcopy(list(items)))

  async def list_items_for_job(self, job_id: str) -> list[StudyItemRecord]:
    return [copy.deepcopy(item) for item in self._draft.items if item.source_job_id == job_id]

  async def delete_items_for_job(self, job_id: str) -> list[StudyItemRecord]:
    self._maybe_fail("delete_items_for_job")
    deleted = await self.list_items_for_job(job_id)
    self._draft.items = [item for item in self._draft.items if item.source_job_id != job_id]
    return deleted

  async def upsert_tags(self, names: Iterable[str]) -> None:
    self._maybe_fail("upsert_tags")
    self._draft.tags.update(name for name in names if name)

  async def commit(self) -> None:
    self._maybe_fail("commit")
    db = self._store.db
    db.jobs, db.events, db.subjects, db.items, db.tags = self._draft.jobs, self._draft.events, self._draft.subjects, self._draft.items, self._draft.tags
    self._store.commits += 1


class InMemoryContentStore:
  def __init__(self, db: InMemoryDatabase | None = None, *, fail_on: Collection[str] = ()) -> None:
    self.db = db or InMemoryDatabase()
    self.fail_on = set(fail_on)
    self.commits = 0

  @asynccontextmanager
  async def unit_of_work(self) -> AsyncIterator[ContentUnitOfWork]:
    yield InMemoryUnitOfWork(self)

  async def list_subjects(self, family: TaxonomyFamily) -> list[SubjectRecord]:
    subjects = [copy.deepcopy(subject) for (fam, _), subject in self.db.subjects.items() if fam == family]
    return sorted(subjects, key=lambda subject: subject.name)

  async def get_subject(self, family: TaxonomyFamily, key: str) -> SubjectRecord | None:
    subject = self.db.subjects.get((family, key))
    return copy.deepcopy(subject) if subject is not None else None

  async def get_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str) -> str | None:
    subject = self.db.subjects.get((family, subject_key))
    if subject is not None and isinstance(subject.units, StructuredUnits):
      unit = subject.units.find(unit_key)
      return unit.notes if unit is not None else None
    return self.db.notes.get((family, subject_key, unit_key))

  async def set_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str, notes: str, *, updated_by: str | None) -> None:
    subject = self.db.subjects.get((family, subject_key))
    if subject is None:
      raise SubjectNotFoundError(f"Subject {family}/{subject_key} not found.")
    if isinstance(subject.units, StructuredUnits):
      unit = subject.units.find(unit_key)
      if unit is None:
        raise SubjectNotFoundError(f"Unit {unit_key} not found.")
      unit.notes = notes
      return
    if not subject.units.has(unit_key):
      raise SubjectNotFoundError(f"Unit {unit_key} not found.")
    self.db.notes[(family, subject_key, unit_key)] = notes


class FakeModel(AIModel):
  """Returns scripted responses in order; an Exception entry is raised instead."""

  supports_files = True

  def __init__(self, responses: Sequence[str | Exception] = (), *, name: str = "fake-model") -> None:
    self.name = name
    self.responses = list(responses)
    self.prompts: list[str] = []
    self.uploaded: list[bytes] = []
    self.deleted: list[Any] = []

  def _next(self) -> ModelResponse:
    if not self.responses:
      raise AssertionError("FakeModel ran out of scripted responses")
    response = self.responses.pop(0)
    if isinstance(response, Exception):
      raise response
    return SimpleModelResponse(content=response)

  async def generate(self, prompt: str) -> ModelResponse:
    self.prompts.append(prompt)
    return self._next()

  async def upload_file(self, file_content: bytes, mime_type: str, display_name: str | None = None) -> Any:
    self.uploaded.append(file_content)
    return {"name": display_name, "mime_type": mime_type}

  async def generate_with_files(self, prompt: str, files: list[Any]) -> ModelResponse:
    self.prompts.append(prompt)
    return self._next()

  async def delete_file(self, file_ref: Any) -> None:
    self.deleted.append(file_ref)


class RecordingEnqueuer:
  def __init__(self, *, fail: bool = False) -> None:
    self.published: list[str] = []
    self.fail = fail

  async def enqueue(self, job_id: str) -> None:
    if self.fail:
      raise RuntimeError("queue unavailable")
    self.published.append(job_id)


class FakeSources:
  def __init__(self, objects: dict[str, bytes] | None = None) -> None:
    self.objects = objects or {}

  async def download(self, object_name: str) -> tuple[bytes, Any]:
    if object_name not in self.objects:
      raise FileNotFoundError(object_name)
    return self.objects[object_name], None


@dataclass
class Harness:
  """A pipeline context wired to in-memory collaborators."""

  ctx: PipelineContext
  db: InMemoryDatabase
  jobs: InMemoryJobsRepo
  content: InMemoryContentStore
  enqueuer: RecordingEnqueuer
  generation: FakeModel
  quick: FakeModel


def build_harness(*, generation: Sequence[str | Exception] = (), quick: Sequence[str | Exception] = (), fail_on: Collection[str] = (), sources: FakeSources | None = None, ocr: Any = None, enqueue_fails: bool = False, chunk_max_chars: int = 2000) -> Harness:
  db = InMemoryDatabase()
  jobs = InMemoryJobsRepo(db)
  content = InMemoryContentStore(db, fail_on=fail_on)
  enqueuer = RecordingEnqueuer(fail=enqueue_fails)
  generation_model = FakeModel(generation, name="generation")
  quick_model = FakeModel(quick, name="quick")
  ctx = PipelineContext(
    jobs=jobs,
    content=content,
    enqueuer=enqueuer,
    generation_model=generation_model,
    quick_model=quick_model,
    sources=sources,
    ocr=ocr,
    limits=PipelineLimits(chunk_max_chars=chunk_max_chars),
  )
  return Harness(ctx=ctx, db=db, jobs=jobs, content=content, enqueuer=enqueuer, generation=generation_model, quick=quick_model)


def make_job(job_id: str = "job-1", **overrides: Any) -> JobRecord:
  values: dict[str, Any] = {
    "job_id": job_id,
    "user_id": "user-1",
    "variant": "direct-generation",
    "status": "ready_for_planning",
    "title": "Cardiology",
    "created_at": "2026-01-01T00:00:00Z",
    "updated_at": "2026-01-01T00:00:00Z",
    "source_text": "The heart has four chambers. Blood flows through valves.",
  }
  values.update(overrides)
  return JobRecord(**values)


def question(text: str, **extra: Any) -> dict[str, Any]:
  return {"question": text, "options": ["A1", "B1", "C1", "D1"], "answer": "A", "tags": [], "origin": "generated", **extra}


def card(front: str, **extra: Any) -> dict[str, Any]:
  return {"front": front, "back": f"{front} back", "tags": [], "origin": "generated", **extra}
