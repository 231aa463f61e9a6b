"""Operator command surface over the pipeline stages."""

from __future__ import annotations

from collections.abc import Sequence

from studyforge.jobs.dispatch import EventOutcome, PipelineEventConsumer
from studyforge.jobs.models import JobRecord, PipelineVariant
from studyforge.pipeline import classification, commit, extraction, generation, notes, planning, rollback
from studyforge.pipeline.context import PipelineContext
from studyforge.pipeline.contracts import Assignment, ExistingSubject
from studyforge.pipeline.taxonomy import SubjectRecord, TaxonomyFamily


class IngestPipeline:
  """One method per operator command; each enforces its precondition status."""

  def __init__(self, ctx: PipelineContext) -> None:
    self.ctx = ctx
    self.consumer = PipelineEventConsumer(ctx)

  async def ingest_upload(self, *, user_id: str, file_name: str, content_kind: str) -> JobRecord:
    return await extraction.create_upload_job(self.ctx, user_id=user_id, file_name=file_name, content_kind=content_kind)

  async def ingest_text(self, *, user_id: str, title: str, text: str, variant: PipelineVariant) -> JobRecord:
    return await extraction.create_text_job(self.ctx, user_id=user_id, title=title, text=text, variant=variant)

  async def get_job(self, job_id: str) -> JobRecord:
    return await self.ctx.load_job(job_id)

  async def list_jobs(self, *, status: str | None = None, user_id: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[JobRecord], int]:
    return await self.ctx.jobs.list_jobs(status=status, user_id=user_id, limit=limit, offset=offset)

  async def extract(self, job_id: str) -> JobRecord:
    return await extraction.run_extraction(self.ctx, job_id)

  async def plan(self, job_id: str) -> JobRecord:
    return await planning.run_planning(self.ctx, job_id)

  async def split(self, job_id: str) -> JobRecord:
    return await planning.run_split(self.ctx, job_id)

  async def confirm_plan(self, job_id: str, *, item_count: int | None = None, card_count: int | None = None) -> JobRecord:
    return await planning.confirm_plan(self.ctx, job_id, item_count=item_count, card_count=card_count)

  async def start_generation(self, job_id: str) -> JobRecord:
    return await generation.start_generation(self.ctx, job_id)

  async def suggest_assignment(self, job_id: str, *, taxonomy: Sequence[ExistingSubject] | None = None, scope_subject: str | None = None) -> JobRecord:
    return await classification.suggest_assignment(self.ctx, job_id, taxonomy=taxonomy, scope_subject=scope_subject)

  async def approve(self, job_id: str, assignment: Assignment, *, approver: str) -> JobRecord:
    return await commit.approve_assignment(self.ctx, job_id, assignment, approver=approver)

  async def reset(self, job_id: str) -> JobRecord:
    return await rollback.reset(self.ctx, job_id)

  async def reassign(self, job_id: str) -> JobRecord:
    return await rollback.reassign(self.ctx, job_id)

  async def prepare_for_regeneration(self, job_id: str) -> JobRecord:
    return await rollback.prepare_for_regeneration(self.ctx, job_id)

  async def archive(self, job_id: str) -> JobRecord:
    return await rollback.archive(self.ctx, job_id)

  async def process_event(self, job_id: str) -> EventOutcome:
    return await self.consumer.handle(job_id)

  async def list_subjects(self, family: TaxonomyFamily) -> list[SubjectRecord]:
    return await self.ctx.content.list_subjects(family)

  async def get_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str) -> str | None:
    return await self.ctx.content.get_unit_notes(family, subject_key, unit_key)

  async def update_unit_notes(self, family: TaxonomyFamily, subject_key: str, unit_key: str, text: str, *, updated_by: str | None = None) -> str:
    return await notes.update_unit_notes(self.ctx, family, subject_key, unit_key, text, updated_by=updated_by)

  async def summarize_unit(self, family: TaxonomyFamily, subject_key: str, unit_key: str, job_ids: Sequence[str], *, updated_by: str | None = None) -> str:
    return await notes.summarize_unit(self.ctx, family, subject_key, unit_key, job_ids, updated_by=updated_by)
