"""Planning, item/explanation split, and plan confirmation."""

from __future__ import annotations

import logging

from studyforge.ai.prompt_builder import render_plan_prompt, render_split_prompt
from studyforge.jobs.models import EXTRACTION_FIRST, JobRecord
from studyforge.jobs.state_machine import CONFIRM_PLAN_FROM, PLAN_FROM, SPLIT_FROM, require_status
from studyforge.pipeline.chunking import chunk_segments, chunk_text
from studyforge.pipeline.context import PipelineContext, parse_model_output
from studyforge.pipeline.contracts import PlanEstimate, SplitResult
from studyforge.pipeline.errors import ExternalServiceError, InvalidInputError

logger = logging.getLogger(__name__)


def _require_text(job: JobRecord) -> str:
  text = (job.source_text or "").strip()
  if not text:
    raise InvalidInputError(f"Job {job.job_id} has no source text.")
  return text


async def run_planning(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Ask the quick model how much content the source supports and record the quota.

  A failed call is appended to the error log while the job stays in
  ``ready_for_planning`` so the command can be retried.
  """
  job = await ctx.load_job(job_id)
  require_status(job, PLAN_FROM)
  text = _require_text(job)
  # The estimate only needs a sample of the source.
  clipped = text[: ctx.limits.planning_max_chars]
  logger.info("Planning job %s using %d of %d chars", job_id, len(clipped), len(text))

  try:
    response = await ctx.quick_model.generate(render_plan_prompt(clipped))
    estimate = parse_model_output(response.content, PlanEstimate)
  except ExternalServiceError as exc:
    logger.error("Planning failed for job %s: %s", job_id, exc)
    await ctx.jobs.record_failure(job_id, message=f"Planning failed: {exc}", expected_statuses=PLAN_FROM)
    raise

  changes = {
    "status": "planning_done",
    "quota": {"itemCount": estimate.item_count, "cardCount": estimate.card_count},
    "key_tags": estimate.key_tags,
    "suggested_subject": estimate.subject_name,
    "suggested_unit": estimate.unit_name,
  }
  logger.info("Planned job %s: %d questions, %d cards", job_id, estimate.item_count, estimate.card_count)
  return await ctx.advance(job_id, expected=PLAN_FROM, changes=changes, event=f"Plan estimated {estimate.item_count} questions and {estimate.card_count} cards.")


async def run_split(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Separate ready-made questions from explanation passages (extraction-first jobs).

  Extracted questions are staged with ``origin = extracted``; the quota
  defaults to one new question per explanation passage.
  """
  job = await ctx.load_job(job_id)
  require_status(job, SPLIT_FROM)
  text = _require_text(job)
  logger.info("Splitting job %s (%d chars)", job_id, len(text))

  try:
    response = await ctx.generation_model.generate(render_split_prompt(text))
    result = parse_model_output(response.content, SplitResult)
  except ExternalServiceError as exc:
    logger.error("Item/explanation split failed for job %s: %s", job_id, exc)
    await ctx.jobs.record_failure(job_id, message=f"Item/explanation split failed: {exc}", expected_statuses=SPLIT_FROM)
    raise

  # Extracted questions are staged now; only the explanations go on to generation.
  staged = [question.model_copy(update={"origin": "extracted", "source_job_id": job_id}).to_json() for question in result.questions]
  changes = {
    "status": "planning_done",
    "staged_items": staged,
    "staged_cards": [],
    "explanations": result.explanations,
    "quota": {"itemCount": len(result.explanations), "cardCount": 0},
    "key_tags": result.key_tags,
  }
  logger.info("Split job %s: %d questions extracted, %d explanations", job_id, len(staged), len(result.explanations))
  return await ctx.advance(job_id, expected=SPLIT_FROM, changes=changes, event=f"Extracted {len(staged)} questions and {len(result.explanations)} explanations.")


async def confirm_plan(ctx: PipelineContext, job_id: str, *, item_count: int | None = None, card_count: int | None = None) -> JobRecord:
  """Fix the quota (optionally overridden), chunk the text, and reset progress."""
  job = await ctx.load_job(job_id)
  require_status(job, CONFIRM_PLAN_FROM)

  quota = dict(job.quota or {"itemCount": 0, "cardCount": 0})
  if item_count is not None:
    quota["itemCount"] = item_count
  if card_count is not None:
    quota["cardCount"] = card_count
  if quota.get("itemCount", 0) < 0 or quota.get("cardCount", 0) < 0:
    raise InvalidInputError("Counts must not be negative.")
  if quota.get("itemCount", 0) <= 0 and quota.get("cardCount", 0) <= 0:
    raise InvalidInputError("At least one of item_count or card_count must be positive.")

  # Extraction-first jobs generate from the explanation passages, not the raw text.
  if job.variant == EXTRACTION_FIRST:
    chunks = chunk_segments(job.explanations, ctx.limits.chunk_max_chars)
  else:
    chunks = chunk_text(_require_text(job), ctx.limits.chunk_max_chars)
  if not chunks and not job.staged_items:
    raise InvalidInputError(f"Job {job_id} has no text to generate from.")

  changes = {"status": "ready_for_generation", "quota": quota, "chunks": chunks, "total_batches": len(chunks), "completed_batches": 0}
  logger.info("Confirmed plan for job %s: quota=%s batches=%d", job_id, quota, len(chunks))
  return await ctx.advance(job_id, expected=CONFIRM_PLAN_FROM, changes=changes, event=f"Plan confirmed: {quota['itemCount']} questions, {quota['cardCount']} cards over {len(chunks)} batches.")
