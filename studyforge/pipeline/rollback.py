"""Back-edges of the job lifecycle: reset, reassign, regenerate, archive."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from typing import Any

from studyforge.jobs.models import DERIVED_FIELD_DEFAULTS, JobRecord
from studyforge.jobs.state_machine import ARCHIVE_FROM, REASSIGN_FROM, REGENERATE_FROM, RESET_FROM, post_extraction_status, require_status
from studyforge.pipeline.context import PipelineContext
from studyforge.pipeline.errors import CommitIntegrityError, PipelineError
from studyforge.storage.content_repo import ContentUnitOfWork, StudyItemRecord
from studyforge.utils.ids import now_iso

logger = logging.getLogger(__name__)

ChangeBuilder = Callable[[JobRecord, list[StudyItemRecord]], tuple[dict[str, Any], str]]


async def _withdraw_items(uow: ContentUnitOfWork, job_id: str) -> list[StudyItemRecord]:
  """Delete a job's committed items and take their counts back off the taxonomy."""
  deleted = await uow.delete_items_for_job(job_id)
  if not deleted:
    return deleted

  deltas: dict[tuple[str, str, str], list[Any]] = defaultdict(lambda: [None, 0, 0])
  for item in deleted:
    entry = deltas[(item.family, item.subject_key, item.unit_key)]
    # One subject update per unit, not per item.
    entry[0] = item.unit_name
    if item.kind == "question":
      entry[1] += 1
    else:
      entry[2] += 1

  for (family, subject_key, unit_key), (unit_name, items, cards) in deltas.items():
    subject = await uow.get_subject_for_update(family, subject_key)  # type: ignore[arg-type]
    if subject is None:
      logger.warning("Subject %s/%s missing while withdrawing items of job %s", family, subject_key, job_id)
      continue
    subject.apply_delta(unit_key, unit_name, -items, -cards)
    await uow.save_subject(subject)
  logger.info("Withdrew %d committed items of job %s from %d units", len(deleted), job_id, len(deltas))
  return deleted


def _restaged(items: Sequence[StudyItemRecord]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
  """Rebuild staged lists from committed items in their original order."""
  ordered = sorted(items, key=lambda item: (item.kind, item.source_index))
  questions = [dict(item.payload) for item in ordered if item.kind == "question"]
  cards = [dict(item.payload) for item in ordered if item.kind == "card"]
  return questions, cards


def _question_texts(entries: Sequence[dict[str, Any]]) -> list[str]:
  return [str(entry["question"]).strip() for entry in entries if str(entry.get("question") or "").strip()]


async def _in_transaction(ctx: PipelineContext, job_id: str, expected: frozenset[str], build_changes: ChangeBuilder, describe: str) -> JobRecord:
  async with ctx.content.unit_of_work() as uow:
    job = await uow.lock_job(job_id)
    require_status(job, expected)
    try:
      deleted = await _withdraw_items(uow, job_id)
      changes, event = build_changes(job, deleted)
      updated = await uow.update_job(job_id, expected_statuses=expected, changes=changes, event=event)
      await uow.commit()
    except PipelineError:
      raise
    except Exception as exc:
      logger.error("%s failed for job %s; transaction rolled back", describe, job_id, exc_info=True)
      raise CommitIntegrityError(f"{describe} for job {job_id} failed and was rolled back: {exc}") from exc
  return updated


async def reset(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Delete committed items and return the job to the status after extraction.

  Source text and the error log are kept; every derived field is cleared
  and the split or planning stage runs again from the published event. A job
  that never got its source text goes back to ingesting so extraction reruns.
  """

  def build(job: JobRecord, deleted: list[StudyItemRecord]) -> tuple[dict[str, Any], str]:
    changes = dict(DERIVED_FIELD_DEFAULTS)
    # Without source text there is nothing to split or plan yet.
    changes["status"] = post_extraction_status(job.variant) if job.source_text else "ingesting"
    return changes, f"Reset: removed {len(deleted)} committed items."

  updated = await _in_transaction(ctx, job_id, RESET_FROM, build, "Reset")
  logger.info("Reset job %s to %s", job_id, updated.status)
  await ctx.announce(updated)
  return updated


async def reassign(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Pull committed items back into staged content for a fresh assignment."""

  def build(job: JobRecord, deleted: list[StudyItemRecord]) -> tuple[dict[str, Any], str]:
    changes: dict[str, Any] = {
      "status": "awaiting_assignment",
      "suggestions": [],
      "committed_item_indexes": [],
      "committed_card_indexes": [],
      "completed_at": None,
    }
    # A completed job cleared its staged lists, so the committed items are the only copy.
    if deleted and not job.staged_items and not job.staged_cards:
      changes["staged_items"], changes["staged_cards"] = _restaged(deleted)
    elif deleted:
      # Partially approved: the staged lists still hold every entry.
      logger.info("Job %s still holds staged content; %d committed items dropped without restaging", job.job_id, len(deleted))
    return changes, f"Reassign: {len(deleted)} committed items returned to staging."

  updated = await _in_transaction(ctx, job_id, REASSIGN_FROM, build, "Reassign")
  logger.info("Job %s back to awaiting_assignment with %d questions, %d cards", job_id, len(updated.staged_items), len(updated.staged_cards))
  return updated


async def prepare_for_regeneration(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Discard generated output, remember its questions as texts to avoid, and rewind the cursor."""

  def build(job: JobRecord, deleted: list[StudyItemRecord]) -> tuple[dict[str, Any], str]:
    # Staged lists win when present; otherwise recover the questions from what was committed.
    if job.staged_items or job.staged_cards:
      previous = list(job.staged_items)
    else:
      previous, _ = _restaged(deleted)
    # Questions extracted from the source are kept; only generated output is discarded.
    extracted = [entry for entry in previous if entry.get("origin") == "extracted"]
    generated = [entry for entry in previous if entry.get("origin") != "extracted"]
    seen: list[str] = []
    for text in [*job.negative_prompts, *_question_texts(generated)]:
      if text not in seen:
        seen.append(text)
    changes: dict[str, Any] = {
      "status": "ready_for_generation",
      "staged_items": extracted,
      "staged_cards": [],
      "suggestions": [],
      "committed_item_indexes": [],
      "committed_card_indexes": [],
      "completed_batches": 0,
      "negative_prompts": seen,
      "completed_at": None,
    }
    return changes, f"Prepared for regeneration: {len(deleted)} committed items removed, {len(seen)} questions to avoid."

  updated = await _in_transaction(ctx, job_id, REGENERATE_FROM, build, "Regeneration reset")
  logger.info("Job %s ready for regeneration with %d negative prompts", job_id, len(updated.negative_prompts))
  return updated


async def archive(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Retire a job without touching committed content."""
  job = await ctx.load_job(job_id)
  require_status(job, ARCHIVE_FROM)
  logger.info("Archiving job %s from %s", job_id, job.status)
  # Pending suggestions only make sense while the job awaits assignment.
  changes = {"status": "archived", "suggestions": [], "completed_at": job.completed_at or now_iso()}
  return await ctx.advance(job_id, expected=ARCHIVE_FROM, changes=changes, event=f"Archived from {job.status}.")
