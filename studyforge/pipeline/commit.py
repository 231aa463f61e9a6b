"""Approval: commit one assignment into the taxonomy in a single transaction."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from studyforge.jobs.models import JobRecord
from studyforge.jobs.state_machine import APPROVE_FROM, require_status
from studyforge.pipeline.classification import valid_indexes
from studyforge.pipeline.context import PipelineContext
from studyforge.pipeline.contracts import Assignment
from studyforge.pipeline.errors import CommitIntegrityError, InvalidInputError, PipelineError
from studyforge.pipeline.taxonomy import SubjectRecord, TaxonomyFamily, family_for_variant, normalize_key
from studyforge.storage.content_repo import ItemKind, StudyItemRecord
from studyforge.utils.ids import generate_item_id, now_iso

logger = logging.getLogger(__name__)


def _merge_tags(own: Any, key_tags: Sequence[str]) -> list[str]:
  tags: list[str] = []
  for tag in [*(own if isinstance(own, list) else []), *key_tags]:
    value = str(tag).strip().lower()
    if value and value not in tags:
      tags.append(value)
  return tags


def _build_records(
  job: JobRecord,
  *,
  kind: ItemKind,
  staged: Sequence[dict[str, Any]],
  indexes: Sequence[int],
  family: TaxonomyFamily,
  subject: SubjectRecord,
  unit_key: str,
  unit_name: str,
  approver: str,
  approved_at: str,
) -> list[StudyItemRecord]:
  records: list[StudyItemRecord] = []
  for index in indexes:
    payload = dict(staged[index])
    tags = _merge_tags(payload.get("tags"), job.key_tags)
    payload["tags"] = tags
    payload["sourceJobId"] = job.job_id
    # Taxonomy names come from the approved assignment, never from staged data.
    payload["subjectName"] = subject.name
    payload["unitName"] = unit_name
    records.append(
      StudyItemRecord(
        item_id=generate_item_id(),
        kind=kind,
        family=family,
        subject_key=subject.key,
        subject_name=subject.name,
        unit_key=unit_key,
        unit_name=unit_name,
        source_job_id=job.job_id,
        source_index=index,
        origin=str(payload.get("origin") or "generated"),
        approved_by=approver,
        approved_at=approved_at,
        payload=payload,
        tags=tags,
      )
    )
  return records


def remaining_suggestions(suggestions: Sequence[dict[str, Any]], *, item_indexes: Sequence[int], card_indexes: Sequence[int]) -> list[dict[str, Any]]:
  """Strip committed indexes from every suggestion and drop the ones left empty.

  A suggestion matching the approved subject and unit is treated like any
  other, so indexes the operator left out stay pending.
  """
  committed_items = set(item_indexes)
  committed_cards = set(card_indexes)
  remaining: list[dict[str, Any]] = []
  for raw in suggestions:
    suggestion = Assignment.model_validate(raw)
    items = [index for index in suggestion.item_indexes if index not in committed_items]
    cards = [index for index in suggestion.card_indexes if index not in committed_cards]
    if items or cards:
      remaining.append(suggestion.model_copy(update={"item_indexes": items, "card_indexes": cards}).to_json())
  return remaining


async def approve_assignment(ctx: PipelineContext, job_id: str, assignment: Assignment, *, approver: str) -> JobRecord:
  """Commit one approved assignment.

  The subject node, the new study items, the tag registry and the job's
  suggestion list are written through one unit of work; either every write
  is visible afterwards or none is. When no suggestions remain the job is
  completed and its staged content cleared.
  """
  if not approver.strip():
    raise InvalidInputError("Approver identity is required.")
  subject_key = normalize_key(assignment.subject_name)
  unit_key = normalize_key(assignment.unit_name)
  if not subject_key or not unit_key:
    raise InvalidInputError("Subject and unit names must contain letters or digits.")

  async with ctx.content.unit_of_work() as uow:
    job = await uow.lock_job(job_id)
    require_status(job, APPROVE_FROM)

    # Operators may edit the assignment; indexes are re-checked against the locked job.
    item_indexes = valid_indexes(assignment.item_indexes, len(job.staged_items), job.committed_item_indexes)
    card_indexes = valid_indexes(assignment.card_indexes, len(job.staged_cards), job.committed_card_indexes)
    if not item_indexes and not card_indexes:
      raise InvalidInputError("Assignment resolves to no uncommitted questions or cards.")

    family = family_for_variant(job.variant)
    unit_name = assignment.unit_name.strip()
    approved_at = now_iso()
    try:
      subject = await uow.get_subject_for_update(family, subject_key)
      if subject is None:
        subject = SubjectRecord.new(family, assignment.subject_name.strip())
        logger.info("Creating %s subject %s for job %s", family, subject_key, job_id)
      subject.apply_delta(unit_key, unit_name, len(item_indexes), len(card_indexes))
      await uow.save_subject(subject)

      common = {"family": family, "subject": subject, "unit_key": unit_key, "unit_name": unit_name, "approver": approver, "approved_at": approved_at}
      records = _build_records(job, kind="question", staged=job.staged_items, indexes=item_indexes, **common)
      records += _build_records(job, kind="card", staged=job.staged_cards, indexes=card_indexes, **common)
      await uow.add_study_items(records)
      await uow.upsert_tags(tag for record in records for tag in record.tags)

      suggestions = remaining_suggestions(job.suggestions, item_indexes=item_indexes, card_indexes=card_indexes)
      changes: dict[str, Any] = {
        "suggestions": suggestions,
        "committed_item_indexes": sorted({*job.committed_item_indexes, *item_indexes}),
        "committed_card_indexes": sorted({*job.committed_card_indexes, *card_indexes}),
        "approved_by": approver,
      }
      # Last assignment approved: staged content is now owned by the taxonomy.
      if not suggestions:
        changes.update({"status": "completed", "completed_at": approved_at, "staged_items": [], "staged_cards": [], "committed_item_indexes": [], "committed_card_indexes": []})
      event = f"Committed {len(item_indexes)} questions and {len(card_indexes)} cards to {subject.name} / {unit_name} (by {approver})."
      updated = await uow.update_job(job_id, expected_statuses=APPROVE_FROM, changes=changes, event=event)
      await uow.commit()
    # Typed errors pass through; anything else is a storage failure.
    except PipelineError:
      raise
    except Exception as exc:
      logger.error("Commit failed for job %s; transaction rolled back", job_id, exc_info=True)
      raise CommitIntegrityError(f"Commit for job {job_id} failed and was rolled back: {exc}") from exc

  logger.info("Job %s committed %d questions and %d cards to %s/%s; status=%s", job_id, len(item_indexes), len(card_indexes), subject_key, unit_key, updated.status)
  return updated
