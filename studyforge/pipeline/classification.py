"""Map staged content onto the taxonomy by index reference."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from studyforge.ai.prompt_builder import render_classification_prompt
from studyforge.jobs.models import JobRecord
from studyforge.jobs.state_machine import SUGGEST_FROM, require_status
from studyforge.pipeline.context import PipelineContext, parse_model_output
from studyforge.pipeline.contracts import Assignment, AssignmentResult, ExistingSubject
from studyforge.pipeline.errors import ExternalServiceError, InvalidInputError, MalformedOutputError
from studyforge.pipeline.taxonomy import NamedUnits, SubjectRecord, family_for_variant, normalize_key

logger = logging.getLogger(__name__)


def existing_subjects(subjects: Sequence[SubjectRecord]) -> list[ExistingSubject]:
  """Flatten stored subjects into the name-only shape shown to the model."""
  result: list[ExistingSubject] = []
  for subject in subjects:
    if isinstance(subject.units, NamedUnits):
      names = list(subject.units.names)
    else:
      names = [unit.name for unit in subject.units.units]
    result.append(ExistingSubject(name=subject.name, units=names))
  return result


def valid_indexes(indexes: Sequence[int], size: int, committed: Sequence[int]) -> list[int]:
  """Keep in-range, uncommitted indexes once each, in the given order."""
  taken = set(committed)
  seen: list[int] = []
  for index in indexes:
    if 0 <= index < size and index not in taken and index not in seen:
      seen.append(index)
  return seen


def clean_assignments(job: JobRecord, assignments: Sequence[Assignment]) -> list[Assignment]:
  """Drop out-of-range or already committed indexes, then drop empty assignments."""
  cleaned: list[Assignment] = []
  for assignment in assignments:
    items = valid_indexes(assignment.item_indexes, len(job.staged_items), job.committed_item_indexes)
    cards = valid_indexes(assignment.card_indexes, len(job.staged_cards), job.committed_card_indexes)
    if not items and not cards:
      logger.warning("Dropping empty assignment %s/%s for job %s", assignment.subject_name, assignment.unit_name, job.job_id)
      continue
    cleaned.append(assignment.model_copy(update={"item_indexes": items, "card_indexes": cards}))
  return cleaned


async def suggest_assignment(
  ctx: PipelineContext,
  job_id: str,
  *,
  taxonomy: Sequence[ExistingSubject] | None = None,
  scope_subject: str | None = None,
) -> JobRecord:
  """Ask the model to assign staged content to subjects and units.

  When ``taxonomy`` is omitted the stored subjects of the job's family are
  used. A ``scope_subject`` narrows the taxonomy to that one subject.
  """
  job = await ctx.load_job(job_id)
  require_status(job, SUGGEST_FROM)
  if not job.staged_items and not job.staged_cards:
    raise InvalidInputError(f"Job {job_id} has no staged content to classify.")

  if taxonomy is None:
    taxonomy = existing_subjects(await ctx.content.list_subjects(family_for_variant(job.variant)))
  # An unknown scope subject is still offered to the model as a new, empty subject.
  if scope_subject:
    scope_key = normalize_key(scope_subject)
    taxonomy = [subject for subject in taxonomy if normalize_key(subject.name) == scope_key] or [ExistingSubject(name=scope_subject)]
  logger.info("Classifying job %s: %d questions, %d cards against %d subjects", job_id, len(job.staged_items), len(job.staged_cards), len(taxonomy))

  prompt = render_classification_prompt(
    questions=job.staged_items,
    cards=job.staged_cards,
    taxonomy=[subject.to_json() for subject in taxonomy],
    scope_subject=scope_subject,
  )
  try:
    response = await ctx.generation_model.generate(prompt)
    result = parse_model_output(response.content, AssignmentResult)
  except ExternalServiceError as exc:
    logger.error("Classification failed for job %s: %s", job_id, exc)
    await ctx.jobs.record_failure(job_id, message=f"Classification failed: {exc}", expected_statuses=SUGGEST_FROM)
    raise

  # Suggestions hold indexes only; content stays in the staged lists.
  suggestions = [assignment.to_json() for assignment in clean_assignments(job, result.assignments)]
  if not suggestions:
    message = "Classification returned no usable assignments."
    await ctx.jobs.record_failure(job_id, message=message, expected_statuses=SUGGEST_FROM)
    raise MalformedOutputError(message)

  logger.info("Job %s received %d assignment suggestions", job_id, len(suggestions))
  return await ctx.advance(job_id, expected=SUGGEST_FROM, changes={"status": "assignment_suggested", "suggestions": suggestions}, event=f"{len(suggestions)} assignment suggestions ready for review.")
