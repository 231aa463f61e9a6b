"""Long-form unit notes, typed by operators or summarized from job sources."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from studyforge.ai.prompt_builder import render_summary_prompt
from studyforge.pipeline.context import PipelineContext
from studyforge.pipeline.errors import ExternalServiceError, InvalidInputError, SubjectNotFoundError
from studyforge.pipeline.taxonomy import NamedUnits, TaxonomyFamily

logger = logging.getLogger(__name__)

SOURCE_SEPARATOR = "\n\n"


async def update_unit_notes(ctx: PipelineContext, family: TaxonomyFamily, subject_key: str, unit_key: str, notes: str, *, updated_by: str | None = None) -> str:
  await ctx.content.set_unit_notes(family, subject_key, unit_key, notes, updated_by=updated_by)
  logger.info("Updated notes for %s/%s/%s (%d chars)", family, subject_key, unit_key, len(notes))
  return notes


async def summarize_unit(
  ctx: PipelineContext,
  family: TaxonomyFamily,
  subject_key: str,
  unit_key: str,
  job_ids: Sequence[str],
  *,
  updated_by: str | None = None,
) -> str:
  """Generate markdown notes for a unit from the source text of one or more jobs."""
  if not job_ids:
    raise InvalidInputError("At least one job id is required.")

  subject = await ctx.content.get_subject(family, subject_key)
  if subject is None:
    raise SubjectNotFoundError(f"Subject {family}/{subject_key} not found.")
  # Named families keep bare unit names; the others keep unit records.
  if isinstance(subject.units, NamedUnits):
    unit_name = subject.units.find_name(unit_key)
  else:
    unit = subject.units.find(unit_key)
    unit_name = unit.name if unit is not None else None
  if unit_name is None:
    raise SubjectNotFoundError(f"Unit {unit_key} not found in {family}/{subject_key}.")

  # Jobs without source text (failed uploads) are skipped.
  texts: list[str] = []
  for job_id in job_ids:
    job = await ctx.load_job(job_id)
    if job.source_text:
      texts.append(job.source_text)
  if not texts:
    raise InvalidInputError("None of the given jobs has source text.")

  combined = SOURCE_SEPARATOR.join(texts)[: ctx.limits.summary_max_chars]
  logger.info("Summarizing %s/%s/%s from %d jobs (%d chars)", family, subject_key, unit_key, len(texts), len(combined))
  response = await ctx.generation_model.generate(render_summary_prompt(combined, unit_name=unit_name))
  notes = (response.content or "").strip()
  if not notes:
    raise ExternalServiceError("Summary response was empty.")
  return await update_unit_notes(ctx, family, subject_key, unit_key, notes, updated_by=updated_by)
