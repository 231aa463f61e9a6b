import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path

from studyforge.api.deps import get_pipeline
from studyforge.api.models import SummaryRequest, TaxonomyResponse, UnitNotesRequest, UnitNotesResponse
from studyforge.core.security import get_operator_id, require_operator
from studyforge.pipeline.service import IngestPipeline
from studyforge.pipeline.taxonomy import TaxonomyFamily

router = APIRouter(dependencies=[Depends(require_operator)])
logger = logging.getLogger("studyforge.api.routes.taxonomy")

Pipeline = Annotated[IngestPipeline, Depends(get_pipeline)]
Family = Annotated[TaxonomyFamily, Path(description="Taxonomy family: structured or named.")]


@router.get("/{family}", response_model=TaxonomyResponse)
async def list_subjects(family: Family, pipeline: Pipeline) -> TaxonomyResponse:
  """List subjects of a family with their units and aggregate counts."""
  subjects = await pipeline.list_subjects(family)
  return TaxonomyResponse(family=family, subjects=[subject.to_dict() for subject in subjects])


@router.get("/{family}/{subject_key}/units/{unit_key}/notes", response_model=UnitNotesResponse)
async def get_unit_notes(family: Family, subject_key: str, unit_key: str, pipeline: Pipeline) -> UnitNotesResponse:
  notes = await pipeline.get_unit_notes(family, subject_key, unit_key)
  return UnitNotesResponse(family=family, subject_key=subject_key, unit_key=unit_key, notes=notes)


@router.put("/{family}/{subject_key}/units/{unit_key}/notes", response_model=UnitNotesResponse)
async def update_unit_notes(
  family: Family, subject_key: str, unit_key: str, payload: UnitNotesRequest, pipeline: Pipeline, operator_id: Annotated[str, Depends(get_operator_id)]
) -> UnitNotesResponse:
  notes = await pipeline.update_unit_notes(family, subject_key, unit_key, payload.notes, updated_by=operator_id)
  return UnitNotesResponse(family=family, subject_key=subject_key, unit_key=unit_key, notes=notes)


@router.post("/{family}/{subject_key}/units/{unit_key}/summary", response_model=UnitNotesResponse)
async def summarize_unit(
  family: Family, subject_key: str, unit_key: str, payload: SummaryRequest, pipeline: Pipeline, operator_id: Annotated[str, Depends(get_operator_id)]
) -> UnitNotesResponse:
  """Generate unit notes from the source text of the given jobs and store them."""
  logger.info("Operator %s summarizing %s/%s/%s from %d jobs", operator_id, family, subject_key, unit_key, len(payload.job_ids))
  notes = await pipeline.summarize_unit(family, subject_key, unit_key, payload.job_ids, updated_by=operator_id)
  return UnitNotesResponse(family=family, subject_key=subject_key, unit_key=unit_key, notes=notes)
