import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from studyforge.api.deps import get_pipeline
from studyforge.api.models import (
  ApproveRequest,
  ConfirmPlanRequest,
  JobListResponse,
  JobResponse,
  JobSummary,
  SuggestAssignmentRequest,
  TextJobRequest,
  UploadJobRequest,
)
from studyforge.core.security import get_operator_id, require_operator
from studyforge.jobs.models import JobStatus
from studyforge.pipeline.service import IngestPipeline

router = APIRouter(dependencies=[Depends(require_operator)])
logger = logging.getLogger("studyforge.api.routes.jobs")

Pipeline = Annotated[IngestPipeline, Depends(get_pipeline)]


@router.post("/jobs/upload", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_upload_job(payload: UploadJobRequest, pipeline: Pipeline) -> JobResponse:
  """Register an uploaded artifact; text extraction starts from the published event."""
  record = await pipeline.ingest_upload(user_id=payload.user_id, file_name=payload.file_name, content_kind=payload.content_kind)
  return JobResponse.from_record(record)


@router.post("/jobs/text", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_text_job(payload: TextJobRequest, pipeline: Pipeline) -> JobResponse:
  """Create a job from pasted text."""
  record = await pipeline.ingest_text(user_id=payload.user_id, title=payload.title, text=payload.text, variant=payload.variant)
  return JobResponse.from_record(record)


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
  pipeline: Pipeline,
  status_filter: Annotated[JobStatus | None, Query(alias="status")] = None,
  user_id: Annotated[str | None, Query(alias="userId")] = None,
  limit: Annotated[int, Query(ge=1, le=200)] = 50,
  offset: Annotated[int, Query(ge=0)] = 0,
) -> JobListResponse:
  records, total = await pipeline.list_jobs(status=status_filter, user_id=user_id, limit=limit, offset=offset)
  return JobListResponse(jobs=[JobSummary.from_record(record) for record in records], total=total, limit=limit, offset=offset)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, pipeline: Pipeline) -> JobResponse:
  return JobResponse.from_record(await pipeline.get_job(job_id))


@router.post("/jobs/{job_id}/extract", response_model=JobResponse)
async def extract_job(job_id: str, pipeline: Pipeline) -> JobResponse:
  """Re-run text extraction for a job left in ingesting."""
  return JobResponse.from_record(await pipeline.extract(job_id))


@router.post("/jobs/{job_id}/plan", response_model=JobResponse)
async def plan_job(job_id: str, pipeline: Pipeline) -> JobResponse:
  """Run (or retry) the planning stage."""
  return JobResponse.from_record(await pipeline.plan(job_id))


@router.post("/jobs/{job_id}/split", response_model=JobResponse)
async def split_job(job_id: str, pipeline: Pipeline) -> JobResponse:
  """Run (or retry) the item/explanation split of an extraction-first job."""
  return JobResponse.from_record(await pipeline.split(job_id))


@router.post("/jobs/{job_id}/confirm-plan", response_model=JobResponse)
async def confirm_plan(job_id: str, payload: ConfirmPlanRequest, pipeline: Pipeline) -> JobResponse:
  return JobResponse.from_record(await pipeline.confirm_plan(job_id, item_count=payload.item_count, card_count=payload.card_count))


@router.post("/jobs/{job_id}/start-generation", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_generation(job_id: str, pipeline: Pipeline) -> JobResponse:
  """Start or resume batch generation; batches run from the published event."""
  return JobResponse.from_record(await pipeline.start_generation(job_id))


@router.post("/jobs/{job_id}/suggest-assignment", response_model=JobResponse)
async def suggest_assignment(job_id: str, payload: SuggestAssignmentRequest, pipeline: Pipeline) -> JobResponse:
  record = await pipeline.suggest_assignment(job_id, taxonomy=payload.taxonomy, scope_subject=payload.scope_subject)
  return JobResponse.from_record(record)


@router.post("/jobs/{job_id}/approve", response_model=JobResponse)
async def approve(job_id: str, payload: ApproveRequest, pipeline: Pipeline, operator_id: Annotated[str, Depends(get_operator_id)]) -> JobResponse:
  """Commit one approved assignment."""
  logger.info("Operator %s approving %s/%s for job %s", operator_id, payload.subject_name, payload.unit_name, job_id)
  return JobResponse.from_record(await pipeline.approve(job_id, payload.to_assignment(), approver=operator_id))


@router.post("/jobs/{job_id}/reset", response_model=JobResponse)
async def reset(job_id: str, pipeline: Pipeline) -> JobResponse:
  return JobResponse.from_record(await pipeline.reset(job_id))


@router.post("/jobs/{job_id}/reassign", response_model=JobResponse)
async def reassign(job_id: str, pipeline: Pipeline) -> JobResponse:
  return JobResponse.from_record(await pipeline.reassign(job_id))


@router.post("/jobs/{job_id}/prepare-regeneration", response_model=JobResponse)
async def prepare_regeneration(job_id: str, pipeline: Pipeline) -> JobResponse:
  return JobResponse.from_record(await pipeline.prepare_for_regeneration(job_id))


@router.post("/jobs/{job_id}/archive", response_model=JobResponse)
async def archive(job_id: str, pipeline: Pipeline) -> JobResponse:
  return JobResponse.from_record(await pipeline.archive(job_id))
