from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

from studyforge.jobs.models import JobRecord, JobStatus, PipelineVariant
from studyforge.pipeline.contracts import Assignment, ExistingSubject


class ApiModel(BaseModel):
  """Request and response bodies use camelCase on the wire."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class UploadJobRequest(ApiModel):
  """Register an artifact already stored under ``uploads/{userId}/{fileName}``."""

  user_id: StrictStr = Field(min_length=1)
  file_name: StrictStr = Field(min_length=1, max_length=255, description="Names starting with EXTRACT_ run the extraction-first variant.")
  content_kind: Literal["application/pdf", "text/plain"]


class TextJobRequest(ApiModel):
  """Create a job from pasted text."""

  user_id: StrictStr = Field(min_length=1)
  title: StrictStr = Field(default="Untitled", max_length=200)
  text: StrictStr = Field(min_length=1)
  variant: PipelineVariant = "direct-generation"


class ConfirmPlanRequest(ApiModel):
  item_count: int | None = Field(default=None, ge=0)
  card_count: int | None = Field(default=None, ge=0)


class SuggestAssignmentRequest(ApiModel):
  """Existing taxonomy to classify against; the stored one is used when omitted."""

  taxonomy: list[ExistingSubject] | None = None
  scope_subject: StrictStr | None = Field(default=None, min_length=1)


class ApproveRequest(ApiModel):
  subject_name: StrictStr = Field(min_length=1)
  unit_name: StrictStr = Field(min_length=1)
  is_new_unit: bool = False
  item_indexes: list[int] = Field(default_factory=list)
  card_indexes: list[int] = Field(default_factory=list)

  def to_assignment(self) -> Assignment:
    return Assignment(
      subject_name=self.subject_name,
      unit_name=self.unit_name,
      is_new_unit=self.is_new_unit,
      item_indexes=self.item_indexes,
      card_indexes=self.card_indexes,
    )


class UnitNotesRequest(ApiModel):
  notes: StrictStr


class SummaryRequest(ApiModel):
  job_ids: list[StrictStr] = Field(min_length=1, max_length=20)


class JobResponse(ApiModel):
  """Full job view returned by every command."""

  job_id: str
  user_id: str
  variant: PipelineVariant
  status: JobStatus
  title: str
  created_at: str
  updated_at: str
  source_path: str | None = None
  content_kind: str | None = None
  source_text_length: int = 0
  explanation_count: int = 0
  quota: dict[str, int] | None = None
  key_tags: list[str] = Field(default_factory=list)
  suggested_subject: str | None = None
  suggested_unit: str | None = None
  total_batches: int = 0
  completed_batches: int = 0
  staged_items: list[dict[str, Any]] = Field(default_factory=list)
  staged_cards: list[dict[str, Any]] = Field(default_factory=list)
  suggestions: list[dict[str, Any]] = Field(default_factory=list)
  committed_item_indexes: list[int] = Field(default_factory=list)
  committed_card_indexes: list[int] = Field(default_factory=list)
  negative_prompt_count: int = 0
  errors: list[str] = Field(default_factory=list)
  approved_by: str | None = None
  completed_at: str | None = None
  events: list[str] = Field(default_factory=list)

  @classmethod
  def from_record(cls, record: JobRecord) -> JobResponse:
    return cls(
      job_id=record.job_id,
      user_id=record.user_id,
      variant=record.variant,
      status=record.status,
      title=record.title,
      created_at=record.created_at,
      updated_at=record.updated_at,
      source_path=record.source_path,
      content_kind=record.content_kind,
      source_text_length=len(record.source_text or ""),
      explanation_count=len(record.explanations),
      quota=record.quota,
      key_tags=record.key_tags,
      suggested_subject=record.suggested_subject,
      suggested_unit=record.suggested_unit,
      total_batches=record.total_batches,
      completed_batches=record.completed_batches,
      staged_items=record.staged_items,
      staged_cards=record.staged_cards,
      suggestions=record.suggestions,
      committed_item_indexes=record.committed_item_indexes,
      committed_card_indexes=record.committed_card_indexes,
      negative_prompt_count=len(record.negative_prompts),
      errors=record.errors,
      approved_by=record.approved_by,
      completed_at=record.completed_at,
      events=record.events,
    )


class JobSummary(ApiModel):
  job_id: str
  title: str
  variant: PipelineVariant
  status: JobStatus
  user_id: str
  created_at: str
  updated_at: str

  @classmethod
  def from_record(cls, record: JobRecord) -> JobSummary:
    return cls(
      job_id=record.job_id,
      title=record.title,
      variant=record.variant,
      status=record.status,
      user_id=record.user_id,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class JobListResponse(ApiModel):
  jobs: list[JobSummary]
  total: int
  limit: int
  offset: int


class TaxonomyResponse(ApiModel):
  family: str
  subjects: list[dict[str, Any]]


class UnitNotesResponse(ApiModel):
  family: str
  subject_key: str
  unit_key: str
  notes: str | None
