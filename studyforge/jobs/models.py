"""Domain models for ingest jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal[
  "ingesting",
  "awaiting_split",
  "ready_for_planning",
  "planning_done",
  "ready_for_generation",
  "generating",
  "partially_failed",
  "awaiting_assignment",
  "assignment_suggested",
  "completed",
  "archived",
  "error",
]
PipelineVariant = Literal["extraction-first", "direct-generation"]
ContentKind = Literal["application/pdf", "text/plain"]
ItemOrigin = Literal["extracted", "generated"]

EXTRACTION_FIRST: PipelineVariant = "extraction-first"
DIRECT_GENERATION: PipelineVariant = "direct-generation"


@dataclass
class JobRecord:
  """Represents one ingestion moving through the pipeline."""

  job_id: str
  user_id: str
  variant: PipelineVariant
  status: JobStatus
  title: str
  created_at: str
  updated_at: str
  source_path: str | None = None
  content_kind: str | None = None
  source_text: str | None = None
  explanations: list[str] = field(default_factory=list)
  quota: dict[str, int] | None = None
  key_tags: list[str] = field(default_factory=list)
  suggested_subject: str | None = None
  suggested_unit: str | None = None
  chunks: list[str] = field(default_factory=list)
  total_batches: int = 0
  completed_batches: int = 0
  staged_items: list[dict[str, Any]] = field(default_factory=list)
  staged_cards: list[dict[str, Any]] = field(default_factory=list)
  suggestions: list[dict[str, Any]] = field(default_factory=list)
  committed_item_indexes: list[int] = field(default_factory=list)
  committed_card_indexes: list[int] = field(default_factory=list)
  negative_prompts: list[str] = field(default_factory=list)
  errors: list[str] = field(default_factory=list)
  approved_by: str | None = None
  completed_at: str | None = None
  events: list[str] = field(default_factory=list)


# Fields cleared whenever a job is sent back to the post-extraction status.
DERIVED_FIELD_DEFAULTS: dict[str, Any] = {
  "quota": None,
  "key_tags": [],
  "suggested_subject": None,
  "suggested_unit": None,
  "chunks": [],
  "total_batches": 0,
  "completed_batches": 0,
  "staged_items": [],
  "staged_cards": [],
  "suggestions": [],
  "committed_item_indexes": [],
  "committed_card_indexes": [],
  "negative_prompts": [],
  "explanations": [],
  "approved_by": None,
  "completed_at": None,
}

UPDATABLE_FIELDS: frozenset[str] = frozenset(
  {
    "status",
    "title",
    "source_text",
    "explanations",
    "quota",
    "key_tags",
    "suggested_subject",
    "suggested_unit",
    "chunks",
    "total_batches",
    "completed_batches",
    "staged_items",
    "staged_cards",
    "suggestions",
    "committed_item_indexes",
    "committed_card_indexes",
    "negative_prompts",
    "errors",
    "approved_by",
    "completed_at",
  }
)
