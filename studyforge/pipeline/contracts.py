"""Shared data contracts for generative stage inputs and outputs."""

from __future__ import annotations

import string
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Difficulty = Literal["easy", "medium", "hard"]


class CamelModel(BaseModel):
  """Models stored in JSON columns and exchanged with the model use camelCase keys."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

  def to_json(self) -> dict[str, Any]:
    return self.model_dump(by_alias=True, mode="json")


def _normalize_tags(raw: Any) -> list[str]:
  if not isinstance(raw, list):
    return []
  tags: list[str] = []
  for tag in raw:
    value = str(tag).strip().lower()
    if value and value not in tags:
      tags.append(value)
  return tags


class StudyQuestion(CamelModel):
  """A multiple-choice question item, staged or committed."""

  question: str = Field(min_length=1)
  options: list[str] = Field(default_factory=list)
  answer: str = ""
  correct_answer: str | None = None
  explanation: str = ""
  tags: list[str] = Field(default_factory=list)
  difficulty: Difficulty = "medium"
  origin: Literal["extracted", "generated"] = "generated"
  source_job_id: str | None = None

  @field_validator("tags", mode="before")
  @classmethod
  def _lowercase_tags(cls, value: Any) -> list[str]:
    return _normalize_tags(value)

  @field_validator("difficulty", mode="before")
  @classmethod
  def _default_difficulty(cls, value: Any) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in {"easy", "medium", "hard"}:
      return normalized
    return "medium"

  @field_validator("options", mode="before")
  @classmethod
  def _stringify_options(cls, value: Any) -> list[str]:
    if not isinstance(value, list):
      return []
    return [str(option) for option in value]

  @model_validator(mode="after")
  def _derive_correct_answer(self) -> StudyQuestion:
    # "B" with four options resolves to the second option text.
    if self.correct_answer is None and self.answer:
      letter = self.answer.strip().upper()[:1]
      index = string.ascii_uppercase.find(letter) if letter else -1
      if 0 <= index < len(self.options):
        self.correct_answer = self.options[index]
      elif self.answer in self.options:
        self.correct_answer = self.answer
    return self


class StudyCard(CamelModel):
  """A recall card, staged or committed."""

  front: str = Field(min_length=1)
  back: str = ""
  tags: list[str] = Field(default_factory=list)
  mnemonic: str | None = None
  origin: Literal["extracted", "generated"] = "generated"
  source_job_id: str | None = None

  @field_validator("tags", mode="before")
  @classmethod
  def _lowercase_tags(cls, value: Any) -> list[str]:
    return _normalize_tags(value)


class GeneratedBatch(CamelModel):
  """Questions and cards produced from one text chunk."""

  questions: list[StudyQuestion] = Field(default_factory=list)
  cards: list[StudyCard] = Field(default_factory=list)


class PlanEstimate(CamelModel):
  """How much content the source text supports."""

  item_count: int = Field(default=0, ge=0)
  card_count: int = Field(default=0, ge=0)
  subject_name: str | None = None
  unit_name: str | None = None
  key_tags: list[str] = Field(default_factory=list)

  @field_validator("item_count", "card_count", mode="before")
  @classmethod
  def _default_zero(cls, value: Any) -> int:
    if value is None:
      return 0
    return max(0, int(value))

  @field_validator("key_tags", mode="before")
  @classmethod
  def _lowercase_key_tags(cls, value: Any) -> list[str]:
    return _normalize_tags(value)[:8]


class SplitResult(CamelModel):
  """Questions already written in the source plus the remaining explanation passages."""

  questions: list[StudyQuestion] = Field(default_factory=list)
  explanations: list[str] = Field(default_factory=list)
  key_tags: list[str] = Field(default_factory=list)

  @field_validator("explanations", mode="before")
  @classmethod
  def _drop_blank(cls, value: Any) -> list[str]:
    if not isinstance(value, list):
      return []
    return [str(entry).strip() for entry in value if str(entry).strip()]

  @field_validator("key_tags", mode="before")
  @classmethod
  def _lowercase_key_tags(cls, value: Any) -> list[str]:
    return _normalize_tags(value)[:8]


class Assignment(CamelModel):
  """A mapping of staged content, by index, onto one subject and unit."""

  subject_name: str = Field(min_length=1)
  unit_name: str = Field(min_length=1)
  is_new_unit: bool = False
  item_indexes: list[int] = Field(default_factory=list)
  card_indexes: list[int] = Field(default_factory=list)


class AssignmentResult(CamelModel):
  """Classification output: one entry per proposed subject and unit."""

  assignments: list[Assignment] = Field(default_factory=list)


class ExistingSubject(CamelModel):
  """A subject and its unit names as shown to the classification prompt."""

  name: str
  units: list[str] = Field(default_factory=list)
