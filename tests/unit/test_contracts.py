from __future__ import annotations

import pytest
from pydantic import ValidationError

from studyforge.pipeline.contracts import AssignmentResult, PlanEstimate, SplitResult, StudyQuestion


def test_question_normalization() -> None:
  item = StudyQuestion.model_validate({"question": "Which valve?", "options": ["Mitral", "Aortic", "Tricuspid"], "answer": "B", "tags": ["Cardio", "cardio", " Valves "], "difficulty": "impossible"})
  assert item.correct_answer == "Aortic"
  assert item.tags == ["cardio", "valves"]
  assert item.difficulty == "medium"
  assert item.origin == "generated"


def test_question_answer_matching_an_option() -> None:
  item = StudyQuestion.model_validate({"question": "Q?", "options": ["Yes", "No"], "answer": "No"})
  assert item.correct_answer == "No"


def test_question_text_required() -> None:
  with pytest.raises(ValidationError):
    StudyQuestion.model_validate({"question": ""})


def test_json_uses_camel_case() -> None:
  payload = StudyQuestion(question="Q?", source_job_id="job-1").to_json()
  assert payload["sourceJobId"] == "job-1"
  assert "correctAnswer" in payload


def test_plan_estimate_defaults_missing_counts_to_zero() -> None:
  estimate = PlanEstimate.model_validate({"itemCount": None, "keyTags": ["A", "b", "C", "d", "e", "f", "g", "h", "i"]})
  assert estimate.item_count == 0
  assert estimate.card_count == 0
  assert estimate.key_tags == ["a", "b", "c", "d", "e", "f", "g", "h"]


def test_split_result_drops_blank_explanations() -> None:
  result = SplitResult.model_validate({"questions": [], "explanations": ["Intro", " ", ""]})
  assert result.explanations == ["Intro"]


def test_assignment_result_reads_index_lists() -> None:
  result = AssignmentResult.model_validate({"assignments": [{"subjectName": "Cardio", "unitName": "Valves", "itemIndexes": [0, 2]}]})
  assert result.assignments[0].item_indexes == [0, 2]
  assert result.assignments[0].card_indexes == []
