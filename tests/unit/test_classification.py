from __future__ import annotations

import json

import pytest

from studyforge.pipeline.classification import suggest_assignment
from studyforge.pipeline.contracts import ExistingSubject
from studyforge.pipeline.errors import InvalidInputError, MalformedOutputError, PreconditionError
from studyforge.pipeline.taxonomy import SubjectRecord
from tests.fakes import build_harness, card, make_job, question


def _assignments(*entries: dict) -> str:
  return "```json\n" + json.dumps({"assignments": list(entries)}) + "\n```"


@pytest.mark.anyio
async def test_suggestions_are_index_references() -> None:
  response = _assignments(
    {"subjectName": "Cardiology", "unitName": "Valves", "isNewUnit": False, "itemIndexes": [0, 2, 9], "cardIndexes": [0]},
    {"subjectName": "Cardiology", "unitName": "Rhythm", "isNewUnit": True, "itemIndexes": [1]},
    {"subjectName": "Cardiology", "unitName": "Empty", "itemIndexes": [42]},
  )
  harness = build_harness(generation=[response])
  harness.db.jobs["job-1"] = make_job(status="awaiting_assignment", staged_items=[question("Q0?"), question("Q1?"), question("Q2?")], staged_cards=[card("C0")])

  job = await suggest_assignment(harness.ctx, "job-1", taxonomy=[ExistingSubject(name="Cardiology", units=["Valves"])])

  assert job.status == "assignment_suggested"
  assert job.suggestions == [
    {"subjectName": "Cardiology", "unitName": "Valves", "isNewUnit": False, "itemIndexes": [0, 2], "cardIndexes": [0]},
    {"subjectName": "Cardiology", "unitName": "Rhythm", "isNewUnit": True, "itemIndexes": [1], "cardIndexes": []},
  ]
  prompt = harness.generation.prompts[0]
  assert "0. Q0?" in prompt
  assert "0. C0" in prompt
  assert "A1" not in prompt


@pytest.mark.anyio
async def test_stored_taxonomy_is_used_when_none_is_supplied() -> None:
  harness = build_harness(generation=[_assignments({"subjectName": "Pharmacology", "unitName": "Diuretics", "itemIndexes": [0]})])
  subject = SubjectRecord.new("named", "Pharmacology")
  subject.apply_delta("diuretics", "Diuretics", 3, 0)
  harness.db.subjects[("named", "pharmacology")] = subject
  harness.db.jobs["job-1"] = make_job(status="awaiting_assignment", staged_items=[question("Loop diuretic?")])

  await suggest_assignment(harness.ctx, "job-1")

  assert '"Diuretics"' in harness.generation.prompts[0]


@pytest.mark.anyio
async def test_scope_narrows_taxonomy_to_one_subject() -> None:
  harness = build_harness(generation=[_assignments({"subjectName": "Renal", "unitName": "Acid Base", "itemIndexes": [0]})])
  harness.db.jobs["job-1"] = make_job(status="awaiting_assignment", staged_items=[question("Anion gap?")])
  taxonomy = [ExistingSubject(name="Renal", units=["Acid Base"]), ExistingSubject(name="Cardiology", units=["Valves"])]

  await suggest_assignment(harness.ctx, "job-1", taxonomy=taxonomy, scope_subject="Renal")

  prompt = harness.generation.prompts[0]
  assert "Cardiology" not in prompt
  assert 'inside the subject "Renal"' in prompt


@pytest.mark.anyio
async def test_no_staged_content_is_rejected() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="awaiting_assignment")
  with pytest.raises(InvalidInputError):
    await suggest_assignment(harness.ctx, "job-1", taxonomy=[])


@pytest.mark.anyio
async def test_unparsable_response_keeps_status() -> None:
  harness = build_harness(generation=["{not json"])
  harness.db.jobs["job-1"] = make_job(status="awaiting_assignment", staged_items=[question("Q?")])

  with pytest.raises(MalformedOutputError):
    await suggest_assignment(harness.ctx, "job-1", taxonomy=[])

  assert harness.db.jobs["job-1"].status == "awaiting_assignment"
  assert harness.db.jobs["job-1"].errors


@pytest.mark.anyio
async def test_wrong_status_is_rejected() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="generating", staged_items=[question("Q?")])
  with pytest.raises(PreconditionError):
    await suggest_assignment(harness.ctx, "job-1", taxonomy=[])
