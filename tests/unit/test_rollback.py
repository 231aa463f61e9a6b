from __future__ import annotations

import pytest

from studyforge.pipeline.errors import CommitIntegrityError, PreconditionError
from studyforge.pipeline.extraction import create_upload_job, run_extraction
from studyforge.pipeline.rollback import archive, prepare_for_regeneration, reassign, reset
from studyforge.pipeline.taxonomy import SubjectRecord
from studyforge.storage.content_repo import StudyItemRecord
from tests.fakes import FakeSources, build_harness, card, make_job, question


def _committed(index: int, *, kind: str = "question", payload: dict | None = None, unit: str = "Heart Valves") -> StudyItemRecord:
  return StudyItemRecord(
    item_id=f"item-{kind}-{index}",
    kind=kind,  # type: ignore[arg-type]
    family="structured",
    subject_key="cardiology",
    subject_name="Cardiology",
    unit_key="heart_valves",
    unit_name=unit,
    source_job_id="job-1",
    source_index=index,
    origin="generated",
    approved_by="admin",
    approved_at="2026-01-02T00:00:00Z",
    payload=payload or (question(f"Q{index}?") if kind == "question" else card(f"C{index}")),
  )


def _completed_harness(item_total: int = 3, *, unit_items: int | None = None, **job_overrides):
  harness = build_harness()
  subject = SubjectRecord.new("structured", "Cardiology")
  subject.apply_delta("heart_valves", "Heart Valves", unit_items if unit_items is not None else item_total, 1)
  harness.db.subjects[("structured", "cardiology")] = subject
  harness.db.items = [_committed(index) for index in range(item_total)] + [_committed(0, kind="card")]
  values = {"variant": "extraction-first", "status": "completed", "completed_at": "2026-01-02T00:00:00Z", "key_tags": ["cardio"], "quota": {"itemCount": 3, "cardCount": 1}}
  values.update(job_overrides)
  harness.db.jobs["job-1"] = make_job(**values)
  return harness


@pytest.mark.anyio
async def test_reset_withdraws_counts_and_returns_to_post_extraction_status() -> None:
  harness = _completed_harness()

  job = await reset(harness.ctx, "job-1")

  assert job.status == "awaiting_split"
  assert job.quota is None
  assert job.key_tags == []
  assert job.source_text
  assert harness.db.items == []
  subject = harness.db.subjects[("structured", "cardiology")]
  assert subject.item_count == 0
  assert subject.card_count == 0
  assert harness.enqueuer.published == ["job-1"]


@pytest.mark.anyio
async def test_reset_floors_unit_counts_at_zero() -> None:
  harness = _completed_harness(10, unit_items=4)

  await reset(harness.ctx, "job-1")

  subject = harness.db.subjects[("structured", "cardiology")]
  assert subject.units.find("heart_valves").item_count == 0
  assert subject.item_count == 0


@pytest.mark.anyio
async def test_reset_of_direct_generation_job_replans() -> None:
  harness = _completed_harness(variant="direct-generation")
  harness.db.items = []

  job = await reset(harness.ctx, "job-1")

  assert job.status == "ready_for_planning"
  assert harness.enqueuer.published == ["job-1"]


@pytest.mark.anyio
async def test_upload_with_lost_event_can_be_reset_and_extracted() -> None:
  sources = FakeSources({"uploads/user-1/Renal.txt": b"Kidneys filter blood."})
  harness = build_harness(sources=sources, enqueue_fails=True)
  job = await create_upload_job(harness.ctx, user_id="user-1", file_name="Renal.txt", content_kind="text/plain")
  assert job.status == "ingesting"
  assert any("Event delivery failed" in event for event in harness.db.events[job.job_id])

  harness.enqueuer.fail = False
  reset_job = await reset(harness.ctx, job.job_id)

  assert reset_job.status == "ingesting"
  assert harness.enqueuer.published == [job.job_id]
  extracted = await run_extraction(harness.ctx, job.job_id)
  assert extracted.status == "ready_for_planning"
  assert extracted.source_text == "Kidneys filter blood."


@pytest.mark.anyio
async def test_upload_with_lost_event_can_be_archived() -> None:
  harness = build_harness(enqueue_fails=True)
  job = await create_upload_job(harness.ctx, user_id="user-1", file_name="scan.pdf", content_kind="application/pdf")

  archived = await archive(harness.ctx, job.job_id)

  assert archived.status == "archived"


@pytest.mark.anyio
async def test_reset_of_ingesting_job_with_source_text_moves_past_extraction() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="ingesting", variant="extraction-first")

  job = await reset(harness.ctx, "job-1")

  assert job.status == "awaiting_split"


@pytest.mark.anyio
async def test_failed_withdrawal_rolls_back() -> None:
  harness = _completed_harness()
  harness.content.fail_on = {"save_subject"}

  with pytest.raises(CommitIntegrityError):
    await reset(harness.ctx, "job-1")

  assert len(harness.db.items) == 4
  assert harness.db.jobs["job-1"].status == "completed"
  assert harness.db.subjects[("structured", "cardiology")].item_count == 3
  assert harness.enqueuer.published == []


@pytest.mark.anyio
async def test_reassign_restages_committed_items_in_order() -> None:
  harness = _completed_harness()
  harness.db.items.reverse()

  job = await reassign(harness.ctx, "job-1")

  assert job.status == "awaiting_assignment"
  assert [entry["question"] for entry in job.staged_items] == ["Q0?", "Q1?", "Q2?"]
  assert [entry["front"] for entry in job.staged_cards] == ["C0"]
  assert job.completed_at is None
  assert job.suggestions == []
  assert harness.db.items == []
  assert harness.db.subjects[("structured", "cardiology")].item_count == 0


@pytest.mark.anyio
async def test_reassign_keeps_staged_content_of_partially_approved_job() -> None:
  staged = [question("Q0?"), question("Q1?"), question("Q2?"), question("Q3?")]
  harness = _completed_harness(
    2,
    status="assignment_suggested",
    completed_at=None,
    staged_items=staged,
    committed_item_indexes=[0, 1],
    suggestions=[{"subjectName": "Cardiology", "unitName": "Rhythm", "isNewUnit": True, "itemIndexes": [2, 3], "cardIndexes": []}],
  )

  job = await reassign(harness.ctx, "job-1")

  assert job.staged_items == staged
  assert job.committed_item_indexes == []
  assert job.suggestions == []


@pytest.mark.anyio
async def test_regeneration_remembers_generated_questions_and_keeps_extracted() -> None:
  harness = _completed_harness(0, negative_prompts=["Old question?"])
  harness.db.items = [
    _committed(0, payload=question("Extracted one?", origin="extracted")),
    _committed(1, payload=question("Generated one?")),
    _committed(2, payload=question("Old question?")),
  ]

  job = await prepare_for_regeneration(harness.ctx, "job-1")

  assert job.status == "ready_for_generation"
  assert job.negative_prompts == ["Old question?", "Generated one?"]
  assert [entry["question"] for entry in job.staged_items] == ["Extracted one?"]
  assert job.staged_cards == []
  assert job.completed_batches == 0
  assert harness.db.items == []
  assert harness.enqueuer.published == []


@pytest.mark.anyio
async def test_regeneration_uses_staged_items_when_nothing_was_committed() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="awaiting_assignment", staged_items=[question("First?"), question("Second?")], completed_batches=3, total_batches=3)

  job = await prepare_for_regeneration(harness.ctx, "job-1")

  assert job.negative_prompts == ["First?", "Second?"]
  assert job.staged_items == []
  assert job.total_batches == 3
  assert job.completed_batches == 0


@pytest.mark.anyio
async def test_archive_keeps_committed_content() -> None:
  harness = _completed_harness()

  job = await archive(harness.ctx, "job-1")

  assert job.status == "archived"
  assert job.completed_at == "2026-01-02T00:00:00Z"
  assert len(harness.db.items) == 4


@pytest.mark.anyio
async def test_archive_requires_a_settled_job() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="generating")
  with pytest.raises(PreconditionError):
    await archive(harness.ctx, "job-1")


@pytest.mark.anyio
async def test_archive_drops_pending_suggestions() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(
    status="assignment_suggested",
    staged_items=[question("Q0?")],
    suggestions=[{"subjectName": "Cardiology", "unitName": "Valves", "isNewUnit": True, "itemIndexes": [0], "cardIndexes": []}],
  )

  job = await archive(harness.ctx, "job-1")

  assert job.status == "archived"
  assert job.suggestions == []
  assert harness.db.jobs["job-1"].suggestions == []
