from __future__ import annotations

import pytest

from studyforge.pipeline.context import parse_model_output
from studyforge.pipeline.contracts import PlanEstimate
from studyforge.pipeline.errors import JobNotFoundError, MalformedOutputError, PreconditionError
from tests.fakes import build_harness, make_job


@pytest.mark.anyio
async def test_advance_publishes_for_auto_advancing_status() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="ready_for_generation")

  job = await harness.ctx.advance("job-1", expected={"ready_for_generation"}, changes={"status": "generating"}, event="Generation started.")

  assert job.status == "generating"
  assert harness.enqueuer.published == ["job-1"]
  assert harness.db.events["job-1"] == ["Generation started."]


@pytest.mark.anyio
async def test_advance_to_settled_status_publishes_nothing() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="ready_for_planning")

  await harness.ctx.advance("job-1", expected={"ready_for_planning"}, changes={"status": "planning_done"}, event="Planned.")

  assert harness.enqueuer.published == []


@pytest.mark.anyio
async def test_advance_rejects_unexpected_status() -> None:
  harness = build_harness()
  harness.db.jobs["job-1"] = make_job(status="completed")
  with pytest.raises(PreconditionError):
    await harness.ctx.advance("job-1", expected={"ready_for_planning"}, changes={"status": "planning_done"}, event="Planned.")
  assert harness.db.jobs["job-1"].status == "completed"


@pytest.mark.anyio
async def test_failed_delivery_keeps_transition_and_is_recorded() -> None:
  harness = build_harness(enqueue_fails=True)
  harness.db.jobs["job-1"] = make_job(status="ready_for_generation")

  job = await harness.ctx.advance("job-1", expected={"ready_for_generation"}, changes={"status": "generating"}, event="Generation started.")

  assert job.status == "generating"
  assert harness.db.jobs["job-1"].status == "generating"
  assert any("Event delivery failed" in event for event in harness.db.events["job-1"])


@pytest.mark.anyio
async def test_load_job_raises_for_unknown_job() -> None:
  harness = build_harness()
  with pytest.raises(JobNotFoundError):
    await harness.ctx.load_job("nope")


def test_parse_model_output_maps_shape_errors() -> None:
  with pytest.raises(MalformedOutputError):
    parse_model_output('{"itemCount": "many"}', PlanEstimate)
