from __future__ import annotations

import pytest

from studyforge.jobs.state_machine import (
  APPROVE_FROM,
  ARCHIVE_FROM,
  REASSIGN_FROM,
  RESET_FROM,
  post_extraction_status,
  publishes_event,
  require_status,
)
from studyforge.pipeline.errors import PreconditionError
from tests.fakes import make_job


def test_post_extraction_status_by_variant() -> None:
  assert post_extraction_status("extraction-first") == "awaiting_split"
  assert post_extraction_status("direct-generation") == "ready_for_planning"


def test_require_status_raises_with_details() -> None:
  job = make_job(status="completed")
  with pytest.raises(PreconditionError) as excinfo:
    require_status(job, APPROVE_FROM)
  assert excinfo.value.actual == "completed"
  assert excinfo.value.expected == ("assignment_suggested",)


def test_auto_advancing_statuses_publish_events() -> None:
  assert publishes_event("generating")
  assert publishes_event("ready_for_planning")
  assert not publishes_event("planning_done")
  assert not publishes_event("completed")


def test_stuck_ingesting_job_can_be_reset_or_archived() -> None:
  assert "ingesting" in RESET_FROM
  assert "ingesting" in ARCHIVE_FROM
  assert "ingesting" not in REASSIGN_FROM


def test_reassign_only_from_terminal_or_failed_states() -> None:
  assert "generating" not in REASSIGN_FROM
  assert {"completed", "archived", "error", "partially_failed"} <= REASSIGN_FROM
