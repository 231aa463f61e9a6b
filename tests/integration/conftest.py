from __future__ import annotations

from dataclasses import replace

import pytest
from httpx import ASGITransport, AsyncClient

from studyforge.api.deps import get_pipeline
from studyforge.config import get_settings
from studyforge.main import app
from studyforge.pipeline.service import IngestPipeline
from tests.fakes import FakeSources, Harness, build_harness

OPERATOR_TOKEN = "operator-token"
TASK_SECRET = "task-secret"


@pytest.fixture
def harness() -> Harness:
  return build_harness(sources=FakeSources())


@pytest.fixture
async def async_client(harness: Harness):
  settings = replace(get_settings.__wrapped__(), operator_token=OPERATOR_TOKEN, task_secret=TASK_SECRET)
  pipeline = IngestPipeline(harness.ctx)
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[get_pipeline] = lambda: pipeline
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()


@pytest.fixture
def operator_headers() -> dict[str, str]:
  return {"authorization": f"Bearer {OPERATOR_TOKEN}", "x-operator-id": "admin-1"}
