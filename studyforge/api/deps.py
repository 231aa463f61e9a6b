"""Shared FastAPI dependencies: service handles built once per process."""

from __future__ import annotations

import logging
from functools import lru_cache

from studyforge.ai.providers.gemini import GeminiProvider
from studyforge.config import get_settings
from studyforge.pipeline.context import PipelineContext, PipelineLimits
from studyforge.pipeline.service import IngestPipeline
from studyforge.services.ocr_service import OcrService
from studyforge.services.storage_client import build_storage_client
from studyforge.services.tasks.factory import get_task_enqueuer
from studyforge.storage.postgres_content_repo import PostgresContentStore
from studyforge.storage.postgres_jobs_repo import PostgresJobsRepository

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_pipeline_context() -> PipelineContext:
  """Construct repositories, models and the event publisher once."""
  settings = get_settings()
  provider = GeminiProvider(api_key=settings.gemini_api_key)
  ocr = OcrService(provider.get_model(settings.ocr_model), poll_interval=settings.ocr_poll_interval_seconds, timeout=settings.ocr_timeout_seconds)
  logger.info("Pipeline context: generation=%s quick=%s ocr=%s events=%s", settings.generation_model, settings.quick_model, settings.ocr_model, settings.task_service_provider)
  return PipelineContext(
    jobs=PostgresJobsRepository(),
    content=PostgresContentStore(),
    enqueuer=get_task_enqueuer(settings),
    generation_model=provider.get_model(settings.generation_model),
    quick_model=provider.get_model(settings.quick_model),
    sources=build_storage_client(settings),
    ocr=ocr,
    limits=PipelineLimits.from_settings(settings),
  )


@lru_cache(maxsize=1)
def get_pipeline() -> IngestPipeline:
  """Dependency returning the operator command surface."""
  return IngestPipeline(get_pipeline_context())
