import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from studyforge.core.database import create_tables, get_db_engine
from studyforge.core.logging import _initialize_logging
from studyforge.services.storage_client import build_storage_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, tables and the upload bucket once uvicorn starts."""
  from studyforge.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("studyforge.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:  # noqa: BLE001
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  if get_db_engine() is not None:
    try:
      await create_tables()
      logger.info("Database tables ensured.")
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to create database tables at startup: %s", exc)
  else:
    logger.warning("STUDYFORGE_PG_DSN is not set; job commands will fail until it is configured.")

  try:
    storage_client = build_storage_client(settings)
    await storage_client.ensure_bucket()
    logger.info("Upload bucket ensured: %s", storage_client.bucket_name)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Failed to ensure upload bucket at startup: %s", exc)

  yield
