"""Job creation and the text extraction stage."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from studyforge.jobs.models import DIRECT_GENERATION, EXTRACTION_FIRST, JobRecord, PipelineVariant
from studyforge.jobs.state_machine import EXTRACT_FROM, post_extraction_status, require_status
from studyforge.pipeline.context import PipelineContext
from studyforge.pipeline.errors import ExternalServiceError, InvalidInputError
from studyforge.services.storage_client import upload_object_path
from studyforge.utils.ids import generate_job_id, now_iso

logger = logging.getLogger(__name__)

PDF_KIND = "application/pdf"
TEXT_KIND = "text/plain"
SUPPORTED_KINDS = frozenset({PDF_KIND, TEXT_KIND})

EXTRACTION_FIRST_PREFIX = "EXTRACT_"
_TITLE_PREFIX = re.compile(r"^(EXTRACT_|GENERAL_)(\d+_)?")


def variant_from_file_name(file_name: str) -> PipelineVariant:
  """Files named ``EXTRACT_...`` run the extraction-first pipeline."""
  if file_name.startswith(EXTRACTION_FIRST_PREFIX):
    return EXTRACTION_FIRST
  return DIRECT_GENERATION


def title_from_file_name(file_name: str) -> str:
  """Strip the variant prefix, an optional numeric stamp, and the extension."""
  stripped = _TITLE_PREFIX.sub("", file_name)
  stem = PurePosixPath(stripped).stem if "." in stripped else stripped
  return stem or file_name


async def create_upload_job(ctx: PipelineContext, *, user_id: str, file_name: str, content_kind: str) -> JobRecord:
  """Register an uploaded artifact and schedule text extraction."""
  if not user_id.strip() or not file_name.strip():
    raise InvalidInputError("user_id and file_name are required.")
  if "/" in file_name:
    raise InvalidInputError("file_name must not contain path separators.")
  if content_kind not in SUPPORTED_KINDS:
    raise InvalidInputError(f"Unsupported content kind '{content_kind}'. Expected one of: {', '.join(sorted(SUPPORTED_KINDS))}.")

  timestamp = now_iso()
  record = JobRecord(
    job_id=generate_job_id(),
    user_id=user_id,
    variant=variant_from_file_name(file_name),
    status="ingesting",
    title=title_from_file_name(file_name),
    created_at=timestamp,
    updated_at=timestamp,
    source_path=upload_object_path(user_id, file_name),
    content_kind=content_kind,
  )
  # The bytes are already in the bucket; the job only records where.
  job = await ctx.jobs.create_job(record, event=f"Upload registered: {file_name} ({record.variant}).")
  logger.info("Created ingest job %s variant=%s path=%s", job.job_id, job.variant, job.source_path)
  await ctx.announce(job)
  return job


async def create_text_job(ctx: PipelineContext, *, user_id: str, title: str, text: str, variant: PipelineVariant) -> JobRecord:
  """Create a job from pasted text; it starts after the extraction stage."""
  if not user_id.strip():
    raise InvalidInputError("user_id is required.")
  if not text or not text.strip():
    raise InvalidInputError("Source text must not be empty.")

  timestamp = now_iso()
  record = JobRecord(
    job_id=generate_job_id(),
    user_id=user_id,
    variant=variant,
    status=post_extraction_status(variant),
    title=title.strip() or "Untitled",
    created_at=timestamp,
    updated_at=timestamp,
    content_kind=TEXT_KIND,
    source_text=text.strip(),
  )
  job = await ctx.jobs.create_job(record, event=f"Manual text ingested ({len(record.source_text or '')} chars).")
  logger.info("Created text ingest job %s variant=%s", job.job_id, job.variant)
  await ctx.announce(job)
  return job


async def _read_source(ctx: PipelineContext, job: JobRecord) -> str:
  if job.content_kind not in SUPPORTED_KINDS:
    raise InvalidInputError(f"Unsupported content kind '{job.content_kind}'.")
  if ctx.sources is None or not job.source_path:
    raise InvalidInputError("Job has no readable source artifact.")

  try:
    data, _ = await ctx.sources.download(job.source_path)
  except Exception as exc:
    raise ExternalServiceError(f"Failed to download {job.source_path}: {exc}") from exc

  # Plain text needs no OCR.
  if job.content_kind == TEXT_KIND:
    return data.decode("utf-8", errors="replace")

  if ctx.ocr is None:
    raise ExternalServiceError("OCR service is not configured.")
  return await ctx.ocr.recognize(data, mime_type=PDF_KIND, display_name=f"{job.job_id}-{PurePosixPath(job.source_path).name}")


async def run_extraction(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Turn the uploaded artifact into source text and pick the next branch.

  Any failure here is terminal: the job moves to ``error`` with the message
  recorded, and the typed error is re-raised.
  """
  job = await ctx.load_job(job_id)
  require_status(job, EXTRACT_FROM)
  logger.info("Extracting text for job %s kind=%s", job_id, job.content_kind)

  try:
    text = (await _read_source(ctx, job)).strip()
    if not text:
      raise InvalidInputError("Extracted text is empty.")
  except (InvalidInputError, ExternalServiceError) as exc:
    logger.error("Text extraction failed for job %s: %s", job_id, exc)
    await ctx.jobs.record_failure(job_id, message=f"Text extraction failed: {exc}", expected_statuses=EXTRACT_FROM, status="error")
    raise

  next_status = post_extraction_status(job.variant)
  logger.info("Extracted %d chars for job %s, moving to %s", len(text), job_id, next_status)
  return await ctx.advance(job_id, expected=EXTRACT_FROM, changes={"source_text": text, "status": next_status}, event=f"Extracted {len(text)} characters of source text.")
