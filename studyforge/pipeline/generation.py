"""Resumable batch generation over the job's chunks."""

from __future__ import annotations

import logging

from studyforge.ai.prompt_builder import render_generation_prompt
from studyforge.jobs.models import JobRecord
from studyforge.jobs.state_machine import GENERATE_FROM, START_GENERATION_FROM, require_status
from studyforge.pipeline.context import PipelineContext, parse_model_output
from studyforge.pipeline.contracts import GeneratedBatch
from studyforge.pipeline.errors import ExternalServiceError
from studyforge.pipeline.quota import distribute_quota

logger = logging.getLogger(__name__)

# Caps the negative-prompt list sent with each batch.
MAX_AVOID_TEXTS = 100


async def start_generation(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Enter ``generating``; the published event runs the batch loop.

  From ``partially_failed`` the cursor is kept, so the loop resumes at the
  failed chunk.
  """
  job = await ctx.load_job(job_id)
  require_status(job, START_GENERATION_FROM)
  resumed = job.status == "partially_failed"
  message = f"Generation resumed at batch {job.completed_batches + 1} of {job.total_batches}." if resumed else f"Generation started over {job.total_batches} batches."
  logger.info("Starting generation for job %s (resume=%s, cursor=%d/%d)", job_id, resumed, job.completed_batches, job.total_batches)
  return await ctx.advance(job_id, expected=START_GENERATION_FROM, changes={"status": "generating"}, event=message)


async def run_generation(ctx: PipelineContext, job_id: str) -> JobRecord:
  """Process chunks from the checkpoint cursor to the end, one call per chunk.

  Each batch is appended and the cursor advanced in one guarded write. A
  failing chunk moves the job to ``partially_failed`` and stops the loop so
  the same chunk is retried on the next run.
  """
  job = await ctx.load_job(job_id)
  require_status(job, GENERATE_FROM)

  quota = job.quota or {}
  item_targets = distribute_quota(int(quota.get("itemCount", 0)), job.total_batches)
  card_targets = distribute_quota(int(quota.get("cardCount", 0)), job.total_batches)
  # Older avoid-texts come first; the cap keeps the prompt bounded.
  avoid = job.negative_prompts[:MAX_AVOID_TEXTS]
  start = job.completed_batches
  logger.info("Generating job %s batches %d..%d", job_id, start, job.total_batches - 1)

  # Resume from the cursor; batches before it are already staged.
  for index in range(start, job.total_batches):
    prompt = render_generation_prompt(job.chunks[index], item_count=item_targets[index], card_count=card_targets[index], avoid=avoid)
    try:
      response = await ctx.generation_model.generate(prompt)
      batch = parse_model_output(response.content, GeneratedBatch)
    except ExternalServiceError as exc:
      # The cursor still points at this batch, so a restart resumes here.
      logger.error("Batch %d/%d failed for job %s: %s", index + 1, job.total_batches, job_id, exc)
      await ctx.jobs.record_failure(job_id, message=f"Batch {index + 1} of {job.total_batches} failed: {exc}", expected_statuses=GENERATE_FROM, status="partially_failed")
      raise

    stamp = {"origin": "generated", "source_job_id": job_id}
    items = [question.model_copy(update=stamp).to_json() for question in batch.questions]
    cards = [card.model_copy(update=stamp).to_json() for card in batch.cards]
    # Guarded on the cursor: a concurrent run that already stored this batch makes this raise.
    job = await ctx.jobs.checkpoint_batch(job_id, expected_completed=index, items=items, cards=cards)
    logger.info("Job %s batch %d/%d: %d questions, %d cards", job_id, index + 1, job.total_batches, len(items), len(cards))

  return await ctx.advance(
    job_id,
    expected=GENERATE_FROM,
    changes={"status": "awaiting_assignment"},
    event=f"Generation finished: {len(job.staged_items)} questions and {len(job.staged_cards)} cards staged.",
  )
