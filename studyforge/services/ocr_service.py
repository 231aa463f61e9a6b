"""Whole-document text recognition through the Gemini File API."""

from __future__ import annotations

import logging
from typing import Any

from studyforge.ai.json_parser import extract_json_object
from studyforge.ai.prompt_builder import render_ocr_prompt
from studyforge.ai.providers.base import AIModel
from studyforge.pipeline.errors import MalformedOutputError

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"


def join_pages(pages: list[Any]) -> str:
  """Order page fragments by page number and join them with blank lines."""
  fragments: list[tuple[int, str]] = []
  for position, entry in enumerate(pages):
    if not isinstance(entry, dict):
      raise MalformedOutputError(f"OCR page entry {position} is not an object.")
    try:
      page_number = int(entry.get("page", position + 1))
    except (TypeError, ValueError) as exc:
      raise MalformedOutputError(f"OCR page entry {position} has an invalid page number.") from exc
    fragments.append((page_number, str(entry.get("text") or "").strip()))
  fragments.sort(key=lambda fragment: fragment[0])
  return PAGE_SEPARATOR.join(text for _, text in fragments if text)


class OcrService:
  """Upload a document, wait for it to be processed, and read back page text."""

  def __init__(self, model: AIModel, *, poll_interval: float, timeout: float) -> None:
    self._model = model
    self._poll_interval = poll_interval
    self._timeout = timeout

  async def recognize(self, data: bytes, *, mime_type: str, display_name: str) -> str:
    """Return the document text, pages in order. The uploaded copy is always removed."""
    uploaded = await self._model.upload_file(file_content=data, mime_type=mime_type, display_name=display_name)
    try:
      ready = await self._model.wait_for_file(uploaded, poll_interval=self._poll_interval, timeout=self._timeout)
      response = await self._model.generate_with_files(render_ocr_prompt(), [ready])
    finally:
      await self._model.delete_file(uploaded)

    payload = extract_json_object(response.content)
    pages = payload.get("pages")
    if not isinstance(pages, list):
      raise MalformedOutputError("OCR response is missing a 'pages' list.")
    text = join_pages(pages)
    logger.info("OCR recognized %d pages (%d chars) from %s", len(pages), len(text), display_name)
    return text
