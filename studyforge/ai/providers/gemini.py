"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import asyncio
import io
import logging
import os
import time
from typing import Any

from google import genai
from google.genai import types
from starlette.concurrency import run_in_threadpool

from studyforge.ai.backoff import retry_with_backoff
from studyforge.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse
from studyforge.pipeline.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


def _usage(response: Any) -> dict[str, int] | None:
  if not response.usage_metadata:
    return None
  return {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}


class GeminiModel(AIModel):
  """Gemini model client with file upload support."""

  def __init__(self, name: str, api_key: str | None = None, *, client: genai.Client | None = None) -> None:
    self.name: str = name
    self.supports_files = True

    if client is None:
      api_key = api_key or os.getenv("GEMINI_API_KEY")
      if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      client = genai.Client(api_key=api_key)
    self._client = client

  async def generate(self, prompt: str) -> ModelResponse:
    """Generate a text response from Gemini."""
    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt)
    except Exception as exc:
      raise ServiceUnavailableError(f"Gemini generation failed: {exc}") from exc

    logger.debug("Gemini response model=%s chars=%d", self.name, len(response.text or ""))
    return SimpleModelResponse(content=response.text or "", usage=_usage(response))

  async def upload_file(self, file_content: bytes, mime_type: str, display_name: str | None = None) -> Any:
    """Upload a document to the Gemini File API."""
    try:
      # The SDK upload is synchronous; keep it off the event loop.
      return await run_in_threadpool(self._client.files.upload, file=io.BytesIO(file_content), config=types.UploadFileConfig(mime_type=mime_type, display_name=display_name))
    except Exception as exc:
      raise ServiceUnavailableError(f"Gemini file upload failed: {exc}") from exc

  async def wait_for_file(self, file_ref: Any, *, poll_interval: float, timeout: float) -> Any:
    """Poll the File API until the upload is ACTIVE."""
    deadline = time.monotonic() + timeout
    current = file_ref
    while True:
      state = getattr(getattr(current, "state", None), "name", None) or str(getattr(current, "state", ""))
      if state.endswith("ACTIVE"):
        return current
      if state.endswith("FAILED"):
        raise ServiceUnavailableError(f"Gemini file processing failed for {current.name}.")
      if time.monotonic() >= deadline:
        raise ServiceUnavailableError(f"Gemini file {current.name} not ready after {timeout:.0f}s.")
      await asyncio.sleep(poll_interval)
      try:
        current = await self._client.aio.files.get(name=current.name)
      except Exception as exc:
        raise ServiceUnavailableError(f"Gemini file status check failed: {exc}") from exc

  async def generate_with_files(self, prompt: str, files: list[Any]) -> ModelResponse:
    """Generate a response using the prompt and uploaded files."""
    contents = [*files, prompt]
    try:
      response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=contents)
    except Exception as exc:
      raise ServiceUnavailableError(f"Gemini generation with files failed: {exc}") from exc

    logger.debug("Gemini file-based response model=%s chars=%d", self.name, len(response.text or ""))
    return SimpleModelResponse(content=response.text or "", usage=_usage(response))

  async def delete_file(self, file_ref: Any) -> None:
    """Delete an uploaded file, logging failures."""
    try:
      await self._client.aio.files.delete(name=file_ref.name)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to delete Gemini file %s: %s", getattr(file_ref, "name", file_ref), exc)


class GeminiProvider(Provider):
  """Gemini provider sharing one SDK client across models."""

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key or os.getenv("GEMINI_API_KEY")
    self._client: genai.Client | None = None

  def _get_client(self) -> genai.Client:
    if self._client is None:
      if not self._api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      self._client = genai.Client(api_key=self._api_key)
    return self._client

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    if not model:
      raise ValueError("A Gemini model name is required.")
    return GeminiModel(model, client=self._get_client())
