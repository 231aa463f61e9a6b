"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  supports_files: bool = False

  @abstractmethod
  async def generate(self, prompt: str) -> ModelResponse:
    """Generate a response for the given prompt."""

  async def upload_file(self, file_content: bytes, mime_type: str, display_name: str | None = None) -> Any:
    """Upload a document for file-grounded generation."""
    raise RuntimeError("File upload is not supported by this model.")

  async def wait_for_file(self, file_ref: Any, *, poll_interval: float, timeout: float) -> Any:
    """Block until an uploaded document is ready for generation."""
    return file_ref

  async def generate_with_files(self, prompt: str, files: list[Any]) -> ModelResponse:
    """Generate a response grounded on previously uploaded files."""
    raise RuntimeError("File-grounded generation is not supported by this model.")

  async def delete_file(self, file_ref: Any) -> None:
    """Remove an uploaded document."""


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
