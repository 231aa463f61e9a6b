"""Strict structured-data parsing for generative responses."""

from __future__ import annotations

import json
import re
from typing import Any

from studyforge.pipeline.errors import MalformedOutputError

_FENCED_JSON = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)


def extract_json(raw: str) -> Any:
  """Parse a fenced ```json block when present, otherwise the whole response.

  There is no lenient recovery: a response that does not parse raises
  MalformedOutputError so callers can tell it apart from an outage.
  """
  if raw is None:
    raise MalformedOutputError("Model returned an empty response.")

  match = _FENCED_JSON.search(raw)
  if match:
    try:
      return json.loads(match.group(1))
    except json.JSONDecodeError as exc:
      raise MalformedOutputError(f"Invalid JSON in fenced block: {exc}") from exc

  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    raise MalformedOutputError(f"Invalid JSON in response body: {exc}") from exc


def extract_json_object(raw: str) -> dict[str, Any]:
  """Parse the response and require a JSON object at the top level."""
  parsed = extract_json(raw)
  if not isinstance(parsed, dict):
    raise MalformedOutputError(f"Expected a JSON object, got {type(parsed).__name__}.")
  return parsed
