"""Minimal .env support for local development."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VARIABLE = "STUDYFORGE_ENV_FILE"


def default_env_path() -> Path:
  """Return ``$STUDYFORGE_ENV_FILE`` when set, else ``.env`` at the project root."""
  configured = os.getenv(ENV_FILE_VARIABLE)
  if configured:
    return Path(configured).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_line(raw_line: str) -> tuple[str, str] | None:
  """Parse one ``KEY=value`` line. Blank, comment and malformed lines give None."""
  line = raw_line.strip()
  if not line or line.startswith("#"):
    return None
  line = line.removeprefix("export ").lstrip()
  key, sep, value = line.partition("=")
  key = key.strip()
  if not sep or not key:
    return None
  value = value.strip()
  if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
    return key, value[1:-1]
  # Unquoted values may carry a trailing comment.
  return key, value.split(" #", 1)[0].rstrip()


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Copy a .env file into ``os.environ`` and return the variables that were set."""
  if not path.is_file():
    return {}

  applied: dict[str, str] = {}
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    parsed = parse_env_line(raw_line)
    if parsed is None:
      continue
    key, value = parsed
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied[key] = value
  return applied
