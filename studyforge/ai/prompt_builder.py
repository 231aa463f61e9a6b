"""Render stage prompts from the markdown templates in ``prompts/``."""

from __future__ import annotations

import json
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path
from typing import Any

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


@lru_cache(maxsize=16)
def load_template(name: str) -> str:
  """Read a prompt template once per process."""
  return (_PROMPTS_DIR / f"{name}.md").read_text(encoding="utf-8")


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with their values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)
  return rendered


def render_ocr_prompt() -> str:
  return load_template("ocr")


def render_plan_prompt(text: str) -> str:
  return _replace_placeholders(load_template("plan"), {"CONTENT": text})


def render_split_prompt(text: str) -> str:
  return _replace_placeholders(load_template("split"), {"CONTENT": text})


def render_generation_prompt(chunk: str, *, item_count: int, card_count: int, avoid: Sequence[str] = ()) -> str:
  """Build the per-chunk generation prompt, listing previously seen questions to avoid."""
  avoid_block = ""
  if avoid:
    listed = "\n".join(f"- {text}" for text in avoid)
    avoid_block = f"\nDo not repeat or closely paraphrase any of these previously generated questions:\n{listed}\n"
  values = {"ITEM_COUNT": str(item_count), "CARD_COUNT": str(card_count), "AVOID": avoid_block, "CHUNK": chunk}
  return _replace_placeholders(load_template("generate"), values)


def render_classification_prompt(*, questions: Sequence[dict[str, Any]], cards: Sequence[dict[str, Any]], taxonomy: Sequence[dict[str, Any]], scope_subject: str | None) -> str:
  """Build the assignment prompt from an indexed digest of staged content."""
  question_lines = "\n".join(f"{index}. {entry.get('question', '')}" for index, entry in enumerate(questions)) or "(none)"
  card_lines = "\n".join(f"{index}. {entry.get('front', '')}" for index, entry in enumerate(cards)) or "(none)"
  scope = ""
  if scope_subject:
    scope = f'\nKeep every assignment inside the subject "{scope_subject}" and prefer its existing units before proposing a new one.\n'
  values = {"SCOPE": scope, "TAXONOMY": json.dumps(list(taxonomy), ensure_ascii=False, indent=2), "QUESTIONS": question_lines, "CARDS": card_lines}
  return _replace_placeholders(load_template("classify"), values)


def render_summary_prompt(text: str, *, unit_name: str) -> str:
  return _replace_placeholders(load_template("summarize"), {"UNIT": unit_name, "CONTENT": text})
