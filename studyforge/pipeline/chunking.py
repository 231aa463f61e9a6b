"""Sentence-respecting text chunking for batch generation."""

from __future__ import annotations

import re

DEFAULT_MAX_CHARS = 2000

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def split_sentences(text: str) -> list[str]:
  """Split text after terminal punctuation followed by whitespace."""
  return [sentence for sentence in _SENTENCE_BOUNDARY.split(text.strip()) if sentence]


def chunk_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> list[str]:
  """Pack whole sentences into segments no longer than max_chars.

  A sentence is never split. A single sentence longer than the budget
  occupies a segment of its own. The output depends only on the inputs,
  so batch indexes stay valid across retries.
  """
  if max_chars <= 0:
    raise ValueError("max_chars must be positive")

  chunks: list[str] = []
  current = ""
  for sentence in split_sentences(text):
    candidate = f"{current} {sentence}" if current else sentence
    # An oversized first sentence still goes in whole.
    if current and len(candidate) > max_chars:
      chunks.append(current)
      current = sentence
    else:
      current = candidate
  if current:
    chunks.append(current)
  return chunks


def chunk_segments(segments: list[str], max_chars: int = DEFAULT_MAX_CHARS) -> list[str]:
  """Chunk a list of standalone passages, keeping passages in order."""
  return chunk_text(" ".join(segment.strip() for segment in segments if segment.strip()), max_chars)
