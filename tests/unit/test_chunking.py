from __future__ import annotations

import pytest

from studyforge.pipeline.chunking import chunk_segments, chunk_text, split_sentences


def _sentence(length: int, end: str = ".") -> str:
  return "x" * (length - 1) + end


def test_split_sentences_on_terminal_punctuation() -> None:
  assert split_sentences("One. Two! Three? Four") == ["One.", "Two!", "Three?", "Four"]


def test_short_sentences_pack_into_one_chunk() -> None:
  assert chunk_text("One. Two. Three.", max_chars=100) == ["One. Two. Three."]


def test_long_sentences_each_get_their_own_chunk() -> None:
  text = " ".join([_sentence(1700), _sentence(1800, "!"), _sentence(1700, "?")])
  chunks = chunk_text(text)
  assert len(chunks) == 3
  assert all(len(chunk) <= 2000 for chunk in chunks)


def test_oversize_sentence_occupies_a_chunk_alone() -> None:
  text = " ".join([_sentence(100), _sentence(2500), _sentence(100)])
  chunks = chunk_text(text)
  assert [len(chunk) for chunk in chunks] == [100, 2500, 100]


def test_chunking_is_deterministic() -> None:
  text = " ".join(_sentence(300 + index * 37) for index in range(20))
  assert chunk_text(text) == chunk_text(text)
  assert "".join(chunk_text(text)).replace(" ", "") == text.replace(" ", "")


def test_chunk_never_exceeds_budget_when_sentences_fit() -> None:
  text = " ".join(_sentence(90) for _ in range(50))
  assert all(len(chunk) <= 250 for chunk in chunk_text(text, max_chars=250))


def test_chunk_segments_skips_blank_passages() -> None:
  assert chunk_segments(["First passage.", "  ", "Second passage."], max_chars=100) == ["First passage. Second passage."]


def test_empty_text_has_no_chunks() -> None:
  assert chunk_text("   ") == []


def test_budget_must_be_positive() -> None:
  with pytest.raises(ValueError):
    chunk_text("Text.", max_chars=0)
