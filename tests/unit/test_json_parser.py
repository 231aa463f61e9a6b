from __future__ import annotations

import pytest

from studyforge.ai.json_parser import extract_json, extract_json_object
from studyforge.pipeline.errors import MalformedOutputError


def test_fenced_block_is_preferred() -> None:
  raw = 'Here you go:\n```json\n{"itemCount": 4}\n```\nThanks.'
  assert extract_json(raw) == {"itemCount": 4}


def test_bare_document_is_parsed() -> None:
  assert extract_json('  {"cards": []}  ') == {"cards": []}


def test_broken_fenced_block_is_malformed() -> None:
  with pytest.raises(MalformedOutputError):
    extract_json('```json\n{"itemCount": \n```')


def test_prose_is_malformed() -> None:
  with pytest.raises(MalformedOutputError):
    extract_json("I could not produce any questions.")


def test_object_required() -> None:
  with pytest.raises(MalformedOutputError):
    extract_json_object("[1, 2]")
