"""Subject and unit taxonomy model shared by commit and rollback."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Literal

from studyforge.jobs.models import EXTRACTION_FIRST, PipelineVariant

TaxonomyFamily = Literal["structured", "named"]

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9_]")


def normalize_key(name: str) -> str:
  """Turn a display name into a stable key: trimmed, lowercase, underscores."""
  return _DISALLOWED.sub("", _WHITESPACE.sub("_", name.strip()).lower())


def family_for_variant(variant: PipelineVariant) -> TaxonomyFamily:
  """Extraction-first jobs feed the structured family; the rest feed named subjects."""
  if variant == EXTRACTION_FIRST:
    return "structured"
  return "named"


@dataclass
class StructuredUnit:
  """A unit stored as a record carrying its own counts and notes."""

  key: str
  name: str
  item_count: int = 0
  card_count: int = 0
  notes: str | None = None

  def to_dict(self) -> dict[str, Any]:
    return {"key": self.key, "name": self.name, "itemCount": self.item_count, "cardCount": self.card_count, "notes": self.notes}


@dataclass
class NamedUnits:
  """Units stored as a sorted list of plain names; counts live on the subject only."""

  names: list[str] = field(default_factory=list)
  kind: Literal["named"] = "named"

  def find_name(self, unit_key: str) -> str | None:
    for name in self.names:
      if normalize_key(name) == unit_key:
        return name
    return None

  def has(self, unit_key: str) -> bool:
    return self.find_name(unit_key) is not None

  def add(self, unit_name: str) -> None:
    if not self.has(normalize_key(unit_name)):
      self.names = sorted([*self.names, unit_name])

  def apply(self, unit_key: str, unit_name: str, item_delta: int, card_delta: int) -> None:
    if item_delta > 0 or card_delta > 0:
      self.add(unit_name)

  def to_json(self) -> list[Any]:
    return list(self.names)


@dataclass
class StructuredUnits:
  """Units stored as structured records with per-unit counts."""

  units: list[StructuredUnit] = field(default_factory=list)
  kind: Literal["structured"] = "structured"

  def find(self, unit_key: str) -> StructuredUnit | None:
    for unit in self.units:
      if unit.key == unit_key:
        return unit
    return None

  def apply(self, unit_key: str, unit_name: str, item_delta: int, card_delta: int) -> None:
    unit = self.find(unit_key)
    if unit is None:
      if item_delta <= 0 and card_delta <= 0:
        return
      unit = StructuredUnit(key=unit_key, name=unit_name)
      self.units.append(unit)
    unit.item_count = max(0, unit.item_count + item_delta)
    unit.card_count = max(0, unit.card_count + card_delta)

  def to_json(self) -> list[Any]:
    return [unit.to_dict() for unit in self.units]


UnitList = NamedUnits | StructuredUnits


def units_from_json(family: TaxonomyFamily, raw: list[Any] | None) -> UnitList:
  """Rebuild the tagged unit list for a family from its stored JSON."""
  raw = raw or []
  if family == "named":
    return NamedUnits(names=sorted(str(name) for name in raw))
  units = [
    StructuredUnit(
      key=str(entry.get("key") or normalize_key(str(entry.get("name", "")))),
      name=str(entry.get("name", "")),
      item_count=int(entry.get("itemCount") or 0),
      card_count=int(entry.get("cardCount") or 0),
      notes=entry.get("notes"),
    )
    for entry in raw
    if isinstance(entry, dict)
  ]
  return StructuredUnits(units=units)


@dataclass
class SubjectRecord:
  """A subject node with its units and aggregate counts."""

  family: TaxonomyFamily
  key: str
  name: str
  units: UnitList
  item_count: int = 0
  card_count: int = 0
  created_at: str | None = None
  updated_at: str | None = None

  @classmethod
  def new(cls, family: TaxonomyFamily, name: str) -> SubjectRecord:
    units: UnitList = StructuredUnits() if family == "structured" else NamedUnits()
    return cls(family=family, key=normalize_key(name), name=name, units=units)

  def apply_delta(self, unit_key: str, unit_name: str, item_delta: int, card_delta: int) -> None:
    """Adjust one unit and the subject totals, flooring every count at zero."""
    self.units.apply(unit_key, unit_name, item_delta, card_delta)
    if isinstance(self.units, StructuredUnits):
      # Totals are derived so they always match the unit sums.
      self.item_count = sum(unit.item_count for unit in self.units.units)
      self.card_count = sum(unit.card_count for unit in self.units.units)
    else:
      self.item_count = max(0, self.item_count + item_delta)
      self.card_count = max(0, self.card_count + card_delta)

  def unit_count(self) -> int:
    if isinstance(self.units, StructuredUnits):
      return len(self.units.units)
    return len(self.units.names)

  def to_dict(self) -> dict[str, Any]:
    return {
      "family": self.family,
      "key": self.key,
      "name": self.name,
      "units": self.units.to_json(),
      "unitCount": self.unit_count(),
      "itemCount": self.item_count,
      "cardCount": self.card_count,
    }
