from __future__ import annotations

from studyforge.pipeline.taxonomy import NamedUnits, StructuredUnits, SubjectRecord, normalize_key, units_from_json


def test_normalize_key() -> None:
  assert normalize_key("  Heart  Valves ") == "heart_valves"
  assert normalize_key("Renal/Acid-Base") == "renalacidbase"


def test_structured_subject_totals_match_unit_sums() -> None:
  subject = SubjectRecord.new("structured", "Cardiology")
  subject.apply_delta("valves", "Valves", 3, 1)
  subject.apply_delta("rhythm", "Rhythm", 2, 0)
  subject.apply_delta("valves", "Valves", -1, 0)
  assert isinstance(subject.units, StructuredUnits)
  assert subject.item_count == sum(unit.item_count for unit in subject.units.units) == 4
  assert subject.card_count == 1


def test_structured_counts_floor_at_zero() -> None:
  subject = SubjectRecord.new("structured", "Cardiology")
  subject.apply_delta("valves", "Valves", 2, 0)
  subject.apply_delta("valves", "Valves", -10, -3)
  assert subject.units.find("valves").item_count == 0
  assert subject.item_count == 0
  assert subject.card_count == 0


def test_negative_delta_does_not_create_a_unit() -> None:
  subject = SubjectRecord.new("structured", "Cardiology")
  subject.apply_delta("ghost", "Ghost", -2, 0)
  assert subject.unit_count() == 0


def test_named_units_are_sorted_names() -> None:
  subject = SubjectRecord.new("named", "Pharmacology")
  subject.apply_delta("diuretics", "Diuretics", 2, 0)
  subject.apply_delta("antibiotics", "Antibiotics", 1, 1)
  subject.apply_delta("diuretics", "Diuretics", 1, 0)
  assert isinstance(subject.units, NamedUnits)
  assert subject.units.names == ["Antibiotics", "Diuretics"]
  assert subject.item_count == 4
  assert subject.card_count == 1
  subject.apply_delta("diuretics", "Diuretics", -9, -9)
  assert subject.item_count == 0
  assert subject.card_count == 0


def test_units_from_json_round_trip_shapes() -> None:
  structured = units_from_json("structured", [{"name": "Heart Valves", "itemCount": 2}])
  assert structured.find("heart_valves").item_count == 2
  named = units_from_json("named", ["Zeta", "Alpha"])
  assert named.to_json() == ["Alpha", "Zeta"]


def test_subject_to_dict() -> None:
  subject = SubjectRecord.new("structured", "Cardiology")
  subject.apply_delta("valves", "Valves", 1, 2)
  data = subject.to_dict()
  assert data["key"] == "cardiology"
  assert data["unitCount"] == 1
  assert data["units"][0]["cardCount"] == 2
