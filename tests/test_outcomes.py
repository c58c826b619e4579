"""Tests for outcome parsing/serialisation and the entity field setters.

Outcomes arrive as JSON written by older clients, so parsing must be
lenient: bad payloads are dropped, never raised.
"""

import json

import pytest

from mnemora.domain.fields import EntityType, validate_name
from mnemora.domain.outcomes import Outcome, parse_outcomes, serialize_outcomes
from mnemora.errors import DomainValidationError
from mnemora.models import Entity

WORLD = "7f0c1c5e-4a59-4a39-9d3c-0b5d3c7f1a10"
TARGET = "2b7d9f3e-1c44-4e8a-9a55-6f2b1e7c9d01"


class TestOutcomeSerialization:

    def test_optional_fields_survive_and_absent_ones_stay_absent(self):
        outcomes = [
            Outcome(entity_id=TARGET, field="name", to_value="Queen Vol",
                    from_value="Lady Vol", description="Crowned"),
            Outcome(entity_id=TARGET, field="motivation", to_value="Revenge"),
        ]
        wire = serialize_outcomes(outcomes)
        parsed = parse_outcomes(wire)

        assert parsed[0].from_value == "Lady Vol"
        assert parsed[0].description == "Crowned"
        assert parsed[1].from_value is None
        assert parsed[1].description is None
        assert "undefined" not in wire
        assert "fromValue" not in json.loads(wire)[1]

    def test_wire_keys_use_camel_case(self):
        wire = json.loads(serialize_outcomes([Outcome(entity_id=TARGET, field="goals", to_value="x")]))
        assert wire == [{"entityID": TARGET, "field": "goals", "toValue": "x"}]

    def test_accepts_already_decoded_list(self):
        parsed = parse_outcomes([{"entityID": TARGET, "field": "goals", "toValue": "x"}])
        assert parsed[0].entity_id == TARGET


class TestLenientParsing:

    @pytest.mark.parametrize("raw", [None, "", "not json", "{\"a\": 1}", "42"])
    def test_non_arrays_parse_to_empty(self, raw):
        assert parse_outcomes(raw) == []

    def test_malformed_entries_are_dropped(self):
        raw = json.dumps([
            {"entityID": TARGET, "field": "goals", "toValue": "keep"},
            {"entityID": TARGET, "field": "goals"},
            {"entityID": 7, "field": "goals", "toValue": "x"},
            "a string",
            {"entityID": TARGET, "field": "goals", "toValue": "x", "fromValue": 3},
        ])
        parsed = parse_outcomes(raw)
        assert [o.to_value for o in parsed] == ["keep"]


class TestEntitySetters:
    """Setters report whether anything changed so re-application is a no-op."""

    def _character(self):
        return Entity.new(type=EntityType.CHARACTER, name="Lady Vol", world_id=WORLD)

    def test_rename_same_name_is_no_change(self):
        entity = self._character()
        before = entity.modified_at
        assert entity.rename("  Lady Vol ") is False
        assert entity.modified_at == before

    def test_rename_rejects_blank(self):
        with pytest.raises(DomainValidationError) as exc:
            self._character().rename("   ")
        assert exc.value.code == "VALIDATION_NAME"

    def test_unknown_type_field_returns_none(self):
        assert self._character().set_type_specific_field("ideology", "x") is None

    def test_empty_value_clears_type_field(self):
        entity = self._character()
        assert entity.set_type_specific_field("motivation", "Power") is True
        assert entity.set_type_specific_field("motivation", "") is True
        assert entity.get_type_specific_field("motivation") is None

    def test_outcomes_field_routes_to_typed_list(self):
        event = Entity.new(type=EntityType.EVENT, name="Coronation", world_id=WORLD)
        raw = json.dumps([{"entityID": TARGET, "field": "name", "toValue": "Queen Vol"}])
        assert event.set_type_specific_field("outcomes", raw) is True
        assert event.get_outcomes()[0].to_value == "Queen Vol"
        assert event.set_type_specific_field("outcomes", raw) is False

    def test_name_length_limit(self):
        assert validate_name("x" * 200) == "x" * 200
        with pytest.raises(DomainValidationError):
            validate_name("x" * 201)
