"""
Test suite for value coercion, CSV cell inference and write-input validation.
"""

import pytest

from airtable_local.errors import ValidationError
from airtable_local.utils.records import LocalRecord
from airtable_local.utils.values import (
    batch_entry,
    format_record_id,
    next_record_sequence,
    parse_cell_text,
    record_id_of,
    to_comparable_string,
    validate_field_set,
)


class TestToComparableString:
    """Canonical string form of field values."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ""),
            ("", ""),
            ("hello", "hello"),
            (True, "true"),
            (False, "false"),
            (42, "42"),
            (2.0, "2"),
            (2.5, "2.5"),
            (0, "0"),
        ],
    )
    def test_scalars(self, value, expected):
        assert to_comparable_string(value) == expected

    def test_structures_become_compact_json(self):
        assert to_comparable_string({"a": 1}) == '{"a":1}'
        assert to_comparable_string(["x", 2]) == '["x",2]'

    def test_equal_structures_compare_equal(self):
        assert to_comparable_string({"a": [1, 2]}) == to_comparable_string({"a": [1, 2]})

    def test_non_ascii_kept(self):
        assert to_comparable_string(["café"]) == '["café"]'


class TestParseCellText:
    """Type inference for CSV cells."""

    def test_empty_is_none(self):
        assert parse_cell_text("") is None

    @pytest.mark.parametrize("text, expected", [("true", True), ("TRUE", True), ("False", False)])
    def test_booleans_any_case(self, text, expected):
        assert parse_cell_text(text) is expected

    def test_integers(self):
        assert parse_cell_text("42") == 42
        assert isinstance(parse_cell_text("42"), int)

    def test_floats(self):
        assert parse_cell_text("3.14") == 3.14
        assert parse_cell_text("-0.5") == -0.5

    def test_non_finite_numbers_stay_strings(self):
        assert parse_cell_text("nan") == "nan"
        assert parse_cell_text("inf") == "inf"

    def test_json_array_and_object(self):
        assert parse_cell_text('["a","b"]') == ["a", "b"]
        assert parse_cell_text('{"k": 1}') == {"k": 1}

    def test_malformed_json_stays_string(self):
        assert parse_cell_text("[not json") == "[not json"
        assert parse_cell_text("{oops}") == "{oops}"

    def test_plain_text(self):
        assert parse_cell_text("Task 1") == "Task 1"
        assert parse_cell_text("1_000") == "1_000"
        assert parse_cell_text("١٢") == "١٢"

    def test_number_forms(self):
        assert parse_cell_text("+7") == 7
        assert parse_cell_text(".5") == 0.5
        assert parse_cell_text("1e3") == 1000.0
        assert parse_cell_text(" 12 ") == 12
        assert parse_cell_text("1e999") == "1e999"
        assert parse_cell_text("0x1F") == "0x1F"

    def test_roundtrip_through_string_form(self):
        for value in [True, 7, 1.5, ["x", 1], {"a": None}]:
            assert parse_cell_text(to_comparable_string(value)) == value


class TestValidateFieldSet:
    """Malformed writes are rejected before touching a backend."""

    def test_accepts_json_values(self):
        validate_field_set({"Name": "x", "Count": 3, "Done": False, "Tags": ["a"], "Meta": {"k": 1}, "Gone": None})

    def test_rejects_non_mapping(self):
        with pytest.raises(ValidationError):
            validate_field_set(["Name", "x"])

    def test_rejects_blank_key(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_field_set({"  ": "x"})
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_rejects_unrepresentable_value(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_field_set({"When": object()})
        assert exc_info.value.field == "When"

    def test_rejects_non_finite_float(self):
        with pytest.raises(ValidationError):
            validate_field_set({"Score": float("nan")})


class TestRecordIds:
    """Record id helpers."""

    def test_record_id_of_accepts_string_and_record(self):
        assert record_id_of("rec1") == "rec1"
        assert record_id_of(LocalRecord("rec2", {})) == "rec2"

    @pytest.mark.parametrize("bad", ["", "   ", None, 12])
    def test_record_id_of_rejects_blank(self, bad):
        with pytest.raises(ValidationError):
            record_id_of(bad)

    def test_format_record_id_is_zero_padded(self):
        assert format_record_id(7) == "rec0000000007"

    def test_next_sequence_follows_highest(self):
        assert next_record_sequence([]) == 1
        assert next_record_sequence(["rec001", "rec0000000012", "recABC"]) == 13

    def test_batch_entry(self):
        assert batch_entry({"id": "rec1", "fields": {}}, "id") == "rec1"
        with pytest.raises(ValidationError) as exc_info:
            batch_entry({"id": "rec1"}, "fields")
        assert exc_info.value.field == "fields"
        with pytest.raises(ValidationError):
            batch_entry("rec1", "id")


class TestLocalRecord:
    """Record accessors."""

    def test_name_from_name_field(self):
        assert LocalRecord("rec1", {"Name": "Alpha"}).name == "Alpha"

    def test_name_falls_back_to_id(self):
        assert LocalRecord("rec1", {"Name": ""}).name == "rec1"
        assert LocalRecord("rec1", {}).name == "rec1"

    def test_missing_field(self):
        record = LocalRecord("rec1", {"Name": "Alpha"})
        assert record.get_cell_value("Nope") is None
        assert record.get_cell_value_as_string("Nope") == ""

    def test_name_follows_updates(self):
        record = LocalRecord("rec1", {"Name": "Alpha"})
        record._update_fields({"Name": "Beta"})
        assert record.name == "Beta"

    def test_id_and_name_are_read_only(self):
        record = LocalRecord("rec1", {"Name": "Alpha"})
        with pytest.raises(AttributeError):
            record.name = "Beta"
        with pytest.raises(AttributeError):
            record.id = "rec2"
        assert (record.id, record.name) == ("rec1", "Alpha")
