"""Value helpers shared by all backends: string coercion, CSV cell inference, input validation."""

import json
import math
import re
from typing import Any, Iterable, Mapping

from airtable_local.errors import ValidationError

RECORD_ID_PREFIX = "rec"
RECORD_ID_WIDTH = 10

_JSON_SCALARS = (str, int, float, bool, type(None))
_NUMBER_PATTERN = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")


def to_comparable_string(value: Any) -> str:
    """
    Convert any field value to its canonical string form.

    Used for getCellValueAsString, sorting, dedup keys and logging. Objects and
    arrays become compact JSON, so two JSON-equal structures compare equal.

    Args:
        value: Any field value (None, bool, number, str, list, dict)

    Returns:
        "" for None, "true"/"false" for booleans, JSON for list/dict,
        otherwise the natural string form (integral floats without ".0")
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_cell_text(text: Any) -> Any:
    """
    Infer the richest type for a CSV cell.

    Precedence: empty -> None, "true"/"false" (any case) -> bool, number,
    bracket/brace delimited JSON -> parsed structure, else the raw string.
    """
    if text is None or text == "":
        return None
    if not isinstance(text, str):
        return text

    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    number = _parse_number(text)
    if number is not None:
        return number

    if (text.startswith("[") and text.endswith("]")) or (text.startswith("{") and text.endswith("}")):
        try:
            return json.loads(text)
        except ValueError:
            pass

    return text


def _parse_number(text: str):
    stripped = text.strip()
    # ASCII decimal only: no "1_000", no non-Latin digits, no "nan"/"inf"
    if not _NUMBER_PATTERN.fullmatch(stripped):
        return None
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        number = float(stripped)
    except ValueError:
        return None
    # overflow such as "1e999"
    if not math.isfinite(number):
        return None
    return number


# ============================================================================
# VALIDATION
# ============================================================================

def _is_json_value(value: Any) -> bool:
    if isinstance(value, _JSON_SCALARS):
        return not (isinstance(value, float) and not math.isfinite(value))
    if isinstance(value, (list, tuple)):
        return all(_is_json_value(item) for item in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_json_value(v) for k, v in value.items())
    return False


def validate_field_set(fields: Any) -> None:
    """
    Reject malformed write input before any backend call is made.

    Raises:
        ValidationError: fields is not a mapping, a key is blank/not a string,
            or a value cannot be represented as a cell value (use None to clear)
    """
    if not isinstance(fields, Mapping):
        raise ValidationError("Fields must be a mapping of field name to value", "fields", fields)

    for key, value in fields.items():
        if not isinstance(key, str) or not key.strip():
            raise ValidationError(f'Invalid field name: "{key}"', str(key), value)
        if not _is_json_value(value):
            raise ValidationError(
                f'Field "{key}" has unsupported value of type {type(value).__name__}. Use None to clear a field.',
                key,
                value,
            )


def record_id_of(record_or_id: Any) -> str:
    """Accept a record object or a bare id and return the id."""
    record_id = record_or_id if isinstance(record_or_id, str) else getattr(record_or_id, "id", None)
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValidationError("Invalid record ID: expected non-empty string", "id", record_or_id)
    return record_id


def batch_entry(entry: Any, key: str) -> Any:
    """Read "id" or "fields" from one entry of a batch update/create."""
    if not isinstance(entry, Mapping) or key not in entry:
        raise ValidationError(f'Batch entry is missing "{key}"', key, entry)
    return entry[key]


# ============================================================================
# RECORD IDS
# ============================================================================

def format_record_id(sequence: int) -> str:
    """rec + zero-padded sequence, e.g. rec0000000007."""
    return f"{RECORD_ID_PREFIX}{sequence:0{RECORD_ID_WIDTH}d}"


def next_record_sequence(existing_ids: Iterable[str]) -> int:
    """One past the largest numeric part found in the existing ids (1 for none)."""
    highest = 0
    for record_id in existing_ids:
        digits = re.sub(r"\D", "", record_id)
        if digits:
            highest = max(highest, int(digits))
    return highest + 1
