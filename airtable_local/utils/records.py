"""Record and query-result types used by the CSV and in-memory backends."""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from airtable_local.errors import ValidationError
from airtable_local.interfaces import FieldSet, SortSpec
from airtable_local.utils.values import to_comparable_string

NAME_FIELD = "Name"
SORT_DIRECTIONS = ("asc", "desc")


def display_name(fields: FieldSet, record_id: str) -> str:
    return to_comparable_string(fields.get(NAME_FIELD)) or record_id


class LocalRecord:
    """A row held in process memory. Mutated only through its owning table."""

    def __init__(self, record_id: str, fields: Optional[FieldSet] = None):
        self._id = record_id
        self._fields: FieldSet = dict(fields or {})
        self._name = display_name(self._fields, record_id)

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    def get_cell_value(self, field_name_or_id: str) -> Any:
        return self._fields.get(field_name_or_id)

    def get_cell_value_as_string(self, field_name_or_id: str) -> str:
        return to_comparable_string(self.get_cell_value(field_name_or_id))

    def _update_fields(self, fields: FieldSet) -> None:
        self._fields.update(fields)
        if NAME_FIELD in fields:
            self._name = display_name(self._fields, self._id)

    def _get_all_fields(self) -> FieldSet:
        return dict(self._fields)

    def __repr__(self) -> str:
        return f"LocalRecord(id={self._id!r}, name={self.name!r})"


class RecordQueryResult:
    """Ordered, immutable result of a select with O(1) lookup by id."""

    def __init__(self, records: Iterable[Any]):
        self._records = tuple(records)
        self._by_id: Dict[str, Any] = {record.id: record for record in self._records}

    @property
    def records(self):
        return self._records

    def get_record(self, record_id: str) -> Optional[Any]:
        return self._by_id.get(record_id)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)


def validate_sorts(sorts: Optional[Sequence[SortSpec]]) -> None:
    for sort in sorts or ():
        if not sort.get("field"):
            raise ValidationError("Sort entries need a field name", "sorts", sort)
        if sort.get("direction", "asc") not in SORT_DIRECTIONS:
            raise ValidationError(
                f'Invalid sort direction "{sort.get("direction")}" (expected "asc" or "desc")', "sorts", sort
            )


def select_local_records(
    records: Iterable[Any],
    record_ids: Optional[Sequence[str]] = None,
    sorts: Optional[Sequence[SortSpec]] = None,
) -> List[Any]:
    """
    Filter by id (keeping stored order) then apply a stable multi-key sort.

    Sorts are applied last-declared first so the first-declared key dominates.
    Comparison is lexical on the string form, so "10" sorts before "9".
    """
    selected = list(records)

    if record_ids is not None:
        wanted = set(record_ids)
        selected = [record for record in selected if record.id in wanted]

    for sort in reversed(list(sorts or ())):
        field = sort["field"]
        selected.sort(
            key=lambda record: to_comparable_string(record.get_cell_value(field)),
            reverse=sort.get("direction", "asc") == "desc",
        )

    return selected
