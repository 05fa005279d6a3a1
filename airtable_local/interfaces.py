"""Shared capability set implemented by the Airtable, CSV and in-memory backends.

Scripts are written against these Protocols only, so any backend can be
substituted without the script noticing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Protocol, Sequence, TypedDict, Union

FieldSet = Dict[str, Any]


class SortSpec(TypedDict, total=False):
    field: str
    direction: Literal["asc", "desc"]


@dataclass(frozen=True)
class FieldDescriptor:
    id: str
    name: str
    type: str = "singleLineText"
    options: Optional[Mapping[str, Any]] = None


class Record(Protocol):
    id: str
    name: str

    def get_cell_value(self, field_name_or_id: str) -> Any:
        """Value of the field, or None when absent/empty. Never raises."""
        ...

    def get_cell_value_as_string(self, field_name_or_id: str) -> str: ...


RecordOrId = Union[str, Record]


class QueryResult(Protocol):
    @property
    def records(self) -> Sequence[Record]: ...

    def get_record(self, record_id: str) -> Optional[Record]: ...


class Table(Protocol):
    id: str
    name: str

    @property
    def fields(self) -> List[FieldDescriptor]: ...

    async def select_records_async(
        self,
        record_ids: Optional[Sequence[str]] = None,
        sorts: Optional[Sequence[SortSpec]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> QueryResult: ...

    async def update_record_async(self, record_or_id: RecordOrId, fields: FieldSet) -> None: ...

    async def update_records_async(self, records: Sequence[Mapping[str, Any]]) -> None: ...

    async def create_record_async(self, fields: FieldSet) -> str: ...

    async def create_records_async(self, records: Sequence[Mapping[str, Any]]) -> List[str]: ...

    async def delete_record_async(self, record_or_id: RecordOrId) -> None: ...

    async def delete_records_async(self, records_or_ids: Sequence[RecordOrId]) -> None: ...

    def get_field(self, name_or_id: str) -> FieldDescriptor: ...


class Base(Protocol):
    @property
    def tables(self) -> List[Table]: ...

    def get_table(self, name_or_id: str) -> Table: ...
