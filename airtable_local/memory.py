"""
In-memory backend

Pure simulation of an Airtable base for unit tests. Every table keeps an
append-only CallLog of the arguments passed to select/update/create/delete so
tests can assert on what a script asked for. Operations are coroutines for
interface parity but never suspend.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from airtable_local.errors import FieldNotFoundError, RecordNotFoundError, TableNotFoundError
from airtable_local.interfaces import FieldDescriptor, FieldSet, RecordOrId, SortSpec
from airtable_local.utils.records import LocalRecord, RecordQueryResult, select_local_records, validate_sorts
from airtable_local.utils.values import (
    batch_entry,
    format_record_id,
    next_record_sequence,
    record_id_of,
    validate_field_set,
)

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = (
    FieldDescriptor("fldName", "Name", "singleLineText"),
    FieldDescriptor("fldStatus", "Status", "singleSelect"),
)

SELECT = "select_records_async"
UPDATE = "update_record_async"
CREATE = "create_record_async"
DELETE = "delete_record_async"


class CallLog:
    """Append-only log of table calls, keyed by method name."""

    def __init__(self):
        self._entries: List[Tuple[str, Any]] = []

    def append(self, method: str, arguments: Any) -> None:
        self._entries.append((method, arguments))

    def calls(self, method: str) -> List[Any]:
        return [arguments for name, arguments in self._entries if name == method]

    def count(self, method: str) -> int:
        return len(self.calls(method))

    def reset(self) -> None:
        self._entries = []

    def __len__(self) -> int:
        return len(self._entries)


def _split_row(row: Mapping[str, Any]) -> Tuple[str, FieldSet]:
    """{"id": ..., <field>: ...} -> (id or "", fields)."""
    fields = {key: value for key, value in row.items() if key != "id"}
    return row.get("id") or "", fields


class MemoryTable:
    def __init__(
        self,
        name: str,
        records: Optional[Iterable[Union[LocalRecord, Mapping[str, Any]]]] = None,
        fields: Optional[Sequence[FieldDescriptor]] = None,
        table_id: Optional[str] = None,
    ):
        self.name = name
        self.id = table_id or name
        self._fields = list(fields) if fields else list(DEFAULT_FIELDS)
        self._records: Dict[str, LocalRecord] = {}

        rows = [row if isinstance(row, LocalRecord) else _split_row(row) for row in records or ()]
        # Rows without an id get the next sequence after the highest explicit id
        self._next_sequence = next_record_sequence(
            row.id if isinstance(row, LocalRecord) else row[0] for row in rows
        )
        for row in rows:
            if isinstance(row, LocalRecord):
                self._records[row.id] = row
                continue
            record_id, fields = row
            if not record_id:
                record_id = self._take_record_id()
            self._records[record_id] = LocalRecord(record_id, fields)
        self.calls = CallLog()

    def _take_record_id(self) -> str:
        record_id = format_record_id(self._next_sequence)
        self._next_sequence += 1
        return record_id

    @property
    def fields(self) -> List[FieldDescriptor]:
        return list(self._fields)

    async def select_records_async(
        self,
        record_ids: Optional[Sequence[str]] = None,
        sorts: Optional[Sequence[SortSpec]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> RecordQueryResult:
        self.calls.append(SELECT, {"record_ids": record_ids, "sorts": sorts, "fields": fields})
        validate_sorts(sorts)
        return RecordQueryResult(select_local_records(self._records.values(), record_ids, sorts))

    async def update_record_async(self, record_or_id: RecordOrId, fields: FieldSet) -> None:
        record_id = record_id_of(record_or_id)
        self.calls.append(UPDATE, {"id": record_id, "fields": dict(fields) if isinstance(fields, Mapping) else fields})
        validate_field_set(fields)

        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id, self.name)
        record._update_fields(fields)

    async def update_records_async(self, records: Sequence[Mapping[str, Any]]) -> None:
        updates = [(batch_entry(entry, "id"), batch_entry(entry, "fields")) for entry in records]
        for record_id, fields in updates:
            await self.update_record_async(record_id, fields)

    async def create_record_async(self, fields: FieldSet) -> str:
        self.calls.append(CREATE, dict(fields) if isinstance(fields, Mapping) else fields)
        validate_field_set(fields)

        record_id = self._take_record_id()
        self._records[record_id] = LocalRecord(record_id, fields)
        return record_id

    async def create_records_async(self, records: Sequence[Mapping[str, Any]]) -> List[str]:
        field_sets = [batch_entry(entry, "fields") for entry in records]
        created = []
        for fields in field_sets:
            created.append(await self.create_record_async(fields))
        return created

    async def delete_record_async(self, record_or_id: RecordOrId) -> None:
        record_id = record_id_of(record_or_id)
        self.calls.append(DELETE, record_id)

        if record_id not in self._records:
            raise RecordNotFoundError(record_id, self.name)
        del self._records[record_id]

    async def delete_records_async(self, records_or_ids: Sequence[RecordOrId]) -> None:
        for record_or_id in records_or_ids:
            await self.delete_record_async(record_or_id)

    def get_field(self, name_or_id: str) -> FieldDescriptor:
        for field in self._fields:
            if field.name == name_or_id or field.id == name_or_id:
                return field
        raise FieldNotFoundError(name_or_id, self.name)

    # --- Test assertions ------------------------------------------------------------
    def get_record_by_id(self, record_id: str) -> Optional[LocalRecord]:
        return self._records.get(record_id)

    def all_records(self) -> List[LocalRecord]:
        return list(self._records.values())


class MemoryBase:
    def __init__(self, tables: Optional[Iterable[MemoryTable]] = None):
        self._tables: List[MemoryTable] = []
        self._table_map: Dict[str, MemoryTable] = {}
        for table in tables or ():
            self._register(table)

    @property
    def tables(self) -> List[MemoryTable]:
        return list(self._tables)

    def get_table(self, name_or_id: str) -> MemoryTable:
        table = self._table_map.get(name_or_id)
        if table is None:
            raise TableNotFoundError(name_or_id, [t.name for t in self._tables])
        return table

    def add_table(
        self,
        table: Union[MemoryTable, str],
        rows: Optional[Iterable[Union[LocalRecord, Mapping[str, Any]]]] = None,
        fields: Optional[Sequence[FieldDescriptor]] = None,
    ) -> MemoryTable:
        """Register a table, or build one from a name plus rows shaped {"id": ..., <field>: ...}."""
        if isinstance(table, str):
            table = MemoryTable(table, rows, fields)
        self._register(table)
        return table

    def _register(self, table: MemoryTable) -> None:
        existing = self._table_map.get(table.name)
        if existing is not None:
            logger.debug(f"Replacing in-memory table {table.name}")
            self._tables.remove(existing)
            self._table_map = {key: value for key, value in self._table_map.items() if value is not existing}
        self._tables.append(table)
        self._table_map[table.id] = table
        self._table_map[table.name] = table


def create_sample_base() -> Tuple[MemoryBase, MemoryTable]:
    """A base with one five-row "Tasks" table, handy for demos and tests."""
    records = [
        {"id": "rec001", "Name": "Task 1", "Status": "Pending", "Priority": "High"},
        {"id": "rec002", "Name": "Task 2", "Status": "Completed", "Priority": "Medium"},
        {"id": "rec003", "Name": "Task 3", "Status": "Pending", "Priority": "Low"},
        {"id": "rec004", "Name": "Task 4", "Status": "In Progress", "Priority": "High"},
        {"id": "rec005", "Name": "Task 5", "Status": "Pending", "Priority": "Medium"},
    ]
    fields = [
        FieldDescriptor("fldName", "Name", "singleLineText"),
        FieldDescriptor(
            "fldStatus",
            "Status",
            "singleSelect",
            {"choices": [{"name": "Pending"}, {"name": "In Progress"}, {"name": "Completed"}]},
        ),
        FieldDescriptor(
            "fldPriority",
            "Priority",
            "singleSelect",
            {"choices": [{"name": "Low"}, {"name": "Medium"}, {"name": "High"}]},
        ),
    ]
    table = MemoryTable("Tasks", records, fields, table_id="tblTasks")
    return MemoryBase([table]), table
