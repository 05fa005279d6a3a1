"""
CSV Mirror Backend

Data Source: a directory of CSV files, one per table (file stem = table name)
File Layout:
  - Header row: column names; the column named "id" (any case) holds record ids
  - One record per row; rows without an id get a synthesized rec0000000001-style id

Type Inference (once, at load): "" -> None, true/false -> bool, numbers,
bracket/brace JSON -> parsed structure, anything else stays a string.

Persistence: with auto_save enabled every mutation rewrites the whole file
(header + id column + every declared column). With auto_save disabled the file
is never touched. The file is owned by the table that loaded it; there is no
locking, last write wins.
"""

import asyncio
import csv
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from airtable_local.config import AppConfig, CsvConfig, resolve_data_dir
from airtable_local.errors import CsvParseError, FieldNotFoundError, RecordNotFoundError, TableNotFoundError
from airtable_local.interfaces import FieldDescriptor, FieldSet, RecordOrId, SortSpec
from airtable_local.utils.records import LocalRecord, RecordQueryResult, select_local_records, validate_sorts
from airtable_local.utils.values import (
    batch_entry,
    format_record_id,
    next_record_sequence,
    parse_cell_text,
    record_id_of,
    to_comparable_string,
    validate_field_set,
)

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"
ID_COLUMN = "id"
DEFAULT_FIELD_TYPE = "singleLineText"


def to_cell_text(value: Any) -> str:
    """Serialize a field value so parse_cell_text recovers the same typed value."""
    return to_comparable_string(value)


def write_records_csv(path: Union[str, Path], records: Iterable[Any], field_names: Sequence[str], id_column: str = ID_COLUMN) -> int:
    """
    Write records (anything with .id and .get_cell_value) to a CSV file.

    Returns:
        Number of rows written
    """
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow([id_column, *field_names])
        for record in records:
            writer.writerow([record.id, *(to_cell_text(record.get_cell_value(name)) for name in field_names)])
            count += 1
    return count


class CsvTable:
    def __init__(self, name: str, csv_path: Union[str, Path], auto_save: bool = False):
        self.name = name
        self.id = name
        self.csv_path = Path(csv_path)
        self.auto_save = auto_save
        self._id_column = ID_COLUMN
        self._field_names: List[str] = []
        self._records: Dict[str, LocalRecord] = {}
        self._next_sequence = 1

        self._load_from_csv()

    # --- Loading --------------------------------------------------------------------
    def _load_from_csv(self) -> None:
        if not self.csv_path.exists():
            logger.warning(f"CSV file not found: {self.csv_path}")
            return

        # utf-8-sig drops the BOM spreadsheet exports prepend
        with open(self.csv_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.reader(f)
            try:
                header = next(reader, None)
                rows = [(reader.line_num, row) for row in reader]
            except csv.Error as e:
                raise CsvParseError(str(e), str(self.csv_path), reader.line_num) from e
            except UnicodeDecodeError as e:
                raise CsvParseError(f"file is not valid UTF-8 ({e.reason})", str(self.csv_path)) from e

        if not header:
            return

        columns = [column.strip() for column in header]
        id_index = next((i for i, column in enumerate(columns) if column.lower() == ID_COLUMN), None)
        if id_index is not None:
            self._id_column = columns[id_index]
        self._field_names = [column for i, column in enumerate(columns) if i != id_index]

        parsed = []
        for line_num, row in rows:
            if not any(cell.strip() for cell in row):
                continue
            if len(row) > len(columns):
                raise CsvParseError(
                    f"row has {len(row)} values but the header declares {len(columns)} columns",
                    str(self.csv_path),
                    line_num,
                )
            cells = [cell.strip() for cell in row] + [""] * (len(columns) - len(row))
            record_id = cells[id_index] if id_index is not None else ""
            fields = {
                column: parse_cell_text(cells[i])
                for i, column in enumerate(columns)
                if i != id_index
            }
            parsed.append((record_id, fields))

        # Synthesized ids start after the highest explicit id so they never collide
        self._next_sequence = next_record_sequence(record_id for record_id, _ in parsed if record_id)
        for record_id, fields in parsed:
            if not record_id:
                record_id = self._take_record_id()
            if record_id in self._records:
                logger.warning(f"Duplicate record id {record_id} in {self.csv_path}; keeping the last row")
            self._records[record_id] = LocalRecord(record_id, fields)

    def _take_record_id(self) -> str:
        record_id = format_record_id(self._next_sequence)
        self._next_sequence += 1
        return record_id

    # --- Persistence ----------------------------------------------------------------
    def _declare_fields(self, fields: FieldSet) -> None:
        for field_name in fields:
            if field_name not in self._field_names and field_name.lower() != ID_COLUMN:
                self._field_names.append(field_name)

    def _write_csv(self) -> int:
        return write_records_csv(self.csv_path, self._records.values(), self._field_names, self._id_column)

    async def save(self) -> None:
        """Rewrite the backing file from the current in-memory records."""
        count = await asyncio.to_thread(self._write_csv)
        logger.debug(f"Saved {count} records to {self.csv_path}")

    async def _save_if_enabled(self) -> None:
        if self.auto_save:
            await self.save()

    # --- Table API ------------------------------------------------------------------
    @property
    def fields(self) -> List[FieldDescriptor]:
        return [FieldDescriptor(f"fld{index}", name, DEFAULT_FIELD_TYPE) for index, name in enumerate(self._field_names)]

    async def select_records_async(
        self,
        record_ids: Optional[Sequence[str]] = None,
        sorts: Optional[Sequence[SortSpec]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> RecordQueryResult:
        validate_sorts(sorts)
        return RecordQueryResult(select_local_records(self._records.values(), record_ids, sorts))

    async def update_record_async(self, record_or_id: RecordOrId, fields: FieldSet) -> None:
        record_id = record_id_of(record_or_id)
        validate_field_set(fields)

        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id, self.name)

        record._update_fields(fields)
        self._declare_fields(fields)
        await self._save_if_enabled()

    async def update_records_async(self, records: Sequence[Mapping[str, Any]]) -> None:
        updates = [(batch_entry(entry, "id"), batch_entry(entry, "fields")) for entry in records]
        for record_id, fields in updates:
            await self.update_record_async(record_id, fields)

    async def create_record_async(self, fields: FieldSet) -> str:
        validate_field_set(fields)

        record_id = self._take_record_id()
        self._records[record_id] = LocalRecord(record_id, fields)
        self._declare_fields(fields)
        await self._save_if_enabled()
        return record_id

    async def create_records_async(self, records: Sequence[Mapping[str, Any]]) -> List[str]:
        field_sets = [batch_entry(entry, "fields") for entry in records]
        created = []
        for fields in field_sets:
            created.append(await self.create_record_async(fields))
        return created

    async def delete_record_async(self, record_or_id: RecordOrId) -> None:
        record_id = record_id_of(record_or_id)
        if record_id not in self._records:
            raise RecordNotFoundError(record_id, self.name)

        del self._records[record_id]
        await self._save_if_enabled()

    async def delete_records_async(self, records_or_ids: Sequence[RecordOrId]) -> None:
        for record_or_id in records_or_ids:
            await self.delete_record_async(record_or_id)

    def get_field(self, name_or_id: str) -> FieldDescriptor:
        for field in self.fields:
            if field.name == name_or_id or field.id == name_or_id:
                return field
        raise FieldNotFoundError(name_or_id, self.name)


class CsvBase:
    def __init__(self, data_dir: Union[str, Path], auto_save: bool = False):
        self.data_dir = Path(data_dir)
        self.auto_save = auto_save
        self._tables: List[CsvTable] = []
        self._table_map: Dict[str, CsvTable] = {}

        self._load_tables()

    def _load_tables(self) -> None:
        if not self.data_dir.exists():
            logger.warning(f"Data directory not found: {self.data_dir}")
            os.makedirs(self.data_dir, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")
            return

        csv_files = sorted(p for p in self.data_dir.iterdir() if p.is_file() and p.suffix == CSV_SUFFIX)
        for csv_path in csv_files:
            table = CsvTable(csv_path.stem, csv_path, self.auto_save)
            self._tables.append(table)
            self._table_map[table.name] = table

        logger.info(f"Loaded {len(csv_files)} table(s) from CSV: {', '.join(p.stem for p in csv_files)}")

    @property
    def tables(self) -> List[CsvTable]:
        return list(self._tables)

    def get_table(self, name_or_id: str) -> CsvTable:
        table = self._table_map.get(name_or_id)
        if table is None:
            raise TableNotFoundError(name_or_id, list(self._table_map))
        return table


def create_csv_base(config: Union[AppConfig, CsvConfig]) -> CsvBase:
    """Build a CsvBase from configuration (data dir resolved against the cwd)."""
    csv_config = config.csv if isinstance(config, AppConfig) else config
    return CsvBase(resolve_data_dir(csv_config), csv_config.auto_save)
