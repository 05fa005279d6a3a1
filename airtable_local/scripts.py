"""
Table-manipulation scripts

Each script takes a Base (Airtable, CSV or in-memory) and only uses the shared
Base/Table/Record surface, so the same code runs against any backend.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from airtable_local.interfaces import Base, FieldSet, Record

logger = logging.getLogger(__name__)

EMPTY_LABEL = "(empty)"


def inspect(label: str, data: Any) -> None:
    """Log a labelled, pretty-printed JSON view of `data`."""
    logger.info(f"{label}:\n{json.dumps(data, indent=2, default=str)}")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        timestamp = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


async def run_script(base: Base, preview: int = 5) -> Dict[str, int]:
    """List the tables in the base and preview the first table's records."""
    logger.info("🚀 Script started")
    tables = base.tables
    logger.info(f"📊 Found {len(tables)} table(s) in this base")
    for table in tables:
        logger.info(f"  - {table.name} ({table.id})")

    record_count = 0
    if tables:
        first_table = tables[0]
        logger.info(f'📋 Fetching records from "{first_table.name}"...')
        result = await first_table.select_records_async()
        record_count = len(result.records)
        logger.info(f"✅ Retrieved {record_count} record(s)")

        for record in result.records[:preview]:
            logger.info(f"  - Record: {record.name} ({record.id})")
        if record_count > preview:
            logger.info(f"  ... and {record_count - preview} more")

    logger.info("✨ Script completed successfully!")
    return {"tables": len(tables), "records": record_count}


async def archive_old_records(
    base: Base,
    table_name: str,
    date_field: str,
    days_old: int,
    archive_field: str = "Archived",
) -> Dict[str, int]:
    """
    Flag records whose date field is older than `days_old` days.

    Args:
        base: Any backend
        table_name: Table to scan
        date_field: ISO 8601 date/timestamp field
        days_old: Age threshold in days
        archive_field: Checkbox field set to True on archived records

    Returns:
        {"archived": n, "total": records scanned}
    """
    table = base.get_table(table_name)
    result = await table.select_records_async()
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)

    to_archive = []
    for record in result.records:
        timestamp = _parse_timestamp(record.get_cell_value(date_field))
        if timestamp is not None and timestamp < cutoff:
            to_archive.append({"id": record.id, "fields": {archive_field: True}})

    if to_archive:
        await table.update_records_async(to_archive)

    logger.info(f'Archived {len(to_archive)} of {len(result.records)} records in "{table_name}" older than {days_old} days')
    return {"archived": len(to_archive), "total": len(result.records)}


async def find_duplicates_by_field(base: Base, table_name: str, field_name: str) -> Dict[str, Any]:
    """
    Group records by a field compared case-insensitively after trimming.

    Returns:
        {"duplicates": {normalized value: [record ids]}, "count": records beyond
        the first in every group}
    """
    table = base.get_table(table_name)
    result = await table.select_records_async()

    groups: Dict[str, List[str]] = {}
    for record in result.records:
        key = record.get_cell_value_as_string(field_name).strip().lower()
        if not key:
            continue
        groups.setdefault(key, []).append(record.id)

    duplicates = {value: ids for value, ids in groups.items() if len(ids) > 1}
    count = sum(len(ids) - 1 for ids in duplicates.values())

    if duplicates:
        logger.warning(f'Found {len(duplicates)} duplicate value(s) of "{field_name}" in "{table_name}"')
        for value, ids in duplicates.items():
            logger.info(f'  "{value}" appears {len(ids)} times: {", ".join(ids)}')
    else:
        logger.info(f'No duplicates of "{field_name}" in "{table_name}"')

    return {"duplicates": duplicates, "count": count}


async def copy_records_between_tables(
    base: Base,
    source_table: str,
    target_table: str,
    field_mapping: Mapping[str, str],
    filter_fn: Optional[Callable[[Record], bool]] = None,
) -> Dict[str, int]:
    """Copy matching records, renaming source fields to target fields via `field_mapping`."""
    source = base.get_table(source_table)
    target = base.get_table(target_table)
    result = await source.select_records_async()

    to_create = []
    for record in result.records:
        if filter_fn is not None and not filter_fn(record):
            continue
        fields: FieldSet = {
            target_field: record.get_cell_value(source_field)
            for source_field, target_field in field_mapping.items()
        }
        to_create.append({"fields": fields})

    if to_create:
        await target.create_records_async(to_create)

    skipped = len(result.records) - len(to_create)
    logger.info(f'Copied {len(to_create)} records from "{source_table}" to "{target_table}" ({skipped} skipped)')
    return {"copied": len(to_create), "skipped": skipped}


async def bulk_update_by_condition(base: Base, table_name: str, conditions: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """
    Apply `updates` to every record whose `field` equals `value`.

    A record matching several conditions gets the merged updates in one write.
    Conditions are evaluated against the values read before any update.
    """
    table = base.get_table(table_name)
    result = await table.select_records_async()
    conditions = list(conditions)

    to_update = []
    for record in result.records:
        merged: FieldSet = {}
        for condition in conditions:
            if record.get_cell_value(condition["field"]) == condition["value"]:
                merged.update(condition["updates"])
        if merged:
            to_update.append({"id": record.id, "fields": merged})

    if to_update:
        await table.update_records_async(to_update)

    logger.info(f'Updated {len(to_update)} records in "{table_name}"')
    return {"updated": len(to_update)}


async def generate_table_statistics(base: Base, table_name: str, field_name: str) -> Dict[str, int]:
    """Count records per value of a field; empty values are counted under "(empty)"."""
    table = base.get_table(table_name)
    result = await table.select_records_async()

    counts: Dict[str, int] = {}
    for record in result.records:
        key = record.get_cell_value_as_string(field_name) or EMPTY_LABEL
        counts[key] = counts.get(key, 0) + 1

    total = len(result.records)
    logger.info(f'Distribution of "{field_name}" in "{table_name}" ({total} records):')
    for value, count in sorted(counts.items(), key=lambda item: item[1], reverse=True):
        logger.info(f"  {value:<20} {count:>4} ({count / total * 100:.1f}%)")

    return counts


async def cleanup_empty_records(base: Base, table_name: str, required_fields: Iterable[str]) -> Dict[str, int]:
    """Delete records where every one of `required_fields` is empty."""
    table = base.get_table(table_name)
    result = await table.select_records_async()
    required_fields = list(required_fields)

    empty = [
        record.id
        for record in result.records
        if all(not record.get_cell_value_as_string(field).strip() for field in required_fields)
    ]

    if empty:
        await table.delete_records_async(empty)

    logger.info(f'Deleted {len(empty)} empty records of {len(result.records)} in "{table_name}"')
    return {"deleted": len(empty), "total": len(result.records)}


async def calculate_numeric_stats(base: Base, table_name: str, field_name: str) -> Dict[str, float]:
    """count/sum/avg/min/max/median over the numeric values of a field."""
    table = base.get_table(table_name)
    result = await table.select_records_async()

    values = sorted(
        value
        for value in (record.get_cell_value(field_name) for record in result.records)
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    )

    if not values:
        logger.warning(f'No numeric values found in "{field_name}"')
        return {"count": 0, "sum": 0, "avg": 0, "min": 0, "max": 0, "median": 0}

    count = len(values)
    total = sum(values)
    middle = count // 2
    median = values[middle] if count % 2 else (values[middle - 1] + values[middle]) / 2

    stats = {
        "count": count,
        "sum": total,
        "avg": total / count,
        "min": values[0],
        "max": values[-1],
        "median": median,
    }
    inspect(f'Statistics for "{field_name}"', stats)
    return stats


async def search_all_tables(base: Base, search_term: str) -> Dict[str, List[Record]]:
    """Case-insensitive search of record names across every known table."""
    needle = search_term.lower()
    results: Dict[str, List[Record]] = {}

    for table in base.tables:
        result = await table.select_records_async()
        matches = [record for record in result.records if needle in record.name.lower()]
        if matches:
            results[table.name] = matches

    total = sum(len(matches) for matches in results.values())
    logger.info(f'Found {total} match(es) for "{search_term}" across {len(results)} table(s)')
    return results
