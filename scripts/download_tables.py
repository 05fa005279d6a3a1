"""
Download Airtable tables into the CSV mirror.

Discovers every table in the base (schema.bases:read scope) or, if discovery
is refused, falls back to AIRTABLE_TABLE_NAMES. Each table is written to
<CSV_DATA_DIR>/<table name>.csv with an id column followed by every field seen
on any record, so the CSV backend can load it directly.

Usage:
    python scripts/download_tables.py
"""

import asyncio
import logging
import re
import sys
from pathlib import Path
from typing import List

from airtable_local.airtable import AirtableBase, create_airtable_base
from airtable_local.config import MODE_AIRTABLE, AppConfig, load_config, resolve_data_dir, setup_logging, validate_config
from airtable_local.csv_store import write_records_csv
from airtable_local.errors import AirtableLocalError, ApiError, ConfigurationError

logger = logging.getLogger(__name__)


def safe_file_stem(table_name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "_", table_name)


async def resolve_table_names(base: AirtableBase, config: AppConfig) -> List[str]:
    try:
        return await base.fetch_table_names()
    except ApiError as e:
        if config.airtable.table_names:
            logger.warning(f"Could not fetch table list ({e}); using AIRTABLE_TABLE_NAMES")
            return list(config.airtable.table_names)
        raise ConfigurationError(
            "Failed to fetch tables. Add schema.bases:read scope or set AIRTABLE_TABLE_NAMES", cause=e
        ) from e


async def download_tables(config: AppConfig) -> int:
    """
    Write every table of the base to the configured data directory.

    Returns:
        Number of tables written
    """
    data_dir = resolve_data_dir(config.csv)
    data_dir.mkdir(parents=True, exist_ok=True)

    base = create_airtable_base(config, table_names=[])
    written = 0
    failed = []
    try:
        table_names = await resolve_table_names(base, config)
        logger.info(f"📋 Found {len(table_names)} table(s): {', '.join(table_names)}")

        for table_name in table_names:
            logger.info(f'⬇️  Downloading "{table_name}"...')
            try:
                result = await base.get_table(table_name).select_records_async()
            except ApiError as e:
                logger.error(f"   ❌ Failed: {e}")
                failed.append(table_name)
                continue

            if not result.records:
                logger.warning("   ⚠️  No records found, skipping")
                continue

            field_names: List[str] = []
            for record in result.records:
                for field_name in record.field_names:
                    if field_name not in field_names:
                        field_names.append(field_name)

            path = Path(data_dir) / f"{safe_file_stem(table_name)}.csv"
            count = write_records_csv(path, result.records, field_names)
            written += 1
            logger.info(f"   ✅ Saved {count} records to {path}")
    finally:
        await base.close()

    if failed:
        logger.warning(f"Failed: {len(failed)} table(s) - {', '.join(failed)}")
    return written


def main() -> int:
    config = load_config()
    setup_logging(config)
    # Always talks to the live base, even when USE_CSV_DATA is set
    config.mode = MODE_AIRTABLE

    try:
        validate_config(config)
        written = asyncio.run(download_tables(config))
    except AirtableLocalError as e:
        logger.error(f"❌ Download failed: {e}")
        return 1

    logger.info(f"🎉 Download complete! {written} table(s) written")
    return 0


if __name__ == "__main__":
    sys.exit(main())
