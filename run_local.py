"""
Local runner for Airtable scripts.

Picks the backend from configuration and runs the script against it:
  - USE_CSV_DATA=true  -> CSV mirror in CSV_DATA_DIR (writes only if CSV_AUTO_SAVE=true)
  - otherwise          -> live Airtable base; tables come from AIRTABLE_TABLE_NAMES,
                          or are auto-discovered (needs schema.bases:read), falling
                          back to on-demand table binding when discovery fails.

Usage:
    python run_local.py
    USE_CSV_DATA=true CSV_DATA_DIR=./data python run_local.py
"""

import asyncio
import logging
import sys

from airtable_local.airtable import create_airtable_base, create_airtable_base_with_auto_load
from airtable_local.config import MODE_CSV, AppConfig, load_config, setup_logging, validate_config
from airtable_local.csv_store import create_csv_base
from airtable_local.errors import ApiError, AirtableLocalError
from airtable_local.interfaces import Base
from airtable_local.scripts import run_script

logger = logging.getLogger(__name__)


async def create_base(config: AppConfig) -> Base:
    """Build the backend selected by `config.mode`."""
    if config.mode == MODE_CSV:
        logger.info(f"📂 Data directory: {config.csv.data_dir}")
        logger.info(f"💾 Auto-save changes: {'enabled' if config.csv.auto_save else 'disabled'}")
        return create_csv_base(config)

    table_names = config.airtable.table_names
    if table_names:
        logger.info(f"📋 Pre-loaded tables: {', '.join(table_names)}")
        return create_airtable_base(config)

    logger.info("🔍 Auto-discovering tables from Airtable...")
    try:
        return await create_airtable_base_with_auto_load(config)
    except ApiError as e:
        logger.warning(f"⚠️  Could not auto-discover tables: {e}")
        logger.info("   Falling back to on-demand table access.")
        return create_airtable_base(config, table_names=[])


async def run(config: AppConfig) -> None:
    base = await create_base(config)
    try:
        await run_script(base)
    finally:
        if config.mode != MODE_CSV:
            await base.close()


def main() -> int:
    config = load_config()
    setup_logging(config)
    logger.info("=" * 60)
    logger.info(f"Starting local execution ({config.mode} mode)")
    logger.info("=" * 60)

    try:
        validate_config(config)
        asyncio.run(run(config))
    except AirtableLocalError as e:
        logger.error(f"❌ Local execution failed: {e}")
        return 1

    logger.info("🎉 Local execution completed!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
