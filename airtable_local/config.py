"""
Configuration for the local Airtable harness.

Settings are read once into an AppConfig value which callers pass explicitly
to the backend factories; nothing is cached at module level.

Lookup order for every key:
  1. Process environment (a .env file is loaded first via python-dotenv)
  2. dlt config providers: .dlt/secrets.toml / .dlt/config.toml
     (sources.airtable.api_key, sources.airtable.base_id, sources.csv.data_dir, ...)
  3. Built-in defaults
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import dlt
from dotenv import load_dotenv

from airtable_local.errors import ConfigurationError

logger = logging.getLogger(__name__)

MODE_AIRTABLE = "airtable"
MODE_CSV = "csv"
LOG_LEVELS = ["debug", "info", "warn", "error"]

AIRTABLE_API_URL = "https://api.airtable.com/v0"
DEFAULT_REQUEST_DELAY = 0.2  # Airtable allows 5 requests per second per base
DEFAULT_DATA_DIR = "./data"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class AirtableConfig:
    api_key: str = ""
    base_id: str = ""
    table_names: List[str] = field(default_factory=list)
    api_url: str = AIRTABLE_API_URL
    request_delay: float = DEFAULT_REQUEST_DELAY


@dataclass
class CsvConfig:
    data_dir: str = DEFAULT_DATA_DIR
    auto_save: bool = False


@dataclass
class LogConfig:
    level: str = "info"


@dataclass
class AppConfig:
    mode: str = MODE_AIRTABLE
    airtable: AirtableConfig = field(default_factory=AirtableConfig)
    csv: CsvConfig = field(default_factory=CsvConfig)
    log: LogConfig = field(default_factory=LogConfig)


# ============================================================================
# PARSING
# ============================================================================

def parse_boolean(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def parse_log_level(value: Optional[str]) -> str:
    if not value:
        return "info"
    level = value.strip().lower()
    if level in LOG_LEVELS:
        return level
    logger.warning(f'Invalid LOG_LEVEL "{value}", defaulting to "info"')
    return "info"


def parse_table_names(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(name).strip() for name in value if str(name).strip()]
    return [name.strip() for name in str(value).split(",") if name.strip()]


def parse_delay(value: Any) -> float:
    if value is None or value == "":
        return DEFAULT_REQUEST_DELAY
    try:
        return max(0.0, float(value))
    except ValueError:
        logger.warning(f'Invalid AIRTABLE_REQUEST_DELAY "{value}", defaulting to {DEFAULT_REQUEST_DELAY}')
        return DEFAULT_REQUEST_DELAY


def _from_dlt(key: str, secret: bool = False) -> Any:
    """Read a value from dlt's providers (.dlt/*.toml); None when unset."""
    provider = dlt.secrets if secret else dlt.config
    return provider.get(key)


def _setting(env_key: str, dlt_key: str, secret: bool = False) -> Any:
    value = os.getenv(env_key)
    if value not in (None, ""):
        return value
    return _from_dlt(dlt_key, secret=secret)


# ============================================================================
# LOADING / VALIDATION
# ============================================================================

def load_config(dotenv_path: Optional[str] = None) -> AppConfig:
    """
    Build an AppConfig from the environment, .env and dlt config files.

    Args:
        dotenv_path: Explicit .env file; by default python-dotenv searches upwards

    Returns:
        AppConfig (not validated; call validate_config before building a backend)
    """
    load_dotenv(dotenv_path)

    use_csv = parse_boolean(_setting("USE_CSV_DATA", "use_csv_data"), False)

    return AppConfig(
        mode=MODE_CSV if use_csv else MODE_AIRTABLE,
        airtable=AirtableConfig(
            api_key=_setting("AIRTABLE_API_KEY", "sources.airtable.api_key", secret=True) or "",
            base_id=_setting("AIRTABLE_BASE_ID", "sources.airtable.base_id") or "",
            table_names=parse_table_names(_setting("AIRTABLE_TABLE_NAMES", "sources.airtable.table_names")),
            api_url=_setting("AIRTABLE_API_URL", "sources.airtable.api_url") or AIRTABLE_API_URL,
            request_delay=parse_delay(_setting("AIRTABLE_REQUEST_DELAY", "sources.airtable.request_delay")),
        ),
        csv=CsvConfig(
            data_dir=_setting("CSV_DATA_DIR", "sources.csv.data_dir") or DEFAULT_DATA_DIR,
            auto_save=parse_boolean(_setting("CSV_AUTO_SAVE", "sources.csv.auto_save"), False),
        ),
        log=LogConfig(level=parse_log_level(_setting("LOG_LEVEL", "runtime.log_level"))),
    )


def validate_airtable_config(config: AppConfig) -> None:
    if config.mode != MODE_AIRTABLE:
        return

    errors = []
    api_key = config.airtable.api_key
    base_id = config.airtable.base_id

    if not api_key:
        errors.append("AIRTABLE_API_KEY is required")
    elif not api_key.startswith("pat"):
        errors.append("AIRTABLE_API_KEY should start with 'pat' (personal access token)")

    if not base_id:
        errors.append("AIRTABLE_BASE_ID is required")
    elif not base_id.startswith("app"):
        errors.append("AIRTABLE_BASE_ID should start with 'app'")

    if errors:
        details = "\n  - ".join(errors)
        raise ConfigurationError(
            f"Configuration errors:\n  - {details}\n\n"
            "Please check your .env file or .dlt/secrets.toml (sources.airtable.api_key)."
        )


def validate_csv_config(config: AppConfig) -> None:
    if config.mode != MODE_CSV:
        return
    if not config.csv.data_dir:
        raise ConfigurationError("CSV_DATA_DIR is required when using CSV mode")


def validate_config(config: AppConfig) -> None:
    """Raise ConfigurationError before any backend object is constructed."""
    if config.mode == MODE_AIRTABLE:
        validate_airtable_config(config)
    elif config.mode == MODE_CSV:
        validate_csv_config(config)
    else:
        raise ConfigurationError(f'Unknown data mode "{config.mode}" (expected "{MODE_AIRTABLE}" or "{MODE_CSV}")')


def resolve_data_dir(config: CsvConfig) -> Path:
    data_dir = Path(config.data_dir)
    if data_dir.is_absolute():
        return data_dir
    return Path.cwd() / data_dir


def setup_logging(config: AppConfig) -> logging.Logger:
    """Configure console logging at the configured level."""
    level = "WARNING" if config.log.level == "warn" else config.log.level.upper()
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)
    return logging.getLogger("airtable_local")
