"""
Test suite for configuration loading and validation.
"""

import logging
from dataclasses import fields
from pathlib import Path

import pytest

from airtable_local import config as config_module
from airtable_local.config import (
    AIRTABLE_API_URL,
    DEFAULT_REQUEST_DELAY,
    MODE_AIRTABLE,
    MODE_CSV,
    AirtableConfig,
    AppConfig,
    CsvConfig,
    LogConfig,
    load_config,
    parse_boolean,
    parse_delay,
    parse_table_names,
    resolve_data_dir,
    setup_logging,
    validate_config,
)
from airtable_local.errors import ConfigurationError


class TestLoadConfig:
    """Environment and dlt lookups."""

    def test_defaults(self, clean_env):
        config = load_config()

        assert config.mode == MODE_AIRTABLE
        assert config.airtable.api_key == ""
        assert config.airtable.table_names == []
        assert config.airtable.api_url == AIRTABLE_API_URL
        assert config.airtable.request_delay == DEFAULT_REQUEST_DELAY
        assert config.csv.data_dir == "./data"
        assert config.csv.auto_save is False
        assert config.log.level == "info"

    def test_environment(self, clean_env):
        clean_env.setenv("USE_CSV_DATA", "TRUE")
        clean_env.setenv("AIRTABLE_API_KEY", "patABC")
        clean_env.setenv("AIRTABLE_BASE_ID", "appXYZ")
        clean_env.setenv("AIRTABLE_TABLE_NAMES", " Tasks, Projects ,,")
        clean_env.setenv("AIRTABLE_REQUEST_DELAY", "0")
        clean_env.setenv("CSV_DATA_DIR", "/tmp/mirror")
        clean_env.setenv("CSV_AUTO_SAVE", "true")
        clean_env.setenv("LOG_LEVEL", "DEBUG")

        config = load_config()

        assert config.mode == MODE_CSV
        assert config.airtable.api_key == "patABC"
        assert config.airtable.base_id == "appXYZ"
        assert config.airtable.table_names == ["Tasks", "Projects"]
        assert config.airtable.request_delay == 0
        assert config.csv.data_dir == "/tmp/mirror"
        assert config.csv.auto_save is True
        assert config.log.level == "debug"

    def test_dlt_values_used_when_env_unset(self, clean_env):
        values = {"sources.airtable.api_key": "patFromToml", "sources.airtable.table_names": ["Tasks"]}
        clean_env.setattr(config_module, "_from_dlt", lambda key, secret=False: values.get(key))

        config = load_config()

        assert config.airtable.api_key == "patFromToml"
        assert config.airtable.table_names == ["Tasks"]

    def test_env_wins_over_dlt(self, clean_env):
        clean_env.setattr(config_module, "_from_dlt", lambda key, secret=False: "patFromToml")
        clean_env.setenv("AIRTABLE_API_KEY", "patFromEnv")
        assert load_config().airtable.api_key == "patFromEnv"

    def test_invalid_log_level_falls_back(self, clean_env, caplog):
        clean_env.setenv("LOG_LEVEL", "verbose")
        assert load_config().log.level == "info"
        assert "Invalid LOG_LEVEL" in caplog.text


class TestParsing:
    @pytest.mark.parametrize("value, expected", [("true", True), ("True", True), ("yes", False), ("false", False)])
    def test_parse_boolean(self, value, expected):
        assert parse_boolean(value, False) is expected

    def test_parse_boolean_default(self):
        assert parse_boolean(None, True) is True
        assert parse_boolean("", False) is False

    def test_parse_table_names(self):
        assert parse_table_names("A, B") == ["A", "B"]
        assert parse_table_names(None) == []

    def test_parse_delay(self):
        assert parse_delay("1.5") == 1.5
        assert parse_delay("-2") == 0.0
        assert parse_delay("soon") == DEFAULT_REQUEST_DELAY


class TestValidateConfig:
    """Misconfiguration is reported before any backend is built."""

    def test_missing_credentials_reported_together(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(AppConfig())
        message = str(exc_info.value)
        assert "AIRTABLE_API_KEY is required" in message
        assert "AIRTABLE_BASE_ID is required" in message
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_bad_prefixes(self):
        config = AppConfig(airtable=AirtableConfig(api_key="key123", base_id="base123"))
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert "'pat'" in str(exc_info.value)
        assert "'app'" in str(exc_info.value)

    def test_valid_airtable(self):
        validate_config(AppConfig(airtable=AirtableConfig(api_key="patX", base_id="appX")))

    def test_csv_mode_needs_no_credentials(self):
        validate_config(AppConfig(mode=MODE_CSV))

    def test_csv_mode_needs_data_dir(self):
        with pytest.raises(ConfigurationError):
            validate_config(AppConfig(mode=MODE_CSV, csv=CsvConfig(data_dir="")))

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            validate_config(AppConfig(mode="sqlite"))


class TestHelpers:
    def test_resolve_relative_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_data_dir(CsvConfig(data_dir="./data")) == tmp_path / "data"

    def test_resolve_absolute_data_dir(self, tmp_path):
        assert resolve_data_dir(CsvConfig(data_dir=str(tmp_path))) == Path(tmp_path)

    def test_setup_logging(self):
        logger = setup_logging(AppConfig())
        assert logger.name == "airtable_local"
        assert isinstance(logger, logging.Logger)

    def test_log_config_is_level_only(self):
        """Log lines are formatted by LOG_FORMAT; the level is the only setting."""
        assert [f.name for f in fields(LogConfig)] == ["level"]
