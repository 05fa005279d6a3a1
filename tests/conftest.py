"""
Pytest configuration and shared fixtures for the backend tests.
"""
import pytest

from airtable_local import config as config_module
from airtable_local.airtable import AirtableClient
from airtable_local.memory import create_sample_base

CONFIG_ENV_KEYS = [
    "USE_CSV_DATA",
    "AIRTABLE_API_KEY",
    "AIRTABLE_BASE_ID",
    "AIRTABLE_TABLE_NAMES",
    "AIRTABLE_API_URL",
    "AIRTABLE_REQUEST_DELAY",
    "CSV_DATA_DIR",
    "CSV_AUTO_SAVE",
    "LOG_LEVEL",
]

TASKS_CSV = (
    "id,Name,Status,Priority,Count\n"
    "rec001,Task 1,Pending,High,3\n"
    "rec002,Task 2,Completed,Medium,10\n"
    "rec003,Task 3,In Progress,Low,\n"
)


# ============================================================================
# FAKE HTTP
# ============================================================================

class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside `async with session.request(...)`."""

    def __init__(self, status=200, payload=None, text="", headers=None):
        self.status = status
        self.headers = headers or {}
        self._payload = payload if payload is not None else {}
        self._text = text

    async def json(self):
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records every request."""

    def __init__(self):
        self.responses = []
        self.requests = []
        self.closed = False

    def queue(self, *items):
        self.responses.extend(items)

    def request(self, method, url, params=None, json=None, headers=None):
        self.requests.append({"method": method, "url": url, "params": params or [], "json": json, "headers": headers})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def airtable_client(fake_session):
    """Client bound to a fake session with no delay between requests."""
    return AirtableClient("patTEST", "appTEST", request_delay=0, session=fake_session)


# ============================================================================
# LOCAL DATA
# ============================================================================

@pytest.fixture
def tasks_csv_dir(tmp_path):
    """A data directory holding a three-row Tasks.csv."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "Tasks.csv").write_text(TASKS_CSV, encoding="utf-8")
    return data_dir


@pytest.fixture
def sample_base():
    base, _ = create_sample_base()
    return base


# ============================================================================
# CONFIGURATION
# ============================================================================

@pytest.fixture
def clean_env(monkeypatch):
    """
    Isolate configuration from the developer machine: no config env vars,
    no .env loading and nothing from .dlt/*.toml.
    """
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config_module, "load_dotenv", lambda *args, **kwargs: False)
    monkeypatch.setattr(config_module, "_from_dlt", lambda key, secret=False: None)
    return monkeypatch
