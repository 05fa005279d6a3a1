"""
Airtable REST API Backend

Data Source: a live Airtable base via REST API v0
API Type: REST API
Key Endpoints:
  - GET    /v0/{base_id}/{table}              list records (pageSize 100, offset pagination)
  - POST   /v0/{base_id}/{table}              create up to 10 records
  - PATCH  /v0/{base_id}/{table}              update up to 10 records
  - DELETE /v0/{base_id}/{table}?records[]=   delete up to 10 records
  - GET    /v0/meta/bases/{base_id}/tables    table discovery (needs schema.bases:read)

Rate Limits: 5 requests per second per base. Batched writes are sent as
sequential chunks of 10 with a fixed delay between calls. Nothing is retried:
429 surfaces as RateLimitError, any other failure as ApiError.

Authentication: Personal access token (Authorization: Bearer pat...)

Remote records are read-through wrappers: every select re-fetches, nothing is
cached or mutated locally.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import aiohttp

from airtable_local.config import AIRTABLE_API_URL, DEFAULT_REQUEST_DELAY, AirtableConfig, AppConfig
from airtable_local.errors import ApiError, RateLimitError
from airtable_local.interfaces import FieldDescriptor, FieldSet, RecordOrId, SortSpec
from airtable_local.utils.records import RecordQueryResult, display_name, validate_sorts
from airtable_local.utils.values import batch_entry, record_id_of, to_comparable_string, validate_field_set

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
MAX_RECORDS_PER_REQUEST = 10
SCHEMA_SCOPE = "schema.bases:read"
UNKNOWN_FIELD_TYPE = "unknown"


def chunked(items: Sequence[Any], size: int = MAX_RECORDS_PER_REQUEST) -> List[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


# ============================================================================
# TRANSPORT
# ============================================================================

class AirtableClient:
    """
    Thin async client for the Airtable REST API.

    Owns an aiohttp session (created lazily inside the running loop) unless one
    is injected. Use as `async with AirtableClient(...) as client:` or call close().
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        api_url: str = AIRTABLE_API_URL,
        request_delay: float = DEFAULT_REQUEST_DELAY,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_key = api_key
        self.base_id = base_id
        self.api_url = api_url.rstrip("/")
        self.request_delay = request_delay
        self._session = session
        self._owns_session = session is None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "AirtableClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def table_url(self, table_name: str) -> str:
        return f"{self.api_url}/{self.base_id}/{quote(table_name, safe='')}"

    def metadata_url(self) -> str:
        return f"{self.api_url}/meta/bases/{self.base_id}/tables"

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, Any]]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send one request and return the decoded JSON body.

        Raises:
            RateLimitError: HTTP 429
            ApiError: any other non-success status, or a network failure
        """
        session = self._get_session()
        try:
            async with session.request(method, url, params=params, json=json, headers=self.headers) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    logger.warning(f"Rate limited (429) on {method} {url}")
                    raise RateLimitError(float(retry_after) if retry_after else None, url)

                if response.status >= 400:
                    error_text = await response.text()
                    logger.error(f"HTTP {response.status} on {method} {url}: {error_text}")
                    raise ApiError(f"HTTP {response.status}: {error_text}", response.status, url)

                return await response.json()

        except aiohttp.ClientError as e:
            logger.error(f"Network error on {method} {url}: {e}")
            raise ApiError(f"Network error calling {url}: {e}", endpoint=url, cause=e) from e

    async def pause(self) -> None:
        if self.request_delay > 0:
            await asyncio.sleep(self.request_delay)

    # --- Records --------------------------------------------------------------------
    async def list_records(
        self,
        table_name: str,
        fields: Optional[Sequence[str]] = None,
        sorts: Optional[Sequence[SortSpec]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every page of a table. Returns raw {"id", "createdTime", "fields"} dicts."""
        url = self.table_url(table_name)
        records: List[Dict[str, Any]] = []
        offset: Optional[str] = None
        page_count = 0

        while True:
            page_count += 1
            params: List[Tuple[str, Any]] = [("pageSize", PAGE_SIZE)]
            for field_name in fields or ():
                params.append(("fields[]", field_name))
            for index, sort in enumerate(sorts or ()):
                params.append((f"sort[{index}][field]", sort["field"]))
                params.append((f"sort[{index}][direction]", sort.get("direction", "asc")))
            if offset:
                params.append(("offset", offset))

            data = await self.request("GET", url, params=params)
            page = data.get("records", [])
            records.extend(page)
            logger.debug(f"Fetched {table_name} page {page_count}: {len(page)} records")

            offset = data.get("offset")
            if not offset:
                break
            await self.pause()

        return records

    async def create_records(self, table_name: str, field_sets: Sequence[FieldSet]) -> List[Dict[str, Any]]:
        data = await self.request(
            "POST",
            self.table_url(table_name),
            json={"records": [{"fields": dict(fields)} for fields in field_sets]},
        )
        return data.get("records", [])

    async def update_records(self, table_name: str, updates: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        data = await self.request(
            "PATCH",
            self.table_url(table_name),
            json={"records": [{"id": u["id"], "fields": dict(u["fields"])} for u in updates]},
        )
        return data.get("records", [])

    async def delete_records(self, table_name: str, record_ids: Sequence[str]) -> List[Dict[str, Any]]:
        params = [("records[]", record_id) for record_id in record_ids]
        data = await self.request("DELETE", self.table_url(table_name), params=params)
        return data.get("records", [])

    # --- Metadata -------------------------------------------------------------------
    async def list_tables(self) -> List[Dict[str, Any]]:
        """
        Read table metadata for the base.

        Raises:
            ApiError: non-success response; the message names the schema.bases:read scope
        """
        url = self.metadata_url()
        try:
            data = await self.request("GET", url)
        except RateLimitError:
            raise
        except ApiError as e:
            raise ApiError(
                f"Failed to fetch table metadata: {e.message}. "
                f"Make sure your API token has '{SCHEMA_SCOPE}' scope.",
                e.status_code,
                url,
                cause=e,
            ) from e
        return data.get("tables", [])


# ============================================================================
# ADAPTERS
# ============================================================================

class AirtableRecord:
    """Read-through wrapper around one record dict returned by the API."""

    def __init__(self, raw: Mapping[str, Any]):
        self._id: str = raw["id"]
        self.created_time: Optional[str] = raw.get("createdTime")
        self._fields: Dict[str, Any] = dict(raw.get("fields") or {})
        self._name = display_name(self._fields, self._id)

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    def get_cell_value(self, field_name_or_id: str) -> Any:
        return self._fields.get(field_name_or_id)

    @property
    def field_names(self) -> List[str]:
        """Fields present on this record; Airtable omits empty cells."""
        return list(self._fields)

    def get_cell_value_as_string(self, field_name_or_id: str) -> str:
        return to_comparable_string(self.get_cell_value(field_name_or_id))

    def __repr__(self) -> str:
        return f"AirtableRecord(id={self.id!r}, name={self.name!r})"


def _field_from_metadata(raw: Mapping[str, Any]) -> FieldDescriptor:
    return FieldDescriptor(
        id=raw.get("id", raw["name"]),
        name=raw["name"],
        type=raw.get("type", UNKNOWN_FIELD_TYPE),
        options=raw.get("options"),
    )


class AirtableTable:
    """Proxy for one remote table. Owns no records; every select hits the API."""

    def __init__(
        self,
        name: str,
        client: AirtableClient,
        table_id: Optional[str] = None,
        fields: Optional[Sequence[FieldDescriptor]] = None,
    ):
        self.name = name
        self.id = table_id or name
        self._client = client
        self._fields = list(fields or [])

    @property
    def fields(self) -> List[FieldDescriptor]:
        return list(self._fields)

    async def select_records_async(
        self,
        record_ids: Optional[Sequence[str]] = None,
        sorts: Optional[Sequence[SortSpec]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> RecordQueryResult:
        validate_sorts(sorts)
        raw_records = await self._client.list_records(self.name, fields=fields, sorts=sorts)
        records = [AirtableRecord(raw) for raw in raw_records]

        if record_ids is not None:
            wanted = set(record_ids)
            records = [record for record in records if record.id in wanted]

        return RecordQueryResult(records)

    async def update_record_async(self, record_or_id: RecordOrId, fields: FieldSet) -> None:
        record_id = record_id_of(record_or_id)
        validate_field_set(fields)
        await self._client.update_records(self.name, [{"id": record_id, "fields": fields}])

    async def update_records_async(self, records: Sequence[Mapping[str, Any]]) -> None:
        updates = [
            {"id": record_id_of(batch_entry(entry, "id")), "fields": batch_entry(entry, "fields")} for entry in records
        ]
        for update in updates:
            validate_field_set(update["fields"])

        for index, batch in enumerate(chunked(updates)):
            if index:
                await self._client.pause()
            logger.debug(f"Updating {len(batch)} records in {self.name}")
            await self._client.update_records(self.name, batch)

    async def create_record_async(self, fields: FieldSet) -> str:
        validate_field_set(fields)
        created = await self._client.create_records(self.name, [fields])
        return created[0]["id"]

    async def create_records_async(self, records: Sequence[Mapping[str, Any]]) -> List[str]:
        field_sets = [batch_entry(entry, "fields") for entry in records]
        for fields in field_sets:
            validate_field_set(fields)

        created_ids: List[str] = []
        for index, batch in enumerate(chunked(field_sets)):
            if index:
                await self._client.pause()
            logger.debug(f"Creating {len(batch)} records in {self.name}")
            created = await self._client.create_records(self.name, batch)
            created_ids.extend(record["id"] for record in created)
        return created_ids

    async def delete_record_async(self, record_or_id: RecordOrId) -> None:
        await self._client.delete_records(self.name, [record_id_of(record_or_id)])

    async def delete_records_async(self, records_or_ids: Sequence[RecordOrId]) -> None:
        record_ids = [record_id_of(record_or_id) for record_or_id in records_or_ids]
        for index, batch in enumerate(chunked(record_ids)):
            if index:
                await self._client.pause()
            logger.debug(f"Deleting {len(batch)} records from {self.name}")
            await self._client.delete_records(self.name, batch)

    def get_field(self, name_or_id: str) -> FieldDescriptor:
        """Discovered metadata when known, otherwise a type-less placeholder. Never raises."""
        for field in self._fields:
            if field.name == name_or_id or field.id == name_or_id:
                return field
        return FieldDescriptor(id=name_or_id, name=name_or_id, type=UNKNOWN_FIELD_TYPE)


class AirtableBase:
    """
    Remote base. Tables are pre-declared, discovered via load_all_tables(), or
    bound lazily by get_table() without checking that they exist upstream.
    """

    def __init__(self, client: AirtableClient, table_names: Sequence[str] = ()):
        self.client = client
        self._tables: List[AirtableTable] = []
        self._table_map: Dict[str, AirtableTable] = {}
        for table_name in table_names:
            self.add_table(table_name)

    @property
    def tables(self) -> List[AirtableTable]:
        return list(self._tables)

    def _register(self, table: AirtableTable) -> AirtableTable:
        self._tables.append(table)
        self._table_map[table.name] = table
        self._table_map[table.id] = table
        return table

    def add_table(self, table_name: str) -> AirtableTable:
        existing = self._table_map.get(table_name)
        if existing is not None:
            return existing
        return self._register(AirtableTable(table_name, self.client))

    def get_table(self, name_or_id: str) -> AirtableTable:
        table = self._table_map.get(name_or_id)
        if table is not None:
            return table
        logger.debug(f"Binding table {name_or_id} on demand")
        return self._register(AirtableTable(name_or_id, self.client))

    async def fetch_table_metadata(self) -> List[Dict[str, Any]]:
        return await self.client.list_tables()

    async def fetch_table_names(self) -> List[str]:
        return [table["name"] for table in await self.fetch_table_metadata()]

    async def load_all_tables(self) -> None:
        """Discover every table in the base and add the ones not yet known."""
        for meta in await self.fetch_table_metadata():
            fields = [_field_from_metadata(raw) for raw in meta.get("fields", [])]
            known = self._table_map.get(meta["name"]) or self._table_map.get(meta.get("id", ""))
            if known is not None:
                if not known._fields:
                    known._fields = fields
                if meta.get("id") and meta["id"] not in self._table_map:
                    self._table_map[meta["id"]] = known
                continue
            self._register(AirtableTable(meta["name"], self.client, table_id=meta.get("id"), fields=fields))

        logger.info(f"Discovered {len(self._tables)} table(s): {', '.join(t.name for t in self._tables)}")

    async def close(self) -> None:
        await self.client.close()


# ============================================================================
# FACTORIES
# ============================================================================

def create_airtable_client(config: Union[AppConfig, AirtableConfig]) -> AirtableClient:
    airtable_config = config.airtable if isinstance(config, AppConfig) else config
    return AirtableClient(
        airtable_config.api_key,
        airtable_config.base_id,
        api_url=airtable_config.api_url,
        request_delay=airtable_config.request_delay,
    )


def create_airtable_base(config: Union[AppConfig, AirtableConfig], table_names: Optional[Sequence[str]] = None) -> AirtableBase:
    airtable_config = config.airtable if isinstance(config, AppConfig) else config
    names = airtable_config.table_names if table_names is None else table_names
    return AirtableBase(create_airtable_client(airtable_config), names)


async def create_airtable_base_with_auto_load(config: Union[AppConfig, AirtableConfig]) -> AirtableBase:
    base = create_airtable_base(config, table_names=[])
    try:
        await base.load_all_tables()
    except ApiError:
        await base.close()
        raise
    return base
