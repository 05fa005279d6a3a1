"""
Error taxonomy shared by every backend.

Kinds:
  - NotFound (record, table, field): raised by the CSV and in-memory backends
    before any I/O happens
  - Validation: malformed write input, caught before a backend call is issued
  - Api: failures coming back from the Airtable REST API (never retried here)
  - Configuration: missing/malformed settings detected at startup

Scripts can branch on the class (e.g. skip a RecordNotFoundError, abort on ApiError).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class AirtableLocalError(Exception):
    """Base class for all errors raised by airtable_local."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(AirtableLocalError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, "CONFIGURATION_ERROR", cause)


# ============================================================================
# NOT FOUND
# ============================================================================

class NotFoundError(AirtableLocalError):
    """A record, table or field that does not exist locally."""
    pass


class RecordNotFoundError(NotFoundError):
    def __init__(self, record_id: str, table_name: str):
        super().__init__(f'Record "{record_id}" not found in table "{table_name}"', "RECORD_NOT_FOUND")
        self.record_id = record_id
        self.table_name = table_name


class TableNotFoundError(NotFoundError):
    def __init__(self, table_name: str, available_tables: Optional[List[str]] = None):
        self.table_name = table_name
        self.available_tables = list(available_tables or [])
        if self.available_tables:
            message = f'Table "{table_name}" not found. Available tables: {", ".join(self.available_tables)}'
        else:
            message = f'Table "{table_name}" not found'
        super().__init__(message, "TABLE_NOT_FOUND")


class FieldNotFoundError(NotFoundError):
    def __init__(self, field_name: str, table_name: str):
        super().__init__(f'Field "{field_name}" not found in table "{table_name}"', "FIELD_NOT_FOUND")
        self.field_name = field_name
        self.table_name = table_name


# ============================================================================
# VALIDATION / PARSING
# ============================================================================

class ValidationError(AirtableLocalError):
    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message, "VALIDATION_ERROR")
        self.field = field
        self.value = value


class CsvParseError(AirtableLocalError):
    def __init__(self, message: str, file_path: str, line: Optional[int] = None):
        location = f" at line {line}" if line else ""
        super().__init__(f'CSV parse error in "{file_path}"{location}: {message}', "CSV_PARSE_ERROR")
        self.file_path = file_path
        self.line = line


# ============================================================================
# REMOTE API
# ============================================================================

class ApiError(AirtableLocalError):
    """Non-success response or network failure talking to the Airtable API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, "API_ERROR", cause)
        self.status_code = status_code
        self.endpoint = endpoint


class RateLimitError(ApiError):
    def __init__(self, retry_after: Optional[float] = None, endpoint: Optional[str] = None):
        suffix = f". Retry after {retry_after}s" if retry_after else ""
        super().__init__(f"Rate limit exceeded{suffix}", 429, endpoint)
        self.retry_after = retry_after


def wrap_error(error: BaseException, code: str = "UNKNOWN_ERROR") -> AirtableLocalError:
    """Return `error` unchanged if it is already ours, otherwise wrap it."""
    if isinstance(error, AirtableLocalError):
        return error
    return AirtableLocalError(str(error), code, error)
