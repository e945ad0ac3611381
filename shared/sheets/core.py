"""Google Sheets adapter core shared by the grant and key-value stores."""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

import gspread
from gspread import Worksheet
from gspread.exceptions import APIError, WorksheetNotFound
from gspread.utils import rowcol_to_a1
from requests import exceptions as requests_exceptions

from shared.config import get_gspread_credentials

__all__ = [
    "WorksheetNotFound",
    "clear_cached_client",
    "clear_cached_worksheets",
    "delete_row",
    "find_row_index",
    "get_client",
    "get_records",
    "get_values",
    "get_worksheet",
    "header_lookup",
    "upsert_row",
    "with_backoff",
]

log = logging.getLogger("hq.sheets.core")

GSpreadClient = gspread.Client


@dataclass
class WorksheetCacheEntry:
    worksheet: Worksheet
    expires_at: float


_CLIENT_LOCK = threading.Lock()
_CLIENT: Optional[GSpreadClient] = None
_WORKSHEET_CACHE: Dict[Tuple[str, str], WorksheetCacheEntry] = {}

_RETRY_STATUS = {408, 425, 429, 500, 502, 503, 504}

T = TypeVar("T")


def clear_cached_client() -> None:
    """Drop the cached gspread client (mainly for tests)."""

    global _CLIENT
    with _CLIENT_LOCK:
        _CLIENT = None


def clear_cached_worksheets(spreadsheet_id: Optional[str] = None) -> None:
    """Clear the worksheet cache, optionally only for ``spreadsheet_id``."""

    if spreadsheet_id is None:
        _WORKSHEET_CACHE.clear()
        return
    for key in [key for key in _WORKSHEET_CACHE if key[0] == spreadsheet_id]:
        _WORKSHEET_CACHE.pop(key, None)


def _load_credentials() -> Mapping[str, Any]:
    raw = get_gspread_credentials()
    if not raw:
        raise RuntimeError("GSPREAD_CREDENTIALS environment variable is required")
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError as exc:  # pragma: no cover - configuration error path
        raise RuntimeError("GSPREAD_CREDENTIALS must be valid JSON") from exc
    if not isinstance(creds, Mapping):  # pragma: no cover - configuration error path
        raise RuntimeError("GSPREAD_CREDENTIALS JSON must represent an object")
    return creds


def get_client() -> GSpreadClient:
    """Return a cached gspread client authenticated via service-account JSON."""

    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            credentials = _load_credentials()
            log.debug("Authorising gspread client with service-account credentials")
            _CLIENT = gspread.service_account_from_dict(credentials)
    return _CLIENT


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, APIError):
        resp = getattr(exc, "response", None)
        status = getattr(resp, "status_code", None)
        if status in _RETRY_STATUS:
            return True
        text = str(getattr(resp, "text", "") or "")
        detail = str(getattr(exc, "args", [""])[0] or "")
        blob = f"{text} {detail}".lower()
        if "rate limit" in blob or "quota" in blob or "timeout" in blob:
            return True
    return isinstance(exc, requests_exceptions.RequestException)


def with_backoff(func: Callable[[], T], *, retries: int = 5, base_delay: float = 0.5, max_delay: float = 8.0) -> T:
    """Execute *func* with exponential backoff on transient failures.

    ``retries=0`` runs *func* exactly once.
    """

    attempt = 0
    delay = base_delay
    while True:
        try:
            return func()
        except Exception as exc:
            attempt += 1
            if attempt > retries or not _should_retry(exc):
                raise
            sleep_for = min(max_delay, delay) + random.uniform(0.0, base_delay)
            log.warning("Sheets call failed (attempt %s/%s): %s", attempt, retries, exc)
            time.sleep(sleep_for)
            delay *= 2


def get_worksheet(
    spreadsheet_id: str,
    worksheet_name: str,
    *,
    ttl: float = 300.0,
    force: bool = False,
    retries: int = 5,
) -> Worksheet:
    """Return a cached worksheet handle, refreshing after *ttl* seconds.

    Raises :class:`gspread.exceptions.WorksheetNotFound` when the tab is missing.
    """

    now = time.monotonic()
    cache_key = (spreadsheet_id, worksheet_name)
    if not force and ttl > 0:
        cached = _WORKSHEET_CACHE.get(cache_key)
        if cached and cached.expires_at > now:
            return cached.worksheet

    spreadsheet = with_backoff(lambda: get_client().open_by_key(spreadsheet_id), retries=retries)
    worksheet = with_backoff(lambda: spreadsheet.worksheet(worksheet_name), retries=retries)
    if ttl > 0:
        _WORKSHEET_CACHE[cache_key] = WorksheetCacheEntry(worksheet=worksheet, expires_at=now + ttl)
    return worksheet


def get_values(worksheet: Worksheet, *, retries: int = 5) -> List[List[Any]]:
    return with_backoff(lambda: worksheet.get_all_values(), retries=retries)


def get_records(worksheet: Worksheet, *, retries: int = 5) -> List[Dict[str, Any]]:
    """Return rows keyed by the stripped header cells; blank rows are skipped."""

    values = get_values(worksheet, retries=retries)
    if not values:
        return []
    header = [str(cell).strip() for cell in values[0]]
    records: List[Dict[str, Any]] = []
    for row in values[1:]:
        if not any(str(cell).strip() for cell in row):
            continue
        record = {col: (row[idx] if idx < len(row) else "") for idx, col in enumerate(header) if col}
        records.append(record)
    return records


def header_lookup(header: Sequence[Any], *, casefold: bool = True) -> Dict[str, int]:
    lookup: Dict[str, int] = {}
    for idx, col in enumerate(header):
        text = str(col).strip()
        key = text.casefold() if casefold else text
        if key and key not in lookup:
            lookup[key] = idx
    return lookup


def _resolve_mapping_value(row: Mapping[str, Any], key: str, *, casefold: bool) -> Any:
    if key in row:
        return row[key]
    if casefold:
        target = key.casefold()
        for rk, value in row.items():
            if isinstance(rk, str) and rk.casefold() == target:
                return value
    return ""


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def find_row_index(
    values: Sequence[Sequence[Any]],
    keys: Mapping[str, Any],
    *,
    casefold: bool = True,
) -> Optional[int]:
    """Return the 1-based sheet row whose key columns equal ``keys``."""

    if not values:
        return None
    lookup = header_lookup(values[0], casefold=casefold)
    wanted: list[tuple[int, str]] = []
    for column, value in keys.items():
        idx = lookup.get(column.casefold() if casefold else column)
        if idx is None:
            raise KeyError(f"Column '{column}' not present in worksheet header")
        text = str(value or "").strip()
        wanted.append((idx, text.casefold() if casefold else text))
    for row_index, existing in enumerate(values[1:], start=2):
        matched = True
        for idx, text in wanted:
            cell = str(existing[idx]).strip() if idx < len(existing) else ""
            if (cell.casefold() if casefold else cell) != text:
                matched = False
                break
        if matched:
            return row_index
    return None


def upsert_row(
    worksheet: Worksheet,
    row: Mapping[str, Any],
    *,
    key_columns: Sequence[str],
    value_input_option: str = "RAW",
    casefold: bool = True,
    retries: int = 5,
) -> str:
    """Insert or update *row* identified by *key_columns*.

    Returns "inserted" when a new row is appended or "updated" when the row existed.
    """

    if not key_columns:
        raise ValueError("key_columns must not be empty")

    values = with_backoff(lambda: worksheet.get_all_values(), retries=retries)
    if not values:
        raise RuntimeError(f"Worksheet '{worksheet.title}' is missing a header row")

    keys = {
        column: str(_resolve_mapping_value(row, column, casefold=casefold) or "").strip()
        for column in key_columns
    }
    if all(not value for value in keys.values()):
        raise ValueError("Key column values must not all be empty")
    target_row_index = find_row_index(values, keys, casefold=casefold)

    header = [str(cell).strip() for cell in values[0]]
    ordered_values = [_cell_text(_resolve_mapping_value(row, col, casefold=casefold)) for col in header]

    if target_row_index is not None:
        start = rowcol_to_a1(target_row_index, 1)
        end = rowcol_to_a1(target_row_index, len(ordered_values))
        cell_range = f"{start}:{end}" if len(ordered_values) > 1 else start
        with_backoff(
            lambda: worksheet.update(cell_range, [ordered_values], value_input_option=value_input_option),
            retries=retries,
        )
        return "updated"

    with_backoff(
        lambda: worksheet.append_row(ordered_values, value_input_option=value_input_option),
        retries=retries,
    )
    return "inserted"


def delete_row(
    worksheet: Worksheet,
    keys: Mapping[str, Any],
    *,
    casefold: bool = True,
    retries: int = 5,
) -> bool:
    """Delete the row matching ``keys``; return ``False`` when none matched."""

    values = with_backoff(lambda: worksheet.get_all_values(), retries=retries)
    row_index = find_row_index(values, keys, casefold=casefold)
    if row_index is None:
        return False
    with_backoff(lambda: worksheet.delete_rows(row_index), retries=retries)
    return True
