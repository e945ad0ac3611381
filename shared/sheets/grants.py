"""Grant store backed by Google Sheets access-grant worksheets.

Each scope has an ordered list of candidate schemas: the current fine-grained
tab first, then the older tab that used shorter key column names. Probing a
schema returns a :class:`SchemaHit` or a :class:`SchemaMiss`; the first hit
serves both reads and writes. A miss on every candidate is a store failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from shared.config import (
    get_alliance_grants_tab,
    get_grants_sheet_id,
    get_scope_users_tab,
    get_state_grants_tab,
)
from shared.errors import StoreUnavailable
from shared.permissions.capabilities import keys_for, normalize_scope
from shared.permissions.grants import GrantRecord, ScopeUser, scope_column
from shared.sheets import core
from shared.sheets.async_adapter import astore_call

__all__ = [
    "GrantSchema",
    "SchemaHit",
    "SchemaMiss",
    "SheetsGrantStore",
    "default_schemas",
    "probe_schema",
]

log = logging.getLogger("hq.sheets.grants")


@dataclass(frozen=True, slots=True)
class GrantSchema:
    name: str
    tab: str
    scope_id_column: str
    user_column: str = "user_id"


@dataclass(frozen=True, slots=True)
class SchemaHit:
    schema: GrantSchema
    worksheet: Any
    values: List[List[Any]]


@dataclass(frozen=True, slots=True)
class SchemaMiss:
    schema: GrantSchema
    reason: str


SchemaResult = Union[SchemaHit, SchemaMiss]


def default_schemas() -> Dict[str, Tuple[GrantSchema, ...]]:
    return {
        "state": (
            GrantSchema("current", get_state_grants_tab(), "state_code"),
            GrantSchema("legacy", "StateGrants", "state", "user"),
        ),
        "alliance": (
            GrantSchema("current", get_alliance_grants_tab(), "alliance_id"),
            GrantSchema("legacy", "AllianceGrants", "alliance", "user"),
        ),
    }


def probe_schema(sheet_id: str, schema: GrantSchema, *, scope: str) -> SchemaResult:
    """Check that ``schema`` can serve ``scope`` grants without losing data.

    A tab holding only coarse legacy columns is a miss: reading it would yield
    empty fine-grained flags and the next save would clear the stored grants.
    """

    try:
        worksheet = core.get_worksheet(sheet_id, schema.tab, retries=0)
    except core.WorksheetNotFound:
        return SchemaMiss(schema, "worksheet missing")
    values = core.get_values(worksheet, retries=0)
    if not values:
        return SchemaMiss(schema, "header row missing")
    lookup = core.header_lookup(values[0])
    missing = [col for col in (schema.scope_id_column, schema.user_column) if col.casefold() not in lookup]
    if missing:
        return SchemaMiss(schema, f"header lacks {', '.join(missing)}")
    if not any(key.casefold() in lookup for key in keys_for(normalize_scope(scope))):
        return SchemaMiss(schema, "no fine-grained columns")
    return SchemaHit(schema, worksheet, values)


def _records(hit: SchemaHit) -> List[Dict[str, Any]]:
    header = [str(cell).strip() for cell in hit.values[0]]
    rows: List[Dict[str, Any]] = []
    for raw in hit.values[1:]:
        rows.append({col: (raw[idx] if idx < len(raw) else "") for idx, col in enumerate(header) if col})
    return rows


class SheetsGrantStore:
    """Grant store adapter over the access-grant worksheets."""

    def __init__(
        self,
        sheet_id: str | None = None,
        *,
        schemas: Dict[str, Sequence[GrantSchema]] | None = None,
        users_tab: str | None = None,
    ) -> None:
        self.sheet_id = sheet_id or get_grants_sheet_id()
        if not self.sheet_id:
            raise RuntimeError("GRANTS_SHEET_ID not set")
        self.schemas = {key: tuple(value) for key, value in (schemas or default_schemas()).items()}
        self.users_tab = users_tab or get_scope_users_tab()

    # --- schema resolution ---------------------------------------------------

    def _resolve(self, scope: str) -> SchemaHit:
        resolved = normalize_scope(scope)
        misses: List[str] = []
        for schema in self.schemas[resolved]:
            result = probe_schema(self.sheet_id, schema, scope=resolved)
            if isinstance(result, SchemaHit):
                if misses:
                    log.info(
                        "grant schema fallback",
                        extra={"scope": resolved, "schema": schema.name, "misses": "; ".join(misses)},
                    )
                return result
            misses.append(f"{schema.name}: {result.reason}")
        raise StoreUnavailable(f"resolve {resolved} grants", "; ".join(misses) or "no schemas configured")

    @staticmethod
    def _to_record(scope: str, hit: SchemaHit, row: Dict[str, Any]) -> Optional[GrantRecord]:
        return GrantRecord.from_row(
            scope,
            row,
            user_column=hit.schema.user_column,
            scope_id_column=hit.schema.scope_id_column,
        )

    @staticmethod
    def _to_storage_row(hit: SchemaHit, record: GrantRecord) -> Dict[str, Any]:
        row = record.to_row()
        row.pop(scope_column(record.scope), None)
        row.pop("user_id", None)
        row[hit.schema.scope_id_column] = record.scope_id
        row[hit.schema.user_column] = record.user_id
        return row

    # --- blocking operations -------------------------------------------------

    def _list_grants_sync(self, scope: str, scope_id: str) -> List[GrantRecord]:
        hit = self._resolve(scope)
        records: List[GrantRecord] = []
        for row in _records(hit):
            record = self._to_record(scope, hit, row)
            if record is not None and record.scope_id == scope_id:
                records.append(record)
        return records

    def _get_sync(self, scope: str, scope_id: str, user_id: str) -> Optional[GrantRecord]:
        for record in self._list_grants_sync(scope, scope_id):
            if record.user_id == user_id:
                return record
        return None

    def _put_sync(self, record: GrantRecord) -> str:
        hit = self._resolve(record.scope)
        return core.upsert_row(
            hit.worksheet,
            self._to_storage_row(hit, record),
            key_columns=(hit.schema.scope_id_column, hit.schema.user_column),
            retries=0,
        )

    def _delete_sync(self, scope: str, scope_id: str, user_id: str) -> bool:
        hit = self._resolve(scope)
        return core.delete_row(
            hit.worksheet,
            {hit.schema.scope_id_column: scope_id, hit.schema.user_column: user_id},
            retries=0,
        )

    def _list_users_sync(self, scope: str, scope_id: str) -> List[ScopeUser]:
        resolved = normalize_scope(scope)
        worksheet = core.get_worksheet(self.sheet_id, self.users_tab, retries=0)
        users: List[ScopeUser] = []
        for row in core.get_records(worksheet, retries=0):
            if str(row.get("scope", "")).strip().lower() != resolved:
                continue
            if str(row.get("scope_id", "")).strip() != scope_id:
                continue
            user_id = str(row.get("user_id", "")).strip()
            if not user_id:
                continue
            display = str(row.get("display_name", "")).strip() or user_id
            users.append(ScopeUser(user_id=user_id, display_name=display))
        return users

    # --- adapter interface ---------------------------------------------------

    async def get_grant(self, scope: str, scope_id: str, user_id: str) -> Optional[GrantRecord]:
        return await astore_call("get grant", self._get_sync, scope, scope_id, user_id)

    async def list_grants(self, scope: str, scope_id: str) -> List[GrantRecord]:
        return await astore_call("list grants", self._list_grants_sync, scope, scope_id)

    async def put_grant(self, scope: str, scope_id: str, user_id: str, fine_grained) -> GrantRecord:
        record = GrantRecord.build(scope, scope_id, user_id, fine_grained)
        result = await astore_call("put grant", self._put_sync, record)
        log.info(
            "grant saved",
            extra={"scope": record.scope, "scope_id": scope_id, "user_id": user_id, "result": result},
        )
        return record

    async def delete_grant(self, scope: str, scope_id: str, user_id: str) -> bool:
        return await astore_call("delete grant", self._delete_sync, scope, scope_id, user_id)

    async def list_users_in_scope(self, scope: str, scope_id: str) -> List[ScopeUser]:
        return await astore_call("list users", self._list_users_sync, scope, scope_id)
