"""Typed grant records plus the versioned export/import document."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from shared.errors import MalformedImport
from shared.permissions.capabilities import Scope, is_known_key, keys_for, normalize_scope
from shared.permissions.legacy import LEGACY_COLUMNS, compute_legacy_flags

__all__ = [
    "EXPORT_VERSION",
    "GrantImport",
    "GrantRecord",
    "ScopeUser",
    "build_export_document",
    "parse_bool",
    "parse_import_document",
    "scope_column",
]

log = logging.getLogger("hq.permissions.grants")

EXPORT_VERSION = 2

_SCOPE_COLUMNS: Dict[str, str] = {"state": "state_code", "alliance": "alliance_id"}


def scope_column(scope: str) -> str:
    """Return the key column naming the scope instance for ``scope`` rows."""

    return _SCOPE_COLUMNS[normalize_scope(scope)]


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    return text in {"1", "true", "yes", "y", "on", "x", "✅"}


@dataclass(frozen=True, slots=True)
class ScopeUser:
    user_id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class GrantRecord:
    """Fine-grained flags for one user in one scope instance.

    ``legacy`` is always derived from ``fine_grained``; use :meth:`build` or
    :meth:`with_flag` rather than constructing records with hand-made legacy
    values.
    """

    scope: Scope
    scope_id: str
    user_id: str
    fine_grained: Mapping[str, bool] = field(default_factory=dict)
    legacy: Mapping[str, bool] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        scope: str,
        scope_id: object,
        user_id: object,
        fine_grained: Mapping[str, object] | None = None,
    ) -> "GrantRecord":
        resolved = normalize_scope(scope)
        flags = {
            key: bool(value)
            for key, value in (fine_grained or {}).items()
            if is_known_key(resolved, key)
        }
        return cls(
            scope=resolved,
            scope_id=str(scope_id or "").strip(),
            user_id=str(user_id or "").strip(),
            fine_grained=flags,
            legacy=compute_legacy_flags(resolved, flags),
        )

    @classmethod
    def from_row(
        cls,
        scope: str,
        row: Mapping[str, Any],
        *,
        scope_id: object = None,
        user_column: str = "user_id",
        scope_id_column: str | None = None,
    ) -> Optional["GrantRecord"]:
        """Narrow a storage row into a record; rows without a user id yield ``None``."""

        resolved = normalize_scope(scope)
        user_id = str(row.get(user_column) or "").strip()
        if not user_id:
            return None
        column = scope_id_column or scope_column(resolved)
        raw_scope_id = row.get(column)
        if raw_scope_id in (None, ""):
            raw_scope_id = scope_id
        flags = {key: parse_bool(row.get(key)) for key in keys_for(resolved) if key in row}
        return cls.build(resolved, raw_scope_id, user_id, flags)

    def is_enabled(self, key: str) -> bool:
        return bool(self.fine_grained.get(key))

    def enabled_keys(self) -> Tuple[str, ...]:
        return tuple(key for key in keys_for(self.scope) if self.fine_grained.get(key))

    def with_flag(self, key: str, value: bool) -> "GrantRecord":
        if not is_known_key(self.scope, key):
            raise ValueError(f"unknown {self.scope} capability: {key}")
        flags = dict(self.fine_grained)
        flags[key] = bool(value)
        return GrantRecord.build(self.scope, self.scope_id, self.user_id, flags)

    def to_row(self) -> Dict[str, Any]:
        """Return the storage row: key columns, every catalog key, legacy columns."""

        row: Dict[str, Any] = {
            scope_column(self.scope): self.scope_id,
            "user_id": self.user_id,
        }
        for key in keys_for(self.scope):
            row[key] = bool(self.fine_grained.get(key))
        for column in LEGACY_COLUMNS[self.scope]:
            row[column] = bool(self.legacy.get(column))
        return row


@dataclass(frozen=True, slots=True)
class GrantImport:
    state_records: Tuple[GrantRecord, ...]
    alliance_records: Tuple[GrantRecord, ...]


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_export_document(
    state_code: str,
    state_records: Iterable[GrantRecord],
    *,
    alliance_id: str = "",
    alliance_label: str = "",
    alliance_records: Iterable[GrantRecord] = (),
    exported_at: str | None = None,
) -> Dict[str, Any]:
    return {
        "version": EXPORT_VERSION,
        "exportedAt": exported_at or _now_iso(),
        "state_code": state_code,
        "state_access_grants": [
            record.to_row() for record in state_records if record.scope_id == state_code
        ],
        "alliance_context": {"alliance_id": alliance_id, "label": alliance_label},
        "alliance_access_grants": [
            record.to_row() for record in alliance_records if record.scope_id == alliance_id
        ],
    }


def _rows(payload: Mapping[str, Any], name: str) -> List[Mapping[str, Any]]:
    raw = payload.get(name)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedImport(f"{name} must be an array")
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise MalformedImport(f"{name}[{index}] must be an object")
    return raw


def parse_import_document(
    payload: object,
    *,
    default_state_code: str = "",
    default_alliance_id: str = "",
) -> GrantImport:
    """Validate an export document and return the records it describes.

    Validation covers the whole payload before anything is returned, so a
    caller either gets every record or a :class:`MalformedImport`.
    """

    if not isinstance(payload, Mapping):
        raise MalformedImport("grant import must be a JSON object")
    version = payload.get("version")
    if version != EXPORT_VERSION:
        raise MalformedImport(f"unsupported grant export version: {version!r}")

    state_code = str(payload.get("state_code") or default_state_code or "").strip()
    context = payload.get("alliance_context")
    if context is not None and not isinstance(context, Mapping):
        raise MalformedImport("alliance_context must be an object")
    alliance_id = str((context or {}).get("alliance_id") or default_alliance_id or "").strip()

    state_rows = _rows(payload, "state_access_grants")
    alliance_rows = _rows(payload, "alliance_access_grants")

    state_records: List[GrantRecord] = []
    for row in state_rows:
        record = GrantRecord.from_row("state", row, scope_id=state_code)
        if record is None or not record.scope_id:
            continue
        state_records.append(record)

    alliance_records: List[GrantRecord] = []
    for row in alliance_rows:
        record = GrantRecord.from_row("alliance", row, scope_id=alliance_id)
        if record is None or not record.scope_id:
            continue
        alliance_records.append(record)

    dropped = len(state_rows) + len(alliance_rows) - len(state_records) - len(alliance_records)
    if dropped:
        log.info("grant import dropped rows without user or scope", extra={"dropped": dropped})
    return GrantImport(state_records=tuple(state_records), alliance_records=tuple(alliance_records))
