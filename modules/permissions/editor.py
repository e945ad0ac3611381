"""Grant edit sessions plus export/import of grant bundles.

An edit session reads the stored record before any change, keeps toggles in a
working copy and writes the merged record on :meth:`GrantEditor.save`. The
persisted snapshot only moves forward after the store confirms the write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from modules.permissions.store import GrantStore
from shared.errors import AllianceHQError
from shared.permissions.capabilities import is_known_key, normalize_scope
from shared.permissions.grants import GrantRecord, build_export_document, parse_import_document

__all__ = ["GrantEditor", "ImportSummary", "export_grants", "import_grants"]

log = logging.getLogger("hq.permissions.editor")


class GrantEditor:
    """Read-before-edit / write-after-edit session for one user's grant."""

    def __init__(self, store: GrantStore) -> None:
        self.store = store
        self.saved: Optional[GrantRecord] = None
        self.working: Optional[GrantRecord] = None

    @property
    def is_open(self) -> bool:
        return self.working is not None

    @property
    def dirty(self) -> bool:
        if self.working is None:
            return False
        baseline = self.saved.enabled_keys() if self.saved is not None else ()
        return self.working.enabled_keys() != baseline

    def _require_open(self) -> GrantRecord:
        if self.working is None:
            raise RuntimeError("grant editor has no open record")
        return self.working

    async def open(self, scope: str, scope_id: str, user_id: str) -> GrantRecord:
        resolved = normalize_scope(scope)
        record = await self.store.get_grant(resolved, scope_id, user_id)
        self.saved = record
        self.working = record or GrantRecord.build(resolved, scope_id, user_id)
        log.debug(
            "grant opened",
            extra={"scope": resolved, "scope_id": scope_id, "user_id": user_id, "exists": record is not None},
        )
        return self.working

    def toggle(self, key: str, value: bool | None = None) -> GrantRecord:
        """Set ``key`` to ``value``, or flip it when ``value`` is ``None``."""

        working = self._require_open()
        if not is_known_key(working.scope, key):
            raise ValueError(f"unknown {working.scope} capability: {key}")
        target = (not working.is_enabled(key)) if value is None else bool(value)
        self.working = working.with_flag(key, target)
        return self.working

    async def save(self) -> GrantRecord:
        working = self._require_open()
        record = await self.store.put_grant(
            working.scope, working.scope_id, working.user_id, working.fine_grained
        )
        self.saved = record
        self.working = record
        log.info(
            "grant saved",
            extra={
                "scope": record.scope,
                "scope_id": record.scope_id,
                "user_id": record.user_id,
                "enabled": ",".join(record.enabled_keys()),
            },
        )
        return record

    async def delete(self) -> bool:
        working = self._require_open()
        removed = await self.store.delete_grant(working.scope, working.scope_id, working.user_id)
        self.saved = None
        self.working = GrantRecord.build(working.scope, working.scope_id, working.user_id)
        log.info(
            "grant deleted",
            extra={"scope": working.scope, "scope_id": working.scope_id, "user_id": working.user_id, "removed": removed},
        )
        return removed


@dataclass(frozen=True, slots=True)
class ImportSummary:
    state_written: int
    alliance_written: int

    @property
    def total(self) -> int:
        return self.state_written + self.alliance_written


async def export_grants(
    store: GrantStore,
    state_code: str,
    *,
    alliance_id: str = "",
    alliance_label: str = "",
    exported_at: str | None = None,
) -> Dict[str, Any]:
    state_records = await store.list_grants("state", state_code)
    alliance_records = await store.list_grants("alliance", alliance_id) if alliance_id else []
    return build_export_document(
        state_code,
        state_records,
        alliance_id=alliance_id,
        alliance_label=alliance_label,
        alliance_records=alliance_records,
        exported_at=exported_at,
    )


async def import_grants(
    store: GrantStore,
    payload: object,
    *,
    default_state_code: str = "",
    default_alliance_id: str = "",
) -> ImportSummary:
    """Validate ``payload`` completely, then write each record through ``store``.

    A :class:`~shared.errors.MalformedImport` is raised before any write. Write
    failures stop the import and propagate; earlier rows stay written.
    """

    bundle = parse_import_document(
        payload,
        default_state_code=default_state_code,
        default_alliance_id=default_alliance_id,
    )
    state_written = 0
    alliance_written = 0
    try:
        for record in bundle.state_records:
            await store.put_grant("state", record.scope_id, record.user_id, record.fine_grained)
            state_written += 1
        for record in bundle.alliance_records:
            await store.put_grant("alliance", record.scope_id, record.user_id, record.fine_grained)
            alliance_written += 1
    except AllianceHQError:
        log.warning(
            "grant import interrupted",
            extra={"state_written": state_written, "alliance_written": alliance_written},
        )
        raise
    log.info("grant import applied", extra={"state_written": state_written, "alliance_written": alliance_written})
    return ImportSummary(state_written=state_written, alliance_written=alliance_written)
