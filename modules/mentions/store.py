"""Mention map persistence over an injected key-value store.

Roles and channels live in two versioned JSON blobs. Reads are lenient: a
blob that cannot be decoded or carries the wrong version loads as empty and is
logged. Writes always replace whole buckets.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from shared.config import get_grants_sheet_id, get_kv_tab, get_mentions_backend, get_mentions_store_path
from shared.kvstore import JsonFileKeyValueStore, KeyValueStore, read_json_document, write_json_document
from shared.mentions.store import (
    MentionBucket,
    MentionStore,
    assemble_store,
    channel_document,
    export_document,
    import_document,
    normalize_alliance_code,
    parse_bulk_lines,
    parse_channel_document,
    parse_role_document,
    role_document,
)
from shared.sheets.async_adapter import astore_call

__all__ = [
    "CHANNEL_MAP_KEY",
    "MentionRepository",
    "ROLE_MAP_KEY",
    "build_kv_store",
]

log = logging.getLogger("hq.mentions")

ROLE_MAP_KEY = "discord_role_map_v1"
CHANNEL_MAP_KEY = "discord_channel_map_v1"


def build_kv_store(backend: str | None = None) -> KeyValueStore:
    """Return the key-value backend selected by ``MENTIONS_BACKEND``."""

    choice = (backend or get_mentions_backend()).strip().lower()
    if choice == "sheets":
        from shared.sheets.kv import SheetsKeyValueStore

        return SheetsKeyValueStore(get_grants_sheet_id(), tab=get_kv_tab())
    if choice != "file":
        log.warning("unknown mentions backend; using file", extra={"backend": choice})
    return JsonFileKeyValueStore(get_mentions_store_path())


class MentionRepository:
    """Async facade for reading and replacing the persisted mention store."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    # --- blocking helpers ----------------------------------------------------

    def _load(self) -> MentionStore:
        roles_raw = read_json_document(self.kv, ROLE_MAP_KEY)
        channels_raw = read_json_document(self.kv, CHANNEL_MAP_KEY)
        roles = parse_role_document(roles_raw) if roles_raw is not None else None
        channels = parse_channel_document(channels_raw) if channels_raw is not None else None
        if roles_raw is not None and roles is None:
            log.warning("role map unreadable; loading empty", extra={"key": ROLE_MAP_KEY})
        if channels_raw is not None and channels is None:
            log.warning("channel map unreadable; loading empty", extra={"key": CHANNEL_MAP_KEY})
        return assemble_store(roles, channels)

    def _save(self, store: MentionStore, *, roles: bool = True, channels: bool = True) -> MentionStore:
        """Write the selected documents; a failed channel write restores the prior role blob."""

        previous_roles = self.kv.get(ROLE_MAP_KEY) if roles and channels else None
        if roles:
            write_json_document(self.kv, ROLE_MAP_KEY, role_document(store))
        if channels:
            try:
                write_json_document(self.kv, CHANNEL_MAP_KEY, channel_document(store))
            except Exception:
                if roles:
                    log.warning("channel map write failed; restoring role map", extra={"key": ROLE_MAP_KEY})
                    self.kv.put(ROLE_MAP_KEY, previous_roles or "")
                raise
        return store

    def _put_bucket(self, alliance_code: Optional[str], bucket: MentionBucket) -> MentionStore:
        current = self._load()
        updated = current.with_alliance(alliance_code, bucket) if alliance_code else current.with_global(bucket)
        return self._save(updated)

    def _import(self, payload: Any) -> MentionStore:
        current = self._load()
        updated = import_document(payload, current)
        has_roles = isinstance(payload, dict) and "roleStore" in payload
        has_channels = isinstance(payload, dict) and "chanStore" in payload
        return self._save(updated, roles=has_roles, channels=has_channels)

    def _bulk(self, text: str, kind: str, alliance_code: Optional[str]) -> MentionStore:
        parsed = parse_bulk_lines(text, kind=kind)
        current = self._load()
        code = normalize_alliance_code(alliance_code)
        existing = (current.bucket_for(code) if code else current.global_bucket) or MentionBucket()
        if kind == "roles":
            bucket = MentionBucket.build(parsed.roles, existing.channels)
        else:
            bucket = MentionBucket.build(existing.roles, parsed.channels)
        updated = current.with_alliance(code, bucket) if code else current.with_global(bucket)
        return self._save(updated, roles=kind == "roles", channels=kind == "channels")

    # --- adapter interface ---------------------------------------------------

    async def get_mention_store(self) -> MentionStore:
        return await astore_call("load mentions", self._load)

    async def put_global_mentions(self, bucket: MentionBucket) -> MentionStore:
        store = await astore_call("save global mentions", self._put_bucket, None, bucket)
        log.info("global mentions saved", extra={"roles": len(bucket.roles), "channels": len(bucket.channels)})
        return store

    async def put_alliance_mentions(self, alliance_code: str, bucket: MentionBucket) -> MentionStore:
        code = normalize_alliance_code(alliance_code)
        if not code:
            raise ValueError("alliance code is required")
        store = await astore_call("save alliance mentions", self._put_bucket, code, bucket)
        log.info(
            "alliance mentions saved",
            extra={"alliance": code, "roles": len(bucket.roles), "channels": len(bucket.channels)},
        )
        return store

    async def import_document(self, payload: Any) -> MentionStore:
        """Validate and apply an export document; nothing is written on ``MalformedImport``."""

        store = await astore_call("import mentions", self._import, payload)
        log.info("mention import applied", extra={"alliances": len(store.alliances)})
        return store

    async def export_document(self, *, exported_at: str | None = None) -> Dict[str, Any]:
        store = await self.get_mention_store()
        return export_document(store, exported_at=exported_at)

    async def bulk_import(self, text: str, *, kind: str, alliance_code: Optional[str] = None) -> MentionStore:
        """Replace the roles or channels of one bucket from ``Key=Value`` lines."""

        if kind not in {"roles", "channels"}:
            raise ValueError(f"unknown bulk import kind: {kind!r}")
        store = await astore_call("bulk import mentions", self._bulk, text, kind, alliance_code)
        log.info(
            "mention bulk import applied",
            extra={"kind": kind, "alliance": normalize_alliance_code(alliance_code) or "global"},
        )
        return store
