"""Per-state directory of named Discord channels with exactly one default.

Each state's rows are stored as a single versioned document, so switching the
default is one write and no reader ever sees zero or two defaults.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional

from shared.kvstore import KeyValueStore, read_json_document, write_json_document
from shared.mentions.store import normalize_channel_name
from shared.permissions.grants import parse_bool
from shared.sheets.async_adapter import astore_call

__all__ = ["ChannelDirectory", "StateChannel", "directory_key", "ordered"]

log = logging.getLogger("hq.channels")

_VERSION = 1


def directory_key(state_code: str) -> str:
    return f"state_discord_channels_v1:{state_code}"


@dataclass(frozen=True, slots=True)
class StateChannel:
    row_id: str
    state_code: str
    channel_name: str
    channel_id: str
    active: bool = True
    is_default: bool = False
    created_at: str = ""

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.row_id,
            "state_code": self.state_code,
            "channel_name": self.channel_name,
            "channel_id": self.channel_id,
            "active": self.active,
            "is_default": self.is_default,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, raw: Mapping[str, Any], state_code: str) -> Optional["StateChannel"]:
        row_id = str(raw.get("id") or "").strip()
        name = normalize_channel_name(raw.get("channel_name"))
        channel_id = str(raw.get("channel_id") or "").strip()
        if not row_id or not name or not channel_id:
            return None
        return cls(
            row_id=row_id,
            state_code=state_code,
            channel_name=name,
            channel_id=channel_id,
            active=parse_bool(raw.get("active", True)),
            is_default=parse_bool(raw.get("is_default")),
            created_at=str(raw.get("created_at") or ""),
        )


def ordered(rows: List[StateChannel]) -> List[StateChannel]:
    """Default first, then by channel name."""

    return sorted(rows, key=lambda row: (not row.is_default, row.channel_name.casefold()))


def _with_default(rows: List[StateChannel], row_id: Optional[str]) -> List[StateChannel]:
    return [replace(row, is_default=(row.row_id == row_id)) for row in rows]


def _normalized(rows: List[StateChannel]) -> List[StateChannel]:
    # Repair stored documents that carry zero or several defaults.
    if not rows:
        return rows
    defaults = [row for row in ordered(rows) if row.is_default]
    if len(defaults) == 1:
        return rows
    winner = defaults[0] if defaults else ordered(rows)[0]
    return _with_default(rows, winner.row_id)


class ChannelDirectory:
    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    # --- blocking helpers ----------------------------------------------------

    def _load(self, state_code: str) -> List[StateChannel]:
        payload = read_json_document(self.kv, directory_key(state_code))
        if payload is None:
            return []
        if not isinstance(payload, Mapping) or payload.get("version") != _VERSION or not isinstance(
            payload.get("rows"), list
        ):
            log.warning("channel directory unreadable; loading empty", extra={"state_code": state_code})
            return []
        rows = [
            row
            for row in (
                StateChannel.from_document(raw, state_code) for raw in payload["rows"] if isinstance(raw, Mapping)
            )
            if row is not None
        ]
        return _normalized(rows)

    def _write(self, state_code: str, rows: List[StateChannel]) -> List[StateChannel]:
        rows = ordered(rows)
        write_json_document(
            self.kv,
            directory_key(state_code),
            {"version": _VERSION, "rows": [row.to_document() for row in rows]},
        )
        return rows

    def _add(self, state_code: str, name: str, channel_id: str) -> StateChannel:
        rows = self._load(state_code)
        row = StateChannel(
            row_id=uuid.uuid4().hex[:16],
            state_code=state_code,
            channel_name=name,
            channel_id=channel_id,
            active=True,
            is_default=not rows,
            created_at=dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds"),
        )
        self._write(state_code, rows + [row])
        return row

    def _mutate(self, state_code: str, row_id: str, action: str) -> Optional[List[StateChannel]]:
        rows = self._load(state_code)
        target = next((row for row in rows if row.row_id == row_id), None)
        if target is None:
            return None
        if action == "default":
            rows = _with_default(rows, row_id)
        elif action == "toggle":
            rows = [replace(row, active=not row.active) if row.row_id == row_id else row for row in rows]
        elif action == "remove":
            rows = [row for row in rows if row.row_id != row_id]
            if target.is_default and rows:
                rows = _with_default(rows, ordered(rows)[0].row_id)
        return self._write(state_code, rows)

    # --- public interface ----------------------------------------------------

    async def list_channels(self, state_code: str, *, active_only: bool = False) -> List[StateChannel]:
        rows = ordered(await astore_call("load channels", self._load, state_code))
        if active_only:
            rows = [row for row in rows if row.active]
        return rows

    async def add(self, state_code: str, name: str, channel_id: str) -> StateChannel:
        clean_name = normalize_channel_name(name)
        clean_id = str(channel_id or "").strip()
        if not clean_name or not clean_id:
            raise ValueError("channel name and channel id are required")
        row = await astore_call("add channel", self._add, state_code, clean_name, clean_id)
        log.info(
            "state channel added",
            extra={"state_code": state_code, "channel": clean_name, "is_default": row.is_default},
        )
        return row

    async def set_default(self, state_code: str, row_id: str) -> List[StateChannel]:
        rows = await self._apply(state_code, row_id, "default")
        log.info("state channel default set", extra={"state_code": state_code, "row_id": row_id})
        return rows

    async def toggle_active(self, state_code: str, row_id: str) -> List[StateChannel]:
        return await self._apply(state_code, row_id, "toggle")

    async def remove(self, state_code: str, row_id: str) -> List[StateChannel]:
        rows = await self._apply(state_code, row_id, "remove")
        log.info("state channel removed", extra={"state_code": state_code, "row_id": row_id})
        return rows

    async def default_channel(self, state_code: str) -> Optional[StateChannel]:
        """The active default row, if any."""

        for row in await self.list_channels(state_code, active_only=True):
            if row.is_default:
                return row
        return None

    async def _apply(self, state_code: str, row_id: str, action: str) -> List[StateChannel]:
        rows = await astore_call(f"{action} channel", self._mutate, state_code, row_id, action)
        if rows is None:
            raise ValueError(f"unknown channel row: {row_id}")
        return rows
