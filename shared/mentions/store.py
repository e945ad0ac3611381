"""Role and channel mention maps plus their versioned JSON documents.

Two documents back the store, mirroring what operators export and import::

    {"version": 1, "global": {"Leadership": "<@&1>"}, "alliances": {"WOC": {...}}}
    {"version": 1, "global": [{"id": ..., "name": ..., "channelId": ..., "createdUtc": ...}],
     "alliances": {"WOC": [...]}}

Parsing has two modes. ``strict=True`` is used for imports and raises
:class:`~shared.errors.MalformedImport`; the lenient mode is used when loading a
persisted blob and falls back to an empty document.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from shared.errors import MalformedImport

__all__ = [
    "DOCUMENT_VERSION",
    "assemble_store",
    "ChannelEntry",
    "MentionBucket",
    "MentionStore",
    "channel_document",
    "export_document",
    "import_document",
    "normalize_alliance_code",
    "normalize_channel_name",
    "normalize_role_key",
    "parse_bulk_lines",
    "parse_channel_document",
    "parse_role_document",
    "role_document",
    "split_store",
]

log = logging.getLogger("hq.mentions.store")

DOCUMENT_VERSION = 1


def normalize_alliance_code(value: object) -> str:
    return str(value or "").strip().upper()


def normalize_role_key(value: object) -> str:
    text = str(value or "").strip()
    if text.startswith("@"):
        text = text[1:]
    if text.startswith("{{"):
        text = text[2:]
    if text.endswith("}}"):
        text = text[:-2]
    return text.strip()


def normalize_channel_name(value: object) -> str:
    text = str(value or "").strip()
    if text.startswith("#"):
        text = text[1:]
    return text.strip()


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _new_entry_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass(frozen=True, slots=True)
class ChannelEntry:
    name: str
    channel_id: str
    entry_id: str = ""
    created_utc: str = ""

    @classmethod
    def create(cls, name: object, channel_id: object) -> "ChannelEntry":
        return cls(
            name=normalize_channel_name(name),
            channel_id=str(channel_id or "").strip(),
            entry_id=_new_entry_id(),
            created_utc=_now_iso(),
        )

    def to_document(self) -> Dict[str, str]:
        return {
            "id": self.entry_id,
            "name": self.name,
            "channelId": self.channel_id,
            "createdUtc": self.created_utc,
        }


@dataclass(frozen=True, slots=True)
class MentionBucket:
    """Role and channel mappings for one scope (global or one alliance)."""

    roles: Mapping[str, str] = field(default_factory=dict)
    channels: Tuple[ChannelEntry, ...] = ()

    @classmethod
    def build(
        cls,
        roles: Mapping[str, object] | None = None,
        channels: Iterable[ChannelEntry] = (),
    ) -> "MentionBucket":
        role_map: Dict[str, str] = {}
        for key, value in (roles or {}).items():
            name = normalize_role_key(key)
            if name:
                role_map[name] = str(value or "").strip()
        seen: set[str] = set()
        entries: List[ChannelEntry] = []
        for entry in channels:
            name = normalize_channel_name(entry.name)
            if not name or name in seen:
                continue
            seen.add(name)
            entries.append(replace(entry, name=name, channel_id=str(entry.channel_id or "").strip()))
        return cls(roles=role_map, channels=tuple(entries))

    def role(self, key: str) -> str:
        return self.roles.get(key, "").strip()

    def is_empty(self) -> bool:
        return not self.roles and not self.channels


@dataclass(frozen=True, slots=True)
class MentionStore:
    global_bucket: MentionBucket = field(default_factory=MentionBucket)
    alliances: Mapping[str, MentionBucket] = field(default_factory=dict)

    def bucket_for(self, alliance_code: object | None) -> Optional[MentionBucket]:
        code = normalize_alliance_code(alliance_code)
        if not code:
            return None
        return self.alliances.get(code)

    def with_global(self, bucket: MentionBucket) -> "MentionStore":
        return MentionStore(global_bucket=bucket, alliances=dict(self.alliances))

    def with_alliance(self, alliance_code: object, bucket: MentionBucket) -> "MentionStore":
        code = normalize_alliance_code(alliance_code)
        if not code:
            raise ValueError("alliance code is required")
        alliances = dict(self.alliances)
        alliances[code] = bucket
        return MentionStore(global_bucket=self.global_bucket, alliances=alliances)


# --- documents -------------------------------------------------------------


def role_document(store: MentionStore) -> Dict[str, Any]:
    return {
        "version": DOCUMENT_VERSION,
        "global": dict(store.global_bucket.roles),
        "alliances": {code: dict(bucket.roles) for code, bucket in store.alliances.items()},
    }


def channel_document(store: MentionStore) -> Dict[str, Any]:
    return {
        "version": DOCUMENT_VERSION,
        "global": [entry.to_document() for entry in store.global_bucket.channels],
        "alliances": {
            code: [entry.to_document() for entry in bucket.channels]
            for code, bucket in store.alliances.items()
        },
    }


def _reject(strict: bool, message: str) -> None:
    if strict:
        raise MalformedImport(message)
    log.warning("mention document ignored: %s", message)


def _check_header(payload: object, label: str, strict: bool) -> Optional[Mapping[str, Any]]:
    if not isinstance(payload, Mapping):
        _reject(strict, f"{label} must be an object")
        return None
    version = payload.get("version")
    if version != DOCUMENT_VERSION:
        _reject(strict, f"{label} has unsupported version {version!r}")
        return None
    return payload


def _alliance_slot(code: object, taken: Mapping[str, Any], label: str, strict: bool) -> Optional[str]:
    """Return the normalized code for an alliance key, or ``None`` when it is skipped."""

    normalized = normalize_alliance_code(code)
    if not normalized:
        problem = "is blank"
    elif normalized in taken:
        problem = f"duplicates {normalized}"
    else:
        return normalized
    message = f"{label} key {code!r} {problem}"
    if strict:
        raise MalformedImport(message)
    log.warning("mention alliance key skipped: %s", message)
    return None


def _role_map(raw: object, label: str, strict: bool) -> Optional[Dict[str, str]]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        _reject(strict, f"{label} must be an object")
        return None
    result: Dict[str, str] = {}
    for key, value in raw.items():
        if value is not None and not isinstance(value, (str, int)):
            _reject(strict, f"{label}.{key} must be a string")
            return None
        result[str(key)] = "" if value is None else str(value)
    return result


def parse_role_document(payload: object, *, strict: bool = False) -> Optional[Dict[str, Dict[str, str]]]:
    """Return ``{"": global_roles, CODE: alliance_roles}`` or ``None`` when rejected."""

    doc = _check_header(payload, "roleStore", strict)
    if doc is None:
        return None
    result: Dict[str, Dict[str, str]] = {}
    global_roles = _role_map(doc.get("global"), "roleStore.global", strict)
    if global_roles is None:
        return None
    result[""] = global_roles
    alliances = doc.get("alliances")
    if alliances is None:
        alliances = {}
    if not isinstance(alliances, Mapping):
        _reject(strict, "roleStore.alliances must be an object")
        return None
    for code, roles in alliances.items():
        slot = _alliance_slot(code, result, "roleStore.alliances", strict)
        if slot is None:
            continue
        parsed = _role_map(roles, f"roleStore.alliances.{code}", strict)
        if parsed is None:
            return None
        result[slot] = parsed
    return result


def _channel_list(raw: object, label: str, strict: bool) -> Optional[List[ChannelEntry]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        _reject(strict, f"{label} must be an array")
        return None
    entries: List[ChannelEntry] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            _reject(strict, f"{label}[{index}] must be an object")
            return None
        name = item.get("name")
        if not isinstance(name, str):
            _reject(strict, f"{label}[{index}].name must be a string")
            return None
        entries.append(
            ChannelEntry(
                name=name,
                channel_id=str(item.get("channelId") or ""),
                entry_id=str(item.get("id") or ""),
                created_utc=str(item.get("createdUtc") or ""),
            )
        )
    return entries


def parse_channel_document(
    payload: object, *, strict: bool = False
) -> Optional[Dict[str, List[ChannelEntry]]]:
    """Return ``{"": global_channels, CODE: alliance_channels}`` or ``None``."""

    doc = _check_header(payload, "chanStore", strict)
    if doc is None:
        return None
    result: Dict[str, List[ChannelEntry]] = {}
    global_channels = _channel_list(doc.get("global"), "chanStore.global", strict)
    if global_channels is None:
        return None
    result[""] = global_channels
    alliances = doc.get("alliances")
    if alliances is None:
        alliances = {}
    if not isinstance(alliances, Mapping):
        _reject(strict, "chanStore.alliances must be an object")
        return None
    for code, entries in alliances.items():
        slot = _alliance_slot(code, result, "chanStore.alliances", strict)
        if slot is None:
            continue
        parsed = _channel_list(entries, f"chanStore.alliances.{code}", strict)
        if parsed is None:
            return None
        result[slot] = parsed
    return result


def assemble_store(
    roles: Mapping[str, Mapping[str, str]] | None,
    channels: Mapping[str, Iterable[ChannelEntry]] | None,
) -> MentionStore:
    role_parts = dict(roles or {})
    channel_parts = {code: list(entries) for code, entries in (channels or {}).items()}
    codes = (set(role_parts) | set(channel_parts)) - {""}
    alliances = {
        code: MentionBucket.build(role_parts.get(code), channel_parts.get(code, ()))
        for code in sorted(codes)
    }
    return MentionStore(
        global_bucket=MentionBucket.build(role_parts.get(""), channel_parts.get("", ())),
        alliances=alliances,
    )


def split_store(store: MentionStore) -> Tuple[Dict[str, Dict[str, str]], Dict[str, List[ChannelEntry]]]:
    roles: Dict[str, Dict[str, str]] = {"": dict(store.global_bucket.roles)}
    channels: Dict[str, List[ChannelEntry]] = {"": list(store.global_bucket.channels)}
    for code, bucket in store.alliances.items():
        roles[code] = dict(bucket.roles)
        channels[code] = list(bucket.channels)
    return roles, channels


def export_document(store: MentionStore, *, exported_at: str | None = None) -> Dict[str, Any]:
    return {
        "version": DOCUMENT_VERSION,
        "exportedAt": exported_at or _now_iso(),
        "roleStore": role_document(store),
        "chanStore": channel_document(store),
    }


def import_document(payload: object, current: MentionStore) -> MentionStore:
    """Apply an export document on top of ``current`` and return the new store.

    ``roleStore`` and ``chanStore`` each replace their whole document when
    present. Validation runs on both parts before anything is combined, so a
    failure leaves ``current`` untouched.
    """

    if not isinstance(payload, Mapping):
        raise MalformedImport("mention import must be a JSON object")
    version = payload.get("version")
    if version != DOCUMENT_VERSION:
        raise MalformedImport(f"unsupported mention export version: {version!r}")
    has_roles = "roleStore" in payload
    has_channels = "chanStore" in payload
    if not has_roles and not has_channels:
        raise MalformedImport("mention import needs roleStore or chanStore")

    roles_now, channels_now = split_store(current)
    roles = parse_role_document(payload["roleStore"], strict=True) if has_roles else roles_now
    channels = parse_channel_document(payload["chanStore"], strict=True) if has_channels else channels_now
    return assemble_store(roles, channels)


def parse_bulk_lines(text: str, *, kind: str) -> MentionBucket:
    """Parse ``Key=Value`` lines into a bucket holding only roles or channels."""

    if kind not in {"roles", "channels"}:
        raise ValueError(f"unknown bulk import kind: {kind!r}")
    roles: Dict[str, str] = {}
    channels: List[ChannelEntry] = []
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if not key:
            continue
        if kind == "roles":
            roles[key] = value.strip()
        else:
            channels.append(ChannelEntry.create(key, value.strip()))
    return MentionBucket.build(roles, channels)
