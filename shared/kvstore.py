"""Key-value persistence for opaque JSON documents.

Callers get and put whole string blobs; the backend decides where they live.
The JSON-file backend keeps every key in one file on disk, the Sheets backend
(:mod:`shared.sheets.kv`) keeps them in a two-column worksheet.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from shared.errors import StoreUnavailable

__all__ = [
    "DEFAULT_STORE_PATH",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "read_json_document",
    "write_json_document",
]

log = logging.getLogger("hq.kvstore")

DEFAULT_STORE_PATH = Path("config/hq_store.json")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Dictionary-backed store used by tests and dry runs."""

    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileKeyValueStore:
    """Simple JSON-backed persistence for document blobs."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path or DEFAULT_STORE_PATH)
        self._lock = threading.Lock()

    def _load(self) -> dict:
        if not self.path.exists():
            return {"entries": {}, "updated_at": None}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailable("read", f"{self.path}: {exc}") from exc
        entries = payload.get("entries") if isinstance(payload, dict) else None
        if not isinstance(entries, dict):
            log.warning("store file has no entries mapping; treating as empty", extra={"path": str(self.path)})
            entries = {}
        return {"entries": entries, "updated_at": payload.get("updated_at")}

    @staticmethod
    def _now_timestamp() -> str:
        return dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._load()["entries"].get(key)
        return value if isinstance(value, str) else None

    def put(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data["entries"][key] = value
            data["updated_at"] = self._now_timestamp()
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
                with tmp_path.open("w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2, sort_keys=True)
                    handle.write("\n")
                tmp_path.replace(self.path)
            except OSError as exc:
                raise StoreUnavailable("write", f"{self.path}: {exc}") from exc


def read_json_document(store: KeyValueStore, key: str) -> Any:
    """Return the decoded blob under ``key``; missing or undecodable blobs yield ``None``."""

    raw = store.get(key)
    if raw in (None, ""):
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        log.warning("stored document is not valid JSON", extra={"key": key, "error": str(exc)})
        return None


def write_json_document(store: KeyValueStore, key: str, payload: Any) -> None:
    store.put(key, json.dumps(payload, ensure_ascii=False, separators=(",", ":")))
