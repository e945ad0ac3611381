"""Key-value store backed by a two-column ``key``/``value`` worksheet."""

from __future__ import annotations

import logging
from typing import Optional

from shared.sheets import core

__all__ = ["SheetsKeyValueStore"]

log = logging.getLogger("hq.sheets.kv")


class SheetsKeyValueStore:
    """Persist document blobs as rows of the configured KV tab.

    Calls run once without automatic retry; failures propagate to the caller.
    """

    def __init__(self, sheet_id: str, tab: str = "KV") -> None:
        if not sheet_id:
            raise RuntimeError("GRANTS_SHEET_ID not set")
        self.sheet_id = sheet_id
        self.tab = tab

    def _worksheet(self):
        return core.get_worksheet(self.sheet_id, self.tab, retries=0)

    def get(self, key: str) -> Optional[str]:
        for record in core.get_records(self._worksheet(), retries=0):
            if str(record.get("key", "")).strip() == key:
                value = record.get("value")
                return None if value in (None, "") else str(value)
        return None

    def put(self, key: str, value: str) -> None:
        result = core.upsert_row(
            self._worksheet(),
            {"key": key, "value": value},
            key_columns=("key",),
            casefold=False,
            retries=0,
        )
        log.debug("kv write", extra={"key": key, "result": result, "tab": self.tab})
