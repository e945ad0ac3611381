"""In-memory worksheet doubles shared by the Sheets adapter tests."""

from __future__ import annotations

import re

from shared.sheets import core

_ROW_RE = re.compile(r"^[A-Z]+(\d+)")


class RecordingSheet:
    """Applies writes to its own rows so reads observe earlier writes."""

    def __init__(self, rows, title="Sheet"):
        self.title = title
        self.rows = [list(row) for row in rows]
        self.updated = []
        self.appended = []
        self.deleted = []

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def update(self, range_, values, value_input_option="RAW"):
        self.updated.append((range_, values))
        index = int(_ROW_RE.match(range_).group(1))
        self.rows[index - 1] = list(values[0])

    def append_row(self, values, value_input_option="RAW"):
        self.appended.append(list(values))
        self.rows.append(list(values))

    def delete_rows(self, index):
        self.deleted.append(index)
        del self.rows[index - 1]


def install_tabs(monkeypatch, tabs):
    """Route ``core.get_worksheet`` to ``tabs``; unknown tabs raise ``WorksheetNotFound``."""

    calls = []

    def _get_worksheet(sheet_id, tab, **kwargs):
        calls.append((sheet_id, tab, kwargs.get("retries")))
        if tab not in tabs:
            raise core.WorksheetNotFound(tab)
        return tabs[tab]

    monkeypatch.setattr(core, "get_worksheet", _get_worksheet)
    return calls


class FailingSheet(RecordingSheet):
    def __init__(self, exc, rows=(("key", "value"),)):
        super().__init__(rows)
        self.exc = exc
        self.calls = 0

    def get_all_values(self):
        self.calls += 1
        raise self.exc
