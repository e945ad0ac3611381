import logging

import pytest

from shared.errors import MalformedImport
from shared.permissions.grants import (
    GrantRecord,
    build_export_document,
    parse_bool,
    parse_import_document,
)


def test_build_drops_unknown_keys_and_derives_legacy():
    record = GrantRecord.build("state", 789, " 42 ", {"state_view": True, "bogus": True})
    assert record.scope_id == "789"
    assert record.user_id == "42"
    assert dict(record.fine_grained) == {"state_view": True}
    assert record.legacy["can_view"] is True
    assert record.legacy["can_edit"] is False


def test_with_flag_recomputes_legacy_from_scratch():
    record = GrantRecord.build("state", "789", "42", {"state_alerts_pin": True})
    assert record.legacy["can_manage_state_alerts"] is True
    cleared = record.with_flag("state_alerts_pin", False)
    assert cleared.legacy["can_manage_state_alerts"] is False
    with pytest.raises(ValueError):
        record.with_flag("alliance_alerts_view", True)


def test_to_row_contains_key_columns_catalog_and_legacy():
    row = GrantRecord.build("alliance", "A1", "7", {"alliance_alerts_create": True}).to_row()
    assert row["alliance_id"] == "A1"
    assert row["user_id"] == "7"
    assert row["alliance_alerts_create"] is True
    assert row["alliance_alerts_view"] is False
    assert row["can_post_alerts"] is True


def test_from_row_parses_sheet_booleans():
    row = {"state_code": "789", "user_id": "5", "state_view": "TRUE", "state_ops_edit": "✅", "can_edit": "TRUE"}
    record = GrantRecord.from_row("state", row)
    assert record.enabled_keys() == ("state_view", "state_ops_edit")
    # legacy columns from storage are ignored and recomputed
    assert record.legacy["can_edit"] is False
    assert GrantRecord.from_row("state", {"state_code": "789", "user_id": ""}) is None


def test_parse_bool_variants():
    assert parse_bool("yes") and parse_bool(1) and parse_bool(True)
    assert not parse_bool("") and not parse_bool(None) and not parse_bool("FALSE")


def _export():
    state = [
        GrantRecord.build("state", "789", "1", {"state_view": True}),
        GrantRecord.build("state", "123", "2", {"state_view": True}),
    ]
    alliance = [GrantRecord.build("alliance", "A1", "1", {"alliance_alerts_pin": True})]
    return build_export_document(
        "789",
        state,
        alliance_id="A1",
        alliance_label="WOC",
        alliance_records=alliance,
        exported_at="2025-01-01T00:00:00.000Z",
    )


def test_export_document_shape_filters_other_scopes():
    document = _export()
    assert document["version"] == 2
    assert document["exportedAt"] == "2025-01-01T00:00:00.000Z"
    assert document["alliance_context"] == {"alliance_id": "A1", "label": "WOC"}
    assert [row["user_id"] for row in document["state_access_grants"]] == ["1"]
    assert document["alliance_access_grants"][0]["can_manage_alerts"] is True


def test_import_round_trip():
    bundle = parse_import_document(_export())
    assert [record.user_id for record in bundle.state_records] == ["1"]
    assert bundle.state_records[0].is_enabled("state_view")
    assert bundle.alliance_records[0].scope_id == "A1"


def test_import_inherits_scope_and_drops_rows_without_user(caplog):
    payload = {
        "version": 2,
        "state_code": "789",
        "state_access_grants": [{"user_id": "9", "state_view": True}, {"state_view": True}],
    }
    with caplog.at_level(logging.INFO, logger="hq.permissions.grants"):
        bundle = parse_import_document(payload)
    assert [(r.scope_id, r.user_id) for r in bundle.state_records] == [("789", "9")]
    assert bundle.alliance_records == ()
    assert any("dropped" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"version": 1},
        {"version": 2, "state_access_grants": {"user_id": "1"}},
        {"version": 2, "alliance_access_grants": ["nope"]},
        {"version": 2, "alliance_context": "A1"},
    ],
)
def test_import_rejects_malformed_documents(payload):
    with pytest.raises(MalformedImport):
        parse_import_document(payload)
