import logging

import pytest

from shared.errors import MalformedImport
from shared.mentions.store import (
    ChannelEntry,
    MentionBucket,
    MentionStore,
    export_document,
    import_document,
    parse_bulk_lines,
    parse_channel_document,
    parse_role_document,
)


def test_export_import_round_trip(sample_store):
    document = export_document(sample_store, exported_at="2025-01-01T00:00:00.000Z")
    assert document["version"] == 1
    assert document["roleStore"]["alliances"]["WOC"] == {"R5": "<@&999>"}
    assert document["chanStore"]["global"][0]["channelId"] == "900"
    assert import_document(document, MentionStore()) == sample_store


def test_import_rejects_wrong_version_and_keeps_store(sample_store):
    document = export_document(sample_store)
    document["version"] = 2
    before = export_document(sample_store, exported_at="x")
    with pytest.raises(MalformedImport):
        import_document(document, sample_store)
    assert export_document(sample_store, exported_at="x") == before


def test_import_requires_some_part():
    with pytest.raises(MalformedImport):
        import_document({"version": 1}, MentionStore())


def test_partial_import_replaces_only_present_part(sample_store):
    payload = {"version": 1, "roleStore": {"version": 1, "global": {"Member": "77"}, "alliances": {}}}
    result = import_document(payload, sample_store)
    assert dict(result.global_bucket.roles) == {"Member": "77"}
    assert result.global_bucket.channels == sample_store.global_bucket.channels
    assert result.bucket_for("WOC").roles == {}
    assert result.bucket_for("WOC").channels == sample_store.bucket_for("WOC").channels


@pytest.mark.parametrize(
    "chan_store",
    [
        {"version": 2, "global": []},
        {"version": 1, "global": {"name": "x"}},
        {"version": 1, "global": ["x"]},
        {"version": 1, "global": [], "alliances": []},
    ],
)
def test_import_rejects_bad_channel_shapes(chan_store):
    with pytest.raises(MalformedImport):
        import_document({"version": 1, "chanStore": chan_store}, MentionStore())


def test_lenient_parse_returns_none_for_bad_blobs():
    assert parse_role_document({"version": 3}) is None
    assert parse_channel_document("nope") is None


def test_duplicate_channel_names_keep_first_entry():
    bucket = MentionBucket.build({}, [ChannelEntry("#ops", "1"), ChannelEntry("ops", "2")])
    assert [(entry.name, entry.channel_id) for entry in bucket.channels] == [("ops", "1")]


def test_alliance_codes_are_uppercased():
    store = MentionStore().with_alliance("woc", MentionBucket.build({"R5": "5"}))
    assert store.bucket_for("Woc").role("R5") == "5"
    with pytest.raises(ValueError):
        MentionStore().with_alliance("  ", MentionBucket())


def test_bulk_lines_roles_and_channels():
    roles = parse_bulk_lines("Leadership=<@&1>\n\n@R5=55\nMember=", kind="roles")
    assert dict(roles.roles) == {"Leadership": "<@&1>", "R5": "55", "Member": ""}

    channels = parse_bulk_lines("#announcements=900\nwar-room = 901\n", kind="channels")
    assert [(entry.name, entry.channel_id) for entry in channels.channels] == [
        ("announcements", "900"),
        ("war-room", "901"),
    ]
    with pytest.raises(ValueError):
        parse_bulk_lines("a=b", kind="emoji")


@pytest.mark.parametrize(
    "alliances, message",
    [
        ({" ": {"Leadership": "666"}}, "is blank"),
        ({"woc": {"R5": "1"}, "WOC": {"R5": "2"}}, "duplicates WOC"),
    ],
)
def test_import_rejects_blank_or_colliding_alliance_keys(sample_store, alliances, message):
    document = export_document(sample_store)
    document["roleStore"]["alliances"] = alliances
    with pytest.raises(MalformedImport) as excinfo:
        import_document(document, sample_store)
    assert message in str(excinfo.value)
    assert sample_store.global_bucket.role("Leadership") == "111"


def test_lenient_parse_skips_blank_and_colliding_alliance_keys(caplog):
    payload = {
        "version": 1,
        "global": [{"name": "ops", "channelId": "1"}],
        "alliances": {"": [{"name": "x", "channelId": "9"}], "woc": [], "WOC ": [{"name": "y", "channelId": "8"}]},
    }
    with caplog.at_level(logging.WARNING, logger="hq.mentions.store"):
        parsed = parse_channel_document(payload)
    assert [entry.channel_id for entry in parsed[""]] == ["1"]
    assert parsed["WOC"] == []
    assert sum("mention alliance key skipped" in record.getMessage() for record in caplog.records) == 2
