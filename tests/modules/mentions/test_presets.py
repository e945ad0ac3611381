import datetime as dt

import pytest

from modules.mentions.presets import build_preset, render_preset

NOW = dt.datetime(2025, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_maintenance_preset_resolves_roles_and_channels(sample_store):
    text = build_preset(
        "maintenance",
        store=sample_store,
        when_utc="2025-03-02T18:00:00Z",
        where_channel="#announcements",
        now=NOW,
    )
    lines = text.split("\n")
    assert lines[0] == "<@&111>"
    assert lines[1] == "**Maintenance Notice**"
    assert lines[2] == "UTC: 2025-03-01T12:00:00.000Z"
    assert lines[3] == "When: 2025-03-02T18:00:00Z"
    assert lines[4] == "Discord: <t:1740938400:F> (<t:1740938400:R>)"
    assert lines[5] == "Where: <#900>"
    assert lines[6] == ""
    assert lines[7].startswith("We will be performing maintenance")


def test_rally_uses_alliance_role_override(sample_store):
    text = build_preset("rally", store=sample_store, alliance="woc", now=NOW)
    assert text.startswith("<@&999>\n**War Rally**")
    assert "When:" not in text and "Where:" not in text


def test_unparseable_time_keeps_when_line_only():
    text = render_preset("reset", when_utc="tomorrow-ish", now=NOW)
    assert "When: tomorrow-ish" in text
    assert "<t:" not in text
    assert text.startswith("@R4\n**Reset Reminder**")


def test_naive_time_is_treated_as_utc():
    text = render_preset("recruit", when_utc="2025-03-02T18:00:00", now=NOW)
    assert "<t:1740938400:F>" in text


def test_unknown_kind_raises():
    with pytest.raises(ValueError):
        render_preset("party", now=NOW)
