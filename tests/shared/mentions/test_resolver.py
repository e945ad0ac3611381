import logging

from shared.mentions.resolver import (
    resolve_role,
    resolve_template,
    resolve_template_detailed,
    role_mention,
)
from shared.mentions.store import ChannelEntry, MentionBucket, MentionStore


def _store(global_roles=None, global_channels=(), alliances=None):
    return MentionStore(
        global_bucket=MentionBucket.build(global_roles or {}, global_channels),
        alliances={
            code: MentionBucket.build(roles, channels)
            for code, (roles, channels) in (alliances or {}).items()
        },
    )


def test_alliance_channel_and_global_role():
    store = _store(
        global_roles={"Leadership": "<@&999>"},
        alliances={"WOC": ({}, [ChannelEntry("announcements", "123")])},
    )
    assert resolve_template("Ping @Leadership in #announcements", "WOC", store) == "Ping <@&999> in <#123>"


def test_alliance_without_channels_uses_global_list():
    store = _store(
        global_roles={"Leadership": "<@&999>"},
        global_channels=[ChannelEntry("announcements", "555")],
        alliances={"WOC": ({"R5": "1"}, [])},
    )
    assert resolve_template("Ping @Leadership in #announcements", "WOC", store) == "Ping <@&999> in <#555>"


def test_missing_channel_token_stays_verbatim(caplog):
    store = _store(global_channels=[ChannelEntry("announcements", "555")])
    with caplog.at_level(logging.INFO, logger="hq.mentions.resolver"):
        result = resolve_template_detailed("See {{channel:missing}}", None, store)
    assert result.text == "See {{channel:missing}}"
    assert result.unresolved == ("{{channel:missing}}",)
    assert any(rec.levelno == logging.INFO for rec in caplog.records)


def test_all_channel_token_forms(sample_store):
    text = "{{channel:announcements}} {{#announcements}} #announcements"
    assert resolve_template(text, None, sample_store) == "<#900> <#900> <#900>"


def test_role_precedence_alliance_then_global_then_verbatim(sample_store):
    text = "@R5 {{Leadership}} @StateMod"
    assert resolve_template(text, "woc", sample_store) == "<@&999> <@&111> @StateMod"
    assert resolve_template(text, None, sample_store) == "<@&555> <@&111> @StateMod"


def test_empty_alliance_role_falls_back_to_global():
    store = _store(global_roles={"R4": "44"}, alliances={"WOC": ({"R4": "  "}, [])})
    assert resolve_role("R4", "WOC", store) == "44"


def test_alliance_channels_never_mix_with_global(sample_store):
    # WOC has its own channel list, so the global #announcements is not used.
    assert resolve_template("#announcements #war-room", "WOC", sample_store) == "#announcements <#901>"


def test_entries_without_id_are_skipped():
    store = _store(global_channels=[ChannelEntry("ops", "")])
    assert resolve_template("#ops", None, store) == "#ops"


def test_role_mention_formats():
    assert role_mention("123") == "<@&123>"
    assert role_mention("<@&5>") == "<@&5>"
    assert role_mention("") == ""


def test_empty_text_returns_empty_string(sample_store):
    assert resolve_template(None, "WOC", sample_store) == ""
    assert resolve_template("", None, sample_store) == ""


def test_unknown_alliance_uses_global(sample_store):
    assert resolve_template("@R5 #announcements", "XYZ", sample_store) == "<@&555> <#900>"


def test_bare_channel_name_matches_whole_names_only():
    store = _store(global_channels=[ChannelEntry("war", "1"), ChannelEntry("war-room", "2")])
    assert resolve_template("Go to #war-room, then #war.", None, store) == "Go to <#2>, then <#1>."


def test_bare_role_key_matches_whole_keys_only():
    store = _store(global_roles={"R4": "44"})
    result = resolve_template_detailed("@R4 @R45", None, store)
    assert result.text == "<@&44> @R45"
    assert result.unresolved == ()


def test_braced_role_token_form(sample_store):
    assert resolve_template("{{role:Leadership}} {{role:R5}}", "WOC", sample_store) == "<@&111> <@&999>"
