import itertools

from shared.permissions.capabilities import keys_for
from shared.permissions.legacy import (
    ALLIANCE_LEGACY_RULES,
    LEGACY_COLUMNS,
    STATE_LEGACY_RULES,
    compute_legacy_flags,
    contributing_keys,
)


def test_single_alert_key_sets_only_alert_flag():
    flags = compute_legacy_flags("state", {"state_alerts_create": True})
    assert flags["can_manage_state_alerts"] is True
    assert [name for name, value in flags.items() if value] == ["can_manage_state_alerts"]


def test_empty_grant_yields_all_false():
    assert not any(compute_legacy_flags("state", {}).values())
    assert not any(compute_legacy_flags("alliance", {}).values())
    assert set(compute_legacy_flags("state", None)) == set(LEGACY_COLUMNS["state"])


def test_values_use_truthiness_and_unknown_keys_are_ignored():
    flags = compute_legacy_flags(
        "state",
        {"state_view": 1, "state_permissions_manage": None, "made_up_key": True},
    )
    assert flags["can_view"] is True
    assert flags["can_edit"] is False


def test_alliance_alert_rules():
    flags = compute_legacy_flags("alliance", {"alliance_alerts_create": True})
    assert flags == {"can_view_alerts": True, "can_post_alerts": True, "can_manage_alerts": False}

    flags = compute_legacy_flags("alliance", {"alliance_alerts_pin": True})
    assert flags == {"can_view_alerts": True, "can_post_alerts": False, "can_manage_alerts": True}


def test_idempotent():
    grant = {"state_ops_edit": True, "state_mail_moderate": True}
    assert compute_legacy_flags("state", grant) == compute_legacy_flags("state", dict(grant))


def test_scope_keys_do_not_leak_across_scopes():
    state_only = {key: True for key in keys_for("state")}
    assert not any(compute_legacy_flags("alliance", state_only).values())
    alliance_only = {key: True for key in keys_for("alliance")}
    assert not any(compute_legacy_flags("state", alliance_only).values())


def test_or_flags_are_monotonic():
    for scope, rules in (("state", STATE_LEGACY_RULES), ("alliance", ALLIANCE_LEGACY_RULES)):
        for flag, keys in rules.items():
            for size in range(1, min(len(keys), 3) + 1):
                for subset in itertools.combinations(keys, size):
                    base = {key: True for key in subset}
                    assert compute_legacy_flags(scope, base)[flag] is True
                    extended = dict(base)
                    extended.update({other: True for other in keys_for(scope)[:5]})
                    assert compute_legacy_flags(scope, extended)[flag] is True


def test_contributing_keys_lookup():
    assert contributing_keys("alliance", "can_post_alerts") == ("alliance_alerts_create",)
