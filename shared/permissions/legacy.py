"""Derive coarse legacy flags from fine-grained capability grants.

Older authorization checks only look at a handful of ``can_*`` columns. Those
columns are never edited directly: every save recomputes them from the
fine-grained flags with :func:`compute_legacy_flags`.
"""

from __future__ import annotations

from typing import Dict, Mapping, Tuple

from shared.permissions.capabilities import normalize_scope

__all__ = [
    "ALLIANCE_LEGACY_RULES",
    "LEGACY_COLUMNS",
    "STATE_LEGACY_RULES",
    "compute_legacy_flags",
    "contributing_keys",
]

# Each legacy flag is the OR of its contributing keys.
STATE_LEGACY_RULES: Dict[str, Tuple[str, ...]] = {
    "can_view": ("state_view",),
    "can_edit": ("state_permissions_manage",),
    "can_manage_state_alerts": (
        "state_alerts_create",
        "state_alerts_edit_any",
        "state_alerts_pin",
        "state_alerts_delete",
        "state_alerts_moderate",
    ),
    "can_manage_discussion": (
        "state_discussion_create_threads",
        "state_discussion_reply",
        "state_discussion_edit_any",
        "state_discussion_pin",
        "state_discussion_lock",
        "state_discussion_delete",
        "state_discussion_moderate",
    ),
    "can_manage_directory": (
        "state_directory_add",
        "state_directory_edit",
        "state_directory_deactivate",
        "state_directory_reorder",
        "state_directory_sync",
    ),
    "can_manage_mail": (
        "state_mail_send_broadcast",
        "state_mail_manage_templates",
        "state_mail_manage_welcome",
        "state_mail_moderate",
    ),
    "can_manage_live_ops": (
        "state_ops_edit",
        "state_ops_manage_templates",
        "state_ops_control_timers",
        "state_ops_export_import",
    ),
}

ALLIANCE_LEGACY_RULES: Dict[str, Tuple[str, ...]] = {
    "can_view_alerts": (
        "alliance_alerts_view",
        "alliance_alerts_create",
        "alliance_alerts_edit_any",
        "alliance_alerts_pin",
        "alliance_alerts_delete",
        "alliance_alerts_moderate",
    ),
    "can_post_alerts": ("alliance_alerts_create",),
    "can_manage_alerts": (
        "alliance_alerts_edit_any",
        "alliance_alerts_pin",
        "alliance_alerts_delete",
        "alliance_alerts_moderate",
    ),
}

_RULES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "state": STATE_LEGACY_RULES,
    "alliance": ALLIANCE_LEGACY_RULES,
}

LEGACY_COLUMNS: Dict[str, Tuple[str, ...]] = {
    scope: tuple(rules.keys()) for scope, rules in _RULES.items()
}


def contributing_keys(scope: str, flag: str) -> Tuple[str, ...]:
    """Return the fine-grained keys that feed ``flag`` in ``scope``."""

    return _RULES[normalize_scope(scope)][flag]


def compute_legacy_flags(scope: str, fine_grained: Mapping[str, object] | None) -> Dict[str, bool]:
    """Return the legacy flags for ``scope`` derived from ``fine_grained``.

    Missing keys count as ``False`` and keys that feed no rule are ignored, so
    the function is total over any mapping.
    """

    rules = _RULES[normalize_scope(scope)]
    flags = fine_grained or {}
    return {
        flag: any(bool(flags.get(key)) for key in keys)
        for flag, keys in rules.items()
    }
