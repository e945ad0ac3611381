"""Catalog of fine-grained capability keys for state and alliance grants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Literal, Tuple

__all__ = [
    "ALLIANCE_GROUPS",
    "CapabilityGroup",
    "CapabilityKey",
    "SCOPES",
    "STATE_GROUPS",
    "Scope",
    "groups_for",
    "is_known_key",
    "iter_keys",
    "keys_for",
    "normalize_scope",
]

Scope = Literal["state", "alliance"]
SCOPES: Tuple[Scope, ...] = ("state", "alliance")


@dataclass(frozen=True, slots=True)
class CapabilityKey:
    key: str
    label: str
    group_title: str
    scope: Scope


@dataclass(frozen=True, slots=True)
class CapabilityGroup:
    title: str
    keys: Tuple[CapabilityKey, ...]


def _group(scope: Scope, title: str, *fields: tuple[str, str]) -> CapabilityGroup:
    return CapabilityGroup(
        title=title,
        keys=tuple(CapabilityKey(key=key, label=label, group_title=title, scope=scope) for key, label in fields),
    )


STATE_GROUPS: Tuple[CapabilityGroup, ...] = (
    _group(
        "state",
        "Access",
        ("state_view", "State: View"),
        ("state_view_sensitive", "State: View sensitive"),
    ),
    _group(
        "state",
        "Onboarding / Admin",
        ("state_onboarding_approve", "Onboarding: Approve"),
        ("state_onboarding_provision", "Onboarding: Provision"),
        ("state_permissions_manage", "State: Manage permissions"),
        ("state_audit_view", "State: View audit"),
    ),
    _group(
        "state",
        "State Alerts",
        ("state_alerts_view", "Alerts: View"),
        ("state_alerts_create", "Alerts: Create"),
        ("state_alerts_edit_own", "Alerts: Edit own"),
        ("state_alerts_edit_any", "Alerts: Edit any"),
        ("state_alerts_pin", "Alerts: Pin"),
        ("state_alerts_delete", "Alerts: Delete"),
        ("state_alerts_moderate", "Alerts: Moderate"),
    ),
    _group(
        "state",
        "State Discussion",
        ("state_discussion_view", "Discussion: View"),
        ("state_discussion_create_threads", "Discussion: Create threads"),
        ("state_discussion_reply", "Discussion: Reply"),
        ("state_discussion_edit_own", "Discussion: Edit own"),
        ("state_discussion_edit_any", "Discussion: Edit any"),
        ("state_discussion_pin", "Discussion: Pin"),
        ("state_discussion_lock", "Discussion: Lock"),
        ("state_discussion_delete", "Discussion: Delete"),
        ("state_discussion_moderate", "Discussion: Moderate"),
    ),
    _group(
        "state",
        "Directory",
        ("state_directory_view", "Directory: View"),
        ("state_directory_add", "Directory: Add"),
        ("state_directory_edit", "Directory: Edit"),
        ("state_directory_deactivate", "Directory: Deactivate"),
        ("state_directory_reorder", "Directory: Reorder"),
        ("state_directory_sync", "Directory: Sync DB"),
    ),
    _group(
        "state",
        "Mail / Comms",
        ("state_mail_view", "Mail: View broadcasts"),
        ("state_mail_send_broadcast", "Mail: Send state broadcast"),
        ("state_mail_manage_templates", "Mail: Manage templates"),
        ("state_mail_manage_welcome", "Mail: Manage welcome mail"),
        ("state_mail_moderate", "Mail: Moderate"),
    ),
    _group(
        "state",
        "State Achievements",
        ("state_ach_view", "Achievements: View tracker"),
        ("state_ach_view_queue", "Achievements: View requests"),
        ("state_ach_create_for_others", "Achievements: Create for others"),
        ("state_ach_approve_reject", "Achievements: Approve/Reject"),
        ("state_ach_edit_progress", "Achievements: Edit progress"),
        ("state_ach_complete_reopen", "Achievements: Complete/Reopen"),
        ("state_ach_manage_catalog", "Achievements: Manage catalog"),
        ("state_ach_manage_options", "Achievements: Manage options"),
        ("state_ach_manage_access", "Achievements: Manage access"),
        ("state_ach_edit_any_details", "Achievements: Edit any details"),
        ("state_ach_delete_requests", "Achievements: Delete requests"),
    ),
    _group(
        "state",
        "Live Ops",
        ("state_ops_view", "Live Ops: View"),
        ("state_ops_edit", "Live Ops: Edit"),
        ("state_ops_manage_templates", "Live Ops: Manage templates"),
        ("state_ops_control_timers", "Live Ops: Control timers"),
        ("state_ops_export_import", "Live Ops: Export/Import"),
    ),
    _group(
        "state",
        "Discord (payload-only)",
        ("state_discord_use_composer", "Discord: Use composer"),
        ("state_discord_queue", "Discord: Queue payloads"),
        ("state_discord_outbox_manage", "Discord: Manage outbox"),
        ("state_discord_manage_mentions", "Discord: Manage mentions"),
        ("state_discord_manage_templates", "Discord: Manage templates"),
    ),
)

ALLIANCE_GROUPS: Tuple[CapabilityGroup, ...] = (
    _group(
        "alliance",
        "Access",
        ("alliance_view_dashboard", "Alliance: View dashboard"),
        ("alliance_view_sensitive", "Alliance: View sensitive"),
    ),
    _group(
        "alliance",
        "Alliance Alerts",
        ("alliance_alerts_view", "Alerts: View"),
        ("alliance_alerts_create", "Alerts: Create"),
        ("alliance_alerts_edit_own", "Alerts: Edit own"),
        ("alliance_alerts_edit_any", "Alerts: Edit any"),
        ("alliance_alerts_pin", "Alerts: Pin"),
        ("alliance_alerts_delete", "Alerts: Delete"),
        ("alliance_alerts_moderate", "Alerts: Moderate"),
    ),
    _group(
        "alliance",
        "Announcements",
        ("alliance_announcements_view", "Announcements: View"),
        ("alliance_announcements_create", "Announcements: Create"),
        ("alliance_announcements_edit", "Announcements: Edit"),
        ("alliance_announcements_pin", "Announcements: Pin"),
        ("alliance_announcements_delete", "Announcements: Delete"),
    ),
    _group(
        "alliance",
        "Guides",
        ("alliance_guides_view", "Guides: View"),
        ("alliance_guides_create", "Guides: Create"),
        ("alliance_guides_edit", "Guides: Edit"),
        ("alliance_guides_publish", "Guides: Publish"),
        ("alliance_guides_delete", "Guides: Delete"),
    ),
    _group(
        "alliance",
        "Calendar",
        ("alliance_calendar_view", "Calendar: View"),
        ("alliance_calendar_create", "Calendar: Create"),
        ("alliance_calendar_edit", "Calendar: Edit"),
        ("alliance_calendar_delete", "Calendar: Delete"),
        ("alliance_calendar_manage_recurrence", "Calendar: Manage recurrence"),
        ("alliance_calendar_manage_reminders", "Calendar: Manage reminders"),
    ),
    _group(
        "alliance",
        "HQ Map",
        ("alliance_hq_view", "HQ: View"),
        ("alliance_hq_edit", "HQ: Edit"),
        ("alliance_hq_bulk_import_export", "HQ: Bulk import/export"),
        ("alliance_hq_manage_owners", "HQ: Manage owners"),
    ),
    _group(
        "alliance",
        "Alliance Achievements",
        ("alliance_ach_view", "Achievements: View tracker"),
        ("alliance_ach_view_queue", "Achievements: View requests"),
        ("alliance_ach_create_for_others", "Achievements: Create for others"),
        ("alliance_ach_approve_reject", "Achievements: Approve/Reject"),
        ("alliance_ach_edit_progress", "Achievements: Edit progress"),
        ("alliance_ach_complete_reopen", "Achievements: Complete/Reopen"),
        ("alliance_ach_manage_catalog", "Achievements: Manage catalog"),
        ("alliance_ach_manage_options", "Achievements: Manage options"),
        ("alliance_ach_manage_access", "Achievements: Manage access"),
        ("alliance_ach_edit_any_details", "Achievements: Edit any details"),
        ("alliance_ach_delete_requests", "Achievements: Delete requests"),
    ),
    _group(
        "alliance",
        "Admin meta",
        ("alliance_permissions_manage", "Alliance: Manage permissions"),
        ("alliance_memberships_manage", "Alliance: Manage memberships"),
    ),
)

_GROUPS: Dict[str, Tuple[CapabilityGroup, ...]] = {
    "state": STATE_GROUPS,
    "alliance": ALLIANCE_GROUPS,
}


def _check_unique(groups: Tuple[CapabilityGroup, ...]) -> Dict[str, CapabilityKey]:
    index: Dict[str, CapabilityKey] = {}
    for group in groups:
        for entry in group.keys:
            if entry.key in index:
                raise ValueError(f"duplicate capability key: {entry.key}")
            index[entry.key] = entry
    return index


_INDEX: Dict[str, Dict[str, CapabilityKey]] = {
    scope: _check_unique(groups) for scope, groups in _GROUPS.items()
}


def normalize_scope(value: object) -> Scope:
    """Return ``value`` as a known scope name or raise :class:`ValueError`."""

    text = str(value or "").strip().lower()
    if text == "state":
        return "state"
    if text == "alliance":
        return "alliance"
    raise ValueError(f"unknown scope: {value!r}")


def groups_for(scope: str) -> Tuple[CapabilityGroup, ...]:
    return _GROUPS[normalize_scope(scope)]


def iter_keys(scope: str) -> Iterator[CapabilityKey]:
    for group in groups_for(scope):
        yield from group.keys


def keys_for(scope: str) -> Tuple[str, ...]:
    """Return the key names of ``scope`` in catalog order."""

    return tuple(entry.key for entry in iter_keys(scope))


def is_known_key(scope: str, key: str) -> bool:
    return key in _INDEX[normalize_scope(scope)]
