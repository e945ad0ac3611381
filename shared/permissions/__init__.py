"""Permission helpers exposed as the public package surface."""

from __future__ import annotations

from shared.permissions.capabilities import (
    ALLIANCE_GROUPS,
    STATE_GROUPS,
    CapabilityGroup,
    CapabilityKey,
    Scope,
    groups_for,
    is_known_key,
    keys_for,
    normalize_scope,
)
from shared.permissions.grants import (
    GrantImport,
    GrantRecord,
    ScopeUser,
    build_export_document,
    parse_import_document,
    scope_column,
)
from shared.permissions.legacy import LEGACY_COLUMNS, compute_legacy_flags

__all__ = [
    "ALLIANCE_GROUPS",
    "CapabilityGroup",
    "CapabilityKey",
    "GrantImport",
    "GrantRecord",
    "LEGACY_COLUMNS",
    "STATE_GROUPS",
    "Scope",
    "ScopeUser",
    "build_export_document",
    "compute_legacy_flags",
    "groups_for",
    "is_known_key",
    "keys_for",
    "normalize_scope",
    "parse_import_document",
    "scope_column",
]
