"""Mention maps and the placeholder resolver."""

from __future__ import annotations

from shared.mentions.resolver import (
    DEFAULT_ROLE_KEYS,
    Resolution,
    resolve_template,
    resolve_template_detailed,
)
from shared.mentions.store import (
    ChannelEntry,
    MentionBucket,
    MentionStore,
    export_document,
    import_document,
    parse_bulk_lines,
)

__all__ = [
    "DEFAULT_ROLE_KEYS",
    "ChannelEntry",
    "MentionBucket",
    "MentionStore",
    "Resolution",
    "export_document",
    "import_document",
    "parse_bulk_lines",
    "resolve_template",
    "resolve_template_detailed",
]
