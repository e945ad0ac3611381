"""Substitute role and channel placeholders in Discord message templates.

Channel tokens resolve first, then role tokens. Braced tokens match anywhere;
bare ``#name`` and ``@key`` tokens only match a whole name. Roles fall back
token by token from the alliance mapping to the global one. Channels do not:
an alliance with any channel entries uses only its own list.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from shared.mentions.store import (
    ChannelEntry,
    MentionStore,
    normalize_alliance_code,
    normalize_channel_name,
)

__all__ = [
    "DEFAULT_ROLE_KEYS",
    "Resolution",
    "channel_mention",
    "channel_tokens",
    "resolve_role",
    "resolve_template",
    "resolve_template_detailed",
    "role_mention",
    "role_tokens",
]

log = logging.getLogger("hq.mentions.resolver")

DEFAULT_ROLE_KEYS: Tuple[str, ...] = ("Leadership", "R5", "R4", "Member", "StateLeadership", "StateMod")
_LEFTOVER_CHANNEL_RE = re.compile(r"\{\{(?:channel:|#)[^{}]+\}\}")
# A bare "#name" or "@key" only matches when the next character cannot extend the name.
_NAME_TAIL = r"(?![\w-])"


@dataclass(frozen=True, slots=True)
class Resolution:
    text: str
    resolved: Tuple[str, ...]
    unresolved: Tuple[str, ...]


def role_tokens(key: str) -> Tuple[str, str, str]:
    return ("{{role:" + key + "}}", "{{" + key + "}}", f"@{key}")


def channel_tokens(name: str) -> Tuple[str, str, str]:
    # Braced forms first so "{{#name}}" is never rewritten through "#name".
    return ("{{channel:" + name + "}}", "{{#" + name + "}}", f"#{name}")


def role_mention(target: str) -> str:
    value = (target or "").strip()
    if value.isdigit():
        return f"<@&{value}>"
    return value


def channel_mention(channel_id: str) -> str:
    value = (channel_id or "").strip()
    return f"<#{value}>" if value else ""


def resolve_role(key: str, alliance_code: object | None, store: MentionStore) -> str:
    """Return the mapped target for ``key`` or ``""`` when neither bucket has one."""

    bucket = store.bucket_for(alliance_code)
    if bucket is not None:
        value = bucket.role(key)
        if value:
            return value
    return store.global_bucket.role(key)


def _channel_list(alliance_code: object | None, store: MentionStore) -> Sequence[ChannelEntry]:
    bucket = store.bucket_for(alliance_code)
    if bucket is not None and bucket.channels:
        return bucket.channels
    return store.global_bucket.channels


def _present(text: str, token: str) -> bool:
    if token.startswith("{{"):
        return token in text
    return re.search(re.escape(token) + _NAME_TAIL, text) is not None


def _replace(text: str, token: str, replacement: str, hits: List[str]) -> str:
    if token.startswith("{{"):
        if token in text:
            hits.append(token)
            return text.replace(token, replacement)
        return text
    out, count = re.subn(re.escape(token) + _NAME_TAIL, lambda _match: replacement, text)
    if count:
        hits.append(token)
    return out


def resolve_template_detailed(
    text: Optional[str],
    alliance_code: object | None,
    store: MentionStore,
    *,
    role_keys: Sequence[str] = DEFAULT_ROLE_KEYS,
) -> Resolution:
    """Resolve ``text`` and report which tokens were substituted or left alone."""

    out = text or ""
    if not out:
        return Resolution(text="", resolved=(), unresolved=())

    resolved: List[str] = []
    unresolved: List[str] = []

    for entry in _channel_list(alliance_code, store):
        name = normalize_channel_name(entry.name)
        mention = channel_mention(entry.channel_id)
        if not name or not mention:
            continue
        for token in channel_tokens(name):
            out = _replace(out, token, mention, resolved)

    for key in role_keys:
        target = role_mention(resolve_role(key, alliance_code, store))
        for token in role_tokens(key):
            if not _present(out, token):
                continue
            if target:
                out = _replace(out, token, target, resolved)
            else:
                unresolved.append(token)

    unresolved.extend(_LEFTOVER_CHANNEL_RE.findall(out))

    if unresolved:
        log.info(
            "template tokens left unresolved",
            extra={
                "alliance": normalize_alliance_code(alliance_code) or "global",
                "tokens": ",".join(unresolved),
            },
        )
    return Resolution(text=out, resolved=tuple(resolved), unresolved=tuple(unresolved))


def resolve_template(
    text: Optional[str],
    alliance_code: object | None,
    store: MentionStore,
) -> str:
    """Return ``text`` with role and channel placeholders resolved.

    Never raises; tokens with no mapping stay verbatim.
    """

    return resolve_template_detailed(text, alliance_code, store).text
