"""Announcement presets resolved against the mention store."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from shared.mentions.resolver import resolve_template
from shared.mentions.store import MentionStore, normalize_alliance_code, normalize_channel_name

__all__ = ["PRESETS", "Preset", "build_preset", "discord_timestamp_line", "render_preset"]

log = logging.getLogger("hq.mentions.presets")


@dataclass(frozen=True, slots=True)
class Preset:
    kind: str
    mention: str
    title: str
    body: str


PRESETS: Dict[str, Preset] = {
    "maintenance": Preset(
        "maintenance",
        "@Leadership",
        "Maintenance Notice",
        "We will be performing maintenance. Please avoid critical actions during the window.",
    ),
    "rally": Preset(
        "rally",
        "@R5",
        "War Rally",
        "Rally up. Coordinate targets and timing. Post assignments and confirmations.",
    ),
    "reset": Preset(
        "reset",
        "@R4",
        "Reset Reminder",
        "Reminder: daily reset is coming. Wrap tasks and prepare for next cycle.",
    ),
    "recruit": Preset(
        "recruit",
        "@Member",
        "Recruitment",
        "Recruiting: bring active players. Share your power, rally times, and expectations.",
    ),
}


def _iso_utc(moment: dt.datetime) -> str:
    return moment.astimezone(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_when(value: str) -> Optional[dt.datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def discord_timestamp_line(when_utc: str) -> Optional[str]:
    """Return the ``Discord: <t:..:F> (<t:..:R>)`` line, or ``None`` when unparseable."""

    parsed = _parse_when(when_utc)
    if parsed is None:
        return None
    epoch = int(parsed.timestamp())
    return f"Discord: <t:{epoch}:F> (<t:{epoch}:R>)"


def render_preset(
    kind: str,
    *,
    when_utc: str = "",
    where_channel: str = "",
    now: dt.datetime | None = None,
) -> str:
    """Return the unresolved preset text with its tokens intact."""

    preset = PRESETS.get((kind or "").strip().lower())
    if preset is None:
        raise ValueError(f"unknown preset: {kind!r}")

    lines = [
        preset.mention,
        f"**{preset.title}**",
        f"UTC: {_iso_utc(now or dt.datetime.now(dt.timezone.utc))}",
    ]
    when = (when_utc or "").strip()
    if when:
        lines.append(f"When: {when}")
        stamp = discord_timestamp_line(when)
        if stamp:
            lines.append(stamp)
        else:
            log.info("preset time not parseable", extra={"when_utc": when})
    where = normalize_channel_name(where_channel)
    if where:
        lines.append(f"Where: #{where}")
    lines.append("")
    lines.append(preset.body)
    return "\n".join(lines)


def build_preset(
    kind: str,
    *,
    store: MentionStore,
    alliance: str | None = None,
    when_utc: str = "",
    where_channel: str = "",
    now: dt.datetime | None = None,
) -> str:
    raw = render_preset(kind, when_utc=when_utc, where_channel=where_channel, now=now)
    return resolve_template(raw, normalize_alliance_code(alliance) or None, store)
