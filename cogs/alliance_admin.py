"""Operator commands for access grants, mention maps and announcement tooling."""

from __future__ import annotations

import io
import json
import logging
from typing import Any, Optional

import discord
from discord.ext import commands

from modules.channels.directory import ChannelDirectory, StateChannel
from modules.mentions.presets import PRESETS, build_preset
from modules.mentions.store import MentionRepository, build_kv_store
from modules.mentions.templates import TemplateLibrary
from modules.permissions.editor import GrantEditor, export_grants, import_grants
from modules.permissions.store import GrantStore, build_grant_store
from shared.config import get_admin_role_ids, get_default_state_code
from shared.errors import AllianceHQError, MalformedImport
from shared.logging import set_trace_id
from shared.mentions.resolver import resolve_template_detailed
from shared.mentions.store import MentionBucket
from shared.permissions.capabilities import groups_for, normalize_scope
from shared.permissions.grants import GrantRecord

__all__ = ["AllianceAdmin", "admin_only", "is_hq_admin", "setup"]

log = logging.getLogger("hq.cogs.alliance_admin")

_MESSAGE_LIMIT = 1900
_GLOBAL_ALIASES = {"", "-", "global", "*"}


def is_hq_admin(member: object) -> bool:
    """Administrators and members holding a configured admin role pass."""

    if getattr(getattr(member, "guild_permissions", None), "administrator", False):
        return True
    admin_roles = get_admin_role_ids()
    if not admin_roles:
        return False
    return any(getattr(role, "id", None) in admin_roles for role in getattr(member, "roles", []) or [])


def admin_only():
    async def predicate(ctx: commands.Context) -> bool:
        return is_hq_admin(getattr(ctx, "author", None))

    return commands.check(predicate)


def _alliance_arg(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    if text.lower() in _GLOBAL_ALIASES:
        return None
    return text.upper()


def _clip(text: str) -> str:
    if len(text) <= _MESSAGE_LIMIT:
        return text
    return text[: _MESSAGE_LIMIT - 1] + "…"


def _json_file(payload: Any, filename: str) -> discord.File:
    data = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    return discord.File(io.BytesIO(data), filename=filename)


def _grant_summary(record: GrantRecord) -> str:
    enabled = ", ".join(f"`{key}`" for key in record.enabled_keys()) or "none"
    legacy = " • ".join(f"{column}={'yes' if value else 'no'}" for column, value in record.legacy.items())
    return (
        f"**{record.scope}** `{record.scope_id}` • user `{record.user_id}`\n"
        f"Enabled: {enabled}\n"
        f"Legacy: {legacy}"
    )


def _bucket_summary(label: str, bucket: Optional[MentionBucket]) -> str:
    if bucket is None or bucket.is_empty():
        return f"**{label}**: empty"
    roles = ", ".join(f"{key}→{value}" for key, value in sorted(bucket.roles.items())) or "none"
    channels = ", ".join(f"#{entry.name}→{entry.channel_id}" for entry in bucket.channels) or "none"
    return f"**{label}**\nRoles: {roles}\nChannels: {channels}"


def _channel_line(row: StateChannel) -> str:
    star = "⭐ " if row.is_default else ""
    status = "active" if row.active else "inactive"
    return f"{star}#{row.channel_name} — `{row.channel_id}` • {status} • id=`{row.row_id}`"


async def _read_payload(ctx: commands.Context, text: Optional[str]) -> Any:
    attachments = list(getattr(getattr(ctx, "message", None), "attachments", None) or [])
    if attachments:
        try:
            raw = (await attachments[0].read()).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedImport("attachment is not UTF-8 text") from exc
    else:
        raw = (text or "").strip()
        if raw.startswith("```"):
            raw = raw.strip("`")
            if raw.startswith("json"):
                raw = raw[4:]
    if not raw.strip():
        raise MalformedImport("attach a JSON file or paste the JSON after the command")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedImport(f"payload is not valid JSON ({exc.msg})") from exc


class AllianceAdmin(commands.Cog):
    """Access grants, mention maps, presets, templates and the state channel directory."""

    def __init__(
        self,
        bot: commands.Bot,
        *,
        grants: GrantStore,
        mentions: MentionRepository,
        templates: TemplateLibrary,
        channels: ChannelDirectory,
    ) -> None:
        self.bot = bot
        self.grants = grants
        self.mentions = mentions
        self.templates = templates
        self.channels = channels

    async def cog_before_invoke(self, ctx: commands.Context) -> None:
        message_id = getattr(getattr(ctx, "message", None), "id", None)
        if message_id is not None:
            set_trace_id(str(message_id))

    async def _fail(self, ctx: commands.Context, operation: str, exc: Exception) -> None:
        log.warning("command failed", extra={"operation": operation, "error": str(exc)})
        await ctx.reply(f"⚠️ {operation}: {exc}", mention_author=False)

    # --- grants --------------------------------------------------------------

    @commands.group(
        name="grants",
        invoke_without_command=True,
        hidden=True,
        help="Inspect and edit fine-grained access grants.",
    )
    @admin_only()
    async def grants_group(self, ctx: commands.Context) -> None:
        if ctx.invoked_subcommand is not None:
            return
        await ctx.reply(
            "Usage: !grants show|set|delete|keys|users|export|import",
            mention_author=False,
        )

    @grants_group.command(name="keys", help="List capability keys for a scope.")
    @admin_only()
    async def grants_keys(self, ctx: commands.Context, scope: str) -> None:
        try:
            resolved = normalize_scope(scope)
        except ValueError as exc:
            await self._fail(ctx, "grants keys", exc)
            return
        lines = []
        for group in groups_for(resolved):
            keys = ", ".join(f"`{key.key}`" for key in group.keys)
            lines.append(f"**{group.title}**: {keys}")
        await ctx.reply(_clip("\n".join(lines)), mention_author=False)

    @grants_group.command(name="show", help="Show one user's grant in a scope.")
    @admin_only()
    async def grants_show(self, ctx: commands.Context, scope: str, scope_id: str, user_id: str) -> None:
        editor = GrantEditor(self.grants)
        try:
            record = await editor.open(scope, scope_id, user_id)
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "grants show", exc)
            return
        note = "" if editor.saved is not None else "\n_No stored grant; showing defaults._"
        await ctx.reply(_clip(_grant_summary(record) + note), mention_author=False)

    @grants_group.command(name="set", help="Set a capability on or off and save the grant.")
    @admin_only()
    async def grants_set(
        self,
        ctx: commands.Context,
        scope: str,
        scope_id: str,
        user_id: str,
        key: str,
        value: str = "toggle",
    ) -> None:
        editor = GrantEditor(self.grants)
        flag: Optional[bool]
        lowered = value.strip().lower()
        if lowered in {"on", "true", "yes", "1"}:
            flag = True
        elif lowered in {"off", "false", "no", "0"}:
            flag = False
        elif lowered == "toggle":
            flag = None
        else:
            await ctx.reply(
                "Usage: !grants set <scope> <scope_id> <user_id> <key> [on|off|toggle]",
                mention_author=False,
            )
            return
        try:
            await editor.open(scope, scope_id, user_id)
            editor.toggle(key, flag)
            record = await editor.save()
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "grants set", exc)
            return
        await ctx.reply(_clip("Saved.\n" + _grant_summary(record)), mention_author=False)

    @grants_group.command(name="delete", help="Delete one user's grant in a scope.")
    @admin_only()
    async def grants_delete(self, ctx: commands.Context, scope: str, scope_id: str, user_id: str) -> None:
        editor = GrantEditor(self.grants)
        try:
            await editor.open(scope, scope_id, user_id)
            removed = await editor.delete()
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "grants delete", exc)
            return
        message = "Grant deleted." if removed else "No stored grant to delete."
        await ctx.reply(message, mention_author=False)

    @grants_group.command(name="users", help="List users known in a scope.")
    @admin_only()
    async def grants_users(self, ctx: commands.Context, scope: str, scope_id: str) -> None:
        try:
            users = await self.grants.list_users_in_scope(normalize_scope(scope), scope_id)
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "grants users", exc)
            return
        if not users:
            await ctx.reply("No users in this scope.", mention_author=False)
            return
        lines = [f"• {user.display_name} (`{user.user_id}`)" for user in users]
        await ctx.reply(_clip("\n".join(lines)), mention_author=False)

    @grants_group.command(name="export", help="Export a state's grants and one alliance's grants as JSON.")
    @admin_only()
    async def grants_export(
        self,
        ctx: commands.Context,
        state_code: Optional[str] = None,
        alliance_id: str = "",
        *,
        label: str = "",
    ) -> None:
        state = state_code or get_default_state_code()
        try:
            document = await export_grants(
                self.grants, state, alliance_id=alliance_id, alliance_label=label
            )
        except AllianceHQError as exc:
            await self._fail(ctx, "grants export", exc)
            return
        count = len(document["state_access_grants"]) + len(document["alliance_access_grants"])
        await ctx.reply(
            f"Exported {count} grant rows for state `{state}`.",
            file=_json_file(document, f"grants-{state}.json"),
            mention_author=False,
        )

    @grants_group.command(name="import", help="Import a grant export (attachment or inline JSON).")
    @admin_only()
    async def grants_import(self, ctx: commands.Context, *, text: Optional[str] = None) -> None:
        try:
            payload = await _read_payload(ctx, text)
            summary = await import_grants(
                self.grants, payload, default_state_code=get_default_state_code()
            )
        except AllianceHQError as exc:
            await self._fail(ctx, "grants import", exc)
            return
        await ctx.reply(
            f"Imported {summary.state_written} state and {summary.alliance_written} alliance grants.",
            mention_author=False,
        )

    # --- mentions ------------------------------------------------------------

    @commands.group(
        name="mentions",
        invoke_without_command=True,
        hidden=True,
        help="Manage role and channel mention maps.",
    )
    @admin_only()
    async def mentions_group(self, ctx: commands.Context) -> None:
        if ctx.invoked_subcommand is not None:
            return
        await ctx.reply(
            "Usage: !mentions show|preview|bulk|export|import",
            mention_author=False,
        )

    @mentions_group.command(name="show", help="Show the global bucket or one alliance's bucket.")
    @admin_only()
    async def mentions_show(self, ctx: commands.Context, alliance: Optional[str] = None) -> None:
        code = _alliance_arg(alliance)
        try:
            store = await self.mentions.get_mention_store()
        except AllianceHQError as exc:
            await self._fail(ctx, "mentions show", exc)
            return
        if code:
            text = _bucket_summary(code, store.bucket_for(code))
        else:
            text = _bucket_summary("global", store.global_bucket)
        await ctx.reply(_clip(text), mention_author=False)

    @mentions_group.command(name="preview", help="Resolve placeholders in text for an alliance (or global).")
    @admin_only()
    async def mentions_preview(self, ctx: commands.Context, alliance: str, *, text: str = "") -> None:
        try:
            store = await self.mentions.get_mention_store()
        except AllianceHQError as exc:
            await self._fail(ctx, "mentions preview", exc)
            return
        result = resolve_template_detailed(text, _alliance_arg(alliance), store)
        body = result.text or "(empty)"
        if result.unresolved:
            body += "\n_Unresolved: " + ", ".join(result.unresolved) + "_"
        await ctx.reply(_clip(body), mention_author=False)

    @mentions_group.command(name="bulk", help="Replace roles or channels of a bucket from Key=Value lines.")
    @admin_only()
    async def mentions_bulk(self, ctx: commands.Context, kind: str, alliance: str, *, lines: str = "") -> None:
        try:
            store = await self.mentions.bulk_import(lines, kind=kind.lower(), alliance_code=_alliance_arg(alliance))
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "mentions bulk", exc)
            return
        code = _alliance_arg(alliance)
        bucket = store.bucket_for(code) if code else store.global_bucket
        await ctx.reply(_clip("Saved.\n" + _bucket_summary(code or "global", bucket)), mention_author=False)

    @mentions_group.command(name="export", help="Export both mention documents as JSON.")
    @admin_only()
    async def mentions_export(self, ctx: commands.Context) -> None:
        try:
            document = await self.mentions.export_document()
        except AllianceHQError as exc:
            await self._fail(ctx, "mentions export", exc)
            return
        await ctx.reply(
            "Mention store export.",
            file=_json_file(document, "mentions.json"),
            mention_author=False,
        )

    @mentions_group.command(name="import", help="Import a mention export (attachment or inline JSON).")
    @admin_only()
    async def mentions_import(self, ctx: commands.Context, *, text: Optional[str] = None) -> None:
        try:
            payload = await _read_payload(ctx, text)
            store = await self.mentions.import_document(payload)
        except AllianceHQError as exc:
            await self._fail(ctx, "mentions import", exc)
            return
        await ctx.reply(
            f"Mention store imported • alliances={len(store.alliances)}.",
            mention_author=False,
        )

    # --- presets and templates -----------------------------------------------

    @commands.command(
        name="preset",
        hidden=True,
        help="Build a resolved announcement: !preset <kind> <alliance|global> [when_utc] [where]",
    )
    @admin_only()
    async def preset(
        self,
        ctx: commands.Context,
        kind: str,
        alliance: str = "global",
        when_utc: str = "",
        where: str = "",
    ) -> None:
        if kind.lower() not in PRESETS:
            await ctx.reply(
                "Unknown preset. Choose one of: " + ", ".join(sorted(PRESETS)),
                mention_author=False,
            )
            return
        try:
            store = await self.mentions.get_mention_store()
        except AllianceHQError as exc:
            await self._fail(ctx, "preset", exc)
            return
        text = build_preset(
            kind,
            store=store,
            alliance=_alliance_arg(alliance),
            when_utc=when_utc,
            where_channel=where,
        )
        await ctx.reply(_clip(text), mention_author=False)

    @commands.group(
        name="templates",
        invoke_without_command=True,
        hidden=True,
        help="Manage the broadcast template library.",
    )
    @admin_only()
    async def templates_group(self, ctx: commands.Context) -> None:
        if ctx.invoked_subcommand is not None:
            return
        await ctx.reply("Usage: !templates list|save|delete|render", mention_author=False)

    @templates_group.command(name="list", help="List global templates plus an alliance's templates.")
    @admin_only()
    async def templates_list(self, ctx: commands.Context, alliance: Optional[str] = None) -> None:
        try:
            templates = await self.templates.list_templates(_alliance_arg(alliance))
        except AllianceHQError as exc:
            await self._fail(ctx, "templates list", exc)
            return
        if not templates:
            await ctx.reply("No templates in this scope.", mention_author=False)
            return
        lines = [
            f"• **{template.name}** ({template.alliance_code or 'global'}) id=`{template.template_id}`"
            for template in templates
        ]
        await ctx.reply(_clip("\n".join(lines)), mention_author=False)

    @templates_group.command(name="save", help="Save a template: !templates save <alliance|global> <name> <body>")
    @admin_only()
    async def templates_save(self, ctx: commands.Context, alliance: str, name: str, *, body: str = "") -> None:
        try:
            template = await self.templates.save_template(name, body, alliance_code=_alliance_arg(alliance))
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "templates save", exc)
            return
        await ctx.reply(f"Template saved • id=`{template.template_id}`.", mention_author=False)

    @templates_group.command(name="delete", help="Delete a template by id.")
    @admin_only()
    async def templates_delete(self, ctx: commands.Context, template_id: str) -> None:
        try:
            removed = await self.templates.delete_template(template_id)
        except AllianceHQError as exc:
            await self._fail(ctx, "templates delete", exc)
            return
        await ctx.reply("Template deleted." if removed else "Template not found.", mention_author=False)

    @templates_group.command(name="render", help="Render a template with its alliance's mappings.")
    @admin_only()
    async def templates_render(self, ctx: commands.Context, template_id: str) -> None:
        try:
            template = await self.templates.get_template(template_id)
            if template is None:
                await ctx.reply("Template not found.", mention_author=False)
                return
            store = await self.mentions.get_mention_store()
        except AllianceHQError as exc:
            await self._fail(ctx, "templates render", exc)
            return
        await ctx.reply(_clip(self.templates.render(template, store) or "(empty)"), mention_author=False)

    # --- state channels ------------------------------------------------------

    @commands.group(
        name="channels",
        invoke_without_command=True,
        hidden=True,
        help="Manage the state Discord channel directory.",
    )
    @admin_only()
    async def channels_group(self, ctx: commands.Context) -> None:
        if ctx.invoked_subcommand is not None:
            return
        await ctx.reply("Usage: !channels list|add|default|toggle|remove", mention_author=False)

    @channels_group.command(name="list", help="List a state's channels, default first.")
    @admin_only()
    async def channels_list(self, ctx: commands.Context, state_code: Optional[str] = None) -> None:
        state = state_code or get_default_state_code()
        try:
            rows = await self.channels.list_channels(state)
        except AllianceHQError as exc:
            await self._fail(ctx, "channels list", exc)
            return
        if not rows:
            await ctx.reply(f"No channels for state `{state}`.", mention_author=False)
            return
        await ctx.reply(_clip("\n".join(_channel_line(row) for row in rows)), mention_author=False)

    @channels_group.command(name="add", help="Add a channel: !channels add <name> <channel_id> [state]")
    @admin_only()
    async def channels_add(
        self, ctx: commands.Context, name: str, channel_id: str, state_code: Optional[str] = None
    ) -> None:
        state = state_code or get_default_state_code()
        try:
            row = await self.channels.add(state, name, channel_id)
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, "channels add", exc)
            return
        await ctx.reply("Channel added.\n" + _channel_line(row), mention_author=False)

    async def _channel_action(
        self, ctx: commands.Context, action: str, row_id: str, state_code: Optional[str]
    ) -> None:
        state = state_code or get_default_state_code()
        handlers = {
            "default": self.channels.set_default,
            "toggle": self.channels.toggle_active,
            "remove": self.channels.remove,
        }
        try:
            rows = await handlers[action](state, row_id)
        except (AllianceHQError, ValueError) as exc:
            await self._fail(ctx, f"channels {action}", exc)
            return
        listing = "\n".join(_channel_line(row) for row in rows) or "No channels left."
        await ctx.reply(_clip(listing), mention_author=False)

    @channels_group.command(name="default", help="Make a channel row the state default.")
    @admin_only()
    async def channels_default(self, ctx: commands.Context, row_id: str, state_code: Optional[str] = None) -> None:
        await self._channel_action(ctx, "default", row_id, state_code)

    @channels_group.command(name="toggle", help="Enable or disable a channel row.")
    @admin_only()
    async def channels_toggle(self, ctx: commands.Context, row_id: str, state_code: Optional[str] = None) -> None:
        await self._channel_action(ctx, "toggle", row_id, state_code)

    @channels_group.command(name="remove", help="Remove a channel row.")
    @admin_only()
    async def channels_remove(self, ctx: commands.Context, row_id: str, state_code: Optional[str] = None) -> None:
        await self._channel_action(ctx, "remove", row_id, state_code)


async def setup(bot: commands.Bot) -> None:
    kv = build_kv_store()
    await bot.add_cog(
        AllianceAdmin(
            bot,
            grants=build_grant_store(),
            mentions=MentionRepository(kv),
            templates=TemplateLibrary(kv),
            channels=ChannelDirectory(kv),
        )
    )
