from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from shared.config import (
    get_admin_role_ids,
    get_bot_name,
    get_discord_token,
    get_env_name,
    get_grants_backend,
    get_log_level,
    get_mentions_backend,
    reload_config,
    require_startup_env,
)
from shared.logging import setup_logging
from shared.sheets.async_adapter import shutdown_executor

log = logging.getLogger("hq.app")

INTENTS = discord.Intents.default()
INTENTS.message_content = True
INTENTS.members = True

BANG_PREFIX = "!"
EXTENSIONS = ("cogs.alliance_admin",)


class AllianceHQBot(commands.Bot):
    async def setup_hook(self) -> None:
        for ext in EXTENSIONS:
            await self.load_extension(ext)
            log.info("extension loaded", extra={"extension": ext})


bot = AllianceHQBot(
    command_prefix=commands.when_mentioned_or(BANG_PREFIX),
    intents=INTENTS,
)


@bot.event
async def on_ready():
    log.info(
        'Bot ready as %s | env=%s | prefixes=["%s", "@mention"]',
        bot.user,
        get_env_name(),
        BANG_PREFIX,
    )
    log.info(
        "Backends: grants=%s mentions=%s admin_role_ids=%s",
        get_grants_backend(),
        get_mentions_backend(),
        sorted(get_admin_role_ids()),
    )


@bot.event
async def on_command_error(ctx: commands.Context, error: commands.CommandError) -> None:
    if isinstance(error, commands.CommandNotFound):
        return
    if isinstance(error, commands.CheckFailure):
        await ctx.reply("This command is limited to HQ admins.", mention_author=False)
        return
    if isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
        usage = f"{ctx.prefix}{ctx.command.qualified_name} {ctx.command.signature}" if ctx.command else ""
        await ctx.reply(f"⚠️ {error}\nUsage: `{usage}`", mention_author=False)
        return
    log.error(
        "command error",
        exc_info=(type(error), error, error.__traceback__),
        extra={"command": getattr(ctx.command, "qualified_name", None)},
    )


async def main() -> None:
    setup_logging(
        level=get_log_level(),
        static_fields={"env": get_env_name(), "bot": get_bot_name()},
    )
    require_startup_env()
    reload_config()
    try:
        async with bot:
            await bot.start(get_discord_token())
    finally:
        shutdown_executor(wait=False)


if __name__ == "__main__":
    asyncio.run(main())
