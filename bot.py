"""
Support Core - Discord bot for support tickets and time-limited membership roles.

This is the main entrypoint for the bot.
"""

import asyncio
import logging
import os
import re
import sys
from dataclasses import replace
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv

from support_core import SupportContext, load_config
from support_core.logger import setup_logger

# Load environment variables from .env file
load_dotenv()

logger = setup_logger(level=logging.INFO)


def _validate_token_format(token: str) -> bool:
    """
    Validates that the token matches the expected Discord token format.

    Expected format: three base64-like segments separated by dots.
    Segments should be alphanumeric with - or _.
    """
    if not token or not isinstance(token, str):
        return False

    parts = token.split('.')
    if len(parts) != 3:
        return False

    token_part_pattern = r'^[A-Za-z0-9_-]+$'
    if not all(re.match(token_part_pattern, part) for part in parts):
        return False

    if len(parts[0]) < 10 or len(parts[1]) < 3 or len(parts[2]) < 10:
        return False

    return True


class SupportCoreBot(commands.Bot):
    """Bot holding the shared support context used by every cog."""

    def __init__(self, *args, **kwargs):
        self.config = kwargs.pop("config")
        self.config_path = kwargs.pop("config_path", "config.json")
        self.context = kwargs.pop("context", None) or SupportContext.build(self.config)
        super().__init__(*args, **kwargs)

    async def setup_hook(self):
        await self.context.store.connect()
        logger.info("Key-value store connected at %s", self.context.store.db_path)

        setup_logger(level=logging.INFO, bot=self, channels=self.config.logging_channels)
        logger.info("Discord channel logging enabled.")

        await self._load_cogs()

        for guild_id in self.config.guild_ids:
            guild = discord.Object(id=guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("Command tree synced for guild %s", guild_id)

    async def _load_cogs(self):
        cogs_dir = Path(__file__).resolve().parent / "cogs"
        if not cogs_dir.exists():
            logger.warning("No cogs directory found. Skipping cog loading.")
            return

        for cog_file in sorted(cogs_dir.glob("*.py")):
            if cog_file.stem.startswith("_"):
                continue

            extension = f"cogs.{cog_file.stem}"
            try:
                await self.load_extension(extension)
                logger.info("Loaded extension: %s", extension)
            except Exception as e:
                logger.error("Failed to load extension %s: %s", extension, e, exc_info=True)

    async def on_ready(self):
        logger.info("Logged in as %s (ID: %s)", self.user, self.user.id)
        logger.info("Support Core is ready!")

    async def close(self):
        self.context.scheduler.cancel_all()
        await super().close()
        await self.context.store.close()
        logger.info("Key-value store closed.")


async def main():
    config_path = os.environ.get("CONFIG_PATH", "config.json")
    token = os.environ.get("DISCORD_TOKEN")

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error("Invalid configuration in %s: %s", config_path, e)
        sys.exit(1)

    if token:
        if not _validate_token_format(token):
            logger.error("Invalid DISCORD_TOKEN format in environment variables.")
            sys.exit(1)

        config = replace(config, token=token)
        logger.info("Using token from environment variable")

    if not config.token:
        logger.error("No bot token configured. Set DISCORD_TOKEN or the token field in %s.", config_path)
        sys.exit(1)

    intents = discord.Intents.default()
    intents.message_content = True
    intents.members = True
    intents.guilds = True

    bot = SupportCoreBot(
        command_prefix=config.bot_prefix,
        intents=intents,
        config=config,
        config_path=config_path,
    )

    async with bot:
        await bot.start(config.token)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot shut down by user.")
