"""
Logging for the Support Core bot.

Everything goes to the console. Once the bot is connected, ERROR records
are mirrored to the configured errors channel and records from the
``support_core.audit`` logger to the audit channel, tagged with the
subsystem that produced them.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .config import LoggingChannels

LOGGER_NAME = "support_core"
AUDIT_LOGGER_NAME = f"{LOGGER_NAME}.audit"

CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s:%(name)s: %(message)s"
DISCORD_MESSAGE_LIMIT = 2000
TRACEBACK_LIMIT = 1850

# the sweep and a flapping Discord API repeat the same error every pass
REPEAT_WINDOW_SECONDS = 60.0

logger: Optional[logging.Logger] = None


def _subsystem(record: logging.LogRecord) -> str:
    if record.name.startswith(f"{LOGGER_NAME}."):
        return record.name[len(LOGGER_NAME) + 1 :]
    return "core"


def _is_audit_record(record: logging.LogRecord) -> bool:
    in_audit_tree = record.name == AUDIT_LOGGER_NAME or record.name.startswith(f"{AUDIT_LOGGER_NAME}.")
    return in_audit_tree and record.levelno >= logging.INFO


class DiscordHandler(logging.Handler):
    """Mirror log records into a Discord channel, dropping quick repeats."""

    def __init__(self, bot=None, channel_id: Optional[int] = None, *, repeat_window: float = REPEAT_WINDOW_SECONDS):
        super().__init__()
        self.bot = bot
        self.channel_id = channel_id
        self.repeat_window = repeat_window
        self._last_sent: dict[str, float] = {}

    def render(self, record: logging.LogRecord) -> str:
        try:
            msg = f"**{record.levelname}** `{_subsystem(record)}`: {record.getMessage()}"
            if record.exc_info:
                trace = self.format(record)
                if len(trace) > TRACEBACK_LIMIT:
                    trace = trace[:TRACEBACK_LIMIT] + "... (truncated)"
                msg = f"{msg}\n```{trace}```"
        except Exception:
            msg = f"**{record.levelname}** `{_subsystem(record)}`: {record.msg}"

        if len(msg) > DISCORD_MESSAGE_LIMIT:
            msg = msg[: DISCORD_MESSAGE_LIMIT - 3] + "..."
        return msg

    def _is_repeat(self, message: str) -> bool:
        now = time.monotonic()
        last = self._last_sent.get(message)
        if last is not None and now - last < self.repeat_window:
            return True
        self._last_sent = {m: t for m, t in self._last_sent.items() if now - t < self.repeat_window}
        self._last_sent[message] = now
        return False

    def emit(self, record: logging.LogRecord) -> None:
        if not (self.bot and self.channel_id):
            return

        channel = self.bot.get_channel(self.channel_id)
        if not channel:
            return

        message = self.render(record)
        if self._is_repeat(message):
            return
        self._schedule_send(channel, message)

    def _schedule_send(self, channel, message: str) -> None:
        try:
            try:
                asyncio.get_running_loop().create_task(self._send_to_discord(channel, message))
                return
            except RuntimeError:
                pass

            # called from another thread; hand the send to the bot's loop
            loop = getattr(self.bot, "loop", None)
            if loop is not None and loop.is_running():
                asyncio.run_coroutine_threadsafe(self._send_to_discord(channel, message), loop)
        except Exception as e:
            # stderr only, logging here would recurse
            print(f"DiscordHandler: Failed to schedule message: {e}", file=sys.stderr)

    async def _send_to_discord(self, channel, message: str) -> None:
        try:
            await channel.send(message)
        except Exception as e:
            print(f"DiscordHandler: Failed to send message: {e}", file=sys.stderr)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logger(
    level: int = logging.INFO,
    *,
    bot=None,
    channels: Optional[LoggingChannels] = None,
) -> logging.Logger:
    """
    Configure the ``support_core`` logger.

    Args:
        level: Logging level (default: INFO)
        bot: Connected bot used to resolve the log channels
        channels: Configured logging channels. ``errors`` receives ERROR
            records and ``audit``, when set, receives audit records.

    Returns:
        The configured logger
    """
    global logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(_console_handler())

    if bot is not None and channels is not None:
        if channels.audit:
            audit_handler = DiscordHandler(bot, channels.audit)
            audit_handler.setLevel(logging.INFO)
            audit_handler.addFilter(_is_audit_record)
            logger.addHandler(audit_handler)

        error_handler = DiscordHandler(bot, channels.errors)
        error_handler.setLevel(logging.ERROR)
        logger.addHandler(error_handler)

    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the ``support_core`` logger, or its ``name`` child (e.g. ``get_logger("audit")``)."""
    global logger
    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(logging.INFO)
        if not logger.handlers:
            logger.addHandler(_console_handler())
            logger.propagate = False

    if name:
        return logger.getChild(name)
    return logger


logger = get_logger()
