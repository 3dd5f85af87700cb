# Copyright (C) 2026 grodz
#
# This file is part of Crate.
#
# Crate is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Crate Soundboard Bot
========================================================
VERSION: 1.0.0
========================================================

A Discord soundboard built on discord.py. /sounds opens an ephemeral picker
over the local sounds folder; the chosen file is played through FFmpeg in the
chosen voice channel.
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv
from loguru import logger

from core.browser import SelectionStore
from core.playback import PlaybackManager
from core.soundboard import Soundboard
from utils.config import ConfigManager, validate_configuration
from utils.ffmpeg import FFmpegProber
from utils.library import SoundLibrary
from utils.voice import DiscordVoiceBackend

# Load environment variables
load_dotenv()

VERSION = "1.0.0"

EXTENSIONS = ("cogs.sounds",)

# =============================================================================
# LOGGING SETUP
# =============================================================================

# logging.level setting -> loguru level
LOG_LEVELS = {
    "minimal": "NOTICE",
    "verbose": "INFO",
    "debug": "DEBUG",
}

# Between INFO (20) and WARNING (30): startup/shutdown milestones that should
# show even in minimal mode
logger.level("NOTICE", no=25, color="<cyan><bold>")


class InterceptHandler(logging.Handler):
    """Route stdlib logging (discord.py) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module so loguru reports it
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level_name: str) -> None:
    """Single stderr sink at the configured level, discord.py included."""
    level = LOG_LEVELS.get(level_name, "INFO")
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <7}</level> | {message}",
        backtrace=level == "DEBUG",
        diagnose=False,
    )
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    # discord.py is chatty at INFO (gateway, voice handshakes)
    logging.getLogger("discord").setLevel(logging.DEBUG if level == "DEBUG" else logging.WARNING)


# =============================================================================
# BOT
# =============================================================================

class Crate(commands.Bot):
    """Bot wired to one Soundboard.

    Attributes:
        config_manager: Loaded settings and messages
        soundboard: Core entry points used by the cogs
    """

    def __init__(self, config_manager: ConfigManager) -> None:
        intents = discord.Intents.default()
        intents.voice_states = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents, help_command=None)

        self.config_manager = config_manager
        self._shutting_down = False

        setting = config_manager.setting
        executable = setting("ffmpeg.executable")

        backend = DiscordVoiceBackend(
            self,
            executable=executable,
            bitrate=setting("ffmpeg.bitrate"),
            connect_timeout=setting("voice.connect_timeout"),
        )
        self.soundboard = Soundboard(
            library=SoundLibrary(Path(setting("sounds_path")).expanduser().resolve()),
            store=SelectionStore(idle_timeout=setting("browse.idle_timeout")),
            playback=PlaybackManager(
                backend,
                ready_timeout=setting("voice.ready_timeout"),
                ready_poll_interval=setting("voice.ready_poll_interval"),
                stop_timeout=setting("voice.stop_timeout"),
            ),
            backend=backend,
            prober=FFmpegProber(executable),
            probe_timeout=setting("ffmpeg.probe_timeout"),
            filter_threshold=setting("browse.filter_threshold"),
        )

    async def setup_hook(self) -> None:
        for extension in EXTENSIONS:
            await self.load_extension(extension)

        # Guild sync is instant, global sync can take up to an hour
        guild_id = os.getenv("GUILD_ID")
        if guild_id:
            guild = discord.Object(id=int(guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
        else:
            synced = await self.tree.sync()
        logger.debug(f"synced {len(synced)} commands")

    async def on_ready(self) -> None:
        logger.log("NOTICE", f"Crate v{VERSION} - Copyright (C) 2026 grodz")
        logger.log("NOTICE", "Licensed under GPL 3.0 - See LICENSE.md for details")
        logger.log("NOTICE", f"connected as {self.user}")

        try:
            sounds = await self.soundboard.library.scan()
            logger.info(f"{len(sounds)} sounds in {self.soundboard.library.root}")
        except Exception as e:
            logger.error(f"sounds folder unreadable: {e}")

        logger.info("press ctrl+c or send SIGTERM to shutdown")

    async def close(self) -> None:
        """Retire every playback before the gateway goes away."""
        if not self._shutting_down:
            self._shutting_down = True
            logger.log("NOTICE", "shutting down...")
            try:
                await self.soundboard.shutdown()
            except Exception:
                logger.opt(exception=True).error("error while stopping playback")
        await super().close()


# =============================================================================
# MAIN
# =============================================================================

async def main() -> None:
    config_path = Path(os.getenv("CONFIG_PATH") or Path(__file__).parent / "config")
    config_manager = ConfigManager(config_path)
    await config_manager.load()
    setup_logging(config_manager.setting("logging.level"))

    validate_configuration(
        Path(config_manager.setting("sounds_path")).expanduser(),
        config_manager.setting("ffmpeg.executable"),
    )

    bot = Crate(config_manager)

    # SIGINT = Ctrl+C, SIGTERM = docker/systemd stop
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _handle_signal(bot, s))
        except NotImplementedError:
            # Windows: Ctrl+C arrives as KeyboardInterrupt instead
            pass

    async with bot:
        await bot.start(os.environ["DISCORD_TOKEN"].strip())


_shutdown_tasks: set[asyncio.Task] = set()


def _handle_signal(bot: Crate, sig: signal.Signals) -> None:
    logger.info(f"received {sig.name}, shutting down...")
    task = asyncio.create_task(bot.close())
    _shutdown_tasks.add(task)
    task.add_done_callback(_shutdown_tasks.discard)


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("bot stopped by user (ctrl+c)")
