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

"""Soundboard commands for Crate."""

import asyncio

import discord
from discord import app_commands
from discord.ext import commands
from loguru import logger

from core.errors import CrateError
from ui.views import present
from utils.response import ResponseMixin

# Floor for the sweeper interval so a tiny idle_timeout doesn't spin
MIN_SWEEP_INTERVAL = 30


class Sounds(ResponseMixin, commands.Cog):
    """/sounds browser and /stop."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.soundboard = bot.soundboard
        self._sweeper: asyncio.Task | None = None

    async def cog_load(self) -> None:
        idle_timeout = self.bot.config_manager.get("browse", {}).get("idle_timeout", 0)
        if idle_timeout > 0:
            self._sweeper = asyncio.create_task(self._sweep_idle_sessions(idle_timeout))

    async def cog_unload(self) -> None:
        """Cleanup when cog is unloaded."""
        if self._sweeper and not self._sweeper.done():
            self._sweeper.cancel()
        self._sweeper = None

    async def _sweep_idle_sessions(self, idle_timeout: float) -> None:
        """Drop abandoned pickers periodically (lookups also expire them lazily)."""
        interval = max(MIN_SWEEP_INTERVAL, idle_timeout / 2)
        try:
            while True:
                await asyncio.sleep(interval)
                self.soundboard.purge_expired()
        except asyncio.CancelledError:
            logger.debug("session sweeper stopped")
            raise

    @app_commands.command(name="sounds", description="browse the soundboard and play a sound")
    @app_commands.guild_only()
    @app_commands.describe(filter="only show sounds matching this (fuzzy)")
    async def sounds(self, interaction: discord.Interaction, filter: str | None = None) -> None:
        """Open the sound picker for this member (replaces any open one)."""
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            render = await self.soundboard.open_browse(interaction.user.id, interaction.guild_id, filter)
        except CrateError as e:
            logger.warning(f"/sounds failed: {e.message_key} {e}")
            await self.respond(interaction, e.message_key)
            return
        except Exception:
            logger.opt(exception=True).error("/sounds crashed")
            await self.respond(interaction, "error_generic")
            return

        logger.debug(f"{interaction.user.display_name} opened the picker ({render.message_key})")
        await present(interaction, render, self.soundboard, self.bot.config_manager)

    @app_commands.command(name="stop", description="stop the sound playing in this server")
    @app_commands.guild_only()
    async def stop(self, interaction: discord.Interaction) -> None:
        """Stop playback and leave voice."""
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            render = await self.soundboard.stop_playback(interaction.guild_id)
        except CrateError as e:
            await self.respond(interaction, e.message_key)
            return
        except Exception:
            logger.opt(exception=True).error("/stop crashed")
            await self.respond(interaction, "error_generic")
            return

        logger.info(f"stopped by {interaction.user.display_name}")
        await self.respond(interaction, render.message_key, **render.values)


async def setup(bot: commands.Bot) -> None:
    """Load the Sounds cog."""
    await bot.add_cog(Sounds(bot))
