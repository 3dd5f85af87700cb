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

"""discord.py voice backend.

Implements the core's Destination / Encoder / VoiceBackend contracts on top of
discord.VoiceClient and discord.FFmpegOpusAudio.

Threading note: discord.py runs audio in its own player thread and calls the
``after`` callback from there. Nothing in that callback touches our state
directly; it only hands the result back to the event loop.
"""

import asyncio

import discord
from discord.ext import commands
from loguru import logger

from core.interfaces import DestinationInfo
from core.pagination import PAGE_SIZE


def _resolve(future: asyncio.Future, error: Exception | None) -> None:
    """Set a transfer result once (event loop thread only)."""
    if not future.done():
        future.set_result(error)


class VoiceDestination:
    """A joined voice channel. Disconnects once, however often release() is called."""

    def __init__(self, voice_client: discord.VoiceClient) -> None:
        self.voice_client = voice_client
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def is_ready(self) -> bool:
        return not self._released and self.voice_client.is_connected()

    async def set_emitting(self, emitting: bool) -> None:
        """Toggle the speaking indicator. No-op when not connected."""
        if not self.voice_client.is_connected():
            return
        if emitting and self._released:
            return
        state = discord.SpeakingState.voice if emitting else discord.SpeakingState.none
        await self.voice_client.ws.speak(state)

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self.voice_client.disconnect(force=True)
        except (discord.ClientException, discord.HTTPException) as e:
            logger.debug(f"disconnect failed (non-critical): {e}")
        except Exception as e:
            # Transport errors during shutdown (e.g. connection reset)
            logger.debug(f"disconnect failed with transport error (non-critical): {e}")


class FFmpegEncoder:
    """One FFmpeg process producing Opus for one voice connection.

    The process starts when the FFmpegOpusAudio is constructed. transfer()
    hands it to the voice client and waits for the player's ``after`` callback.
    release() stops the player and kills the process; a transfer in progress
    returns as soon as that happens.
    """

    def __init__(self, source: discord.FFmpegOpusAudio) -> None:
        self.source = source
        self._released = False
        self._voice_client: discord.VoiceClient | None = None
        self._finished: asyncio.Future | None = None

    @property
    def released(self) -> bool:
        return self._released

    async def transfer(self, destination: VoiceDestination) -> Exception | None:
        if self._released:
            return None

        loop = asyncio.get_running_loop()
        finished = loop.create_future()
        self._finished = finished

        def after_playback(error: Exception | None) -> None:
            # Runs in discord.py's audio thread
            loop.call_soon_threadsafe(_resolve, finished, error)

        voice_client = destination.voice_client
        self._voice_client = voice_client
        voice_client.play(self.source, after=after_playback)
        return await finished

    async def release(self) -> None:
        if self._released:
            return
        self._released = True

        voice_client = self._voice_client
        if voice_client is not None:
            try:
                if voice_client.is_playing() or voice_client.is_paused():
                    voice_client.stop()
            except (discord.ClientException, RuntimeError, AttributeError) as e:
                logger.debug(f"voice client stop failed (ignored): {e}")

        try:
            self.source.cleanup()
        except (OSError, RuntimeError, AttributeError) as e:
            logger.debug(f"ffmpeg cleanup failed (ignored): {e}")

        if self._finished is not None:
            _resolve(self._finished, None)


class DiscordVoiceBackend:
    """Creates voice destinations and FFmpeg encoders for the playback manager.

    Args:
        bot: Connected bot (guild/channel lookups)
        executable: ffmpeg binary
        bitrate: Opus bitrate in kbps
        connect_timeout: Seconds discord.py may spend on the voice handshake
    """

    def __init__(
        self,
        bot: commands.Bot,
        executable: str = "ffmpeg",
        bitrate: int = 128,
        connect_timeout: float = 10.0,
    ) -> None:
        self.bot = bot
        self.executable = executable
        self.bitrate = bitrate
        self.connect_timeout = connect_timeout

    def _get_voice_channel(self, guild_id: int, channel_id: int) -> discord.VoiceChannel | discord.StageChannel:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise LookupError(f"guild {guild_id} not available")
        channel = guild.get_channel(channel_id)
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise LookupError(f"channel {channel_id} is not a voice channel")
        return channel

    async def join(self, guild_id: int, destination_id: int) -> VoiceDestination:
        channel = self._get_voice_channel(guild_id, destination_id)
        guild = channel.guild

        permissions = channel.permissions_for(guild.me)
        if not permissions.connect or not permissions.speak:
            raise PermissionError(f"missing connect/speak permission in #{channel.name}")

        # Leftover connection not owned by any session (e.g. after a gateway hiccup)
        if guild.voice_client is not None:
            logger.debug(f"dropping stale voice connection in {guild.name}")
            await guild.voice_client.disconnect(force=True)

        logger.info(f"joining #{channel.name} ({channel.type}) in {guild.name}")
        voice_client = await channel.connect(
            timeout=self.connect_timeout,
            reconnect=False,
            self_deaf=True,
        )
        return VoiceDestination(voice_client)

    async def start_encoder(self, source_path: str) -> FFmpegEncoder:
        logger.debug(f"starting ffmpeg for {source_path} at {self.bitrate}kbps")
        source = discord.FFmpegOpusAudio(
            source_path,
            bitrate=self.bitrate,
            executable=self.executable,
        )
        return FFmpegEncoder(source)

    def list_destinations(self, guild_id: int) -> list[DestinationInfo]:
        """Voice and stage channels by position then name, capped at one menu."""
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return []
        channels = [*guild.voice_channels, *guild.stage_channels]
        channels.sort(key=lambda c: (c.position, c.name.lower()))
        return [DestinationInfo(id=c.id, name=c.name) for c in channels[:PAGE_SIZE]]
