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

"""Contracts between the soundboard core and the outside world.

The core never touches discord.py or subprocesses directly. utils/voice.py and
utils/ffmpeg.py implement these for production; tests use in-memory fakes.

Release contract: every release() must be safe to call more than once and from
concurrent tasks. The second and later calls do nothing.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class DestinationInfo:
    """A voice channel the member can pick."""
    id: int
    name: str


@runtime_checkable
class Destination(Protocol):
    """A joined voice connection owned by one playback session."""

    def is_ready(self) -> bool:
        """True once audio can be sent."""
        ...

    async def set_emitting(self, emitting: bool) -> None:
        """Toggle the speaking indicator."""
        ...

    async def release(self) -> None:
        """Disconnect. Idempotent."""
        ...


@runtime_checkable
class Encoder(Protocol):
    """A running encoder feeding one destination."""

    async def transfer(self, destination: Destination) -> Exception | None:
        """Stream until the source ends or fails.

        Returns:
            None on clean end of stream, otherwise the error that ended it
        """
        ...

    async def release(self) -> None:
        """Stop the encoder process. Idempotent."""
        ...


class VoiceBackend(Protocol):
    """Factory for destinations and encoders."""

    async def join(self, guild_id: int, destination_id: int) -> Destination:
        """Connect to a voice channel. Raises on failure."""
        ...

    async def start_encoder(self, source_path: str) -> Encoder:
        """Spawn the encoder for a file. Raises on failure."""
        ...

    def list_destinations(self, guild_id: int) -> list[DestinationInfo]:
        """Voice channels the bot could join in this guild."""
        ...


class Prober(Protocol):
    """Synchronous host/file capability checks used by preflight."""

    def encoder_available(self) -> bool:
        ...

    def probe_decode(self, source_path: str, timeout: float) -> None:
        """Raise if the file can't be decoded within timeout."""
        ...

    def probe_encode_capability(self, source_path: str, timeout: float) -> None:
        """Raise if the host can't produce Opus within timeout."""
        ...
