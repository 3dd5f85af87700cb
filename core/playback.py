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
Playback Sessions

One active playback per guild. Owns joining voice, starting the encoder,
the background streaming task, and tearing all of it down again.

State per guild:
    IDLE -> CONNECTING -> STREAMING -> RETIRING -> IDLE

Exit paths that end a session:
    - end of stream (or stream error) inside the lifecycle task
    - stop()
    - start() for the same guild (supersede, last request wins)
    - shutdown()

All four funnel into PlaybackSession.retire(), which runs the teardown exactly
once and lets any other caller wait for it to finish.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from pathlib import Path
from time import monotonic as _now

from loguru import logger

from core.errors import (
    DestinationJoinFailed,
    DestinationNotReady,
    EncoderStartFailed,
    NothingPlaying,
    PlaybackError,
    ShuttingDown,
)
from core.interfaces import Destination, Encoder, VoiceBackend


_SESSION_IDS = count(1)


class PlaybackState(Enum):
    """
    Where a guild is in the playback lifecycle.

    IDLE: No session registered
    CONNECTING: Joining voice and starting the encoder (caller is waiting)
    STREAMING: Session registered, lifecycle task running
    RETIRING: Teardown in progress
    """
    IDLE = 0
    CONNECTING = 1
    STREAMING = 2
    RETIRING = 3


@dataclass(eq=False, slots=True)
class PlaybackSession:
    """Resources for one play request in one guild.

    The session owns ``destination`` and ``encoder`` from the moment it is
    created. ``id`` is unique per process so log lines from overlapping
    sessions can be told apart; ``source_path`` is for logging and equality
    checks only.
    """

    guild_id: int
    destination: Destination
    encoder: Encoder
    source_path: str
    id: int = field(default_factory=lambda: next(_SESSION_IDS))
    started_at: float = field(default_factory=_now)
    task: asyncio.Task | None = None
    _teardown: asyncio.Task | None = None

    @property
    def retiring(self) -> bool:
        """True once teardown has started."""
        return self._teardown is not None

    @property
    def retired(self) -> bool:
        """True once teardown has finished."""
        return self._teardown is not None and self._teardown.done()

    @property
    def name(self) -> str:
        return Path(self.source_path).name

    async def retire(self) -> list[Exception]:
        """Tear down this session. Safe to call any number of times.

        The first call starts the teardown; every call (first included) waits
        for it to finish. Teardown is shielded, so a cancelled caller can't
        leave the encoder or voice connection half released.

        Returns:
            Errors raised by teardown steps. Only the first caller gets them,
            later callers get an empty list.
        """
        first = self._teardown is None
        if first:
            self._teardown = asyncio.create_task(
                self._run_teardown(), name=f"teardown-{self.guild_id}-{self.id}"
            )
        errors = await asyncio.shield(self._teardown)
        return errors if first else []

    async def _run_teardown(self) -> list[Exception]:
        """Clear speaking, stop encoder, disconnect. Each step runs even if an earlier one fails."""
        steps = (
            ("clear speaking", lambda: self.destination.set_emitting(False)),
            ("release encoder", self.encoder.release),
            ("release destination", self.destination.release),
        )
        errors: list[Exception] = []
        for label, step in steps:
            try:
                await step()
            except Exception as e:
                logger.debug(f"session {self.id}: {label} failed (continuing): {e}")
                errors.append(e)
        return errors


async def _release_quietly(resource) -> bool:
    """Release a destination or encoder, logging instead of raising.

    Returns:
        True if released cleanly, False on error
    """
    try:
        await resource.release()
        return True
    except Exception as e:
        logger.debug(f"release failed (non-critical): {e}")
        return False


class PlaybackManager:
    """
    Registry of live playback sessions, one per guild.

    Every operation that changes a guild's registration (start, stop,
    shutdown) holds that guild's lock for its whole duration, so retiring the
    old session and registering the new one can never interleave with
    another request for the same guild. The lifecycle task never takes the
    lock; it only removes its own entry, and only if it is still the
    registered one.

    Args:
        backend: Voice/encoder factory
        ready_timeout: Seconds to wait for a joined connection to become usable
        ready_poll_interval: Seconds between readiness checks
        stop_timeout: Seconds to wait for a lifecycle task to exit after teardown
    """

    def __init__(
        self,
        backend: VoiceBackend,
        ready_timeout: float = 5.0,
        ready_poll_interval: float = 0.1,
        stop_timeout: float = 5.0,
    ) -> None:
        self.backend = backend
        self.ready_timeout = ready_timeout
        self.ready_poll_interval = ready_poll_interval
        self.stop_timeout = stop_timeout

        self._sessions: dict[int, PlaybackSession] = {}
        self._states: dict[int, PlaybackState] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._closed = False

    def _get_lock(self, guild_id: int) -> asyncio.Lock:
        """Get or create the guild's lock. All registry changes go through it."""
        if guild_id not in self._locks:
            self._locks[guild_id] = asyncio.Lock()
        return self._locks[guild_id]

    # =========================================================================
    # Read access
    # =========================================================================

    def get(self, guild_id: int) -> PlaybackSession | None:
        return self._sessions.get(guild_id)

    def state(self, guild_id: int) -> PlaybackState:
        return self._states.get(guild_id, PlaybackState.IDLE)

    def active_guilds(self) -> list[int]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    # =========================================================================
    # Start
    # =========================================================================

    async def start(self, guild_id: int, destination_id: int, source_path: str) -> PlaybackSession:
        """Play a file in a voice channel, replacing whatever the guild was playing.

        Returns as soon as streaming has been handed to the background task;
        it does not wait for the sound to finish.

        Raises:
            DestinationJoinFailed: Could not connect to the channel
            DestinationNotReady: Connected but never became usable
            EncoderStartFailed: FFmpeg would not start
            ShuttingDown: shutdown() has begun

        On any failure nothing is registered and everything acquired so far
        has been released.
        """
        async with self._get_lock(guild_id):
            if self._closed:
                raise ShuttingDown()

            old = self._sessions.get(guild_id)
            if old is not None:
                logger.info(f"stopping existing playback in guild {guild_id} (session {old.id})")
                await self._retire(old)

            if guild_id in self._sessions:
                # Retire always deregisters; reaching this means the registry is corrupt
                logger.error(f"guild {guild_id} still has a live session after retirement")
                raise PlaybackError("previous session still registered")

            self._states[guild_id] = PlaybackState.CONNECTING
            try:
                destination = await self._connect(guild_id, destination_id)
                encoder = await self._start_encoder(destination, source_path)
            except BaseException:
                self._states.pop(guild_id, None)
                raise

            session = PlaybackSession(
                guild_id=guild_id,
                destination=destination,
                encoder=encoder,
                source_path=str(source_path),
            )
            self._sessions[guild_id] = session
            self._states[guild_id] = PlaybackState.STREAMING
            session.task = asyncio.create_task(
                self._lifecycle(session), name=f"playback-{guild_id}-{session.id}"
            )
            logger.info(f"started session {session.id}: {session.name} in guild {guild_id}")
            return session

    async def _connect(self, guild_id: int, destination_id: int) -> Destination:
        """Join the channel and wait until it can carry audio."""
        logger.debug(f"joining channel {destination_id} in guild {guild_id}")
        try:
            destination = await self.backend.join(guild_id, destination_id)
        except Exception as e:
            logger.error(f"voice join failed for channel {destination_id}: {e}")
            raise DestinationJoinFailed(str(e)) from e

        try:
            await self._wait_ready(destination)
        except BaseException:
            await _release_quietly(destination)
            raise
        logger.debug(f"voice connection ready in guild {guild_id}")
        return destination

    async def _wait_ready(self, destination: Destination) -> None:
        """Poll readiness until ready_timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ready_timeout
        while not destination.is_ready():
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.error(f"voice connection not ready after {self.ready_timeout}s")
                raise DestinationNotReady(f"not ready after {self.ready_timeout}s")
            await asyncio.sleep(min(self.ready_poll_interval, remaining))

    async def _start_encoder(self, destination: Destination, source_path: str) -> Encoder:
        """Start FFmpeg. Releases the destination if that fails."""
        try:
            return await self.backend.start_encoder(str(source_path))
        except BaseException as e:
            await _release_quietly(destination)
            if isinstance(e, Exception):
                logger.error(f"encoder start failed for {Path(source_path).name}: {e}")
                raise EncoderStartFailed(str(e)) from e
            raise

    # =========================================================================
    # Lifecycle task
    # =========================================================================

    async def _lifecycle(self, session: PlaybackSession) -> None:
        """Stream one session to completion, then tear it down.

        Runs detached from the request that started it. Never raises to a
        caller; errors are logged and teardown always runs.
        """
        guild_id = session.guild_id
        try:
            if session.retiring:
                # Stopped before the task got its first turn
                return
            try:
                await session.destination.set_emitting(True)
            except Exception as e:
                logger.warning(f"session {session.id}: could not set speaking: {e}")

            error = await session.encoder.transfer(session.destination)
            if error is not None:
                logger.error(f"session {session.id}: stream ended with error: {error}")
            else:
                logger.info(f"finished {session.name} in guild {guild_id}")
        except asyncio.CancelledError:
            logger.debug(f"session {session.id}: lifecycle cancelled")
            raise
        except Exception:
            logger.opt(exception=True).error(f"session {session.id}: playback lifecycle failed")
        finally:
            if self._sessions.get(guild_id) is session:
                self._states[guild_id] = PlaybackState.RETIRING
            try:
                await session.retire()
            finally:
                self._deregister(session)

    def _deregister(self, session: PlaybackSession) -> None:
        """Remove the session from the registry if it is still the registered one."""
        guild_id = session.guild_id
        if self._sessions.get(guild_id) is session:
            del self._sessions[guild_id]
            self._states.pop(guild_id, None)
            logger.debug(f"session {session.id} deregistered from guild {guild_id}")

    # =========================================================================
    # Stop / retire
    # =========================================================================

    async def stop(self, guild_id: int) -> PlaybackSession:
        """Stop the guild's playback and leave voice.

        Returns:
            The session that was stopped

        Raises:
            NothingPlaying: Guild has no session (registry untouched)
        """
        async with self._get_lock(guild_id):
            session = self._sessions.get(guild_id)
            if session is None:
                raise NothingPlaying()
            await self._retire(session)
            return session

    async def _retire(self, session: PlaybackSession) -> None:
        """Teardown, deregister, then wait (bounded) for the lifecycle task to exit.

        Caller holds the guild lock.
        """
        guild_id = session.guild_id
        self._states[guild_id] = PlaybackState.RETIRING
        errors = await session.retire()
        for error in errors:
            logger.debug(f"session {session.id}: teardown error ignored: {error}")
        self._deregister(session)

        task = session.task
        if task is None or task.done():
            return
        done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
        if not done:
            logger.warning(f"session {session.id}: lifecycle did not exit after {self.stop_timeout}s, cancelling")
            task.cancel()

    async def shutdown(self) -> None:
        """Retire every live session. Called once on process exit.

        New starts are refused from here on. Guilds with a start still in
        flight are included: their lock is awaited, so the start either
        registers (and is then retired) or fails before this returns.
        """
        self._closed = True
        guild_ids = list(self._sessions.keys() | self._states.keys())
        if not guild_ids:
            return
        logger.info(f"stopping playback in {len(guild_ids)} guild(s)")
        results = await asyncio.gather(
            *(self._shutdown_guild(guild_id) for guild_id in guild_ids),
            return_exceptions=True,
        )
        for guild_id, result in zip(guild_ids, results):
            if isinstance(result, Exception):
                logger.error(f"error stopping playback in guild {guild_id}: {result}")

    async def _shutdown_guild(self, guild_id: int) -> None:
        async with self._get_lock(guild_id):
            session = self._sessions.get(guild_id)
            if session is not None:
                await self._retire(session)
