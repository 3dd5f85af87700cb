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

"""Soundboard entry points.

Ties the browse store, preflight and playback manager together behind the
operations the Discord layer calls. Every operation returns a Render: which
message to show (a messages.yaml key plus format values) and which picker, if
any, to attach. Nothing here knows what a Discord component looks like.

Expected failures are raised as CrateError subclasses; render_failure() turns
one into the Render that lets the member carry on (or restart).
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from core.browser import SelectionSession, SelectionStore
from core.errors import CrateError, InvalidSelection, SessionExpired
from core.interfaces import DestinationInfo, Prober, VoiceBackend
from core.pagination import PAGE_SIZE, page_window
from core.playback import PlaybackManager
from core.preflight import run_preflight
from utils.library import SoundLibrary, display_name
from utils.search import filter_entries


@dataclass(frozen=True, slots=True)
class SoundOption:
    """One row in the sound menu. ``index`` points into the session's full file list."""
    index: int
    label: str


@dataclass(frozen=True, slots=True)
class SoundPicker:
    """Sound menu for the current page plus navigation state."""
    options: tuple[SoundOption, ...]
    page: int
    total_pages: int
    has_previous: bool
    has_next: bool
    generation: int = 0


@dataclass(frozen=True, slots=True)
class ChannelPicker:
    """Voice channel menu shown after a sound is chosen."""
    options: tuple[DestinationInfo, ...]


@dataclass(frozen=True, slots=True)
class Render:
    """What the Discord layer should show.

    Attributes:
        message_key: messages.yaml key for the text
        values: Format values for that message
        element: Picker to attach, or None to remove all components
    """
    message_key: str
    values: dict[str, Any] = field(default_factory=dict)
    element: SoundPicker | ChannelPicker | None = None


class Soundboard:
    """Core operations behind /sounds, the picker components, and /stop.

    Args:
        library: Sound file discovery
        store: Browse sessions
        playback: Playback sessions
        backend: Voice backend (channel listing for the second step)
        prober: FFmpeg probes for preflight
        probe_timeout: Seconds per preflight probe
        filter_threshold: Minimum fuzzy score for `/sounds filter:`
    """

    def __init__(
        self,
        library: SoundLibrary,
        store: SelectionStore,
        playback: PlaybackManager,
        backend: VoiceBackend,
        prober: Prober,
        probe_timeout: float = 5.0,
        filter_threshold: float = 61,
    ) -> None:
        self.library = library
        self.store = store
        self.playback = playback
        self.backend = backend
        self.prober = prober
        self.probe_timeout = probe_timeout
        self.filter_threshold = filter_threshold

    # =========================================================================
    # Rendering helpers
    # =========================================================================

    def _sound_picker(self, session: SelectionSession) -> SoundPicker:
        window = page_window(len(session.files), session.page, PAGE_SIZE)
        options = tuple(
            SoundOption(index=i, label=display_name(session.files[i]))
            for i in range(window.start, window.end)
        )
        return SoundPicker(
            options=options,
            page=window.page,
            total_pages=window.total_pages,
            has_previous=window.has_previous,
            has_next=window.has_next,
            generation=session.generation,
        )

    def _browse_render(self, session: SelectionSession, message_key: str = "pick_sound") -> Render:
        picker = self._sound_picker(session)
        return Render(
            message_key,
            {"page": picker.page + 1, "pages": picker.total_pages, "count": len(session.files)},
            picker,
        )

    def _channel_render(self, session: SelectionSession, message_key: str = "sound_selected") -> Render:
        channels = tuple(self.backend.list_destinations(session.guild_id))
        return Render(
            message_key,
            {"sound": display_name(session.selected or "")},
            ChannelPicker(channels),
        )

    # =========================================================================
    # Browse flow
    # =========================================================================

    async def open_browse(self, actor_id: int, guild_id: int, query: str | None = None) -> Render:
        """Start (or restart) a member's browse session on page 0."""
        files = await self.library.scan()
        if not files:
            return Render("no_sounds")

        if query:
            files = filter_entries(query, files, self.filter_threshold)
            if not files:
                return Render("no_matches", {"query": query})

        session = self.store.open(actor_id, guild_id, files)
        return self._browse_render(session)

    def navigate(self, actor_id: int, guild_id: int, direction: str) -> Render:
        session = self.store.navigate((actor_id, guild_id), direction)
        return self._browse_render(session)

    def select(self, actor_id: int, guild_id: int, index: int, generation: int | None = None) -> Render:
        """Choose a sound and move on to the channel picker.

        ``generation`` is the one the picker was rendered with. An index from
        an older picker, or one out of range, re-renders the current page with
        an invalid_selection message; the session is unchanged.
        """
        key = (actor_id, guild_id)
        try:
            session = self.store.select(key, index, generation)
        except InvalidSelection:
            return self._browse_render(self.store.get(key), InvalidSelection.message_key)
        return self._channel_render(session)

    def reset_selection(self, actor_id: int, guild_id: int) -> Render:
        session = self.store.reset_selection((actor_id, guild_id))
        return self._browse_render(session)

    def cancel_browse(self, actor_id: int, guild_id: int) -> Render:
        self.store.close((actor_id, guild_id))
        return Render("cancelled")

    # =========================================================================
    # Playback
    # =========================================================================

    async def commit_selection(self, actor_id: int, guild_id: int, destination_id: int) -> Render:
        """Validate the chosen sound and start it in the chosen channel.

        On success the browse session is closed. On failure it is kept (with
        the sound still selected) so the member can pick another channel.

        Raises:
            SessionExpired, NoSelection, CommitInProgress: Browse state problems
            PreflightError: File or host check failed (nothing acquired)
            PlaybackError: Voice or encoder failure (everything released)
        """
        key = (actor_id, guild_id)
        session = self.store.begin_commit(key)
        entry = session.selected
        try:
            path = self.library.resolve(entry)
            await asyncio.to_thread(run_preflight, path, self.prober, self.probe_timeout)
            await self.playback.start(guild_id, destination_id, str(path))
        except BaseException:
            self.store.end_commit(key)
            raise

        self.store.close(key)
        logger.info(f"member {actor_id} started {entry} in guild {guild_id}")
        return Render("now_playing", {"sound": display_name(entry), "channel_id": destination_id})

    async def stop_playback(self, guild_id: int) -> Render:
        """Stop the guild's playback. Raises NothingPlaying if idle."""
        session = await self.playback.stop(guild_id)
        return Render("stopped", {"sound": display_name(session.name)})

    # =========================================================================
    # Failure handling
    # =========================================================================

    def render_failure(self, actor_id: int, guild_id: int, error: CrateError) -> Render:
        """Render for a failed picker interaction.

        Keeps the member inside the flow where possible: back on the channel
        picker if a sound is still selected, back on the sound picker if not,
        and no components at all once the session is gone.
        """
        if isinstance(error, SessionExpired):
            return Render(error.message_key)
        try:
            session = self.store.get((actor_id, guild_id))
        except SessionExpired:
            return Render(error.message_key)
        if session.selected is not None:
            return self._channel_render(session, error.message_key)
        return self._browse_render(session, error.message_key)

    def purge_expired(self) -> int:
        return self.store.purge_expired()

    async def shutdown(self) -> None:
        await self.playback.shutdown()
