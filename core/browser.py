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

"""Per-user browsing sessions for the /sounds picker.

Each member browsing the library in a guild gets one SelectionSession, keyed by
(actor_id, guild_id). The picker is an ephemeral message, so the session is the
only thing tying one button click to the next.

Flow:
    open() -> navigate()* -> select() -> [reset_selection() -> select()]*
           -> begin_commit() -> close()           (playback started)
                             -> end_commit()      (commit failed, retry)
    cancel at any point -> close()

All operations take the store lock for their whole read-modify-write, and
callers only ever receive frozen snapshots, never the live session object.
"""

import threading
from dataclasses import dataclass, replace
from itertools import count
from time import monotonic as _now
from typing import Iterable

from loguru import logger

from core.errors import CommitInProgress, InvalidSelection, NoSelection, SessionExpired
from core.pagination import PAGE_SIZE, is_valid_index, max_page, step_page

SessionKey = tuple[int, int]  # (actor_id, guild_id)

_GENERATIONS = count(1)


@dataclass(frozen=True, slots=True)
class SelectionSession:
    """Snapshot of one member's browsing state.

    Attributes:
        files: Library entries offered to this member (sorted, no duplicates)
        page: Current zero-based page, always within [0, max_page]
        selected: Chosen file, or None while still browsing
        committing: True while a playback request for this session is running
        touched_at: Monotonic time of last access (idle expiry)
        generation: Changes on every open(), so pickers rendered for an
            earlier file list can be told apart
    """

    actor_id: int
    guild_id: int
    files: tuple[str, ...]
    page: int = 0
    selected: str | None = None
    committing: bool = False
    touched_at: float = 0.0
    generation: int = 0

    @property
    def key(self) -> SessionKey:
        return (self.actor_id, self.guild_id)

    @property
    def max_page(self) -> int:
        return max_page(len(self.files), PAGE_SIZE)


class SelectionStore:
    """Thread-safe map of (actor_id, guild_id) -> SelectionSession.

    Sessions are replaced wholesale on every mutation (they are frozen), so a
    snapshot handed to a caller can never change underneath it.

    Args:
        idle_timeout: Seconds without access before a session expires.
            0 disables expiry.
    """

    def __init__(self, idle_timeout: float = 0) -> None:
        self.idle_timeout = idle_timeout
        self._sessions: dict[SessionKey, SelectionSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # =========================================================================
    # Internal helpers (caller holds the lock)
    # =========================================================================

    def _expired(self, session: SelectionSession, now: float) -> bool:
        return self.idle_timeout > 0 and now - session.touched_at > self.idle_timeout

    def _lookup(self, key: SessionKey) -> SelectionSession:
        session = self._sessions.get(key)
        if session is None:
            raise SessionExpired()
        if self._expired(session, _now()):
            del self._sessions[key]
            logger.debug(f"browse session {key} expired")
            raise SessionExpired()
        return session

    def _store(self, session: SelectionSession, **changes) -> SelectionSession:
        updated = replace(session, touched_at=_now(), **changes)
        self._sessions[session.key] = updated
        return updated

    # =========================================================================
    # Operations
    # =========================================================================

    def open(self, actor_id: int, guild_id: int, files: Iterable[str]) -> SelectionSession:
        """Create (or replace) a session at page 0 with nothing selected.

        Duplicate entries are dropped, first occurrence wins.
        """
        unique = tuple(dict.fromkeys(files))
        with self._lock:
            session = SelectionSession(
                actor_id=actor_id,
                guild_id=guild_id,
                files=unique,
                touched_at=_now(),
                generation=next(_GENERATIONS),
            )
            replaced = session.key in self._sessions
            self._sessions[session.key] = session
        if replaced:
            logger.debug(f"browse session {session.key} replaced")
        return session

    def get(self, key: SessionKey) -> SelectionSession:
        """Return the current session. Raises SessionExpired if missing or idle."""
        with self._lock:
            return self._store(self._lookup(key))

    def navigate(self, key: SessionKey, direction: str) -> SelectionSession:
        """Move one page; a no-op at either edge."""
        with self._lock:
            session = self._lookup(key)
            page = step_page(session.page, direction, len(session.files), PAGE_SIZE)
            return self._store(session, page=page)

    def select(self, key: SessionKey, index: int, generation: int | None = None) -> SelectionSession:
        """Choose files[index].

        Args:
            generation: Generation the index was rendered from. None skips
                the check.

        Raises:
            SessionExpired: No session for key
            InvalidSelection: Index outside the file list, or rendered from a
                list the session no longer holds (state unchanged)
        """
        with self._lock:
            session = self._lookup(key)
            if generation is not None and generation != session.generation:
                raise InvalidSelection(f"generation {generation} is stale (current {session.generation})")
            if not is_valid_index(index, len(session.files)):
                raise InvalidSelection(f"index {index} out of range for {len(session.files)} files")
            return self._store(session, selected=session.files[index])

    def reset_selection(self, key: SessionKey) -> SelectionSession:
        """Clear the chosen file and return to browsing (Back button)."""
        with self._lock:
            session = self._lookup(key)
            return self._store(session, selected=None)

    def begin_commit(self, key: SessionKey) -> SelectionSession:
        """Claim the session for a playback request.

        Raises:
            SessionExpired: No session for key
            NoSelection: Nothing chosen yet
            CommitInProgress: Another request from this member is already running
        """
        with self._lock:
            session = self._lookup(key)
            if session.selected is None:
                raise NoSelection()
            if session.committing:
                raise CommitInProgress()
            return self._store(session, committing=True)

    def end_commit(self, key: SessionKey) -> None:
        """Release a commit claim after a failed playback request.

        Silent if the session is gone (closed or replaced meanwhile).
        """
        with self._lock:
            session = self._sessions.get(key)
            if session is not None and session.committing:
                self._store(session, committing=False)

    def close(self, key: SessionKey) -> None:
        """Remove the session. Idempotent."""
        with self._lock:
            self._sessions.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every idle session. Returns how many were removed."""
        if self.idle_timeout <= 0:
            return 0
        now = _now()
        with self._lock:
            stale = [key for key, s in self._sessions.items() if self._expired(s, now)]
            for key in stale:
                del self._sessions[key]
        if stale:
            logger.debug(f"purged {len(stale)} idle browse session(s)")
        return len(stale)
