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

"""Error types for the soundboard core.

Every error carries a ``message_key`` pointing into messages.yaml, so cogs can
answer the user without knowing which layer failed.

Hierarchy:
    CrateError
    ├── BrowseError          - user input / expired flow (not logged as faults)
    │   ├── SessionExpired
    │   ├── InvalidSelection
    │   ├── NoSelection
    │   └── CommitInProgress
    ├── NothingPlaying       - /stop on an idle guild (normal empty state)
    ├── PreflightError       - checks before any resource is acquired
    │   ├── FileNotAccessible
    │   ├── EncoderNotFound
    │   ├── SourceUndecodable
    │   └── EncodeCapabilityMissing
    ├── PlaybackError        - failures after resources were requested
    │   ├── DestinationJoinFailed
    │   ├── DestinationNotReady
    │   ├── EncoderStartFailed
    │   └── ShuttingDown
    └── LibraryUnavailable
"""


class CrateError(Exception):
    """Base class for all expected soundboard failures."""

    message_key = "error_generic"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.message_key)
        self.detail = detail


class BrowseError(CrateError):
    pass


class SessionExpired(BrowseError):
    message_key = "session_expired"


class InvalidSelection(BrowseError):
    message_key = "invalid_selection"


class NoSelection(BrowseError):
    message_key = "no_selection"


class CommitInProgress(BrowseError):
    message_key = "commit_in_progress"


class NothingPlaying(CrateError):
    message_key = "nothing_playing"


class PreflightError(CrateError):
    pass


class FileNotAccessible(PreflightError):
    message_key = "file_not_accessible"


class EncoderNotFound(PreflightError):
    message_key = "encoder_not_found"


class SourceUndecodable(PreflightError):
    message_key = "source_undecodable"


class EncodeCapabilityMissing(PreflightError):
    message_key = "encode_capability_missing"


class PlaybackError(CrateError):
    pass


class DestinationJoinFailed(PlaybackError):
    message_key = "destination_join_failed"


class DestinationNotReady(PlaybackError):
    message_key = "destination_not_ready"


class EncoderStartFailed(PlaybackError):
    message_key = "encoder_start_failed"


class ShuttingDown(PlaybackError):
    message_key = "shutting_down"


class LibraryUnavailable(CrateError):
    message_key = "library_unavailable"
