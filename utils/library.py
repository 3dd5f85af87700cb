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

"""Sound library discovery."""

import asyncio
import os
from pathlib import Path, PurePosixPath

from loguru import logger

from core.errors import FileNotAccessible, LibraryUnavailable


# Extensions offered in the picker (lowercase, matched case-insensitively)
AUDIO_EXTENSIONS = frozenset({'.mp3', '.wav', '.flac', '.ogg', '.m4b'})

# Upper bound on entries to keep the picker usable on huge folders
MAX_LIBRARY_SIZE = 10000


def display_name(entry: str) -> str:
    """Relative path without its extension ("fx/horn.mp3" -> "fx/horn")."""
    stem, dot, _ = entry.rpartition('.')
    return stem if dot and stem else entry


class SoundLibrary:
    """Finds playable files under the sounds directory.

    Walks the whole tree (subfolders included) and returns paths relative to
    the root with forward slashes, sorted, so the same library always produces
    the same picker order.

        sounds/
        ├── airhorn.mp3        -> "airhorn.mp3"
        ├── fx/
        │   └── boing.ogg      -> "fx/boing.ogg"
        └── .cache/            -> skipped (hidden)

    Hidden files and folders (leading dot) are skipped. Unreadable subfolders
    are skipped; scanning continues with the rest. Past MAX_LIBRARY_SIZE
    entries the sorted list is truncated with a warning.

    Attributes:
        root: Sounds directory
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    async def scan(self) -> list[str]:
        """List playable files (runs the walk in a worker thread).

        Raises:
            LibraryUnavailable: The root exists but can't be listed
        """
        entries = await asyncio.to_thread(self._scan_sync)
        file_word = "file" if len(entries) == 1 else "files"
        logger.debug(f"scanned {len(entries)} sound {file_word} in {self.root}")
        return entries

    def _scan_sync(self) -> list[str]:
        if not self.root.exists():
            logger.warning(f"sounds path does not exist: {self.root}")
            return []
        if not self.root.is_dir():
            raise LibraryUnavailable(f"{self.root} is not a directory")

        try:
            os.listdir(self.root)
        except OSError as e:
            raise LibraryUnavailable(str(e)) from e

        entries = []
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=self._on_walk_error):
            # Prune hidden folders in place so os.walk skips them
            dirnames[:] = [d for d in dirnames if not d.startswith('.')]
            for filename in filenames:
                if filename.startswith('.'):
                    continue
                if os.path.splitext(filename)[1].lower() not in AUDIO_EXTENSIONS:
                    continue
                full = Path(dirpath) / filename
                entries.append(full.relative_to(self.root).as_posix())

        entries.sort()

        if len(entries) > MAX_LIBRARY_SIZE:
            logger.warning(
                f"sounds folder has {len(entries)} files, "
                f"truncating to {MAX_LIBRARY_SIZE}"
            )
            entries = entries[:MAX_LIBRARY_SIZE]

        return entries

    @staticmethod
    def _on_walk_error(error: OSError) -> None:
        logger.debug(f"skipping unreadable path: {error}")

    def resolve(self, entry: str) -> Path:
        """Absolute path for a library entry.

        Raises:
            FileNotAccessible: Entry escapes the sounds directory
        """
        relative = PurePosixPath(entry)
        if relative.is_absolute() or '..' in relative.parts:
            raise FileNotAccessible(f"{entry!r} is outside the sounds directory")
        return self.root.joinpath(*relative.parts).resolve()
