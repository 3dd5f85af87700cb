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

"""FFmpeg capability probes - blocking, subprocess based."""

import os
import shutil
import subprocess

from loguru import logger


class ProbeFailed(Exception):
    """An FFmpeg probe exited non-zero or timed out."""


class FFmpegProber:
    """Short FFmpeg runs that prove a file and the host are usable.

    Both probes discard their output (null muxer / os.devnull) and run with a
    hard timeout, so a malformed file can't hang the caller.

    Args:
        executable: ffmpeg binary name or path
    """

    # Seconds of audio each probe processes
    DECODE_SECONDS = 3
    ENCODE_SECONDS = 1

    def __init__(self, executable: str = "ffmpeg") -> None:
        self.executable = executable

    def encoder_available(self) -> bool:
        """Check ffmpeg is resolvable (PATH lookup or explicit path)."""
        return shutil.which(self.executable) is not None

    def _run(self, args: list[str], timeout: float, label: str) -> str:
        """Run ffmpeg with args, return stderr. Raises ProbeFailed."""
        cmd = [self.executable, "-v", "error", "-nostdin", "-hide_banner", *args]
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeFailed(f"{label} probe timed out after {timeout}s") from e
        except OSError as e:
            raise ProbeFailed(f"{label} probe could not run: {e}") from e

        stderr = (result.stderr or "").strip()
        if result.returncode != 0:
            raise ProbeFailed(f"{label} probe exited {result.returncode}: {stderr}")
        return stderr

    def probe_decode(self, source_path: str, timeout: float) -> None:
        """Decode the first few seconds of a file to the null muxer."""
        warnings = self._run(
            ["-ss", "0", "-t", str(self.DECODE_SECONDS), "-i", source_path, "-f", "null", "-"],
            timeout,
            "decode",
        )
        if warnings:
            logger.debug(f"ffmpeg decode warnings for {os.path.basename(source_path)}:\n{warnings}")

    def probe_encode_capability(self, source_path: str, timeout: float) -> None:
        """Encode one second of the file with libopus and throw it away."""
        self._run(
            ["-i", source_path, "-t", str(self.ENCODE_SECONDS), "-c:a", "libopus", "-f", "ogg", "-y", os.devnull],
            timeout,
            "opus encode",
        )
