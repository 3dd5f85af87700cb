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

"""Checks run before a playback request touches Discord.

Order matters and the first failure wins:
    1. file exists and is readable     -> FileNotAccessible
    2. ffmpeg is on PATH               -> EncoderNotFound
    3. a few seconds decode cleanly    -> SourceUndecodable
    4. host can encode Opus            -> EncodeCapabilityMissing

Check 3 catches a corrupt or unsupported file, check 4 catches a host problem
(an ffmpeg build without libopus). Both are bounded by ``timeout``.

This is blocking code; call it through asyncio.to_thread().
"""

import os
from pathlib import Path

from loguru import logger

from core.errors import (
    EncodeCapabilityMissing,
    EncoderNotFound,
    FileNotAccessible,
    SourceUndecodable,
)
from core.interfaces import Prober


def run_preflight(source_path: str | os.PathLike, prober: Prober, timeout: float) -> None:
    """Validate a file and the host before playback.

    Args:
        source_path: Absolute path to the sound file
        prober: Capability checks (utils.ffmpeg.FFmpegProber in production)
        timeout: Wall-clock bound for each probe, in seconds

    Raises:
        PreflightError subclass describing the first failed check
    """
    path = Path(source_path)

    try:
        info = path.stat()
    except OSError as e:
        logger.warning(f"file not accessible: {path} ({e})")
        raise FileNotAccessible(str(e)) from e
    if not path.is_file() or not os.access(path, os.R_OK):
        logger.warning(f"file not readable: {path}")
        raise FileNotAccessible(f"{path} is not a readable file")
    logger.debug(f"file ok: {path.name} ({info.st_size} bytes)")

    if not prober.encoder_available():
        logger.error("ffmpeg not found on PATH")
        raise EncoderNotFound("ffmpeg not found on PATH")

    try:
        prober.probe_decode(str(path), timeout)
    except Exception as e:
        logger.warning(f"decode probe failed for {path.name}: {e}")
        raise SourceUndecodable(str(e)) from e

    try:
        prober.probe_encode_capability(str(path), timeout)
    except Exception as e:
        logger.error(f"opus encode probe failed: {e}")
        logger.error("ffmpeg likely lacks libopus, install a full build")
        raise EncodeCapabilityMissing(str(e)) from e

    logger.debug(f"preflight passed for {path.name}")
