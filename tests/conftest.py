"""
Pytest configuration and shared fixtures for Crate tests

The voice backend and FFmpeg prober are replaced with in-memory fakes so the
core can be driven without Discord or ffmpeg installed.
"""
import asyncio
from pathlib import Path

import pytest

from core.browser import SelectionStore
from core.interfaces import DestinationInfo
from core.playback import PlaybackManager
from core.soundboard import Soundboard
from utils.library import SoundLibrary


# ============================================================
# Fakes
# ============================================================

class FakeDestination:
    """Voice connection that records every call."""

    def __init__(self, guild_id: int, channel_id: int, ready: bool = True) -> None:
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.ready = ready
        self.release_count = 0
        self.emitting: list[bool] = []

    def is_ready(self) -> bool:
        return self.ready and self.release_count == 0

    async def set_emitting(self, emitting: bool) -> None:
        self.emitting.append(emitting)

    async def release(self) -> None:
        self.release_count += 1


class FakeEncoder:
    """Encoder whose stream runs until finish() or release() is called."""

    def __init__(self, source_path: str) -> None:
        self.source_path = source_path
        self.release_count = 0
        self.transfers = 0
        self.error: Exception | None = None
        self._finished = asyncio.Event()

    def finish(self, error: Exception | None = None) -> None:
        """Simulate end of stream (or a stream error)."""
        self.error = error
        self._finished.set()

    async def transfer(self, destination) -> Exception | None:
        self.transfers += 1
        await self._finished.wait()
        return self.error

    async def release(self) -> None:
        self.release_count += 1
        self._finished.set()


class FakeBackend:
    """VoiceBackend with switchable failures.

    Set join_gate to hold every join until the event is set.
    """

    def __init__(self) -> None:
        self.joins: list[tuple[int, int]] = []
        self.destinations: list[FakeDestination] = []
        self.encoders: list[FakeEncoder] = []
        self.join_error: Exception | None = None
        self.join_gate: asyncio.Event | None = None
        self.encoder_error: Exception | None = None
        self.ready = True
        self.channels = [
            DestinationInfo(id=101, name="general"),
            DestinationInfo(id=102, name="music"),
        ]

    async def join(self, guild_id: int, destination_id: int) -> FakeDestination:
        self.joins.append((guild_id, destination_id))
        if self.join_gate is not None:
            await self.join_gate.wait()
        await asyncio.sleep(0)
        if self.join_error is not None:
            raise self.join_error
        destination = FakeDestination(guild_id, destination_id, ready=self.ready)
        self.destinations.append(destination)
        return destination

    async def start_encoder(self, source_path: str) -> FakeEncoder:
        if self.encoder_error is not None:
            raise self.encoder_error
        encoder = FakeEncoder(source_path)
        self.encoders.append(encoder)
        return encoder

    def list_destinations(self, guild_id: int) -> list[DestinationInfo]:
        return list(self.channels)


class FakeProber:
    """Prober that passes unless told otherwise."""

    def __init__(self) -> None:
        self.available = True
        self.decode_error: Exception | None = None
        self.encode_error: Exception | None = None
        self.calls: list[str] = []

    def encoder_available(self) -> bool:
        self.calls.append("available")
        return self.available

    def probe_decode(self, source_path: str, timeout: float) -> None:
        self.calls.append("decode")
        if self.decode_error is not None:
            raise self.decode_error

    def probe_encode_capability(self, source_path: str, timeout: float) -> None:
        self.calls.append("encode")
        if self.encode_error is not None:
            raise self.encode_error


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def manager(backend) -> PlaybackManager:
    """Playback manager with short timeouts so failure paths finish quickly"""
    return PlaybackManager(backend, ready_timeout=0.2, ready_poll_interval=0.01, stop_timeout=0.5)


@pytest.fixture
def store() -> SelectionStore:
    return SelectionStore()


def make_sounds(root: Path, count: int) -> list[str]:
    """Create ``count`` dummy sound files named sound_00.mp3, sound_01.mp3, ..."""
    root.mkdir(parents=True, exist_ok=True)
    names = [f"sound_{i:02d}.mp3" for i in range(count)]
    for name in names:
        (root / name).write_bytes(b"ID3fake")
    return names


@pytest.fixture
def sounds_dir(tmp_path) -> Path:
    """Sounds folder with 30 files"""
    root = tmp_path / "sounds"
    make_sounds(root, 30)
    return root


@pytest.fixture
def soundboard(sounds_dir, store, manager, backend, prober) -> Soundboard:
    return Soundboard(
        library=SoundLibrary(sounds_dir),
        store=store,
        playback=manager,
        backend=backend,
        prober=prober,
        probe_timeout=1,
    )


async def wait_for_task(task: asyncio.Task, timeout: float = 1.0) -> None:
    """Await a lifecycle task with a bound so a hang fails the test instead of blocking it"""
    await asyncio.wait_for(asyncio.shield(task), timeout)
