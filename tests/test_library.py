"""
Unit tests for sound discovery and fuzzy filtering

Coverage:
- recursive scan, extension filter, hidden entries, sort order, size cap
- missing / unusable sounds folder
- path resolution refuses to leave the folder
- display names and the rapidfuzz filter
"""
import pytest

from core.errors import FileNotAccessible, LibraryUnavailable
from utils.library import SoundLibrary, display_name
from utils.search import filter_entries, score_entry


@pytest.fixture
def library_root(tmp_path):
    root = tmp_path / "sounds"
    (root / "fx").mkdir(parents=True)
    (root / ".cache").mkdir()
    for name in ("b.mp3", "a.WAV", "notes.txt", ".hidden.mp3", "fx/boing.ogg", ".cache/c.mp3", "book.m4b"):
        (root / name).write_bytes(b"x")
    return root


class TestScan:
    """SoundLibrary.scan"""

    async def test_scan_finds_audio_recursively(self, library_root):
        entries = await SoundLibrary(library_root).scan()
        assert entries == ["a.WAV", "b.mp3", "book.m4b", "fx/boing.ogg"]

    async def test_hidden_entries_are_skipped(self, library_root):
        (library_root / "._b.mp3").write_bytes(b"x")
        entries = await SoundLibrary(library_root).scan()
        assert not any(part.startswith(".") for entry in entries for part in entry.split("/"))

    async def test_large_folder_is_truncated_after_sorting(self, library_root, monkeypatch):
        monkeypatch.setattr("utils.library.MAX_LIBRARY_SIZE", 2)
        entries = await SoundLibrary(library_root).scan()
        assert entries == ["a.WAV", "b.mp3"]

    async def test_missing_folder_is_empty(self, tmp_path):
        assert await SoundLibrary(tmp_path / "nope").scan() == []

    async def test_file_instead_of_folder(self, tmp_path):
        path = tmp_path / "sounds"
        path.write_text("not a folder")
        with pytest.raises(LibraryUnavailable):
            await SoundLibrary(path).scan()


class TestResolve:
    """SoundLibrary.resolve"""

    def test_resolves_nested_entry(self, library_root):
        path = SoundLibrary(library_root).resolve("fx/boing.ogg")
        assert path == (library_root / "fx" / "boing.ogg").resolve()

    @pytest.mark.parametrize("entry", ["../secret.mp3", "fx/../../x.mp3", "/etc/passwd"])
    def test_rejects_escapes(self, library_root, entry):
        with pytest.raises(FileNotAccessible):
            SoundLibrary(library_root).resolve(entry)


@pytest.mark.parametrize("entry,expected", [
    ("airhorn.mp3", "airhorn"),
    ("fx/boing.ogg", "fx/boing"),
    ("no_extension", "no_extension"),
    (".mp3", ".mp3"),
    ("v1.2/final.cut.wav", "v1.2/final.cut"),
])
def test_display_name(entry, expected):
    assert display_name(entry) == expected


class TestFilter:
    """Fuzzy /sounds filter"""

    ENTRIES = ["airhorn.mp3", "bruh.ogg", "fx/vine_boom.mp3", "sad_trombone.wav"]

    def test_empty_query_keeps_everything(self):
        assert filter_entries("", self.ENTRIES) == self.ENTRIES
        assert filter_entries(None, self.ENTRIES) == self.ENTRIES
        assert filter_entries("   ", self.ENTRIES) == self.ENTRIES

    def test_exact_name(self):
        assert filter_entries("bruh", self.ENTRIES) == ["bruh.ogg"]

    def test_substring_of_base_name(self):
        assert "fx/vine_boom.mp3" in filter_entries("boom", self.ENTRIES)

    def test_keeps_library_order(self):
        entries = ["boom_a.mp3", "zzz.mp3", "boom_b.mp3"]
        assert filter_entries("boom", entries) == ["boom_a.mp3", "boom_b.mp3"]

    def test_case_insensitive(self):
        assert score_entry("AIRHORN", "airhorn.mp3") == 100
