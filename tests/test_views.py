"""
Unit tests for the picker views

Discord interactions are MagicMocks; the Soundboard is the real one over the
fake backend.

Coverage:
- render text and component building
- present() for picker and final renders
- callbacks route failures through render_failure
"""
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from core.errors import SessionExpired
from core.interfaces import DestinationInfo
from core.soundboard import ChannelPicker, Render, SoundOption, SoundPicker
from ui.views import ChannelPickerView, SoundPickerView, build_view, present, render_content
from utils.config import DEFAULT_MESSAGES, DEFAULT_SETTINGS, ConfigManager, deep_merge

USER = 1
GUILD = 10


@pytest.fixture
def config(tmp_path):
    manager = ConfigManager(tmp_path)
    manager.settings = deep_merge({"ui": {"brief_auto_delete": 0}}, DEFAULT_SETTINGS)
    manager.messages = deep_merge({}, DEFAULT_MESSAGES)
    return manager


@pytest.fixture
def interaction():
    """Mock component interaction"""
    mock = MagicMock()
    mock.user.id = USER
    mock.guild_id = GUILD
    mock.response.defer = AsyncMock()
    mock.edit_original_response = AsyncMock()
    mock.delete_original_response = AsyncMock()
    return mock


def sound_picker(count=25, page=0, has_previous=False, has_next=True):
    options = tuple(SoundOption(index=page * 25 + i, label=f"sound_{i:02d}") for i in range(count))
    return SoundPicker(options=options, page=page, total_pages=2, has_previous=has_previous, has_next=has_next)


class TestRendering:
    """render_content / build_view"""

    def test_content_is_escaped(self, config):
        text = render_content(config, Render("stopped", {"sound": "big_boom"}))
        assert text == "stopped **big\\_boom**"

    def test_empty_channel_list_explains_itself(self, config):
        render = Render("sound_selected", {"sound": "a"}, ChannelPicker(()))
        assert config.msg("no_voice_channels") in render_content(config, render)

    async def test_sound_picker_components(self, config, soundboard):
        view = build_view(Render("pick_sound", {}, sound_picker()), soundboard, config)
        assert isinstance(view, SoundPickerView)
        assert view.prev_button.disabled is True
        assert view.next_button.disabled is False
        select = next(item for item in view.children if isinstance(item, discord.ui.Select))
        assert len(select.options) == 25
        assert select.options[3].value == "3"

    async def test_long_labels_are_truncated(self, config, soundboard):
        picker = SoundPicker((SoundOption(0, "x" * 150),), 0, 1, False, False)
        view = build_view(Render("pick_sound", {}, picker), soundboard, config)
        select = next(item for item in view.children if isinstance(item, discord.ui.Select))
        assert len(select.options[0].label) <= 100

    async def test_channel_picker_without_channels_has_no_select(self, config, soundboard):
        view = build_view(Render("sound_selected", {}, ChannelPicker(())), soundboard, config)
        assert isinstance(view, ChannelPickerView)
        assert not any(isinstance(item, discord.ui.Select) for item in view.children)

    async def test_channel_picker_values_are_channel_ids(self, config, soundboard):
        picker = ChannelPicker((DestinationInfo(101, "general"),))
        view = build_view(Render("sound_selected", {}, picker), soundboard, config)
        select = next(item for item in view.children if isinstance(item, discord.ui.Select))
        assert select.options[0].value == "101"

    def test_final_render_has_no_view(self, config, soundboard):
        assert build_view(Render("cancelled"), soundboard, config) is None


class TestPresent:
    """present()"""

    async def test_picker_render_attaches_view(self, config, soundboard, interaction):
        await present(interaction, Render("pick_sound", {"page": 1, "pages": 2, "count": 30}, sound_picker()), soundboard, config)
        kwargs = interaction.edit_original_response.call_args.kwargs
        assert kwargs["content"] == "pick a sound (page 1/2, 30 total)"
        assert isinstance(kwargs["view"], SoundPickerView)

    async def test_final_render_clears_components(self, config, soundboard, interaction):
        await present(interaction, Render("cancelled"), soundboard, config)
        kwargs = interaction.edit_original_response.call_args.kwargs
        assert kwargs["view"] is None

    async def test_disabled_final_message_deletes_response(self, config, soundboard, interaction):
        config.messages["cancelled"]["enabled"] = False
        await present(interaction, Render("cancelled"), soundboard, config)
        interaction.delete_original_response.assert_awaited_once()
        interaction.edit_original_response.assert_not_awaited()


class TestCallbacks:
    """Button and select handlers"""

    async def test_next_button_moves_page(self, config, soundboard, interaction):
        render = await soundboard.open_browse(USER, GUILD)
        view = build_view(render, soundboard, config)

        await view.next_button.callback(interaction)

        interaction.response.defer.assert_awaited_once()
        kwargs = interaction.edit_original_response.call_args.kwargs
        assert kwargs["content"].startswith("pick a sound (page 2/2")

    async def test_select_from_old_message_after_reopen(self, config, soundboard, interaction, sounds_dir):
        old_view = build_view(await soundboard.open_browse(USER, GUILD), soundboard, config)
        (sounds_dir / "aaa_intro.mp3").write_bytes(b"ID3fake")
        await soundboard.open_browse(USER, GUILD)

        interaction.data = {"values": ["7"]}
        await old_view.select_callback(interaction)

        kwargs = interaction.edit_original_response.call_args.kwargs
        assert kwargs["content"].startswith(config.msg("invalid_selection"))
        assert isinstance(kwargs["view"], SoundPickerView)
        assert soundboard.store.get((USER, GUILD)).selected is None

    async def test_expired_session_ends_flow(self, config, soundboard, interaction):
        view = build_view(Render("pick_sound", {}, sound_picker()), soundboard, config)

        def expired():
            raise SessionExpired()

        await view.run(interaction, expired)

        kwargs = interaction.edit_original_response.call_args.kwargs
        assert kwargs["content"] == config.msg("session_expired")
        assert kwargs["view"] is None

    async def test_unexpected_error_answers_generic(self, config, soundboard, interaction):
        view = build_view(Render("pick_sound", {}, sound_picker()), soundboard, config)

        def explode():
            raise RuntimeError("boom")

        await view.run(interaction, explode)

        kwargs = interaction.edit_original_response.call_args.kwargs
        assert kwargs["content"] == config.msg("error_generic")
