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

"""Picker views for /sounds.

AutoDeleteView:
    Base class that deletes its message when the view times out.

SoundPickerView:
    Sound dropdown for one page plus prev/next/cancel buttons.

ChannelPickerView:
    Voice channel dropdown plus back/cancel buttons.

Views never change state themselves. Every callback asks the Soundboard for
the next Render and swaps the message over to it (see present()).

Timeout configuration:
    Views read their timeout from ui.extended_auto_delete in settings.yaml.
"""

import inspect
from typing import Awaitable, Callable

import discord
from loguru import logger

from core.errors import CrateError
from core.pagination import Direction
from core.soundboard import ChannelPicker, Render, Soundboard, SoundPicker
from utils.config import ConfigManager
from utils.response import SELECT_LABEL_MAX, display_values, schedule_delete, truncate_for_display

Action = Callable[[], Render | Awaitable[Render]]


def render_content(config: ConfigManager, render: Render) -> str:
    """Message text for a render."""
    text = config.msg(render.message_key, **display_values(render.values))
    if isinstance(render.element, ChannelPicker) and not render.element.options:
        text = f"{text}\n{config.msg('no_voice_channels')}"
    return text


def build_view(render: Render, soundboard: Soundboard, config: ConfigManager) -> "PickerView | None":
    """View for a render's element, or None when the flow is over."""
    if isinstance(render.element, SoundPicker):
        return SoundPickerView(render.element, soundboard, config)
    if isinstance(render.element, ChannelPicker):
        return ChannelPickerView(render.element, soundboard, config)
    return None


async def present(
    interaction: discord.Interaction,
    render: Render,
    soundboard: Soundboard,
    config: ConfigManager,
    message: discord.Message | None = None,
) -> None:
    """Show a render on the interaction's (deferred) original response.

    Renders with a picker keep the message alive until the view times out.
    Final renders drop all components and the message is removed after
    ui.brief_auto_delete, or right away if the message is disabled.
    """
    view = build_view(render, soundboard, config)

    if view is None and not config.is_enabled(render.message_key):
        try:
            await interaction.delete_original_response()
        except discord.NotFound:
            pass
        return

    content = render_content(config, render)
    edited = await interaction.edit_original_response(content=content, view=view)

    if view is not None:
        view.message = message or edited
    else:
        schedule_delete(interaction, config.get("ui", {}).get("brief_auto_delete", 10))


class AutoDeleteView(discord.ui.View):
    """Base class for views with auto-delete support.

    Provides on_timeout, which deletes self.message when the view times out.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.message: discord.Message | None = None

    async def on_timeout(self) -> None:
        """Delete message when view times out."""
        if self.message:
            try:
                await self.message.delete()
            except discord.NotFound:
                pass
            except discord.HTTPException:
                pass


class PickerView(AutoDeleteView):
    """Shared plumbing for the two picker steps.

    Args:
        soundboard: Core entry points
        config: Messages and UI timeouts
    """

    def __init__(self, soundboard: Soundboard, config: ConfigManager) -> None:
        timeout = config.get("ui", {}).get("extended_auto_delete", 300)
        super().__init__(timeout=timeout if timeout > 0 else None)
        self.soundboard = soundboard
        self.config = config

    async def run(self, interaction: discord.Interaction, action: Action) -> None:
        """Acknowledge, run one Soundboard operation, then show what it returns.

        Expected failures come back as the Render for that failure; anything
        else is logged and answered with error_generic.
        """
        await interaction.response.defer()
        self.stop()

        user_id, guild_id = interaction.user.id, interaction.guild_id
        try:
            render = action()
            if inspect.isawaitable(render):
                render = await render
        except CrateError as e:
            logger.debug(f"picker action for {user_id} failed: {type(e).__name__} {e}")
            render = self.soundboard.render_failure(user_id, guild_id, e)
        except Exception:
            logger.opt(exception=True).error(f"picker action for {user_id} crashed")
            render = Render("error_generic")

        try:
            await present(interaction, render, self.soundboard, self.config, self.message)
        except discord.HTTPException as e:
            logger.warning(f"failed to update picker: {e}")


class SoundPickerView(PickerView):
    """One page of sounds.

    Option values are indexes into the session's full file list, so the
    dropdown only ever needs the page slice. The view remembers which
    generation of that list it was built from.
    """

    def __init__(self, picker: SoundPicker, soundboard: Soundboard, config: ConfigManager) -> None:
        super().__init__(soundboard, config)
        self.generation = picker.generation

        if picker.options:
            select = discord.ui.Select(
                placeholder=f"page {picker.page + 1}/{picker.total_pages}",
                options=[
                    discord.SelectOption(
                        label=truncate_for_display(option.label, SELECT_LABEL_MAX),
                        value=str(option.index),
                    )
                    for option in picker.options
                ],
                row=0,
            )
            select.callback = self.select_callback
            self.add_item(select)

        self.prev_button.disabled = not picker.has_previous
        self.next_button.disabled = not picker.has_next

    async def select_callback(self, interaction: discord.Interaction) -> None:
        index = int(interaction.data['values'][0])
        await self.run(
            interaction,
            lambda: self.soundboard.select(interaction.user.id, interaction.guild_id, index, self.generation),
        )

    @discord.ui.button(emoji="◀️", style=discord.ButtonStyle.secondary, row=1)
    async def prev_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.run(
            interaction,
            lambda: self.soundboard.navigate(interaction.user.id, interaction.guild_id, Direction.PREVIOUS),
        )

    @discord.ui.button(emoji="▶️", style=discord.ButtonStyle.secondary, row=1)
    async def next_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.run(
            interaction,
            lambda: self.soundboard.navigate(interaction.user.id, interaction.guild_id, Direction.NEXT),
        )

    @discord.ui.button(label="cancel", style=discord.ButtonStyle.danger, row=1)
    async def cancel_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.run(
            interaction,
            lambda: self.soundboard.cancel_browse(interaction.user.id, interaction.guild_id),
        )


class ChannelPickerView(PickerView):
    """Voice channel choice for the selected sound."""

    def __init__(self, picker: ChannelPicker, soundboard: Soundboard, config: ConfigManager) -> None:
        super().__init__(soundboard, config)

        # Discord rejects a select with no options
        if picker.options:
            select = discord.ui.Select(
                placeholder="voice channel",
                options=[
                    discord.SelectOption(
                        label=truncate_for_display(channel.name, SELECT_LABEL_MAX),
                        value=str(channel.id),
                        emoji="🔊",
                    )
                    for channel in picker.options
                ],
                row=0,
            )
            select.callback = self.select_callback
            self.add_item(select)

    async def select_callback(self, interaction: discord.Interaction) -> None:
        channel_id = int(interaction.data['values'][0])
        await self.run(
            interaction,
            lambda: self.soundboard.commit_selection(interaction.user.id, interaction.guild_id, channel_id),
        )

    @discord.ui.button(label="back", style=discord.ButtonStyle.secondary, row=1)
    async def back_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.run(
            interaction,
            lambda: self.soundboard.reset_selection(interaction.user.id, interaction.guild_id),
        )

    @discord.ui.button(label="cancel", style=discord.ButtonStyle.danger, row=1)
    async def cancel_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.run(
            interaction,
            lambda: self.soundboard.cancel_browse(interaction.user.id, interaction.guild_id),
        )
