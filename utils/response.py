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

"""Response utilities for Discord interactions.

Provides ResponseMixin for consistent message handling across cogs, plus the
text helpers shared with ui/views.py.
"""

import asyncio
from typing import Any

import discord

# Track fire-and-forget cleanup tasks to prevent GC warnings
_cleanup_tasks: set[asyncio.Task] = set()


def escape_markdown(text: str) -> str:
    """Escape underscores and asterisks for Discord message display.

    Sound names like "big_boom" or "**loud**" would otherwise turn into
    italics/bold. Use for message content only, not SelectOption labels
    (those are plain text).
    """
    return text.replace("\\", "\\\\").replace("_", "\\_").replace("*", "\\*")


# =============================================================================
# DISPLAY TRUNCATION
# =============================================================================
# Always truncate BEFORE escape_markdown (escaping can add characters).

SELECT_LABEL_MAX = 97      # discord.SelectOption.label (limit 100) - room for "..."
MESSAGE_VALUE_MAX = 200    # names interpolated into message content


def truncate_for_display(text: str, max_length: int) -> str:
    """Truncate text with ellipsis for Discord display.

    Args:
        text: Text to truncate (must not be None)
        max_length: Maximum length including "..." suffix

    Returns:
        Original text if within limit, else truncated with "..."
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def display_values(values: dict[str, Any]) -> dict[str, Any]:
    """Truncate and escape string format values for message content."""
    return {
        key: escape_markdown(truncate_for_display(value, MESSAGE_VALUE_MAX)) if isinstance(value, str) else value
        for key, value in values.items()
    }


async def delete_after(interaction: discord.Interaction, delay: float) -> None:
    """Delete the interaction's original response after delay.

    Silently handles cancellation (shutdown) and Discord errors.
    """
    try:
        await asyncio.sleep(delay)
        await interaction.delete_original_response()
    except asyncio.CancelledError:
        pass  # Shutdown during wait - acceptable
    except discord.NotFound:
        pass
    except discord.HTTPException:
        pass


def schedule_delete(interaction: discord.Interaction, delay: float) -> None:
    """Fire-and-forget delete_after(), tracked so the task isn't collected."""
    if delay <= 0:
        return
    task = asyncio.create_task(delete_after(interaction, delay))
    _cleanup_tasks.add(task)
    task.add_done_callback(_cleanup_tasks.discard)


class ResponseMixin:
    """Mixin providing standardized interaction responses for cogs.

    Provides respond() which handles:
    - Per-message enable/disable from messages.yaml
    - Auto-deletion after configurable timeout
    - Both response and followup paths

    Requirements:
        self.bot must have a config_manager with msg(), is_enabled() and get()

    Usage:
        class MyCog(ResponseMixin, commands.Cog):
            async def my_command(self, interaction):
                await self.respond(interaction, "stopped", sound="airhorn")
    """

    def msg(self, key: str, **kwargs) -> str:
        """Get formatted message text from config."""
        return self.bot.config_manager.msg(key, **kwargs)

    async def respond(self, interaction: discord.Interaction, key: str, **kwargs) -> None:
        """Send ephemeral message if enabled, otherwise acknowledge silently.

        String kwargs are truncated and markdown-escaped before formatting.
        Enabled messages auto-delete after ui.brief_auto_delete seconds.
        """
        if not self.bot.config_manager.is_enabled(key):
            # Silent acknowledgment - defer then delete
            if not interaction.response.is_done():
                await interaction.response.defer(ephemeral=True)
            try:
                await interaction.delete_original_response()
            except discord.NotFound:
                pass  # Already deleted or never created
            return

        text = self.msg(key, **display_values(kwargs))

        timeout = self.bot.config_manager.get("ui", {}).get("brief_auto_delete", 10)
        delay = timeout if timeout > 0 else None

        if not interaction.response.is_done():
            # Response path - use native delete_after
            await interaction.response.send_message(text, ephemeral=True, delete_after=delay)
        else:
            # Followup path (after a thinking defer) - edit the placeholder
            await interaction.edit_original_response(content=text, view=None)
            if delay:
                schedule_delete(interaction, delay)
