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

"""Configuration management for Crate."""

import asyncio
import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable

import yaml
from loguru import logger


# =============================================================================
# DEFAULT SETTINGS SCHEMA
# =============================================================================
# These defaults are used when settings.yaml is missing or incomplete.
# Environment variables can override most settings (see _apply_env_overrides).
#
#   sounds_path            - Folder scanned by /sounds (subfolders included)
#
# FFmpeg Settings (ffmpeg.*):
#   executable             - ffmpeg binary name or full path
#   bitrate                - Opus bitrate in kbps sent to Discord (8-512)
#   probe_timeout          - Seconds each preflight probe may run (1-60)
#
# Voice Settings (voice.*):
#   connect_timeout        - Seconds discord.py may spend joining a channel
#   ready_timeout          - Seconds to wait for a joined connection to be usable
#   ready_poll_interval    - Seconds between readiness checks
#   stop_timeout           - Seconds /stop waits for playback to wind down
#
# Browse Settings (browse.*):
#   idle_timeout           - Seconds before an untouched picker expires (0 = never)
#   filter_threshold       - Minimum fuzzy score for /sounds filter (0-100)
#
# UI Settings (ui.*):
#   extended_auto_delete   - Seconds before the picker message is removed (0 = never)
#   brief_auto_delete      - Seconds before auto-deleting simple responses (0 = never)
#
# Logging Settings (logging.*):
#   level                  - Log verbosity: "minimal", "verbose", or "debug"
# =============================================================================

DEFAULT_SETTINGS = {
    "sounds_path": "./sounds",
    "ffmpeg": {
        "executable": "ffmpeg",
        "bitrate": 128,
        "probe_timeout": 5,
    },
    "voice": {
        "connect_timeout": 10,
        "ready_timeout": 5,
        "ready_poll_interval": 0.1,
        "stop_timeout": 5,
    },
    "browse": {
        "idle_timeout": 900,
        "filter_threshold": 61,
    },
    # UI behavior
    "ui": {
        "extended_auto_delete": 300,  # seconds, 0 to disable
        "brief_auto_delete": 10,  # seconds, 0 to disable
    },
    # Logging (LOG_LEVEL env var overrides this)
    "logging": {
        "level": "verbose",  # minimal, verbose, debug
    },
}

# =============================================================================
# DEFAULT MESSAGES SCHEMA
# =============================================================================
# Bot responses with per-message enable/disable control.
# Each message has two fields:
#   text    - The message template (supports {variables} for formatting)
#   enabled - Whether to show this message (True) or acknowledge silently (False)
#
# Picker messages (pick_sound, sound_selected, ...) are always shown since the
# menus are attached to them; their enabled flag only matters when they are
# sent as plain replies.
# =============================================================================

DEFAULT_MESSAGES = {
    # Browse
    "pick_sound": {"text": "pick a sound (page {page}/{pages}, {count} total)", "enabled": True},
    "sound_selected": {"text": "selected **{sound}**, now pick a voice channel", "enabled": True},
    "no_voice_channels": {"text": "no voice channels i can see", "enabled": True},
    "no_sounds": {"text": "the crate's empty, add files to the sounds folder", "enabled": True},
    "no_matches": {"text": "nothing matches '{query}'", "enabled": True},
    "cancelled": {"text": "cancelled", "enabled": True},

    # Browse errors
    "session_expired": {"text": "that picker expired, run /sounds again", "enabled": True},
    "invalid_selection": {"text": "that sound isn't on the list anymore, pick again", "enabled": True},
    "no_selection": {"text": "pick a sound first", "enabled": True},
    "commit_in_progress": {"text": "hang on, still starting the last one", "enabled": True},

    # Playback
    "now_playing": {"text": "playing **{sound}** in <#{channel_id}>", "enabled": True},
    "stopped": {"text": "stopped **{sound}**", "enabled": True},
    "nothing_playing": {"text": "nothing's playing", "enabled": True},

    # Preflight
    "file_not_accessible": {"text": "can't read that file", "enabled": True},
    "encoder_not_found": {"text": "ffmpeg isn't installed on the host", "enabled": True},
    "source_undecodable": {"text": "that file won't decode, it may be corrupt", "enabled": True},
    "encode_capability_missing": {"text": "ffmpeg can't encode opus on this host (libopus missing?)", "enabled": True},

    # Voice
    "destination_join_failed": {"text": "couldn't join that channel", "enabled": True},
    "destination_not_ready": {"text": "voice connection didn't come up in time, try again", "enabled": True},
    "encoder_start_failed": {"text": "encoder start failed", "enabled": True},
    "shutting_down": {"text": "shutting down, try again in a moment", "enabled": True},

    # Errors
    "library_unavailable": {"text": "sound library's offline", "enabled": True},
    "error_generic": {"text": "something broke, try again", "enabled": True},
}


def deep_merge(user: dict, defaults: dict) -> dict:
    """Merge user config with defaults, preserving nested structure.

    User values override defaults. For nested dicts, merges recursively.
    Unknown keys (not in defaults) are logged as warnings and ignored.

    Args:
        user: User-provided config from YAML file
        defaults: Default values to use for missing keys

    Returns:
        Merged config dict with all default keys present
    """
    result = {k: (dict(v) if isinstance(v, dict) else v) for k, v in defaults.items()}
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(value, result[key])
        elif key in defaults:
            result[key] = value
        else:
            logger.warning(f"unknown config key: {key}")
    return result


def load_yaml(path: Path, defaults: dict) -> dict:
    """Load YAML file with defaults and error handling.

    If file doesn't exist or is invalid, returns defaults without error.
    Invalid YAML syntax is logged and defaults are used.
    """
    if not path.exists():
        return deep_merge({}, defaults)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            user = yaml.safe_load(f) or {}

        if not isinstance(user, dict):
            logger.warning(f"{path.name} invalid, using defaults")
            return deep_merge({}, defaults)

        return deep_merge(user, defaults)

    except yaml.YAMLError:
        logger.opt(exception=True).error(f"failed to parse {path.name}")
        return deep_merge({}, defaults)


def save_yaml(path: Path, data: dict, header: str = "") -> None:
    """Save YAML atomically with optional header comment.

    Writes to a temp file in the same directory, then renames over the target.
    Creates parent directories if they don't exist.
    """
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix='.tmp')
        try:
            f = os.fdopen(temp_fd, 'w', encoding='utf-8')
        except Exception:
            os.close(temp_fd)
            raise
        with f:
            if header:
                f.write(header)
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        Path(temp_path).replace(path)
    except Exception:
        if temp_path:
            Path(temp_path).unlink(missing_ok=True)
        raise


class ConfigManager:
    """Manages bot configuration from settings.yaml and messages.yaml.

    Loads configuration at startup with this priority (highest wins):
    1. DEFAULT_SETTINGS / DEFAULT_MESSAGES (built-in defaults)
    2. settings.yaml / messages.yaml (user customization)
    3. Environment variables (Docker/deployment override)

    Access patterns:
        config_manager.get("key")             # Top-level setting
        config_manager.setting("ffmpeg.bitrate")  # Nested setting (dot notation)
        config_manager.msg("key", **vars)     # Formatted message
        config_manager.is_enabled("key")      # Should the message show

    Attributes:
        config_path: Directory containing settings.yaml and messages.yaml
        settings: Loaded settings dict (after validation)
        messages: Loaded messages dict
    """

    # Dotted key -> (type, min, max) for numeric settings. None means unbounded.
    RANGES: dict[str, tuple[type, float, float | None]] = {
        "ffmpeg.bitrate": (int, 8, 512),
        "ffmpeg.probe_timeout": (float, 1, 60),
        "voice.connect_timeout": (float, 1, 120),
        "voice.ready_timeout": (float, 0.5, 60),
        "voice.ready_poll_interval": (float, 0.01, 5),
        "voice.stop_timeout": (float, 0.5, 60),
        "browse.idle_timeout": (int, 0, None),
        "browse.filter_threshold": (int, 0, 100),
        "ui.extended_auto_delete": (int, 0, None),
        "ui.brief_auto_delete": (int, 0, None),
    }

    LOG_LEVELS = ("minimal", "verbose", "debug")

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self.settings: dict = {}
        self.messages: dict = {}

    async def load(self) -> None:
        """Load settings and messages from YAML, apply env overrides, validate.

        Generates missing config files with default values and header comments.
        """
        settings_path = self.config_path / "settings.yaml"
        self.settings = await asyncio.to_thread(load_yaml, settings_path, DEFAULT_SETTINGS)

        if not settings_path.exists():
            header = "# Crate Settings\n# Edit these values to customize behavior\n\n"
            await asyncio.to_thread(save_yaml, settings_path, DEFAULT_SETTINGS, header)
            logger.debug(f"generated {settings_path.name}")

        messages_path = self.config_path / "messages.yaml"
        self.messages = await asyncio.to_thread(load_yaml, messages_path, DEFAULT_MESSAGES)

        if not messages_path.exists():
            header = "# Crate Responses\n# Reword or silence any reply here\n\n"
            await asyncio.to_thread(save_yaml, messages_path, DEFAULT_MESSAGES, header)
            logger.debug(f"generated {messages_path.name}")

        self._apply_env_overrides()
        self._validate_settings()

        logger.debug("config loaded")

    def _validate_settings(self) -> None:
        """Validate and clamp settings after loading from all sources.

        1. Null-restore: YAML "key:" with no value becomes None. Restores
           defaults for null top-level keys and null keys inside sections.
        2. Numeric ranges: clamps every key in RANGES, resets non-numbers.
        3. Log level: unknown names fall back to "verbose".

        Logs warnings for any values that needed correction.
        """
        for key, default in DEFAULT_SETTINGS.items():
            value = self.settings.get(key)
            if value is None or (isinstance(default, dict) and not isinstance(value, dict)):
                if value is not None:
                    logger.warning(f"{key} should be a section, using defaults")
                self.settings[key] = dict(default) if isinstance(default, dict) else default
                continue
            if isinstance(default, dict):
                for sub_key, sub_default in default.items():
                    if value.get(sub_key) is None:
                        value[sub_key] = sub_default

        for dotted, (kind, min_val, max_val) in self.RANGES.items():
            section, key = dotted.split(".")
            sect = self.settings[section]
            default = DEFAULT_SETTINGS[section][key]
            value = sect.get(key)
            try:
                if isinstance(value, bool):
                    raise TypeError("boolean")
                v = kind(value)
            except (ValueError, TypeError):
                logger.warning(f"{dotted}={value!r} invalid, using default")
                sect[key] = default
                continue
            clamped = max(min_val, v)
            if max_val is not None:
                clamped = min(max_val, clamped)
            if clamped != v:
                range_str = f"{min_val}-{max_val}" if max_val is not None else f"{min_val}+"
                logger.warning(f"{dotted}={v} out of range, clamped to {clamped} (valid: {range_str})")
            sect[key] = clamped

        level = str(self.settings["logging"].get("level", "")).lower()
        if level not in self.LOG_LEVELS:
            logger.warning(f"logging.level={level!r} unknown, using verbose")
            level = "verbose"
        self.settings["logging"]["level"] = level

    def _apply_env_overrides(self) -> None:
        """Override settings with environment variables.

        The env_map dict maps ENV_VAR_NAME -> (setting_key, converter). Range
        checks happen afterwards in _validate_settings. Invalid values are
        logged as warnings and ignored (setting unchanged).
        """
        env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
            "SOUNDS_DIR": ("sounds_path", str),
            "FFMPEG_PATH": ("ffmpeg.executable", str),
            "FFMPEG_BITRATE": ("ffmpeg.bitrate", int),
            "PROBE_TIMEOUT": ("ffmpeg.probe_timeout", float),
            "VOICE_READY_TIMEOUT": ("voice.ready_timeout", float),
            "BROWSE_IDLE_TIMEOUT": ("browse.idle_timeout", int),
            "FILTER_THRESHOLD": ("browse.filter_threshold", int),
            "EXTENDED_AUTO_DELETE": ("ui.extended_auto_delete", int),
            "BRIEF_AUTO_DELETE": ("ui.brief_auto_delete", int),
            "LOG_LEVEL": ("logging.level", str),
        }

        for env_key, (setting_key, converter) in env_map.items():
            if value := os.getenv(env_key):
                try:
                    converted = converter(value)
                    if "." in setting_key:
                        section, key = setting_key.split(".")
                        target = self.settings.setdefault(section, {})
                        if not isinstance(target, dict):
                            # Corrupted YAML: expected dict but got scalar
                            logger.warning(f"invalid config structure for {setting_key}")
                            continue
                        target[key] = converted
                    else:
                        self.settings[setting_key] = converted
                    logger.debug(f"{env_key} overrides {setting_key}")
                except (ValueError, TypeError) as e:
                    logger.warning(f"invalid env var {env_key}: {e}")

    def get(self, key: str, default=None) -> Any:
        """Get a top-level setting value."""
        return self.settings.get(key, default)

    def setting(self, dotted: str) -> Any:
        """Get a nested setting by dot notation ("ffmpeg.bitrate")."""
        section, _, key = dotted.partition(".")
        value = self.settings.get(section)
        return value.get(key) if key and isinstance(value, dict) else value

    def msg(self, key: str, **kwargs) -> str:
        """Get formatted message text from messages.yaml.

        Returns the key itself if the message is not defined anywhere.
        """
        entry = self.messages.get(key, DEFAULT_MESSAGES.get(key, {}))
        template = entry.get("text", key) if isinstance(entry, dict) else entry
        if not isinstance(template, str):
            template = key
        try:
            return template.format(**kwargs)
        except (KeyError, IndexError, ValueError):
            return template

    def is_enabled(self, key: str) -> bool:
        """Check if a message should be shown to the user.

        When False, the respond() helper acknowledges the interaction silently.
        """
        entry = self.messages.get(key, DEFAULT_MESSAGES.get(key, {}))
        return entry.get("enabled", True) if isinstance(entry, dict) else True


def validate_configuration(sounds_path: Path, ffmpeg_executable: str) -> None:
    """Validate configuration before bot starts, exit on failure.

    Checks performed:
    - DISCORD_TOKEN is set and has valid format (3 dot-separated sections)
    - Sounds directory exists (creates if missing)
    - FFmpeg is resolvable (warning only, preflight reports it per request)

    Also warns (non-fatal) if GUILD_ID is not set.

    On failure: Logs all errors and calls sys.exit(1).
    """
    errors = []

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        errors.append("DISCORD_TOKEN not set - add it to .env or the container environment")
    else:
        parts = token.strip().split(".")
        if len(parts) != 3:
            errors.append(
                "DISCORD_TOKEN format appears invalid.\n"
                "Token should have three dot-separated sections.\n"
                "Get a fresh token from: https://discord.com/developers/applications"
            )
        elif any(not part for part in parts):
            errors.append(
                "DISCORD_TOKEN has empty sections.\n"
                "Get a fresh token from: https://discord.com/developers/applications"
            )

    if not os.getenv("GUILD_ID"):
        logger.warning("GUILD_ID not set - commands may take up to 1 hour to show up")

    if not sounds_path.exists():
        try:
            sounds_path.mkdir(parents=True)
            logger.warning(f"created missing sounds directory: {sounds_path}")
        except OSError as e:
            errors.append(f"cannot create sounds directory {sounds_path}: {e}")
    elif not sounds_path.is_dir():
        errors.append(f"sounds path is not a directory: {sounds_path}")

    if shutil.which(ffmpeg_executable) is None:
        logger.warning(f"ffmpeg not found ({ffmpeg_executable}) - playback will fail until it's installed")

    if errors:
        for error in errors:
            logger.error(error)
        sys.exit(1)
