"""
Unit tests for configuration loading

Coverage:
- defaults and generated files
- YAML overrides, nested merge, unknown keys
- env var overrides
- range clamping and null restore
- message formatting and enabled flags
- validate_configuration exit paths
"""
import pytest
import yaml

from utils.config import DEFAULT_MESSAGES, ConfigManager, deep_merge, validate_configuration

ENV_VARS = (
    "SOUNDS_DIR", "FFMPEG_PATH", "FFMPEG_BITRATE", "PROBE_TIMEOUT", "VOICE_READY_TIMEOUT",
    "BROWSE_IDLE_TIMEOUT", "FILTER_THRESHOLD", "EXTENDED_AUTO_DELETE", "BRIEF_AUTO_DELETE", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


async def load(tmp_path, settings=None, messages=None) -> ConfigManager:
    if settings is not None:
        (tmp_path / "settings.yaml").write_text(yaml.safe_dump(settings))
    if messages is not None:
        (tmp_path / "messages.yaml").write_text(yaml.safe_dump(messages))
    config = ConfigManager(tmp_path)
    await config.load()
    return config


class TestLoad:
    """Sources and precedence"""

    async def test_defaults_and_generated_files(self, tmp_path):
        config = await load(tmp_path)
        assert config.get("sounds_path") == "./sounds"
        assert config.setting("sounds_path") == "./sounds"
        assert config.setting("ffmpeg.bitrate") == 128
        assert config.setting("browse.idle_timeout") == 900
        assert (tmp_path / "settings.yaml").exists()
        assert (tmp_path / "messages.yaml").exists()

    async def test_yaml_overrides_merge_with_defaults(self, tmp_path):
        config = await load(tmp_path, settings={"ffmpeg": {"bitrate": 96}, "bogus": 1})
        assert config.setting("ffmpeg.bitrate") == 96
        assert config.setting("ffmpeg.executable") == "ffmpeg"
        assert config.get("bogus") is None

    async def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SOUNDS_DIR", "/srv/sounds")
        monkeypatch.setenv("FFMPEG_BITRATE", "64")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        config = await load(tmp_path, settings={"ffmpeg": {"bitrate": 96}})
        assert config.get("sounds_path") == "/srv/sounds"
        assert config.setting("ffmpeg.bitrate") == 64
        assert config.setting("logging.level") == "debug"

    async def test_invalid_env_value_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FFMPEG_BITRATE", "loud")
        config = await load(tmp_path)
        assert config.setting("ffmpeg.bitrate") == 128

    async def test_broken_yaml_falls_back_to_defaults(self, tmp_path):
        (tmp_path / "settings.yaml").write_text("ffmpeg: [unclosed")
        config = await load(tmp_path)
        assert config.setting("ffmpeg.bitrate") == 128


class TestValidation:
    """Clamping and null restore"""

    async def test_out_of_range_values_are_clamped(self, tmp_path):
        config = await load(tmp_path, settings={
            "ffmpeg": {"bitrate": 9000, "probe_timeout": 0},
            "browse": {"idle_timeout": -5, "filter_threshold": 150},
        })
        assert config.setting("ffmpeg.bitrate") == 512
        assert config.setting("ffmpeg.probe_timeout") == 1
        assert config.setting("browse.idle_timeout") == 0
        assert config.setting("browse.filter_threshold") == 100

    async def test_non_numeric_values_reset(self, tmp_path):
        config = await load(tmp_path, settings={"voice": {"ready_timeout": "soon"}})
        assert config.setting("voice.ready_timeout") == 5

    async def test_null_values_restore_defaults(self, tmp_path):
        config = await load(tmp_path, settings={"ffmpeg": None, "ui": {"brief_auto_delete": None}})
        assert config.setting("ffmpeg.bitrate") == 128
        assert config.setting("ui.brief_auto_delete") == 10

    async def test_unknown_log_level(self, tmp_path):
        config = await load(tmp_path, settings={"logging": {"level": "chatty"}})
        assert config.setting("logging.level") == "verbose"


class TestMessages:
    """msg() and is_enabled()"""

    async def test_format_and_custom_text(self, tmp_path):
        config = await load(tmp_path, messages={"stopped": {"text": "bye {sound}", "enabled": False}})
        assert config.msg("stopped", sound="airhorn") == "bye airhorn"
        assert config.is_enabled("stopped") is False
        assert config.is_enabled("nothing_playing") is True

    async def test_missing_format_value_returns_template(self, tmp_path):
        config = await load(tmp_path)
        assert config.msg("now_playing") == DEFAULT_MESSAGES["now_playing"]["text"]

    async def test_unknown_key_returns_key(self, tmp_path):
        config = await load(tmp_path)
        assert config.msg("no_such_message") == "no_such_message"

    def test_every_error_has_a_message(self):
        from core import errors
        keys = {
            cls.message_key
            for cls in vars(errors).values()
            if isinstance(cls, type) and issubclass(cls, errors.CrateError)
        }
        assert keys <= set(DEFAULT_MESSAGES)


def test_deep_merge_does_not_mutate_defaults():
    defaults = {"a": {"b": 1}}
    merged = deep_merge({"a": {"b": 2}}, defaults)
    assert merged == {"a": {"b": 2}}
    assert defaults == {"a": {"b": 1}}


class TestValidateConfiguration:
    """Startup checks"""

    def test_missing_token_exits(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DISCORD_TOKEN", raising=False)
        with pytest.raises(SystemExit) as exc_info:
            validate_configuration(tmp_path, "ffmpeg")
        assert exc_info.value.code == 1

    def test_malformed_token_exits(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DISCORD_TOKEN", "not-a-token")
        with pytest.raises(SystemExit):
            validate_configuration(tmp_path, "ffmpeg")

    def test_creates_sounds_folder(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DISCORD_TOKEN", "abc.def.ghi")
        monkeypatch.setenv("GUILD_ID", "1")
        sounds = tmp_path / "sounds"
        validate_configuration(sounds, "definitely-not-ffmpeg")
        assert sounds.is_dir()
