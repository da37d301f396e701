"""Unit tests for the counselor configuration system.

Tests cover defaults, validation ranges, loading from file, handling
missing/invalid files, v1 migration, saving, and singleton behavior.
"""

import json
import stat

import pytest
from pydantic import ValidationError

from counselor.config import (
    CONFIG_PATH,
    CONFIG_VERSION,
    CounselorConfig,
    GenerationSettings,
    LoggingSettings,
    ModelSettings,
    get_config,
    load_config,
    reset_config,
    save_config,
)


class TestModelSettings:
    """Tests for ModelSettings model."""

    def test_default_values(self):
        """Test default model settings."""
        settings = ModelSettings()
        assert settings.model_id == "phi-3-mini-4k"
        assert settings.model_path is None
        assert settings.temperature == 0.6
        assert settings.top_p == 1.0
        assert settings.cache_limit_mb == 20
        assert settings.memory_buffer_multiplier == 1.3

    @pytest.mark.parametrize("temperature", [-0.1, 2.5])
    def test_temperature_out_of_range_raises(self, temperature):
        """Test temperature outside [0, 2] is rejected."""
        with pytest.raises(ValidationError):
            ModelSettings(temperature=temperature)

    def test_top_p_zero_raises(self):
        with pytest.raises(ValidationError):
            ModelSettings(top_p=0.0)


class TestGenerationSettings:
    """Tests for GenerationSettings model."""

    def test_default_values(self):
        """Test default generation settings."""
        settings = GenerationSettings()
        assert settings.max_tokens == 240
        assert settings.display_every_n_tokens == 4
        assert settings.end_marker == "<|end|>"

    @pytest.mark.parametrize("field", ["max_tokens", "display_every_n_tokens"])
    def test_zero_rejected(self, field):
        """Test counts below 1 are rejected."""
        with pytest.raises(ValidationError):
            GenerationSettings(**{field: 0})


class TestLoggingSettings:
    def test_default_values(self):
        settings = LoggingSettings()
        assert settings.level == "INFO"
        assert settings.structured is False

    def test_invalid_level_raises(self):
        with pytest.raises(ValidationError):
            LoggingSettings(level="LOUD")


class TestLoadConfig:
    """Tests for load_config function."""

    def test_returns_defaults_when_missing(self, tmp_path):
        """Test that defaults are returned when the file does not exist."""
        config = load_config(tmp_path / "nonexistent.json")
        assert config == CounselorConfig()

    def test_reads_from_file(self, tmp_path):
        """Test loading nested sections from a file."""
        config_file = tmp_path / "config.json"
        config_file.write_text(
            json.dumps(
                {
                    "config_version": CONFIG_VERSION,
                    "model": {"model_id": "phi-3.5-mini", "temperature": 0.2},
                    "generation": {"max_tokens": 100},
                    "logging": {"level": "DEBUG", "structured": True},
                }
            )
        )

        config = load_config(config_file)

        assert config.model.model_id == "phi-3.5-mini"
        assert config.model.temperature == 0.2
        assert config.generation.max_tokens == 100
        assert config.generation.display_every_n_tokens == 4
        assert config.logging.level == "DEBUG"
        assert config.logging.structured is True

    def test_handles_invalid_json(self, tmp_path):
        """Test that invalid JSON falls back to defaults."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")
        assert load_config(config_file) == CounselorConfig()

    def test_handles_non_object(self, tmp_path):
        """Test that a JSON array falls back to defaults."""
        config_file = tmp_path / "config.json"
        config_file.write_text("[1, 2, 3]")
        assert load_config(config_file) == CounselorConfig()

    def test_handles_validation_failure(self, tmp_path):
        """Test that out-of-range values fall back to defaults."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"generation": {"max_tokens": 0}}))
        assert load_config(config_file).generation.max_tokens == 240

    def test_empty_object(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")
        assert load_config(config_file).config_version == CONFIG_VERSION


class TestConfigMigration:
    """Tests for v1 -> v2 migration."""

    def test_flat_v1_keys_move_into_generation(self, tmp_path):
        """Test v1 top-level keys land in the generation section."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"max_tokens": 120, "display_every": 8}))

        config = load_config(config_file)

        assert config.config_version == CONFIG_VERSION
        assert config.generation.max_tokens == 120
        assert config.generation.display_every_n_tokens == 8

    def test_existing_generation_values_win(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(
            json.dumps({"max_tokens": 120, "generation": {"max_tokens": 60}})
        )
        assert load_config(config_file).generation.max_tokens == 60

    def test_null_generation_section_in_v1_file(self, tmp_path):
        """Test a null generation section is rebuilt from the flat v1 keys."""
        config_file = tmp_path / "config.json"
        config_file.write_text(
            json.dumps({"config_version": 1, "generation": None, "max_tokens": 100})
        )

        config = load_config(config_file)

        assert config.generation.max_tokens == 100
        assert config.generation.display_every_n_tokens == 4

    def test_null_generation_section_in_current_file(self, tmp_path):
        """Test a null generation section at the current version falls back to defaults."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"config_version": CONFIG_VERSION, "generation": None}))
        assert load_config(config_file) == CounselorConfig()

    @pytest.mark.parametrize("version", ["2", None, 1.5, True, [2]])
    def test_non_integer_version_falls_back_to_defaults(self, tmp_path, version):
        """Test a malformed config_version returns defaults instead of raising."""
        config_file = tmp_path / "config.json"
        config_file.write_text(
            json.dumps({"config_version": version, "generation": {"max_tokens": 50}})
        )
        assert load_config(config_file) == CounselorConfig()

    def test_get_config_survives_malformed_version(self, tmp_path, monkeypatch):
        """Test the singleton path does not propagate migration errors."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"config_version": "2"}))
        monkeypatch.setattr("counselor.config.CONFIG_PATH", config_file)
        assert get_config() == CounselorConfig()


class TestSaveConfig:
    """Tests for save_config function."""

    def test_round_trip(self, tmp_path):
        """Test that a saved config loads back unchanged."""
        config_file = tmp_path / "nested" / "config.json"
        config = CounselorConfig(generation=GenerationSettings(max_tokens=64))

        assert save_config(config, config_file) is True
        assert load_config(config_file) == config

    def test_owner_only_permissions(self, tmp_path):
        config_file = tmp_path / "config.json"
        save_config(CounselorConfig(), config_file)
        mode = stat.S_IMODE(config_file.stat().st_mode)
        assert mode == 0o600

    def test_returns_false_on_os_error(self, tmp_path):
        """Test that an unwritable target reports failure instead of raising."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        assert save_config(CounselorConfig(), blocker / "config.json") is False


class TestGetConfig:
    """Tests for get_config singleton function."""

    def test_returns_singleton(self, tmp_path, monkeypatch):
        """Test that get_config returns the same instance on multiple calls."""
        monkeypatch.setattr("counselor.config.CONFIG_PATH", tmp_path / "config.json")
        assert get_config() is get_config()

    def test_reset_allows_reload(self, tmp_path, monkeypatch):
        """Test that reset_config picks up a changed file."""
        config_file = tmp_path / "config.json"
        monkeypatch.setattr("counselor.config.CONFIG_PATH", config_file)

        first = get_config()
        config_file.write_text(json.dumps({"model": {"model_id": "phi-3.5-mini"}}))
        reset_config()
        second = get_config()

        assert first is not second
        assert second.model.model_id == "phi-3.5-mini"


class TestConfigPath:
    def test_config_path_is_in_home_directory(self):
        assert CONFIG_PATH.parts[-2:] == (".counselor", "config.json")
