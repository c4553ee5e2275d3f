"""
Unit tests for converter configuration.
"""

import pytest

from avconvert.config import APIKeyNotFoundError, ConverterConfig, get_api_key
from avconvert.services.cloud import CloudJobClient
from avconvert.services.engines import ShellTranscodeEngine


class TestConverterConfig:
    """Test configuration defaults and validation."""

    def test_default_config(self):
        config = ConverterConfig()
        assert config.default_format == "mp3"
        assert config.default_engine == "native"
        assert config.auto_fallback is True
        assert config.cloud_completion == "fixed"
        assert config.history_limit == 20
        assert config.validate() is True

    def test_defaults_match_engines(self):
        config = ConverterConfig()
        assert config.cloud_base_url == CloudJobClient("key").base_url
        assert tuple(config.ffmpeg_paths) == ShellTranscodeEngine().search_paths

    def test_invalid_engine(self):
        config = ConverterConfig(default_engine="gstreamer")
        with pytest.raises(ValueError, match="default_engine"):
            config.validate()

    def test_invalid_completion_mode(self):
        config = ConverterConfig(cloud_completion="webhook")
        with pytest.raises(ValueError, match="cloud_completion"):
            config.validate()

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            ConverterConfig(max_concurrent_items=0).validate()

    def test_to_dict(self):
        data = ConverterConfig().to_dict()
        assert data["default_format"] == "mp3"
        assert isinstance(data["ffmpeg_paths"], list)


class TestConfigSources:
    """Test loading configuration from environment and YAML."""

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AVCONVERT_DEFAULT_FORMAT", "m4a")
        monkeypatch.setenv("AVCONVERT_MAX_CONCURRENT_ITEMS", "4")
        monkeypatch.setenv("AVCONVERT_AUTO_FALLBACK", "false")
        monkeypatch.setenv("AVCONVERT_CLOUD_MAX_WAIT", "12.5")
        monkeypatch.setenv("AVCONVERT_FFMPEG_PATHS", "/opt/ffmpeg:/usr/bin/ffmpeg")
        monkeypatch.setenv("AVCONVERT_OUTPUT_DIR", "/tmp/out")

        config = ConverterConfig.from_env()

        assert config.default_format == "m4a"
        assert config.max_concurrent_items == 4
        assert config.auto_fallback is False
        assert config.cloud_max_wait == 12.5
        assert config.ffmpeg_paths == ["/opt/ffmpeg", "/usr/bin/ffmpeg"]
        assert config.output_dir == "/tmp/out"

    def test_from_env_keeps_base(self, monkeypatch):
        monkeypatch.delenv("AVCONVERT_DEFAULT_ENGINE", raising=False)
        base = ConverterConfig(default_engine="shell")
        assert ConverterConfig.from_env(base).default_engine == "shell"

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("default_engine: cloud\ncloud_completion: poll\nunknown_key: 1\n")

        config = ConverterConfig.from_yaml(path)

        assert config.default_engine == "cloud"
        assert config.cloud_completion == "poll"
        assert not hasattr(config, "unknown_key")

    def test_from_yaml_missing_file(self, tmp_path):
        config = ConverterConfig.from_yaml(tmp_path / "missing.yaml")
        assert config == ConverterConfig(history_path=config.history_path)


class TestApiKey:
    def test_get_api_key(self, monkeypatch):
        monkeypatch.setenv("FREECONVERT_API_KEY", "secret")
        assert get_api_key() == "secret"

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("FREECONVERT_API_KEY", raising=False)
        with pytest.raises(APIKeyNotFoundError) as exc_info:
            get_api_key()
        assert "FREECONVERT_API_KEY" in exc_info.value.message
