from pathlib import Path

import pytest

from tgkit.config import (
    ENV_BOT_TOKEN,
    ENV_WEBHOOK_SECRET,
    ConfigError,
    IngestionConfiguration,
    RequestConfiguration,
    load_config,
    load_config_file,
)


class TestLoadConfigFile:
    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        config_file = tmp_path / "tgkit.toml"
        config_file.write_text('bot_token = "1:abc"')

        config, path = load_config_file(config_file)

        assert config["bot_token"] == "1:abc"
        assert path == config_file

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing config file"):
            load_config_file(tmp_path / "nonexistent.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.toml"
        bad_file.write_text("invalid = [unclosed")

        with pytest.raises(ConfigError, match="Malformed TOML"):
            load_config_file(bad_file)

    def test_path_exists_but_is_directory(self, tmp_path: Path) -> None:
        dir_path = tmp_path / "config_dir"
        dir_path.mkdir()

        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config_file(dir_path)


class TestLoadConfig:
    def test_sections_are_applied(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv(ENV_BOT_TOKEN, raising=False)
        monkeypatch.delenv(ENV_WEBHOOK_SECRET, raising=False)
        config_file = tmp_path / "tgkit.toml"
        config_file.write_text(
            'bot_token = "1:abc"\n'
            'log_file = "bot.log"\n'
            "[request]\n"
            'transport = "simple"\n'
            "retries = 5\n"
            'retry_backoff = "exponential"\n'
            "[updates]\n"
            'mode = "webhook"\n'
            'allowed_updates = ["message", "callback_query"]\n'
            "restrict_ips = true\n"
        )

        config = load_config(config_file)

        assert config.token == "1:abc"
        assert config.log_file == "bot.log"
        assert config.request.transport == "simple"
        assert config.request.retries == 5
        assert config.request.retry_backoff == "exponential"
        assert config.ingestion.mode == "webhook"
        assert config.ingestion.allowed_updates == ("message", "callback_query")
        assert config.ingestion.restrict_ips is True

    def test_env_token_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_BOT_TOKEN, " 2:fromenv ")
        monkeypatch.setenv(ENV_WEBHOOK_SECRET, "s3cret")
        config_file = tmp_path / "tgkit.toml"
        config_file.write_text('bot_token = "1:abc"')

        config = load_config(config_file)

        assert config.token == "2:fromenv"
        assert config.ingestion.secret_token == "s3cret"

    def test_missing_token(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(ENV_BOT_TOKEN, raising=False)
        config_file = tmp_path / "tgkit.toml"
        config_file.write_text("[request]\nretries = 1\n")

        with pytest.raises(ConfigError, match="Missing bot token"):
            load_config(config_file)

    def test_unknown_option(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_BOT_TOKEN, "1:abc")
        config_file = tmp_path / "tgkit.toml"
        config_file.write_text("[request]\nretires = 1\n")

        with pytest.raises(ConfigError, match="retires"):
            load_config(config_file)


class TestConfigurationValidation:
    def test_request_defaults(self) -> None:
        config = RequestConfiguration()
        assert config.transport == "pooled"
        assert config.timeout == 10.0
        assert config.retries == 3
        assert config.max_concurrent_requests == 50
        assert config.keep_alive is True
        assert config.verify_ssl is True

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"transport": "curl"},
            {"timeout": 0},
            {"retries": -1},
            {"retries": True},
            {"retry_backoff": "linear"},
            {"max_concurrent_requests": 0},
            {"base_url": "api.telegram.org"},
        ],
    )
    def test_invalid_request_options(self, kwargs: dict) -> None:
        with pytest.raises(ConfigError):
            RequestConfiguration(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mode": "push"},
            {"poll_limit": 101},
            {"idle_delay_min": 2.0, "idle_delay_max": 1.0},
            {"max_consecutive_failures": 0},
        ],
    )
    def test_invalid_ingestion_options(self, kwargs: dict) -> None:
        with pytest.raises(ConfigError):
            IngestionConfiguration(**kwargs)
