"""Tests for configuration loading and derived flags."""

import json

import pytest

from sensilog.core.config import (
    ENV_MAPPINGS,
    SensiLogConfig,
    config_to_dict,
    dict_to_config,
    get_config,
    load_config,
    load_env_config,
    merge_configs,
    reset_config,
    set_config,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every mapped environment variable for the test."""
    for env_var in ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)
    return monkeypatch


class TestDefaults:
    def test_development_defaults(self):
        config = SensiLogConfig()
        assert config.is_development
        assert not config.is_production
        assert config.auth.token_expiry_days == 7
        assert config.riot.request_delay_seconds == 1.5
        assert config.riot.rate_limit_requests == 100
        assert config.sync.cooldown_minutes == 5
        assert config.sync.enforce_cooldown is False

    def test_mock_auth_on_in_development(self):
        assert SensiLogConfig().mock_auth_enabled is True

    def test_mock_auth_never_in_production(self):
        config = SensiLogConfig()
        config.app.environment = "production"
        config.app.enable_mock_auth = True
        assert config.mock_auth_enabled is False

    def test_mock_auth_flag_outside_development(self):
        config = SensiLogConfig()
        config.app.environment = "staging"
        assert config.mock_auth_enabled is False
        config.app.enable_mock_auth = True
        assert config.mock_auth_enabled is True

    def test_rate_limit_follows_environment_unless_forced(self):
        config = SensiLogConfig()
        assert config.rate_limit_enabled is False
        config.app.environment = "production"
        assert config.rate_limit_enabled is True
        config.rate_limit.enabled = False
        assert config.rate_limit_enabled is False


class TestEnvConfig:
    def test_type_conversion(self, clean_env):
        clean_env.setenv("SENSILOG_ENFORCE_SYNC_COOLDOWN", "true")
        clean_env.setenv("SENSILOG_SYNC_COOLDOWN_MINUTES", "10")
        clean_env.setenv("SENSILOG_RIOT_REQUEST_DELAY", "0.5")

        config = load_env_config()

        assert config["sync"] == {"enforce_cooldown": True, "cooldown_minutes": 10}
        assert config["riot"]["request_delay_seconds"] == 0.5

    def test_secrets_stay_strings(self, clean_env):
        clean_env.setenv("JWT_SECRET", "123456")
        clean_env.setenv("RIOT_API_KEY", "1e10")

        config = load_env_config()

        assert config["auth"]["jwt_secret"] == "123456"
        assert config["riot"]["api_key"] == "1e10"

    def test_prefixed_variable_wins(self, clean_env):
        clean_env.setenv("FRONTEND_URL", "http://plain.example")
        clean_env.setenv("SENSILOG_FRONTEND_URL", "http://prefixed.example")
        assert load_env_config()["app"]["frontend_url"] == "http://prefixed.example"

    def test_env_overrides_file(self, clean_env, tmp_path):
        path = tmp_path / "sensilog.yaml"
        path.write_text("app:\n  environment: staging\nauth:\n  jwt_secret: from-file\n")
        clean_env.setenv("JWT_SECRET", "from-env")

        config = load_config(path)

        assert config.app.environment == "staging"
        assert config.auth.jwt_secret == "from-env"

    def test_server_port(self, clean_env):
        clean_env.setenv("PORT", "8080")
        clean_env.setenv("SENSILOG_PORT", "9000")
        clean_env.setenv("SENSILOG_HOST", "127.0.0.1")

        assert load_env_config()["server"] == {"port": 9000, "host": "127.0.0.1"}


class TestConfigFiles:
    def test_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("riot:\n  region: eu\nsync:\n  max_count: 15\n")
        config = load_config(path, include_env=False)
        assert config.riot.region == "eu"
        assert config.sync.max_count == 15

    def test_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[database]\nurl = "sqlite:///tmp/x.db"\n')
        config = load_config(path, include_env=False)
        assert config.database.url == "sqlite:///tmp/x.db"

    def test_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"rate_limit": {"sync_limit": "2/minute"}}))
        config = load_config(path, include_env=False)
        assert config.rate_limit.sync_limit == "2/minute"

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml", include_env=False)
        assert config_to_dict(config) == config_to_dict(SensiLogConfig())


class TestMerging:
    def test_merge_is_recursive(self):
        merged = merge_configs(
            {"app": {"environment": "development", "frontend_url": "a"}},
            {"app": {"frontend_url": "b"}},
        )
        assert merged == {"app": {"environment": "development", "frontend_url": "b"}}

    def test_unknown_keys_are_ignored(self):
        config = dict_to_config({"app": {"colour": "red"}, "nonsense": {"x": 1}})
        assert not hasattr(config.app, "colour")


class TestGlobalConfig:
    def test_set_and_reset(self):
        custom = SensiLogConfig()
        custom.riot.region = "kr"
        set_config(custom)
        try:
            assert get_config() is custom
        finally:
            reset_config()
        assert get_config() is not custom
        reset_config()
