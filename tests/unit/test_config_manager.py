"""Tests for config_manager module."""

import os
import stat

import pytest

from nicswap.config_manager import ConfigError, ConfigManager, NicSwapConfig, coerce_value


class TestNicSwapConfig:
    """Test config dataclass."""

    def test_defaults(self):
        config = NicSwapConfig()

        assert config.poll_interval_seconds == 10
        assert config.max_wait_minutes == 10
        assert config.ip_settle_seconds == 15
        assert config.leftover_release_seconds == 5
        assert config.az_timeout_seconds == 300
        assert config.log_file == "./vm-nic-update-log.txt"
        assert config.fallback_ip_prefix == "10.0.0."

    def test_from_dict_ignores_unknown_keys(self):
        config = NicSwapConfig.from_dict({"max_wait_minutes": 20, "color": "blue"})

        assert config.max_wait_minutes == 20.0
        assert not hasattr(config, "color")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("NICSWAP_POLL_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("NICSWAP_LOG_FILE", "/tmp/nic.log")

        config = NicSwapConfig().apply_environment()

        assert config.poll_interval_seconds == 5
        assert config.log_file == "/tmp/nic.log"


class TestCoerceValue:
    """Test value conversion."""

    def test_types_follow_defaults(self):
        assert coerce_value("poll_interval_seconds", "15") == 15
        assert coerce_value("max_wait_minutes", "2.5") == 2.5
        assert coerce_value("fallback_ip_prefix", "172.16.0.") == "172.16.0."

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown"):
            coerce_value("retries", "3")

    def test_invalid_number(self):
        with pytest.raises(ConfigError, match="Invalid value"):
            coerce_value("az_timeout_seconds", "soon")

    def test_negative_rejected(self):
        with pytest.raises(ConfigError, match="negative"):
            coerce_value("ip_settle_seconds", "-1")

    @pytest.mark.parametrize("key", ["poll_interval_seconds", "max_wait_minutes", "az_timeout_seconds"])
    def test_zero_rejected_for_poll_and_timeout_keys(self, key):
        with pytest.raises(ConfigError, match="must be positive"):
            coerce_value(key, "0")

    def test_zero_allowed_for_pauses(self):
        assert coerce_value("ip_settle_seconds", "0") == 0.0
        assert coerce_value("leftover_release_seconds", "0") == 0.0


class TestConfigManager:
    """Test loading and saving."""

    def test_missing_file_uses_defaults(self, temp_config_file):
        assert ConfigManager.load_config() == NicSwapConfig()

    def test_save_and_load(self, temp_config_file):
        config = NicSwapConfig(max_wait_minutes=20.0, log_file="/var/log/nicswap.txt")

        path = ConfigManager.save_config(config)

        assert path == temp_config_file
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert ConfigManager.load_config() == config

    def test_env_beats_file(self, temp_config_file, monkeypatch):
        ConfigManager.save_config(NicSwapConfig(max_wait_minutes=20.0))
        monkeypatch.setenv("NICSWAP_MAX_WAIT_MINUTES", "3")

        assert ConfigManager.load_config().max_wait_minutes == 3.0

    def test_set_value_preserves_comments(self, temp_config_file):
        temp_config_file.parent.mkdir(parents=True)
        temp_config_file.write_text("# site defaults\nmax_wait_minutes = 20.0\n")

        ConfigManager.set_value("poll_interval_seconds", "30")

        text = temp_config_file.read_text()
        assert "# site defaults" in text
        loaded = ConfigManager.load_config()
        assert loaded.poll_interval_seconds == 30
        assert loaded.max_wait_minutes == 20.0

    def test_insecure_permissions_fixed(self, temp_config_file):
        ConfigManager.save_config(NicSwapConfig())
        os.chmod(temp_config_file, 0o644)

        ConfigManager.load_config()

        assert stat.S_IMODE(os.stat(temp_config_file).st_mode) == 0o600

    def test_invalid_toml(self, temp_config_file):
        temp_config_file.parent.mkdir(parents=True)
        temp_config_file.write_text("max_wait_minutes = = 3\n")

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config()

    def test_custom_path_must_exist(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            ConfigManager.load_config(str(tmp_path / "missing.toml"))

    def test_set_value_custom_path(self, tmp_path, temp_config_file):
        custom = tmp_path / "custom.toml"

        path = ConfigManager.set_value("fallback_ip_prefix", "10.1.0.", str(custom))

        assert path == custom.resolve()
        assert ConfigManager.load_config(str(custom)).fallback_ip_prefix == "10.1.0."

    def test_set_value_rejects_zero_poll_interval(self, temp_config_file):
        with pytest.raises(ConfigError, match="poll_interval_seconds must be positive"):
            ConfigManager.set_value("poll_interval_seconds", "0")

        assert not temp_config_file.exists()

    def test_environment_rejects_zero_wait(self, temp_config_file, monkeypatch):
        monkeypatch.setenv("NICSWAP_MAX_WAIT_MINUTES", "0")

        with pytest.raises(ConfigError, match="max_wait_minutes must be positive"):
            ConfigManager.load_config()

    def test_file_rejects_zero_timeout(self, temp_config_file):
        temp_config_file.parent.mkdir(parents=True)
        temp_config_file.write_text("az_timeout_seconds = 0\n")

        with pytest.raises(ConfigError, match="az_timeout_seconds must be positive"):
            ConfigManager.load_config()
