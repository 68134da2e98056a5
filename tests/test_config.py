"""Tests for TOML configuration loading, env overrides and reload."""

from mindvault.config import ConfigSection, VaultConfig, diff_settings
from mindvault.performance import PerformanceConfig


def test_missing_file_uses_defaults(tmp_path, caplog):
    config = VaultConfig(tmp_path / "missing.toml")
    assert config.monitor.poll_interval == 1.0
    assert config.windows.history_limit == 100
    assert config.api.port == 8765
    assert "Config file not found" in caplog.text


def test_toml_values_merge_over_defaults(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text('[monitor]\npoll_interval = 2.5\n\n[api]\napi_key = "secret"\n')
    config = VaultConfig(path)
    assert config.monitor.poll_interval == 2.5
    assert config.monitor.recent_window == 10
    assert config.api.api_key == "secret"


def test_invalid_toml_falls_back(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[monitor\npoll_interval = ")
    assert VaultConfig(path).monitor.poll_interval == 1.0


def test_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("MINDVAULT_POLL_INTERVAL", "0.25")
    monkeypatch.setenv("MINDVAULT_ENABLE_METRICS", "false")
    config = VaultConfig(tmp_path / "missing.toml")
    assert config.monitor.poll_interval == 0.25
    assert config.performance.enable_metrics is False


def test_invalid_env_override_ignored(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("MINDVAULT_API_PORT", "not-a-port")
    config = VaultConfig(tmp_path / "missing.toml")
    assert config.api.port == 8765
    assert "Invalid env override" in caplog.text


def test_reload_reports_changes(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[monitor]\npoll_interval = 1.0\n")
    config = VaultConfig(path)

    path.write_text("[monitor]\npoll_interval = 3.0\n")
    assert config.reload() == {"monitor.poll_interval": {"old": 1.0, "new": 3.0}}
    assert config.reload() == {}


def test_section_get_and_nested_access():
    section = ConfigSection({"a": 1, "nested": {"b": 2}})
    assert section.nested.b == 2
    assert section.get("missing", "x") == "x"


def test_diff_settings_nested():
    assert diff_settings({"a": {"b": 1}}, {"a": {"b": 2}, "c": 3}) == {
        "a.b": {"old": 1, "new": 2},
        "c": {"old": None, "new": 3},
    }


def test_performance_config_from_settings(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text('[performance]\nplatform = "mobile"\nmax_cpu_usage = 50.0\n')
    perf = PerformanceConfig.from_settings(VaultConfig(path))
    assert perf.platform.value == "mobile"
    assert perf.max_cpu_usage == 50.0
    assert perf.poll_interval == 1.0


def test_auto_platform_means_detect(tmp_path):
    perf = PerformanceConfig.from_settings(VaultConfig(tmp_path / "missing.toml"))
    assert perf.platform is None
