#!/usr/bin/env python3
"""
Configuration loading tests: defaults, environment, JSON file and validation
"""

import json

import pytest

from config_manager import CONFIG_SCHEMA, ConfigurationManager, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes whatever a .env file loaded
    for env_var, _, _ in CONFIG_SCHEMA.values():
        monkeypatch.setenv(env_var, "")
        monkeypatch.delenv(env_var)


def test_defaults(tmp_path):
    config = load_config(base_dir=tmp_path)

    assert config["targets"] == ["8.8.8.8", "google.com", "1.1.1.1"]
    assert config["max_retries"] == 2
    assert config["timeout"] == 2.0
    assert config["flapping_mode"] == "time"
    assert config["failure_probability"] == 35
    assert config["dns_test_servers"] == ["8.8.8.8", "1.1.1.1", "192.168.1.1"]
    assert config["log_dir"] == tmp_path / "logs"
    assert config["alert_dir"] == tmp_path / "alerts"
    assert config["diag_dir"] == tmp_path / "diagnosis"
    assert config["flapping_state_file"] == tmp_path / "flapping-state.txt"
    assert (config["alert_retention_days"], config["diagnosis_retention_days"],
            config["remediation_retention_days"]) == (2, 3, 7)


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("NOC_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("NOC_TARGETS", "10.0.0.1, intranet.local")
    monkeypatch.setenv("NOC_MAX_RETRIES", "4")
    monkeypatch.setenv("NOC_FLAPPING_ENABLED", "no")

    config = ConfigurationManager().config

    assert config["targets"] == ["10.0.0.1", "intranet.local"]
    assert config["max_retries"] == 4
    assert config["flapping_enabled"] is False
    assert config["log_dir"] == tmp_path / "logs"


def test_json_file_below_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "noc.json"
    config_file.write_text(json.dumps({"flapping_mode": "persistent", "max_retries": 3, "bogus": 1}))
    monkeypatch.setenv("NOC_MAX_RETRIES", "5")

    config = ConfigurationManager(config_file=config_file, overrides={"base_dir": tmp_path}).config

    assert config["flapping_mode"] == "persistent"
    assert config["max_retries"] == 5
    assert "bogus" not in config


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("NOC_FLAPPING_MODE=pattern\nNOC_STABILIZATION_DELAY=8\n")

    config = ConfigurationManager(env_file=env_file, overrides={"base_dir": tmp_path}).config

    assert config["flapping_mode"] == "pattern"
    assert config["stabilization_delay"] == 8.0


@pytest.mark.parametrize("overrides", [
    {"max_retries": 0},
    {"timeout": 0},
    {"flapping_mode": "chaos"},
    {"failure_probability": 150},
    {"flapping_interval": 0},
    {"max_retries": "two"},
    {"use_sudo": "maybe"},
    {"targets": ""},
])
def test_invalid_values_raise(tmp_path, overrides):
    with pytest.raises(ValueError):
        load_config(base_dir=tmp_path, **overrides)


def test_invalid_json_file_raises(tmp_path):
    config_file = tmp_path / "noc.json"
    config_file.write_text("{not json")
    with pytest.raises(ValueError):
        ConfigurationManager(config_file=config_file, overrides={"base_dir": tmp_path})


def test_ensure_directories(tmp_path):
    manager = ConfigurationManager(overrides={"base_dir": tmp_path / "noc"})
    manager.ensure_directories()

    for key in ("log_dir", "alert_dir", "diag_dir"):
        assert manager[key].is_dir()
