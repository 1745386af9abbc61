#!/usr/bin/env python3
"""
Configuration Module
Builds the monitor configuration from environment variables (.env supported),
an optional JSON file and built-in defaults.

Precedence: environment variables > JSON config file > defaults.
"""

import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = Path.home() / "my-it-journey"

# key -> (environment variable, default, type)
CONFIG_SCHEMA = {
    "base_dir": ("NOC_BASE_DIR", str(DEFAULT_BASE_DIR), "path"),
    "log_dir": ("NOC_LOG_DIR", None, "path"),
    "alert_dir": ("NOC_ALERT_DIR", None, "path"),
    "diag_dir": ("NOC_DIAG_DIR", None, "path"),
    "targets": ("NOC_TARGETS", "8.8.8.8,google.com,1.1.1.1", "list"),
    "max_retries": ("NOC_MAX_RETRIES", "2", "int"),
    "timeout": ("NOC_TIMEOUT", "2", "float"),
    "retry_delay": ("NOC_RETRY_DELAY", "1", "float"),
    "flapping_enabled": ("NOC_FLAPPING_ENABLED", "true", "bool"),
    "flapping_mode": ("NOC_FLAPPING_MODE", "time", "str"),
    "failure_probability": ("NOC_FAILURE_PROBABILITY", "35", "int"),
    "flapping_interval": ("NOC_FLAPPING_INTERVAL", "300", "int"),
    "flapping_state_file": ("NOC_FLAPPING_STATE_FILE", None, "path"),
    "synthetic_target": ("NOC_SYNTHETIC_TARGET", "169.254.255.255", "str"),
    "auto_remediate": ("NOC_AUTO_REMEDIATE", "true", "bool"),
    "lock_file": ("NOC_LOCK_FILE", "/tmp/noc-remediation.lock", "path"),
    "stabilization_delay": ("NOC_STABILIZATION_DELAY", "5", "float"),
    "resolv_conf": ("NOC_RESOLV_CONF", "/etc/resolv.conf", "path"),
    "hosts_file": ("NOC_HOSTS_FILE", "/etc/hosts", "path"),
    "dns_test_servers": ("NOC_DNS_TEST_SERVERS", "8.8.8.8,1.1.1.1,192.168.1.1", "list"),
    "fallback_nameservers": ("NOC_FALLBACK_NAMESERVERS", "8.8.8.8,1.1.1.1,9.9.9.9", "list"),
    "internet_test_domain": ("NOC_INTERNET_TEST_DOMAIN", "google.com", "str"),
    "internet_test_ip": ("NOC_INTERNET_TEST_IP", "8.8.8.8", "str"),
    "use_sudo": ("NOC_USE_SUDO", "true", "bool"),
    "gateway_from_resolver": ("NOC_GATEWAY_FROM_RESOLVER", "true", "bool"),
    "alert_retention_days": ("NOC_ALERT_RETENTION_DAYS", "2", "int"),
    "diagnosis_retention_days": ("NOC_DIAGNOSIS_RETENTION_DAYS", "3", "int"),
    "remediation_retention_days": ("NOC_REMEDIATION_RETENTION_DAYS", "7", "int"),
    "log_level": ("NOC_LOG_LEVEL", "INFO", "str"),
}

FLAPPING_MODES = ("time", "random", "pattern", "persistent")
TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


def _coerce(key, value, kind):
    if value is None:
        return None
    if kind == "int":
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer, got {value!r}")
    if kind == "float":
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be a number, got {value!r}")
    if kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ValueError(f"{key} must be a boolean, got {value!r}")
    if kind == "list":
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        return [part.strip() for part in str(value).split(",") if part.strip()]
    if kind == "path":
        return Path(os.path.expanduser(str(value)))
    return str(value)


class ConfigurationManager:
    """Loads and validates monitor configuration"""

    def __init__(self, env_file=None, config_file=None, overrides=None):
        # Load environment variables (.env in cwd unless a file is given)
        load_dotenv(dotenv_path=env_file)
        self.config_file = Path(config_file) if config_file else None
        self.config = self._build(overrides or {})

    def _load_file_config(self):
        """Load optional JSON configuration; env vars still take precedence"""
        if not self.config_file:
            return {}
        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning(f"Config file not found: {self.config_file}")
            return {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {self.config_file}: {e}")
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_file} must contain a JSON object")
        unknown = set(data) - set(CONFIG_SCHEMA)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        return {k: v for k, v in data.items() if k in CONFIG_SCHEMA}

    def _build(self, overrides):
        file_config = self._load_file_config()
        config = {}
        for key, (env_var, default, kind) in CONFIG_SCHEMA.items():
            if key in overrides:
                raw = overrides[key]
            elif os.getenv(env_var) is not None:
                raw = os.getenv(env_var)
            elif key in file_config:
                raw = file_config[key]
            else:
                raw = default
            config[key] = _coerce(key, raw, kind)

        base = config["base_dir"]
        config["log_dir"] = config["log_dir"] or base / "logs"
        config["alert_dir"] = config["alert_dir"] or base / "alerts"
        config["diag_dir"] = config["diag_dir"] or base / "diagnosis"
        config["flapping_state_file"] = config["flapping_state_file"] or base / "flapping-state.txt"

        self._validate(config)
        return config

    @staticmethod
    def _validate(config):
        if config["max_retries"] < 1:
            raise ValueError("max_retries must be at least 1")
        if config["timeout"] <= 0:
            raise ValueError("timeout must be positive")
        if config["retry_delay"] < 0 or config["stabilization_delay"] < 0:
            raise ValueError("delays cannot be negative")
        if config["flapping_mode"] not in FLAPPING_MODES:
            raise ValueError(f"flapping_mode must be one of {FLAPPING_MODES}")
        if not 0 <= config["failure_probability"] <= 100:
            raise ValueError("failure_probability must be between 0 and 100")
        if config["flapping_interval"] <= 0:
            raise ValueError("flapping_interval must be positive")
        if not config["targets"]:
            raise ValueError("at least one default target is required")

    def ensure_directories(self):
        """Create log, alert and diagnosis directories"""
        for key in ("log_dir", "alert_dir", "diag_dir"):
            self.config[key].mkdir(parents=True, exist_ok=True)
        self.config["flapping_state_file"].parent.mkdir(parents=True, exist_ok=True)

    def get(self, key, default=None):
        return self.config.get(key, default)

    def __getitem__(self, key):
        return self.config[key]


def load_config(env_file=None, config_file=None, **overrides):
    """Convenience wrapper returning the plain configuration dictionary"""
    return ConfigurationManager(env_file=env_file, config_file=config_file, overrides=overrides).config
