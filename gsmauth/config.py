"""Configuration management for the auth service."""

import copy
import os
import json
import yaml
from typing import Dict, Optional, Any


STORE_BACKENDS = ("redis", "memory")

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "server": {
        "address": "0.0.0.0",
        "port": 44044,
        "request_timeout": 5.0,
        "drain_timeout": 30.0,
        "max_connections": 1000,
        "max_message_size": 64 * 1024
    },
    "redis": {
        "host": "localhost",
        "port": 6379,
        "db": 0,
        "password": "",
        "socket_timeout": 5.0
    },
    "store": {
        "backend": "redis",
        "ttl_seconds": 180
    },
    "logging": {
        "env": "production",
        "dir": "logs"
    },
    "monitoring": {
        "prometheus_enabled": False,
        "prometheus_port": 9090
    }
}


class ConfigError(ValueError):
    """Raised when a configuration file exists but cannot be used."""


class Config:
    """Configuration manager with file and environment variable support."""

    def __init__(self, config_file: Optional[str] = None):
        self.config: Dict[str, Any] = {}
        self.config_file = config_file or os.getenv('GSMAUTH_CONFIG', 'config.yaml')
        self._load_config()
        self._load_env_overrides()

    def _load_config(self):
        """Load configuration from file, layered over the defaults."""
        self._set_defaults()
        if not os.path.exists(self.config_file):
            return

        try:
            with open(self.config_file, 'r') as f:
                if self.config_file.endswith('.yaml') or self.config_file.endswith('.yml'):
                    loaded = yaml.safe_load(f) or {}
                elif self.config_file.endswith('.json'):
                    loaded = json.load(f)
                else:
                    raise ConfigError(f"Unsupported config format: {self.config_file}")
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config {self.config_file}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigError(f"Config {self.config_file} must be a mapping of sections")

        for section, values in loaded.items():
            if not isinstance(values, dict):
                raise ConfigError(f"Config section '{section}' must be a mapping")
            self.config.setdefault(section, {}).update(values)

    def _set_defaults(self):
        """Set default configuration values."""
        self.config = copy.deepcopy(DEFAULTS)

    def _load_env_overrides(self):
        """Override config with environment variables."""
        env_mappings = {
            "SERVER_ADDRESS": ("server", "address"),
            "SERVER_PORT": ("server", "port", int),
            "REQUEST_TIMEOUT": ("server", "request_timeout", float),
            "DRAIN_TIMEOUT": ("server", "drain_timeout", float),
            "MAX_CONNECTIONS": ("server", "max_connections", int),
            "REDIS_HOST": ("redis", "host"),
            "REDIS_PORT": ("redis", "port", int),
            "REDIS_DB": ("redis", "db", int),
            "REDIS_PASSWORD": ("redis", "password"),
            "REDIS_SOCKET_TIMEOUT": ("redis", "socket_timeout", float),
            "STORE_BACKEND": ("store", "backend"),
            "CODE_TTL": ("store", "ttl_seconds", int),
            "LOG_ENV": ("logging", "env"),
            "LOG_DIR": ("logging", "dir"),
            "PROMETHEUS_ENABLED": ("monitoring", "prometheus_enabled", lambda x: x.lower() == "true"),
            "PROMETHEUS_PORT": ("monitoring", "prometheus_port", int)
        }

        for env_key, (section, key, *converters) in env_mappings.items():
            value = os.getenv(env_key)
            if value is not None:
                if converters:
                    converter = converters[0]
                    try:
                        value = converter(value)
                    except (ValueError, TypeError):
                        continue
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self.config.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any):
        """Set configuration value."""
        if section not in self.config:
            self.config[section] = {}
        self.config[section][key] = value

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration."""
        errors = []

        for section in ("server", "redis"):
            port = self.get(section, "port")
            if not isinstance(port, int) or port < 0 or port > 65535:
                errors.append(f"Invalid {section} port")

        ttl = self.get("store", "ttl_seconds")
        if not isinstance(ttl, int) or ttl <= 0:
            errors.append("store.ttl_seconds must be a positive integer")

        for key in ("request_timeout", "drain_timeout"):
            value = self.get("server", key)
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"server.{key} must be positive")

        if self.get("store", "backend") not in STORE_BACKENDS:
            errors.append(f"Unknown store backend: {self.get('store', 'backend')}")

        return len(errors) == 0, errors
