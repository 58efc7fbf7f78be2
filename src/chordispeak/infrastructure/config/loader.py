"""Configuration loading and validation."""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, fields

from chordispeak.domain.exceptions import ConfigurationError
from chordispeak.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://chordispeak-130612573310.us-east4.run.app"
DEFAULT_CONFIG_PATH = Path("chordispeak.yaml")
ENV_PREFIX = "CHORDISPEAK_"


@dataclass
class ClientConfig:
    """Configuration for the processing service client."""

    # Service
    base_url: str = DEFAULT_BASE_URL
    app_version: str = "1.0.0"

    # Transport
    request_timeout: float = 30.0
    resource_timeout: float = 120.0
    max_retry_attempts: int = 3
    retry_delay: float = 2.0

    # Upload
    max_upload_bytes: int = 50 * 1024 * 1024

    # Polling
    poll_interval: float = 2.0

    # Connectivity probing (host defaults to the base URL host)
    connectivity_probe_host: Optional[str] = None
    connectivity_probe_port: Optional[int] = None
    connectivity_check_interval: float = 5.0

    # Misc
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """Validate configuration values."""
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"base_url must be an http(s) URL, got: {self.base_url}")

        if self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got: {self.request_timeout}")

        if self.resource_timeout < self.request_timeout:
            raise ConfigurationError(
                f"resource_timeout ({self.resource_timeout}) must not be shorter than "
                f"request_timeout ({self.request_timeout})"
            )

        if self.max_retry_attempts < 0:
            raise ConfigurationError(f"max_retry_attempts cannot be negative, got: {self.max_retry_attempts}")

        if self.retry_delay < 0:
            raise ConfigurationError(f"retry_delay cannot be negative, got: {self.retry_delay}")

        if self.max_upload_bytes <= 0:
            raise ConfigurationError(f"max_upload_bytes must be positive, got: {self.max_upload_bytes}")

        if self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be positive, got: {self.poll_interval}")

        if self.connectivity_check_interval <= 0:
            raise ConfigurationError(
                f"connectivity_check_interval must be positive, got: {self.connectivity_check_interval}"
            )

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid log_level: {self.log_level}")


# Environment variable suffix -> (field, converter)
_ENV_FIELDS: Dict[str, Any] = {
    "BASE_URL": ("base_url", str),
    "APP_VERSION": ("app_version", str),
    "REQUEST_TIMEOUT": ("request_timeout", float),
    "RESOURCE_TIMEOUT": ("resource_timeout", float),
    "MAX_RETRY_ATTEMPTS": ("max_retry_attempts", int),
    "RETRY_DELAY": ("retry_delay", float),
    "MAX_UPLOAD_BYTES": ("max_upload_bytes", int),
    "POLL_INTERVAL": ("poll_interval", float),
    "PROBE_HOST": ("connectivity_probe_host", str),
    "PROBE_PORT": ("connectivity_probe_port", int),
    "CONNECTIVITY_INTERVAL": ("connectivity_check_interval", float),
    "LOG_LEVEL": ("log_level", str),
}


class ConfigLoader:
    """Loads and validates configuration from YAML files and environment variables."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config loader.

        Args:
            config_path: Optional path to YAML config file
        """
        self._explicit_path = config_path is not None
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._logger = get_logger(__name__)

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> ClientConfig:
        """
        Load configuration from file and environment.

        Precedence (lowest first): defaults, YAML file, environment, overrides.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config_dict: Dict[str, Any] = {}

        if self.config_path.exists():
            self._logger.info(f"Loading config from {self.config_path}")
            config_dict.update(self._load_yaml())
        elif self._explicit_path:
            self._logger.warning(f"Config file not found: {self.config_path}")

        config_dict.update(self._load_from_env())

        if overrides:
            for k, v in overrides.items():
                if v is None:
                    continue
                config_dict[k] = v

        valid_fields = {f.name for f in fields(ClientConfig)}
        unknown = sorted(k for k in config_dict if k not in valid_fields)
        if unknown:
            self._logger.debug(f"Ignoring unknown config keys: {unknown}")

        filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}

        try:
            return ClientConfig(**filtered_config)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _load_yaml(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")

        # Allow the settings to be nested under a top-level "chordispeak" key
        section = data.get("chordispeak")
        return section if isinstance(section, dict) else data

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from CHORDISPEAK_* environment variables."""
        env_config: Dict[str, Any] = {}

        for suffix, (name, convert) in _ENV_FIELDS.items():
            raw = os.getenv(ENV_PREFIX + suffix)
            if not raw:
                continue
            try:
                env_config[name] = convert(raw)
            except ValueError:
                self._logger.warning(f"Invalid {ENV_PREFIX}{suffix} value: {raw}")

        return env_config
