"""
Configuration management for qobuz-sync

This module handles loading, validation, and management of application settings
from multiple sources including YAML files and environment variables. It provides
a centralized configuration system that supports reloading and validation.

The configuration is organized into logical sections using dataclasses:
- Qobuz API settings (application id and secret, endpoint)
- Search behaviour (debounce interval, result limits)
- Network options (timeouts, request throttling)
- Logging and security configurations

The application secret can be loaded from environment variables so that it
never has to be written to a configuration file.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


@dataclass
class QobuzConfig:
    """
    Qobuz API configuration

    Contains the application credentials sent with every request. The secret
    is only used to sign streaming URL requests.
    """
    app_id: str = ""
    app_secret: str = ""
    base_url: str = "http://www.qobuz.com/api.json/0.2"
    user_agent: str = "qobuz-sync/0.3"


@dataclass
class SearchConfig:
    """
    Search behaviour

    The debounce interval applies to interactive searches only; federated
    (simple) searches are issued immediately.
    """
    debounce_ms: int = 400
    search_limit: int = 100
    simple_search_limit: int = 30


@dataclass
class NetworkConfig:
    """
    Network and HTTP configuration settings

    Controls request timeouts and the request throttler. There is no retry
    setting: failed requests are surfaced to the caller as they are.
    """
    request_timeout: int = 30
    rate_limit: int = 10
    rate_period: float = 1.0


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class SecurityConfig:
    """
    Security and storage configuration

    Controls where the persisted session (auth token, user id, quality) lives.
    """
    credentials_path: str = "~/.qobuz-sync/session.json"
    config_directory: str = "~/.qobuz-sync/"


class Settings:
    """
    Main settings class that manages all configuration

    Loads settings from a YAML file, overrides them with environment
    variables and exposes every section as an attribute.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".qobuz-sync"

        # Initialize all configuration objects with default values
        self.qobuz = QobuzConfig()
        self.search = SearchConfig()
        self.network = NetworkConfig()
        self.logging = LoggingConfig()
        self.security = SecurityConfig()

        # Load configuration from various sources in order of precedence
        self._load_config()
        self._load_environment_variables()

    def _sections(self) -> Dict[str, Any]:
        return {
            'qobuz': self.qobuz,
            'search': self.search,
            'network': self.network,
            'logging': self.logging,
            'security': self.security,
        }

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in multiple locations in order of
        precedence. The first file found will be used.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except (OSError, yaml.YAMLError) as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        self._apply_config(config_data)

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only keys that exist on the matching dataclass are applied; unknown
        sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """
        Load sensitive configuration from environment variables

        Environment variables take precedence over file-based configuration.
        """
        env_mappings = {
            'QOBUZ_APP_ID': lambda v: setattr(self.qobuz, 'app_id', v),
            'QOBUZ_APP_SECRET': lambda v: setattr(self.qobuz, 'app_secret', v),
            'QOBUZ_BASE_URL': lambda v: setattr(self.qobuz, 'base_url', v),
            'QOBUZ_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    def get_config_directory(self) -> Path:
        """Get the expanded config directory path"""
        return Path(self.security.config_directory).expanduser()

    def get_credentials_path(self) -> Path:
        """Get the expanded path of the persisted session file"""
        return Path(self.security.credentials_path).expanduser()

    def save_config(self, path: Optional[str] = None) -> None:
        """
        Save current configuration to file

        Serializes the current configuration to a YAML file, excluding the
        application secret.

        Args:
            path: Custom path to save config, defaults to user config directory

        Raises:
            OSError: If the configuration cannot be written
        """
        if not path:
            path = self.get_config_directory() / "config.yaml"
        else:
            path = Path(path)

        config_data = {
            name: self._dataclass_to_dict(section)
            for name, section in self._sections().items()
        }

        # Remove sensitive data from saved config
        config_data['qobuz']['app_secret'] = ""

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f, default_flow_style=False, indent=2)

    def _dataclass_to_dict(self, obj) -> Dict[str, Any]:
        return dict(obj.__dict__)

    def validate(self) -> bool:
        """
        Validate current configuration

        Returns:
            True if configuration is valid, False otherwise
        """
        errors = []

        if not self.qobuz.app_id:
            errors.append("Qobuz app_id is required")

        if not self.qobuz.base_url.startswith(("http://", "https://")):
            errors.append(f"Invalid base_url: {self.qobuz.base_url}")

        if self.search.debounce_ms < 0:
            errors.append(f"Invalid debounce interval: {self.search.debounce_ms}")

        if self.network.rate_limit < 1 or self.network.rate_period <= 0:
            errors.append("Request throttling needs rate_limit >= 1 and rate_period > 0")

        if errors:
            print("Configuration validation errors:")
            for error in errors:
                print(f"  - {error}")
            return False

        return True

    def __str__(self) -> str:
        sections = [
            f"Endpoint: {self.qobuz.base_url}",
            f"App id: {self.qobuz.app_id or '<unset>'}",
            f"Debounce: {self.search.debounce_ms}ms",
            f"Timeout: {self.network.request_timeout}s",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance for singleton pattern
settings = Settings()


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    return settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global settings
    settings = Settings(config_path)
    return settings
