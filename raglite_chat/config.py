"""
Configuration management for raglite_chat.
Handles loading, saving, and accessing configuration from a JSON file and environment variables.
"""
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_FILE,
    DEFAULT_API_URL,
    DEFAULT_CONVERSATION_HISTORY,
    DEFAULT_STREAM_TIMEOUT,
    DEFAULT_TIMEOUT,
    DEFAULT_TOP_K,
    ENV_API_URL,
    ENV_DATASET,
    ENV_TIMEOUT,
    MAX_DEBUG_EVENTS,
)
from .errors import ConfigError


logger = logging.getLogger(__name__)


@dataclass
class ApiConfig:
    """Backend connection settings."""
    base_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    stream_timeout: float = DEFAULT_STREAM_TIMEOUT
    top_k: int = DEFAULT_TOP_K
    include_thinking: bool = False


@dataclass
class ChatConfig:
    """Chat session behaviour."""
    default_dataset: Optional[str] = None
    strict_sequencing: bool = False
    conversation_history: int = DEFAULT_CONVERSATION_HISTORY
    max_debug_events: int = MAX_DEBUG_EVENTS


@dataclass
class UIConfig:
    """UI-specific configuration."""
    show_thinking: bool = False
    show_metrics: bool = True
    markdown_rendering: bool = True


@dataclass
class AppConfig:
    """Main application configuration."""
    api: ApiConfig = field(default_factory=ApiConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    ui: UIConfig = field(default_factory=UIConfig)


class ConfigManager:
    """
    Manages application configuration with support for a JSON file and environment variables.

    Environment variables take precedence over config file values and are
    never written back to the file.
    """

    def __init__(self, config_file: Optional[Path] = None) -> None:
        self._config_file = Path(config_file) if config_file else CONFIG_FILE
        self._config: AppConfig = AppConfig()
        self._env_overrides: dict[str, Any] = {}
        self._load_config()
        self._load_env_vars()

    @property
    def config_file(self) -> Path:
        """Path of the JSON configuration file."""
        return self._config_file

    def _load_config(self) -> None:
        """Load configuration from the JSON file, creating it with defaults if missing."""
        if not self._config_file.exists():
            self._save_config()
            return

        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if 'api' in data:
                self._config.api = ApiConfig(**data['api'])
            if 'chat' in data:
                self._config.chat = ChatConfig(**data['chat'])
            if 'ui' in data:
                self._config.ui = UIConfig(**data['ui'])
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to load config file {self._config_file}: {e}")
            self._config = AppConfig()

    def _load_env_vars(self) -> None:
        """Apply overrides from environment variables."""
        url = os.environ.get(ENV_API_URL)
        if url:
            self._config.api.base_url = url
            self._env_overrides[ENV_API_URL] = url

        dataset = os.environ.get(ENV_DATASET)
        if dataset:
            self._config.chat.default_dataset = dataset
            self._env_overrides[ENV_DATASET] = dataset

        timeout = os.environ.get(ENV_TIMEOUT)
        if timeout:
            try:
                self._config.api.timeout = float(timeout)
            except ValueError:
                raise ConfigError(f"{ENV_TIMEOUT} must be a number, got {timeout!r}")
            self._env_overrides[ENV_TIMEOUT] = timeout

    def _save_config(self) -> None:
        """Save current configuration to the JSON file."""
        data = {
            'api': asdict(self._config.api),
            'chat': asdict(self._config.chat),
            'ui': asdict(self._config.ui),
        }
        # Values that came from the environment stay out of the file
        if ENV_API_URL in self._env_overrides:
            data['api']['base_url'] = self._file_value('api', 'base_url', DEFAULT_API_URL)
        if ENV_DATASET in self._env_overrides:
            data['chat']['default_dataset'] = self._file_value('chat', 'default_dataset', None)
        if ENV_TIMEOUT in self._env_overrides:
            data['api']['timeout'] = self._file_value('api', 'timeout', DEFAULT_TIMEOUT)

        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

    def _file_value(self, section: str, key: str, default: Any) -> Any:
        """Read a single value as currently stored in the file."""
        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                return json.load(f).get(section, {}).get(key, default)
        except (OSError, json.JSONDecodeError):
            return default

    @property
    def config(self) -> AppConfig:
        """Get the current configuration."""
        return self._config

    @property
    def api(self) -> ApiConfig:
        """Get backend configuration."""
        return self._config.api

    @property
    def chat(self) -> ChatConfig:
        """Get chat configuration."""
        return self._config.chat

    @property
    def ui(self) -> UIConfig:
        """Get UI configuration."""
        return self._config.ui

    def update_api(self, persist: bool = True, **kwargs: Any) -> None:
        """Update backend configuration."""
        for key, value in kwargs.items():
            if hasattr(self._config.api, key):
                setattr(self._config.api, key, value)
        if persist:
            self._save_config()

    def update_chat(self, persist: bool = True, **kwargs: Any) -> None:
        """Update chat configuration."""
        for key, value in kwargs.items():
            if hasattr(self._config.chat, key):
                setattr(self._config.chat, key, value)
        if persist:
            self._save_config()

    def update_ui(self, persist: bool = True, **kwargs: Any) -> None:
        """Update UI configuration."""
        for key, value in kwargs.items():
            if hasattr(self._config.ui, key):
                setattr(self._config.ui, key, value)
        if persist:
            self._save_config()

    def reset(self) -> None:
        """Reset configuration to defaults."""
        self._config = AppConfig()
        self._save_config()


_config_manager: Optional[ConfigManager] = None


def get_config(config_file: Optional[Path] = None) -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_file)
    return _config_manager
