"""Configuration management for the streaming chat client."""

import logging
import os
from typing import Any

import yaml
from dotenv import load_dotenv

from src.llm.models import ProviderConfig, VersionPlacement

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def active_provider(self) -> str:
        return self._config.get("llm", {}).get("active", "anthropic")

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        llm_config = self.get_llm_config()
        env_key = llm_config.get("api_key_env")

        if not env_key:
            # Map provider names to environment variable names
            provider_key_map = {
                "anthropic": "ANTHROPIC_API_KEY",
                "bedrock": "BEDROCK_API_KEY",
            }
            env_key = provider_key_map.get(self.active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{self.active_provider}' - no API key mapping "
                "found; set api_key_env for it in config.yaml"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{self.active_provider}'"
            )

        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.
        """
        providers = self._config.get("llm", {}).get("providers", {})

        if self.active_provider not in providers:
            raise ValueError(
                f"Active provider '{self.active_provider}' not found in "
                "providers config"
            )

        provider_config = providers[self.active_provider]
        for key in ["base_url", "model"]:
            if key not in provider_config:
                raise ValueError(
                    f"llm.providers.{self.active_provider}.{key} must be "
                    "explicitly configured in config.yaml"
                )
        return provider_config

    def get_request_config(self) -> dict[str, Any]:
        """Get request body settings for the active provider.

        Returns:
            Request configuration with validated values.

        Raises:
            ValueError: If required request parameters are missing or invalid.
        """
        request_config = self.get_llm_config().get("request", {})

        required_keys = ["anthropic_version", "max_tokens"]
        for key in required_keys:
            if key not in request_config:
                raise ValueError(
                    f"request.{key} must be explicitly configured "
                    f"for provider '{self.active_provider}' in config.yaml"
                )

        max_tokens = request_config["max_tokens"]
        if not isinstance(max_tokens, int) or max_tokens < 1:
            raise ValueError("request.max_tokens must be a positive integer")

        optional_keys = ["system", "temperature", "top_p", "top_k", "stop_sequences"]
        unknown = set(request_config) - set(required_keys) - set(optional_keys)
        if unknown:
            raise ValueError(f"Unknown request settings: {sorted(unknown)}")

        return {**request_config}

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts for the active LLM provider.

        Raises:
            ValueError: If a timeout is missing or not positive.
        """
        http_config = self.get_llm_config().get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"http_client.{key} must be explicitly configured "
                    f"for provider '{self.active_provider}' in config.yaml"
                )
            if http_config[key] <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return http_config

    def get_provider_config(self) -> ProviderConfig:
        """Build the explicit provider configuration for the LLM client."""
        llm_config = self.get_llm_config()
        http_config = self.get_http_client_config()

        placement = llm_config.get("version_placement", "header")
        try:
            version_placement = VersionPlacement(placement)
        except ValueError as e:
            raise ValueError(
                "version_placement must be one of: "
                f"{[p.value for p in VersionPlacement]}"
            ) from e

        return ProviderConfig(
            name=self.active_provider,
            base_url=llm_config["base_url"],
            model=llm_config["model"],
            api_key=self.llm_api_key,
            endpoint=llm_config.get("endpoint", "/messages"),
            version_placement=version_placement,
            connect_timeout=http_config["connect_timeout"],
            read_timeout=http_config["read_timeout"],
            write_timeout=http_config["write_timeout"],
            pool_timeout=http_config["pool_timeout"],
            extra_headers=llm_config.get("extra_headers", {}),
        )

    def get_chat_config(self) -> dict[str, Any]:
        """Get chat loop configuration from YAML.

        Raises:
            ValueError: If exit_on_stream_error is not configured.
        """
        chat_config = self._config.get("chat", {})
        if "exit_on_stream_error" not in chat_config:
            raise ValueError(
                "chat.exit_on_stream_error must be explicitly configured "
                "in config.yaml"
            )
        return chat_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})

    def get_log_level(self) -> int:
        level = str(self.get_logging_config().get("level", "WARNING")).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {VALID_LOG_LEVELS}")
        return getattr(logging, level)
