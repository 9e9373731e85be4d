"""
Configuration System
====================

Centralized, validated configuration management with typed dataclasses.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Union
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class GatewayConfig:
    """Generation service settings."""

    provider: str = "google"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: int = 300

    text_model: str = "gemini-3-pro-preview"
    news_model: str = "gemini-3-flash-preview"
    image_model: str = "gemini-2.5-flash-image"
    thumbnail_model: str = "gemini-3-pro-image-preview"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    voice: str = "Kore"
    motion_model: str = "veo-3.1-fast-generate-preview"

    scene_aspect_ratio: str = "9:16"
    thumbnail_aspect_ratio: str = "16:9"

    VALID_PROVIDERS = {"google"}
    VALID_ASPECT_RATIOS = {"16:9", "9:16", "1:1", "4:3", "3:4"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.provider not in self.VALID_PROVIDERS:
            raise ConfigurationError(
                f"Invalid provider: {self.provider}",
                config_key="gateway.provider",
            )
        for name in ("scene_aspect_ratio", "thumbnail_aspect_ratio"):
            if getattr(self, name) not in self.VALID_ASPECT_RATIOS:
                raise ConfigurationError(
                    f"Invalid aspect ratio: {getattr(self, name)}",
                    config_key=f"gateway.{name}",
                )
        if self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive, got {self.timeout}",
                config_key="gateway.timeout",
            )


@dataclass
class ProductionConfig:
    """Pipeline shape and pacing."""

    segment_count: int = 10
    segment_seconds: int = 3
    reference_variants: int = 4
    max_news_items: int = 5
    idea_count: int = 3
    scene_concurrency: int = 1
    motion_poll_interval: float = 10.0
    motion_max_wait: float = 600.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate pacing values."""
        for name in ("segment_count", "segment_seconds", "reference_variants", "idea_count", "max_news_items"):
            if getattr(self, name) < 1:
                raise ConfigurationError(
                    f"{name} must be at least 1, got {getattr(self, name)}",
                    config_key=f"production.{name}",
                )
        if not 1 <= self.scene_concurrency <= 8:
            raise ConfigurationError(
                f"scene_concurrency must be 1-8, got {self.scene_concurrency}",
                config_key="production.scene_concurrency",
            )
        if self.motion_poll_interval <= 0 or self.motion_max_wait < self.motion_poll_interval:
            raise ConfigurationError(
                "motion_max_wait must be at least one motion_poll_interval",
                config_key="production.motion_max_wait",
            )


@dataclass
class OutputConfig:
    """Output and storage settings."""

    base_path: str = "./output"
    bundle_suffix: str = ".zip"


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides a unified interface to all configuration settings with:
    - Type-safe access to configuration values
    - Validation on load
    - Environment variable interpolation
    - Sensible defaults for all values
    """

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    production: ProductionConfig = field(default_factory=ProductionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Raw config for provider-specific extensions
    _raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to YAML config file (defaults.yaml)

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/defaults.yaml"),
            Path("./defaults.yaml"),
            Path.home() / ".shorts-producer" / "config.yaml",
        ]

        if path:
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        try:
            return cls(
                gateway=GatewayConfig(**(data.get("gateway") or {})),
                production=ProductionConfig(**(data.get("production") or {})),
                output=OutputConfig(**(data.get("output") or {})),
                _raw=data,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            # Handle ${VAR} and ${VAR:-default} patterns
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        result = {}
        for section in ["gateway", "production", "output"]:
            result[section] = asdict(getattr(self, section))
        # Never serialize the credential
        result["gateway"]["api_key"] = "***REDACTED***" if self.gateway.api_key else None
        return result


# =============================================================================
# Convenience Functions
# =============================================================================


_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance (lazily loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = Config.load()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload on next access)."""
    global _global_config
    _global_config = None
