"""
Core Module
===========

Core utilities, configuration, and exceptions for the Shorts Producer.
"""

from .config import Config, GatewayConfig, ProductionConfig, OutputConfig, get_config
from .exceptions import (
    ProducerError,
    ConfigurationError,
    FetchFailure,
    RateLimitError,
    MalformedResponse,
    MissingArtifact,
    CredentialRequired,
    PreconditionError,
    BundleAssemblyFailure,
    GenerationTimeout,
    ValidationError,
)
from .security import sanitize_filename, sanitize_prompt, redact_api_key

__all__ = [
    # Configuration
    "Config",
    "GatewayConfig",
    "ProductionConfig",
    "OutputConfig",
    "get_config",
    # Exceptions
    "ProducerError",
    "ConfigurationError",
    "FetchFailure",
    "RateLimitError",
    "MalformedResponse",
    "MissingArtifact",
    "CredentialRequired",
    "PreconditionError",
    "BundleAssemblyFailure",
    "GenerationTimeout",
    "ValidationError",
    # Security
    "sanitize_filename",
    "sanitize_prompt",
    "redact_api_key",
]
