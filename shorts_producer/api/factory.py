"""
Gateway Factory
===============

Factory for creating generation gateway instances.
"""

import logging
from typing import Optional, List, Dict, Type

from .base import GenerationGateway
from ..core.config import GatewayConfig
from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Registry of available gateways
_GATEWAYS: Dict[str, Type[GenerationGateway]] = {}


def register_gateway(name: str):
    """Decorator to register a gateway class."""
    def decorator(cls: Type[GenerationGateway]):
        _GATEWAYS[name.lower()] = cls
        return cls
    return decorator


def get_gateway(
    name: str,
    api_key: Optional[str] = None,
    **kwargs,
) -> GenerationGateway:
    """
    Get a generation gateway instance.

    Args:
        name: Gateway name (e.g. 'google')
        api_key: Optional API key (otherwise read from environment)
        **kwargs: Additional gateway-specific arguments

    Returns:
        Configured gateway instance

    Raises:
        ConfigurationError: If the gateway name is not recognized
    """
    name_lower = name.lower()

    if name_lower not in _GATEWAYS:
        if name_lower == "google":
            from .google import GeminiGateway  # noqa: F401  (registers itself)
        else:
            raise ConfigurationError(f"Unknown gateway: {name}", config_key="gateway.provider")

    return _GATEWAYS[name_lower](api_key=api_key, **kwargs)


def gateway_from_config(config: GatewayConfig) -> GenerationGateway:
    """Build the configured gateway."""
    logger.info(f"Using generation gateway: {config.provider}")
    return get_gateway(
        config.provider,
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        settings=config,
    )


def list_gateways() -> List[str]:
    """List registered gateway names."""
    from . import google  # noqa: F401

    return list(_GATEWAYS.keys())
