"""
API Integration Layer
=====================

Access to the generative-content service that produces every artifact.

Usage:
    from shorts_producer.api import get_gateway

    gateway = get_gateway("google")
    news = await gateway.fetch_news()
"""

from .base import GenerationGateway, BinaryRef, MotionJob, JobStatus
from .factory import get_gateway, gateway_from_config, list_gateways, register_gateway

__all__ = [
    "GenerationGateway",
    "BinaryRef",
    "MotionJob",
    "JobStatus",
    "get_gateway",
    "gateway_from_config",
    "list_gateways",
    "register_gateway",
]
