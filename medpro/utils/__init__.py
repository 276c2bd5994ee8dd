"""Utility modules for the MedPro practitioner client."""

from medpro.utils.config import settings, get_api_url, AssistantConfig
from medpro.utils.logging import (
    get_logger,
    get_latency_logger,
    get_compliance_logger,
    monitor_latency,
    RequestContext,
)
from medpro.utils.cache import CacheManager

__all__ = [
    "settings",
    "get_api_url",
    "AssistantConfig",
    "get_logger",
    "get_latency_logger",
    "get_compliance_logger",
    "monitor_latency",
    "RequestContext",
    "CacheManager",
]
