"""
Backend Client Factory

Provides a single entry point for obtaining a backend client instance.
The factory keeps the services agnostic about which implementation is
being used.

Usage:
    from pos_gateway.backend import get_backend

    # Returns InMemoryBackend or RestBackendClient based on ENV_MODE
    backend = get_backend()
    rows = await backend.select("restaurant_tables", filters=[eq("is_active", True)])

Environment Switching:
    - ENV_MODE=development → InMemoryBackend seeded with demo data
    - ENV_MODE=staging → RestBackendClient (staging project)
    - ENV_MODE=production → RestBackendClient (live project)
"""

import logging
from functools import lru_cache

from pos_gateway.core.config import get_settings
from pos_gateway.backend.base import (
    BaseBackendClient,
    Filter,
    OrderBy,
    eq,
    neq,
    gt,
    gte,
    lt,
    lte,
    in_,
    ilike,
    is_null,
)
from pos_gateway.backend.mock import InMemoryBackend
from pos_gateway.backend.rest import RestBackendClient
from pos_gateway.backend.seed import demo_tables

logger = logging.getLogger(__name__)


@lru_cache()
def get_backend() -> BaseBackendClient:
    """
    Get the configured backend client.

    The instance is cached so every service shares one HTTP connection
    pool (or, in development, one in-memory dataset).

    Raises:
        ValueError: If real services are requested but not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Backend: Using InMemoryBackend (development mode)")
        return InMemoryBackend(seed=demo_tables())

    logger.info(f"Backend: Using RestBackendClient ({settings.env_mode.value} mode)")
    return RestBackendClient()


def reset_backend() -> None:
    """
    Clear the cached backend instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_backend.cache_clear()
    logger.debug("Backend cache cleared")


__all__ = [
    "get_backend",
    "reset_backend",
    "BaseBackendClient",
    "InMemoryBackend",
    "RestBackendClient",
    "Filter",
    "OrderBy",
    "eq",
    "neq",
    "gt",
    "gte",
    "lt",
    "lte",
    "in_",
    "ilike",
    "is_null",
]
