"""
AreaFlow Services - capability plugins for integrated third-party services

Each module exposes one ``Service`` value. ``register_builtin_services``
installs the bundled ones into a registry at startup.
"""

import logging
from typing import Iterable, Optional

from .base import Parameter, Reaction, Service, Trigger, advance_cursor
from .discord import discord_service
from .github import github_service
from .gmail import gmail_service
from .registry import ServiceRegistry
from .steam import steam_service

logger = logging.getLogger(__name__)

BUILTIN_SERVICES = (
    github_service,
    discord_service,
    gmail_service,
    steam_service,
)


def register_builtin_services(
    registry: ServiceRegistry,
    names: Optional[Iterable[str]] = None,
) -> ServiceRegistry:
    """Register bundled services, optionally only those listed in ``names``."""
    wanted = set(names) if names is not None else None
    if wanted is not None:
        known = {s.name for s in BUILTIN_SERVICES}
        for unknown in sorted(wanted - known):
            logger.warning(f"Ignoring unknown builtin service in config: {unknown}")
    for service in BUILTIN_SERVICES:
        if wanted is None or service.name in wanted:
            registry.register(service)
    return registry


__all__ = [
    "Parameter",
    "Trigger",
    "Reaction",
    "Service",
    "ServiceRegistry",
    "advance_cursor",
    "BUILTIN_SERVICES",
    "register_builtin_services",
]
