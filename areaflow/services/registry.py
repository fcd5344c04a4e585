"""
Service Registry - catalog of integrated services and their capabilities

Populated once at startup, read-only afterwards. Lookups never raise:
a binding may reference a capability that has since been removed, so
"not found" is a normal outcome for callers.

Example:
    registry = ServiceRegistry()
    register_builtin_services(registry)

    trigger = registry.get_trigger("github", "new_issue")
    reaction = registry.get_reaction("discord", "send_message")
"""

import logging
from typing import Dict, List, Optional

from .base import Reaction, Service, Trigger

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Maps service name -> Service."""

    def __init__(self):
        self._services: Dict[str, Service] = {}

    def register(self, service: Service) -> None:
        """Register a service. Registering the same name twice is a programming error."""
        if service.name in self._services:
            raise ValueError(f"Service already registered: {service.name}")
        self._services[service.name] = service
        logger.info(
            f"Registered service: {service.name} "
            f"({len(service.triggers)} triggers, {len(service.reactions)} reactions)"
        )

    def get(self, name: str) -> Optional[Service]:
        return self._services.get(name)

    def get_trigger(self, service_name: str, trigger_name: str) -> Optional[Trigger]:
        service = self._services.get(service_name)
        if service is None:
            return None
        return service.get_trigger(trigger_name)

    def get_reaction(self, service_name: str, reaction_name: str) -> Optional[Reaction]:
        service = self._services.get(service_name)
        if service is None:
            return None
        return service.get_reaction(reaction_name)

    def all(self) -> List[Service]:
        return list(self._services.values())

    def names(self) -> List[str]:
        return list(self._services.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)
