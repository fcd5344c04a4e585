"""Resolution of bindings to capabilities and credentials, shared by the scheduler and lifecycle."""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Tuple

from ..errors import MissingConnectionError, UnknownCapabilityError
from .models import Credentials, ReactionBinding, TriggerBinding
from .protocols import CredentialResolverProtocol

if TYPE_CHECKING:
    from ..services.base import Reaction, Service, Trigger
    from ..services.registry import ServiceRegistry

logger = logging.getLogger(__name__)


def resolve_trigger(registry: "ServiceRegistry", binding: TriggerBinding) -> Tuple["Service", "Trigger"]:
    """Raises UnknownCapabilityError when the service or trigger is not registered."""
    service = registry.get(binding.service_name)
    if service is None:
        raise UnknownCapabilityError(binding.service_name)
    trigger = service.get_trigger(binding.trigger_name)
    if trigger is None:
        raise UnknownCapabilityError(binding.service_name, binding.trigger_name)
    return service, trigger


def resolve_reaction(registry: "ServiceRegistry", binding: ReactionBinding) -> Tuple["Service", "Reaction"]:
    service = registry.get(binding.service_name)
    if service is None:
        raise UnknownCapabilityError(binding.service_name)
    reaction = service.get_reaction(binding.reaction_name)
    if reaction is None:
        raise UnknownCapabilityError(binding.service_name, binding.reaction_name)
    return service, reaction


async def resolve_credentials(
    resolver: CredentialResolverProtocol,
    service: "Service",
    connection_id: Optional[str],
    timeout: Optional[float] = None,
) -> Credentials:
    """
    Look up the credentials a binding runs with.

    Services that need no auth run with empty credentials when the binding
    has no connection. Raises MissingConnectionError when a required
    connection is absent, asyncio.TimeoutError when the lookup is too slow.
    """
    if not connection_id:
        if not service.requires_auth:
            return Credentials()
        raise MissingConnectionError(connection_id, service.name)

    credentials = await asyncio.wait_for(resolver.resolve(connection_id), timeout=timeout)
    if credentials is None:
        raise MissingConnectionError(connection_id, service.name)
    if credentials.is_expired:
        # Refresh happens outside the engine; the call may still fail with 401
        logger.warning(f"Connection {connection_id} for {service.name} has an expired token")
    return credentials
