"""
Trigger setup/teardown hooks.

Called by the API layer when a trigger binding is created or removed. Unlike
sweep-time evaluation, errors here propagate so the caller can report them
to the user (bad repository name, bot not in channel, ...).

Usage:
    lifecycle = TriggerLifecycle(area_store, connections, registry)
    area = await area_store.get_area(area_id)
    await lifecycle.setup(area)      # stores the baseline cursor, if any
    await lifecycle.teardown(area)
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .binding import resolve_credentials, resolve_trigger
from .models import Area, EvaluationContext, copy_metadata
from .protocols import AreaStoreProtocol, CredentialResolverProtocol

if TYPE_CHECKING:
    from ..services.registry import ServiceRegistry

logger = logging.getLogger(__name__)


class TriggerLifecycle:

    def __init__(
        self,
        store: AreaStoreProtocol,
        resolver: CredentialResolverProtocol,
        registry: "ServiceRegistry",
        call_timeout: float = 10,
    ):
        self._store = store
        self._resolver = resolver
        self._registry = registry
        self._call_timeout = call_timeout

    async def _context(self, area: Area):
        binding = area.trigger
        service, trigger = resolve_trigger(self._registry, binding)
        credentials = await resolve_credentials(
            self._resolver, service, binding.connection_id, self._call_timeout
        )
        context = EvaluationContext(
            user_id=area.user_id,
            credentials=credentials,
            metadata=copy_metadata(binding.metadata),
        )
        return trigger, context

    async def setup(self, area: Area) -> Optional[Dict[str, Any]]:
        """Run the trigger's setup hook and persist the baseline it returns.

        Returns the stored metadata, or None when the trigger has no hook or
        the hook returned nothing.

        Raises:
            ConfigurationError: unknown capability or missing connection
            ExternalServiceError: the service rejected the binding
        """
        trigger, context = await self._context(area)
        if trigger.setup is None:
            return None

        binding = area.trigger
        metadata = await asyncio.wait_for(
            trigger.setup(dict(binding.params), context), timeout=self._call_timeout
        )
        logger.info(f"Set up trigger {binding.service_name}.{binding.trigger_name} for area {area.id}")
        if metadata is None:
            return None

        await self._store.update_trigger_metadata(binding.id, metadata)
        binding.metadata = copy_metadata(metadata)
        return metadata

    async def teardown(self, area: Area) -> None:
        trigger, context = await self._context(area)
        if trigger.teardown is None:
            return
        binding = area.trigger
        await asyncio.wait_for(
            trigger.teardown(dict(binding.params), context), timeout=self._call_timeout
        )
        logger.info(f"Tore down trigger {binding.service_name}.{binding.trigger_name} for area {area.id}")
