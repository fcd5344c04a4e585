"""
AreaFlow Protocols - Collaborator interfaces consumed by the sweep scheduler

The engine only depends on these contracts. Postgres implementations live in
``areaflow.engine.store`` and ``areaflow.credentials``; tests use in-memory fakes.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .models import Area, Credentials


@runtime_checkable
class AreaStoreProtocol(Protocol):
    """
    Durable storage for Areas, cursor metadata and trigger statistics.

    Every call must be atomic on its own; the engine never needs a
    transaction spanning several calls.
    """

    async def list_enabled_areas(self) -> List[Area]:
        """Return every enabled Area with its trigger and reaction bindings."""
        ...

    async def get_area(self, area_id: str) -> Optional[Area]:
        """Return one Area (enabled or not), or None."""
        ...

    async def update_trigger_metadata(self, trigger_binding_id: str, metadata: Dict[str, Any]) -> None:
        """Replace the cursor metadata of one trigger binding."""
        ...

    async def record_firing(self, area_id: str, fired_at: datetime) -> None:
        """Increment trigger_count and set last_triggered_at in one write."""
        ...


@runtime_checkable
class CredentialResolverProtocol(Protocol):
    """Resolves a connection id to its current tokens."""

    async def resolve(self, connection_id: str) -> Optional[Credentials]:
        """
        Args:
            connection_id: The binding's connection reference

        Returns:
            Credentials, or None if the connection does not exist
        """
        ...
