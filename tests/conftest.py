"""Shared in-memory collaborators for engine tests."""

import copy
import itertools
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pytest

from areaflow.engine.models import Area, Credentials, ReactionBinding, TriggerBinding


class FakeAreaStore:
    """AreaStoreProtocol backed by a dict. Records every write."""

    def __init__(self):
        self.areas: Dict[str, Area] = {}
        self.metadata_writes: List[Tuple[str, Dict[str, Any]]] = []
        self.firings: List[Tuple[str, datetime]] = []
        self.fail_list = False
        self.fail_metadata_write = False

    def add(self, area: Area) -> Area:
        self.areas[area.id] = area
        return area

    async def list_enabled_areas(self) -> List[Area]:
        if self.fail_list:
            raise ConnectionError("database unreachable")
        return [copy.deepcopy(a) for a in self.areas.values() if a.enabled]

    async def get_area(self, area_id: str) -> Optional[Area]:
        area = self.areas.get(area_id)
        return copy.deepcopy(area) if area else None

    async def update_trigger_metadata(self, trigger_binding_id: str, metadata: Dict[str, Any]) -> None:
        if self.fail_metadata_write:
            raise ConnectionError("write failed")
        self.metadata_writes.append((trigger_binding_id, copy.deepcopy(metadata)))
        for area in self.areas.values():
            if area.trigger.id == trigger_binding_id:
                area.trigger.metadata = copy.deepcopy(metadata)

    async def record_firing(self, area_id: str, fired_at: datetime) -> None:
        self.firings.append((area_id, fired_at))
        area = self.areas[area_id]
        area.trigger_count += 1
        area.last_triggered_at = fired_at


class FakeResolver:
    """CredentialResolverProtocol over a dict of connection id -> Credentials."""

    def __init__(self, connections: Optional[Dict[str, Credentials]] = None):
        self.connections = dict(connections or {})
        self.lookups: List[str] = []

    async def resolve(self, connection_id: str) -> Optional[Credentials]:
        self.lookups.append(connection_id)
        return self.connections.get(connection_id)


@pytest.fixture
def area_store():
    return FakeAreaStore()


@pytest.fixture
def resolver():
    return FakeResolver({
        "conn-github": Credentials(access_token="gh-token"),
        "conn-discord": Credentials(access_token="bot-token"),
        "conn-gmail": Credentials(access_token="google-token"),
    })


@pytest.fixture
def make_area():
    """Factory: make_area(service, trigger, metadata=..., reactions=[(service, name, params, conn)])."""
    counter = itertools.count(1)

    def _make(
        service_name: str = "github",
        trigger_name: str = "new_issue",
        params: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        connection_id: Optional[str] = "conn-github",
        reactions: Optional[List[Tuple[str, str, Dict[str, Any], Optional[str]]]] = None,
        **area_kwargs: Any,
    ) -> Area:
        n = next(counter)
        user_id = area_kwargs.pop("user_id", "user-1")
        name = area_kwargs.pop("name", f"Area {n}")
        return Area(
            id=f"area-{n}",
            user_id=user_id,
            name=name,
            trigger=TriggerBinding(
                id=f"trigger-{n}",
                service_name=service_name,
                trigger_name=trigger_name,
                params=params if params is not None else {"owner": "acme", "repo": "app"},
                connection_id=connection_id,
                metadata=metadata if metadata is not None else {},
            ),
            reactions=[
                ReactionBinding(
                    id=f"reaction-{n}-{i}",
                    service_name=r_service,
                    reaction_name=r_name,
                    params=r_params,
                    connection_id=r_conn,
                    position=i,
                )
                for i, (r_service, r_name, r_params, r_conn) in enumerate(reactions or [])
            ],
            **area_kwargs,
        )

    return _make
