"""
AreaFlow AreaStore - Postgres storage for Areas, cursor metadata and statistics.

Implements AreaStoreProtocol on the shared asyncpg pool. Every method is a
single atomic statement (or a read-only transaction), so the engine never
holds a transaction across external calls.

Tables: areas, area_triggers (1:1), area_reactions (1:n)
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..db import Repository, json_object
from .models import Area, ReactionBinding, TriggerBinding

logger = logging.getLogger(__name__)

_AREA_COLUMNS = """
    a.id, a.user_id, a.name, a.description, a.enabled,
    a.last_triggered_at, a.trigger_count, a.created_at, a.updated_at,
    t.id AS trigger_id, t.service_name, t.trigger_name,
    t.params, t.metadata, t.connection_id
"""


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _row_to_area(row: Any, reactions: List[ReactionBinding]) -> Area:
    return Area(
        id=str(row["id"]),
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        enabled=row["enabled"],
        last_triggered_at=row["last_triggered_at"],
        trigger_count=row["trigger_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        trigger=TriggerBinding(
            id=str(row["trigger_id"]),
            service_name=row["service_name"],
            trigger_name=row["trigger_name"],
            params=json_object(row["params"]),
            connection_id=_str_or_none(row["connection_id"]),
            metadata=json_object(row["metadata"]),
        ),
        reactions=reactions,
    )


def _row_to_reaction(row: Any) -> ReactionBinding:
    return ReactionBinding(
        id=str(row["id"]),
        service_name=row["service_name"],
        reaction_name=row["reaction_name"],
        params=json_object(row["params"]),
        connection_id=_str_or_none(row["connection_id"]),
        position=row["position"],
    )


class AreaStore(Repository):
    """Durable Area storage used by the sweep scheduler."""

    TABLE_NAME = "areas"

    async def list_enabled_areas(self) -> List[Area]:
        """All enabled Areas with their bindings, read in one snapshot."""
        async with self.db.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                rows = await conn.fetch(
                    f"""
                    SELECT {_AREA_COLUMNS}
                    FROM areas a
                    JOIN area_triggers t ON t.area_id = a.id
                    WHERE a.enabled = TRUE
                    ORDER BY a.created_at
                    """
                )
                if not rows:
                    return []
                reaction_rows = await conn.fetch(
                    """
                    SELECT id, area_id, position, service_name, reaction_name, params, connection_id
                    FROM area_reactions
                    WHERE area_id = ANY($1::uuid[])
                    ORDER BY area_id, position
                    """,
                    [row["id"] for row in rows],
                )

        by_area: Dict[str, List[ReactionBinding]] = {}
        for r in reaction_rows:
            by_area.setdefault(str(r["area_id"]), []).append(_row_to_reaction(r))

        return [_row_to_area(row, by_area.get(str(row["id"]), [])) for row in rows]

    async def get_area(self, area_id: str) -> Optional[Area]:
        """One Area by id, enabled or not. Malformed ids read as missing."""
        try:
            key = uuid.UUID(str(area_id))
        except ValueError:
            logger.warning(f"Malformed area id: {area_id!r}")
            return None

        row = await self.db.fetchrow(
            f"""
            SELECT {_AREA_COLUMNS}
            FROM areas a
            JOIN area_triggers t ON t.area_id = a.id
            WHERE a.id = $1
            """,
            key,
        )
        if not row:
            return None
        reaction_rows = await self.db.fetch(
            """
            SELECT id, area_id, position, service_name, reaction_name, params, connection_id
            FROM area_reactions WHERE area_id = $1
            ORDER BY position
            """,
            key,
        )
        return _row_to_area(row, [_row_to_reaction(r) for r in reaction_rows])

    async def update_trigger_metadata(self, trigger_binding_id: str, metadata: Dict[str, Any]) -> None:
        result = await self.db.execute(
            "UPDATE area_triggers SET metadata = $2 WHERE id = $1",
            trigger_binding_id,
            dict(metadata),
        )
        if result != "UPDATE 1":
            logger.warning(f"Trigger binding {trigger_binding_id} not found when saving metadata")

    async def record_firing(self, area_id: str, fired_at: datetime) -> None:
        await self.db.execute(
            """
            UPDATE areas
            SET trigger_count = trigger_count + 1,
                last_triggered_at = $2,
                updated_at = NOW()
            WHERE id = $1
            """,
            area_id,
            fired_at,
        )
