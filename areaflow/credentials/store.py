"""
AreaFlow ConnectionStore - read side of stored third-party credentials.

Connections are created and refreshed by the OAuth / API layer; the engine
only resolves them. Implements CredentialResolverProtocol.

Usage:
    db = Database(dsn="postgresql://...")
    await db.initialize()
    connections = ConnectionStore(db)

    creds = await connections.resolve("7b0c...")  # Credentials or None
"""

import logging
import uuid
from typing import Optional

from ..db import Repository, json_object
from ..engine.models import Credentials

logger = logging.getLogger(__name__)


class ConnectionStore(Repository):
    """
    Resolves connection ids to Credentials.

    Table: connections
    Primary key: id, unique (user_id, service)
    """

    TABLE_NAME = "connections"

    async def resolve(self, connection_id: str) -> Optional[Credentials]:
        """Return the connection's tokens, or None if it does not exist."""
        try:
            key = uuid.UUID(str(connection_id))
        except ValueError:
            logger.warning(f"Malformed connection id: {connection_id!r}")
            return None

        row = await self.db.fetchrow(
            """
            SELECT access_token, refresh_token, expires_at, provider_data
            FROM connections WHERE id = $1
            """,
            key,
        )
        if not row:
            return None
        return Credentials(
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=row["expires_at"],
            provider_data=json_object(row["provider_data"]),
        )
