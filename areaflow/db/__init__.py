"""
AreaFlow Database - asyncpg-based data access.

- Database: shared connection pool manager (one per app), jsonb as dicts
- Repository: base class for table-owning stores
- ensure_schema: apply pending migrations on startup
"""

from .database import Database, register_json_codecs
from .repository import Repository, json_object
from .initialize import ensure_schema

__all__ = ["Database", "Repository", "ensure_schema", "json_object", "register_json_codecs"]
