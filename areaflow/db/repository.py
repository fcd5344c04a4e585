"""
AreaFlow Repository - Base class for table-owning data access.

Each store subclasses Repository and defines:
- TABLE_NAME: the table it owns
- Domain-specific query methods

Tables themselves are created by ``ensure_schema`` (see initialize.py).
"""

import logging
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)


def json_object(value: Any) -> Dict[str, Any]:
    """A jsonb column as a dict; NULL or a non-object value reads as empty."""
    return dict(value) if isinstance(value, dict) else {}


class Repository:
    """
    Base class for domain data access.

    Subclasses define TABLE_NAME and domain methods.
    """

    TABLE_NAME: str = ""

    def __init__(self, db: "Database"):
        self._db = db

    @property
    def db(self) -> "Database":
        return self._db
