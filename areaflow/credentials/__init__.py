"""AreaFlow credentials - resolution of stored third-party connections."""

from .store import ConnectionStore

__all__ = ["ConnectionStore"]
