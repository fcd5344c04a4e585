"""FastAPI app creation, global state, and auth helpers."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from ..app import AreaFlow

logger = logging.getLogger(__name__)

_config_path = os.getenv("AREAFLOW_CONFIG", "config.yaml")

_app: Optional[AreaFlow] = None


def _try_load_app():
    """Attempt to load AreaFlow from config. Logs and leaves _app unset on failure."""
    global _app
    try:
        if os.path.exists(_config_path):
            _app = AreaFlow(_config_path)
            logger.info(f"AreaFlow loaded from {_config_path}")
        else:
            logger.warning(f"Config not found: {_config_path}")
    except Exception as e:
        logger.warning(f"Failed to load config: {e}")
        _app = None


def require_app() -> AreaFlow:
    """Raise 503 if the engine is not configured or not started yet."""
    if _app is None or not _app.started:
        raise HTTPException(503, "AreaFlow engine is not running")
    return _app


def set_app(new_app: Optional[AreaFlow]):
    """Replace the global _app instance (tests and embedding)."""
    global _app
    _app = new_app


def get_app_instance() -> Optional[AreaFlow]:
    return _app


# ── Optional API key authentication ──

_API_KEY = os.getenv("AREAFLOW_API_KEY")
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    request: Request,
    api_key_header_value: Optional[str] = Security(_api_key_header),
):
    """Verify API key from Authorization: Bearer <key> or X-API-Key header.

    When AREAFLOW_API_KEY is not set, all requests are allowed (dev mode).
    """
    if _API_KEY is None:
        return None

    if api_key_header_value and api_key_header_value == _API_KEY:
        return api_key_header_value

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == _API_KEY:
            return token

    raise HTTPException(401, "Invalid or missing API key")


@asynccontextmanager
async def lifespan(_api: FastAPI):
    if _app is None:
        _try_load_app()
    if _app is not None:
        await _app.start()
    try:
        yield
    finally:
        if _app is not None and _app.started:
            await _app.shutdown()


def _create_api() -> FastAPI:
    """Create and configure the FastAPI app with routes."""
    from .. import __version__

    _api = FastAPI(title="AreaFlow", version=__version__, lifespan=lifespan)

    if _API_KEY is None:
        logger.warning(
            "AREAFLOW_API_KEY is not set. Engine control endpoints are unauthenticated."
        )

    from .routes import register_routes
    register_routes(_api)
    return _api


api = _create_api()
