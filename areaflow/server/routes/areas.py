"""Trigger setup/teardown routes, called when an Area's trigger binding is created or removed."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from ...errors import ConfigurationError, ExternalServiceError
from ..app import require_app, verify_api_key
from ..models import SetupResponse

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_area(app, area_id: str):
    area = await app.area_store.get_area(area_id)
    if area is None:
        raise HTTPException(404, f"Area not found: {area_id}")
    return area


@router.post("/api/areas/{area_id}/setup", dependencies=[Depends(verify_api_key)])
async def setup_area(area_id: str) -> SetupResponse:
    """Run the trigger's setup hook and store the baseline cursor."""
    app = require_app()
    area = await _load_area(app, area_id)
    try:
        metadata = await app.lifecycle.setup(area)
    except ConfigurationError as e:
        raise HTTPException(400, str(e))
    except ExternalServiceError as e:
        logger.warning(f"Setup failed for area {area_id}: {e}")
        raise HTTPException(502, str(e))
    except asyncio.TimeoutError:
        logger.warning(f"Setup timed out for area {area_id}")
        raise HTTPException(504, "Trigger setup timed out")
    return SetupResponse(area_id=area_id, metadata=metadata)


@router.post("/api/areas/{area_id}/teardown", dependencies=[Depends(verify_api_key)])
async def teardown_area(area_id: str):
    app = require_app()
    area = await _load_area(app, area_id)
    try:
        await app.lifecycle.teardown(area)
    except ConfigurationError as e:
        raise HTTPException(400, str(e))
    except ExternalServiceError as e:
        logger.warning(f"Teardown failed for area {area_id}: {e}")
        raise HTTPException(502, str(e))
    except asyncio.TimeoutError:
        logger.warning(f"Teardown timed out for area {area_id}")
        raise HTTPException(504, "Trigger teardown timed out")
    return {"area_id": area_id, "status": "ok"}
