"""Pydantic request/response models for the AreaFlow API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class StartRequest(BaseModel):
    interval_seconds: Optional[float] = Field(default=None, gt=0)


class SweepResponse(BaseModel):
    skipped: bool
    report: Optional[Dict[str, Any]] = None


class SetupResponse(BaseModel):
    area_id: str
    metadata: Optional[Dict[str, Any]] = None
