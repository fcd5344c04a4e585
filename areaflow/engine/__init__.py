"""
AreaFlow Engine - sweep scheduling, trigger evaluation and reaction dispatch
"""

from .models import (
    Area,
    AreaOutcome,
    CheckResult,
    Credentials,
    EngineConfig,
    EvaluationContext,
    ReactionBinding,
    SweepReport,
    TriggerBinding,
)
from .interpolator import interpolate
from .protocols import AreaStoreProtocol, CredentialResolverProtocol
from .scheduler import SweepScheduler
from .lifecycle import TriggerLifecycle
from .store import AreaStore

__all__ = [
    "Area",
    "AreaOutcome",
    "CheckResult",
    "Credentials",
    "EngineConfig",
    "EvaluationContext",
    "ReactionBinding",
    "SweepReport",
    "TriggerBinding",
    "interpolate",
    "AreaStoreProtocol",
    "CredentialResolverProtocol",
    "SweepScheduler",
    "TriggerLifecycle",
    "AreaStore",
]
