"""
AreaFlow - trigger/reaction automation engine

Areas bind one Trigger on a third-party service to any number of Reactions.
A sweep scheduler polls every enabled Area, keeps per-trigger cursor state
in Postgres, and runs reactions with the trigger's data interpolated into
their parameters.
"""

__version__ = "0.1.0"

from .app import AreaFlow
from .engine import (
    Area,
    AreaOutcome,
    CheckResult,
    Credentials,
    EvaluationContext,
    ReactionBinding,
    SweepReport,
    SweepScheduler,
    TriggerBinding,
    TriggerLifecycle,
    interpolate,
)
from .errors import (
    AreaFlowError,
    ConfigurationError,
    ExternalServiceError,
    MissingConnectionError,
    MissingCredentialError,
    PermanentExternalError,
    TransientExternalError,
    UnknownCapabilityError,
)
from .services import Parameter, Reaction, Service, ServiceRegistry, Trigger

__all__ = [
    "__version__",
    "AreaFlow",
    "Area",
    "AreaOutcome",
    "CheckResult",
    "Credentials",
    "EvaluationContext",
    "ReactionBinding",
    "SweepReport",
    "SweepScheduler",
    "TriggerBinding",
    "TriggerLifecycle",
    "interpolate",
    "AreaFlowError",
    "ConfigurationError",
    "ExternalServiceError",
    "MissingConnectionError",
    "MissingCredentialError",
    "PermanentExternalError",
    "TransientExternalError",
    "UnknownCapabilityError",
    "Parameter",
    "Reaction",
    "Service",
    "ServiceRegistry",
    "Trigger",
]
