"""AreaFlow engine models: Areas, bindings, credentials and evaluation results."""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import MissingCredentialError


@dataclass
class TriggerBinding:
    """Which trigger implements an Area's condition, plus its cursor metadata."""
    id: str
    service_name: str
    trigger_name: str
    params: Dict[str, Any] = field(default_factory=dict)
    connection_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReactionBinding:
    """A reaction to run when the Area fires. Params may hold {{placeholders}}."""
    id: str
    service_name: str
    reaction_name: str
    params: Dict[str, Any] = field(default_factory=dict)
    connection_id: Optional[str] = None
    position: int = 0


@dataclass
class Area:
    """One user-configured automation: a trigger bound to zero or more reactions."""
    id: str
    user_id: str
    name: str
    trigger: TriggerBinding
    reactions: List[ReactionBinding] = field(default_factory=list)
    description: Optional[str] = None
    enabled: bool = True
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "last_triggered_at": self.last_triggered_at.isoformat() if self.last_triggered_at else None,
            "trigger_count": self.trigger_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "trigger": {
                "id": self.trigger.id,
                "service": self.trigger.service_name,
                "name": self.trigger.trigger_name,
                "params": self.trigger.params,
                "connection_id": self.trigger.connection_id,
                "metadata": self.trigger.metadata,
            },
            "reactions": [
                {
                    "id": r.id,
                    "service": r.service_name,
                    "name": r.reaction_name,
                    "params": r.params,
                    "connection_id": r.connection_id,
                    "position": r.position,
                }
                for r in self.reactions
            ],
        }


@dataclass
class Credentials:
    """Tokens resolved from a stored connection. The engine never mutates them."""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    provider_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc)


@dataclass
class EvaluationContext:
    """Per-evaluation context handed to a trigger check or reaction execute."""
    user_id: str
    credentials: Credentials = field(default_factory=Credentials)
    metadata: Dict[str, Any] = field(default_factory=dict)
    trigger_data: Dict[str, Any] = field(default_factory=dict)

    def require_access_token(self, service_name: str) -> str:
        """Return the access token or raise MissingCredentialError."""
        token = self.credentials.access_token
        if not token:
            raise MissingCredentialError(service_name)
        return token


@dataclass
class CheckResult:
    """Verdict of a trigger check.

    metadata=None means the cursor is unchanged; otherwise it replaces the
    stored cursor metadata wholesale.
    """
    fired: bool = False
    data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def idle(cls) -> "CheckResult":
        return cls(fired=False)


class AreaOutcome(str, Enum):
    """What happened to one Area during a sweep."""
    SKIPPED = "skipped"  # configuration problem, nothing mutated
    IDLE = "idle"        # checked, did not fire
    FIRED = "fired"
    FAILED = "failed"    # unexpected error or store failure


@dataclass
class SweepReport:
    """Summary of one sweep over all enabled Areas."""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    areas_total: int = 0
    fired: int = 0
    idle: int = 0
    skipped: int = 0
    failed: int = 0
    reactions_succeeded: int = 0
    reactions_failed: int = 0
    load_failed: bool = False

    def record(self, outcome: AreaOutcome) -> None:
        if outcome == AreaOutcome.FIRED:
            self.fired += 1
        elif outcome == AreaOutcome.IDLE:
            self.idle += 1
        elif outcome == AreaOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "areas_total": self.areas_total,
            "fired": self.fired,
            "idle": self.idle,
            "skipped": self.skipped,
            "failed": self.failed,
            "reactions_succeeded": self.reactions_succeeded,
            "reactions_failed": self.reactions_failed,
            "load_failed": self.load_failed,
        }


@dataclass
class EngineConfig:
    """Sweep scheduler settings, read from the ``engine`` config section."""
    interval_seconds: float = 60.0
    call_timeout_seconds: float = 10.0
    max_concurrency: int = 4
    autostart: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        data = data or {}
        config = cls(
            interval_seconds=float(data.get("interval_seconds", 60.0)),
            call_timeout_seconds=float(data.get("call_timeout_seconds", 10.0)),
            max_concurrency=int(data.get("max_concurrency", 4)),
            autostart=bool(data.get("autostart", True)),
        )
        if config.interval_seconds <= 0:
            raise ValueError("engine.interval_seconds must be positive")
        if config.call_timeout_seconds <= 0:
            raise ValueError("engine.call_timeout_seconds must be positive")
        if config.max_concurrency < 1:
            raise ValueError("engine.max_concurrency must be at least 1")
        return config


def copy_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Deep copy cursor metadata so a trigger cannot mutate the stored value."""
    return copy.deepcopy(metadata) if metadata else {}
