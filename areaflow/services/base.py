"""
Capability contract for integrated services.

A Service bundles named Triggers and Reactions. Each capability is a frozen
dataclass holding plain async callables, so adding a service means writing
a module of functions and one ``Service(...)`` value. The engine has no
per-service logic.

    async def check_new_thing(params, context) -> CheckResult: ...
    async def do_something(params, context) -> None: ...

    my_service = Service(
        name="thing",
        description="Things",
        triggers=(Trigger(name="new_thing", description="...", check=check_new_thing),),
        reactions=(Reaction(name="do_something", description="...", execute=do_something),),
    )
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..engine.models import CheckResult, EvaluationContext

logger = logging.getLogger(__name__)

Params = Dict[str, Any]
CheckFn = Callable[[Params, EvaluationContext], Awaitable[CheckResult]]
ExecuteFn = Callable[[Params, EvaluationContext], Awaitable[None]]
SetupFn = Callable[[Params, EvaluationContext], Awaitable[Optional[Dict[str, Any]]]]
TeardownFn = Callable[[Params, EvaluationContext], Awaitable[None]]


@dataclass(frozen=True)
class Parameter:
    """Declared parameter of a capability. Validated by the API layer, not the engine."""
    type: str  # "string" | "number" | "boolean" | "select" | "multiselect"
    label: str
    required: bool = True
    description: str = ""
    default: Any = None
    options: Tuple[Tuple[str, Any], ...] = ()


@dataclass(frozen=True)
class Trigger:
    name: str
    description: str
    check: CheckFn
    params: Dict[str, Parameter] = field(default_factory=dict)
    variables: Dict[str, str] = field(default_factory=dict)  # name -> description of emitted data
    setup: Optional[SetupFn] = None
    teardown: Optional[TeardownFn] = None


@dataclass(frozen=True)
class Reaction:
    name: str
    description: str
    execute: ExecuteFn
    params: Dict[str, Parameter] = field(default_factory=dict)


@dataclass(frozen=True)
class Service:
    name: str
    description: str
    triggers: Tuple[Trigger, ...] = ()
    reactions: Tuple[Reaction, ...] = ()
    requires_auth: bool = True
    auth_type: str = "oauth2"  # "oauth2" | "api_key" | "none"

    def get_trigger(self, name: str) -> Optional[Trigger]:
        for trigger in self.triggers:
            if trigger.name == name:
                return trigger
        return None

    def get_reaction(self, name: str) -> Optional[Reaction]:
        for reaction in self.reactions:
            if reaction.name == name:
                return reaction
        return None


def advance_cursor(
    metadata: Dict[str, Any],
    key: str,
    latest_id: Any,
    build_data: Callable[[], Dict[str, Any]],
) -> CheckResult:
    """Single-slot cursor over "newest entity id".

    - No prior value: record ``latest_id`` as baseline, do not fire.
    - Same value: nothing changed.
    - Different value: fire once with ``build_data()`` and move the cursor.
    """
    last_id = metadata.get(key)
    if last_id is None:
        return CheckResult(fired=False, metadata={key: latest_id})
    if latest_id == last_id:
        return CheckResult.idle()
    return CheckResult(fired=True, data=build_data(), metadata={key: latest_id})


def split_csv(value: Optional[str]) -> List[str]:
    """'bug, enhancement,' -> ['bug', 'enhancement']"""
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]
