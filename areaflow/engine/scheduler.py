"""AreaFlow SweepScheduler - periodically evaluates every enabled Area and runs its reactions."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import ConfigurationError
from .binding import resolve_credentials, resolve_reaction, resolve_trigger
from .interpolator import interpolate
from .models import (
    Area,
    AreaOutcome,
    CheckResult,
    EvaluationContext,
    ReactionBinding,
    SweepReport,
    copy_metadata,
)
from .protocols import AreaStoreProtocol, CredentialResolverProtocol

if TYPE_CHECKING:
    from ..services.registry import ServiceRegistry

logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Drives sweeps over all enabled Areas on a fixed interval.

    Each sweep re-reads Areas from the store, checks every trigger, persists
    changed cursor metadata, and runs the reactions of Areas that fired.
    A sweep still running when the next tick comes due causes that tick to
    be dropped.

    Args:
        store: Area storage (list, metadata writes, firing statistics)
        resolver: Connection id -> Credentials lookup
        registry: Registered services and their capabilities
        interval: Seconds between sweep starts (default 60)
        call_timeout: Timeout in seconds for every trigger check, reaction
            execute and credential lookup (default 10)
        max_concurrency: Areas evaluated at the same time within one sweep (default 4)
    """

    def __init__(
        self,
        store: AreaStoreProtocol,
        resolver: CredentialResolverProtocol,
        registry: "ServiceRegistry",
        interval: float = 60,
        call_timeout: float = 10,
        max_concurrency: int = 4,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._store = store
        self._resolver = resolver
        self._registry = registry
        self._interval = float(interval)
        self._call_timeout = call_timeout
        self._max_concurrency = max_concurrency
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._sweep_lock: Optional[asyncio.Lock] = None
        self._last_report: Optional[SweepReport] = None
        self._sweeps_completed = 0
        self._ticks_dropped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def sweeping(self) -> bool:
        return (self._sweep_lock is not None and self._sweep_lock.locked()) or (
            self._sweep_task is not None and not self._sweep_task.done()
        )

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def last_report(self) -> Optional[SweepReport]:
        return self._last_report

    async def start(self, interval: Optional[float] = None) -> None:
        """Start ticking: one sweep now, then one every ``interval`` seconds.

        Calling start on a running scheduler does nothing.
        """
        if self._running:
            return
        if interval is not None:
            if interval <= 0:
                raise ValueError("interval must be positive")
            self._interval = float(interval)
        self._running = True
        self._loop_task = asyncio.create_task(self._timer_loop())
        logger.info(f"SweepScheduler started (interval {self._interval:g}s)")

    async def stop(self) -> None:
        """Cancel the timer. A sweep already in flight is left to finish."""
        if not self._running and self._loop_task is None:
            return
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("SweepScheduler stopped")

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for an in-flight timer sweep; cancel it if ``timeout`` expires.

        Returns True if no sweep was left running.
        """
        task = self._sweep_task
        if task is None or task.done():
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if done:
            return True
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.warning("Abandoned in-flight sweep; unreached areas wait for the next run")
        return False

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "sweeping": self.sweeping,
            "interval_seconds": self._interval,
            "call_timeout_seconds": self._call_timeout,
            "max_concurrency": self._max_concurrency,
            "sweeps_completed": self._sweeps_completed,
            "ticks_dropped": self._ticks_dropped,
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    async def _timer_loop(self) -> None:
        while self._running:
            if self.sweeping:
                self._ticks_dropped += 1
                logger.warning("Previous sweep still running, dropping tick")
            else:
                self._sweep_task = asyncio.create_task(self.run_sweep())
            await asyncio.sleep(self._interval)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def run_sweep(self) -> Optional[SweepReport]:
        """Run one sweep over all enabled Areas.

        Returns None without doing anything if another sweep is in flight.
        """
        if self._sweep_lock is None:
            # Bound to the loop of the first sweep
            self._sweep_lock = asyncio.Lock()
        if self._sweep_lock.locked():
            logger.warning("Sweep already in progress, skipping")
            return None

        async with self._sweep_lock:
            report = SweepReport()
            try:
                areas = await self._store.list_enabled_areas()
            except Exception as e:
                logger.error(f"Failed to load enabled areas, retrying next tick: {e}")
                report.load_failed = True
                report.finished_at = datetime.now(timezone.utc)
                self._last_report = report
                return report

            report.areas_total = len(areas)
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def bounded(area: Area) -> AreaOutcome:
                async with semaphore:
                    return await self.process_area(area, report)

            outcomes: List[AreaOutcome] = await asyncio.gather(*(bounded(a) for a in areas))
            for outcome in outcomes:
                report.record(outcome)

            report.finished_at = datetime.now(timezone.utc)
            self._last_report = report
            self._sweeps_completed += 1
            logger.info(
                f"Sweep finished in {report.duration_seconds:.2f}s: "
                f"{report.areas_total} areas, {report.fired} fired, "
                f"{report.skipped} skipped, {report.failed} failed"
            )
            return report

    async def process_area(self, area: Area, report: Optional[SweepReport] = None) -> AreaOutcome:
        """Evaluate one Area. Never raises; problems become the returned outcome."""
        try:
            return await self._evaluate_area(area, report)
        except ConfigurationError as e:
            logger.warning(f"Skipping area {area.id} ({area.name}): {e}")
            return AreaOutcome.SKIPPED
        except asyncio.TimeoutError:
            logger.warning(
                f"Area {area.id} ({area.name}): {area.trigger.service_name}."
                f"{area.trigger.trigger_name} timed out after {self._call_timeout}s"
            )
            return AreaOutcome.FAILED
        except Exception as e:
            logger.error(f"Area {area.id} ({area.name}) failed: {e}")
            return AreaOutcome.FAILED

    async def _evaluate_area(self, area: Area, report: Optional[SweepReport]) -> AreaOutcome:
        binding = area.trigger
        service, trigger = resolve_trigger(self._registry, binding)
        credentials = await resolve_credentials(
            self._resolver, service, binding.connection_id, self._call_timeout
        )

        prior = copy_metadata(binding.metadata)
        context = EvaluationContext(
            user_id=area.user_id,
            credentials=credentials,
            metadata=copy_metadata(prior),
        )
        result = await asyncio.wait_for(
            trigger.check(dict(binding.params), context), timeout=self._call_timeout
        )
        if result is None:
            result = CheckResult.idle()

        if result.metadata is not None and result.metadata != prior:
            await self._store.update_trigger_metadata(binding.id, result.metadata)
            binding.metadata = copy_metadata(result.metadata)

        if not result.fired:
            logger.debug(f"Area {area.id} ({area.name}): no change")
            return AreaOutcome.IDLE

        await self._store.record_firing(area.id, datetime.now(timezone.utc))
        logger.info(
            f"Area {area.id} ({area.name}) fired: {binding.service_name}.{binding.trigger_name}, "
            f"{len(area.reactions)} reaction(s)"
        )

        variables = result.data or {}
        for reaction_binding in area.reactions:
            ok = await self._run_reaction(area, reaction_binding, variables)
            if report is not None:
                if ok:
                    report.reactions_succeeded += 1
                else:
                    report.reactions_failed += 1
        return AreaOutcome.FIRED

    async def _run_reaction(
        self,
        area: Area,
        binding: ReactionBinding,
        variables: Dict[str, Any],
    ) -> bool:
        label = f"{binding.service_name}.{binding.reaction_name}"
        try:
            service, reaction = resolve_reaction(self._registry, binding)
            credentials = await resolve_credentials(
                self._resolver, service, binding.connection_id, self._call_timeout
            )
            context = EvaluationContext(
                user_id=area.user_id,
                credentials=credentials,
                trigger_data=dict(variables),
            )
            params = interpolate(binding.params, variables)
            await asyncio.wait_for(reaction.execute(params, context), timeout=self._call_timeout)
        except ConfigurationError as e:
            logger.warning(f"Area {area.id}: skipping reaction {label}: {e}")
            return False
        except asyncio.TimeoutError:
            logger.warning(f"Area {area.id}: reaction {label} timed out after {self._call_timeout}s")
            return False
        except Exception as e:
            logger.warning(f"Area {area.id}: reaction {label} failed: {e}")
            return False

        logger.info(f"Area {area.id}: reaction {label} executed")
        return True
