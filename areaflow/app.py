"""
AreaFlow Application - single entry point for the automation engine.

Usage:
    from areaflow import AreaFlow

    app = AreaFlow("config.yaml")
    await app.start()          # database, schema, registry, scheduler

    report = await app.scheduler.run_sweep()

    await app.shutdown()
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import yaml

from .credentials import ConnectionStore
from .db import Database, ensure_schema
from .engine import AreaStore, EngineConfig, SweepScheduler, TriggerLifecycle
from .services import ServiceRegistry, register_builtin_services

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def _load_config(path: str) -> dict:
    """Read YAML config file with ${VAR} environment variable substitution."""
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    def _replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{path}')"
            )
        return value

    resolved = _ENV_PATTERN.sub(_replace_env, raw)
    return yaml.safe_load(resolved) or {}


class AreaFlow:
    """
    AreaFlow application object.

    Sync constructor reads and validates config; ``start()`` opens the
    database, applies pending migrations, builds the service registry and
    the scheduler, and starts sweeping when ``engine.autostart`` is set.

    Args:
        config: Path to YAML configuration file, or an already loaded dict.
    """

    def __init__(self, config: Any):
        if isinstance(config, dict):
            self._config = dict(config)
        else:
            self._config = _load_config(config)

        if not self._config.get("database"):
            raise ValueError("Missing required config field: 'database'")
        self._engine_config = EngineConfig.from_dict(self._config.get("engine"))

        services = self._config.get("services")
        if services is not None and not isinstance(services, list):
            raise ValueError("Config field 'services' must be a list of service names")

        self._started = False
        self._database: Optional[Database] = None
        self._registry: Optional[ServiceRegistry] = None
        self._area_store: Optional[AreaStore] = None
        self._connection_store: Optional[ConnectionStore] = None
        self._scheduler: Optional[SweepScheduler] = None
        self._lifecycle: Optional[TriggerLifecycle] = None

    async def start(self) -> None:
        """Initialize everything once; later calls do nothing."""
        if self._started:
            return

        cfg = self._config
        engine_cfg = self._engine_config

        # 1. Database
        pool_cfg = cfg.get("database_pool") or {}
        self._database = Database(
            dsn=cfg["database"],
            min_size=int(pool_cfg.get("min_size", 2)),
            max_size=int(pool_cfg.get("max_size", 10)),
        )
        await self._database.initialize()
        await ensure_schema(self._database)

        # 2. Stores
        self._area_store = AreaStore(self._database)
        self._connection_store = ConnectionStore(self._database)

        # 3. Services
        self._registry = ServiceRegistry()
        register_builtin_services(self._registry, cfg.get("services"))

        # 4. Scheduler + lifecycle hooks
        self._scheduler = SweepScheduler(
            store=self._area_store,
            resolver=self._connection_store,
            registry=self._registry,
            interval=engine_cfg.interval_seconds,
            call_timeout=engine_cfg.call_timeout_seconds,
            max_concurrency=engine_cfg.max_concurrency,
        )
        self._lifecycle = TriggerLifecycle(
            store=self._area_store,
            resolver=self._connection_store,
            registry=self._registry,
            call_timeout=engine_cfg.call_timeout_seconds,
        )

        self._started = True
        logger.info(f"AreaFlow initialized ({len(self._registry)} services)")

        if engine_cfg.autostart:
            await self._scheduler.start()

    async def shutdown(self) -> None:
        """Stop the scheduler and release the connection pool."""
        if self._scheduler:
            await self._scheduler.stop()
            await self._scheduler.wait_idle(timeout=self._engine_config.call_timeout_seconds)
        if self._database:
            await self._database.close()
        self._started = False
        logger.info("AreaFlow shut down")

    @property
    def started(self) -> bool:
        return self._started

    @property
    def config(self) -> Dict[str, Any]:
        return dict(self._config)

    @property
    def engine_config(self) -> EngineConfig:
        return self._engine_config

    @property
    def scheduler(self) -> Optional[SweepScheduler]:
        return self._scheduler

    @property
    def registry(self) -> Optional[ServiceRegistry]:
        return self._registry

    @property
    def lifecycle(self) -> Optional[TriggerLifecycle]:
        return self._lifecycle

    @property
    def area_store(self) -> Optional[AreaStore]:
        return self._area_store
