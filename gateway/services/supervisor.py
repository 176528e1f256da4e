# ============================================================
# File: supervisor.py - bridge run/stop lifecycle
# ============================================================
# Methods:
# 1. start()         - persist config, connect, launch both loops
# 2. stop()          - cancel both loops, disconnect (idempotent)
# 3. live_values()   - snapshot of the live cache
# 4. remove_tag()    - drop a tag from the stored configuration
# 5. get_status()    - state for the status route
# ============================================================

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import get_settings
from gateway.core.config_storage import BridgeConfigStorage, get_config_storage
from gateway.core.influxdb import InfluxStore
from gateway.models.bridge_config import BridgeConfig
from gateway.opc.session import DeviceSessionManager
from gateway.services.actuation import ActuationLoop, Watermark
from gateway.services.ingestion import IngestionLoop
from gateway.services.live_cache import LiveValueCache

logger = logging.getLogger(__name__)

START_FAILED = "Check OPC Settings."


class BridgeSupervisor:
    """Owns the session, the live cache, the watermark and both loops"""

    def __init__(self, settings=None, session: Optional[DeviceSessionManager] = None,
                 storage: Optional[BridgeConfigStorage] = None,
                 store_factory: Optional[Callable[[BridgeConfig], Any]] = None,
                 cache: Optional[LiveValueCache] = None):
        self.settings = settings or get_settings()
        self.session = session or DeviceSessionManager()
        self.storage = storage or get_config_storage()
        self.cache = cache or LiveValueCache()
        self.watermark = Watermark()
        self._store_factory = store_factory or (
            lambda cfg: InfluxStore.from_config(cfg, timeout_ms=self.settings.influx_timeout_ms)
        )

        self._active = False
        self._config: Optional[BridgeConfig] = None
        self._store = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []
        self._loops: Dict[str, Any] = {}
        self._lifecycle_lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def config(self) -> Optional[BridgeConfig]:
        return self._config

    # ------------------------------------------------------------
    # 1. start()
    # ------------------------------------------------------------
    async def start(self, config: BridgeConfig) -> Tuple[bool, str]:
        """Start a new epoch with config

        Returns:
            (True, "Active") or (False, reason)
        """
        async with self._lifecycle_lock:
            if self._active:
                logger.info("[BRIDGE] restarting with new configuration")
                await self._stop_epoch()
                await asyncio.sleep(self.settings.restart_grace)

            # operator intent survives a failed connection attempt
            await asyncio.to_thread(self.storage.save, config)

            # the loops own the session until the epoch stops
            await asyncio.to_thread(self.session.pin, config.opc_host, config.opc_prog_id)
            connected = await asyncio.to_thread(
                self.session.ensure_connected, config.opc_host, config.opc_prog_id
            )
            if not connected:
                await asyncio.to_thread(self.session.unpin)
                logger.warning(f"[BRIDGE] start failed: cannot connect to {config.opc_prog_id}@{config.opc_host}")
                return (False, START_FAILED)

            self._config = config
            self.watermark.reset(self.settings.watermark_lookback)
            self._stop_event = asyncio.Event()
            self._store = self._store_factory(config)

            self._loops = {
                "ingestion": IngestionLoop(config, self.session, self._store, self.settings,
                                           self._stop_event, self.cache),
                "actuation": ActuationLoop(config, self.session, self._store, self.settings,
                                           self._stop_event, self.watermark),
            }
            self._tasks = [
                asyncio.create_task(loop.run(), name=f"bridge-{name}")
                for name, loop in self._loops.items()
            ]
            self._active = True

        logger.info(f"[BRIDGE] active ({len(config.read_tags)} read tags, "
                    f"{len(config.write_mapping)} write aliases)")
        return (True, "Active")

    # ------------------------------------------------------------
    # 2. stop()
    # ------------------------------------------------------------
    async def stop(self) -> Tuple[bool, str]:
        """Stop both loops and disconnect; safe to call repeatedly"""
        async with self._lifecycle_lock:
            await self._stop_epoch()
            await asyncio.to_thread(self.session.stop)
        logger.info("[BRIDGE] stopped")
        return (True, "Stopped")

    async def _stop_epoch(self) -> None:
        self._active = False
        if self._stop_event is not None:
            self._stop_event.set()

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=self.settings.stop_timeout)
            for task in pending:
                logger.warning(f"[BRIDGE] {task.get_name()} did not stop within {self.settings.stop_timeout}s")

        if self._store is not None:
            await asyncio.to_thread(self._store.close)
            self._store = None
        self._loops = {}
        await asyncio.to_thread(self.session.unpin)

    # ------------------------------------------------------------
    # 3. live_values()
    # ------------------------------------------------------------
    def live_values(self) -> Dict[str, Any]:
        return self.cache.snapshot()

    # ------------------------------------------------------------
    # 4. remove_tag()
    # ------------------------------------------------------------
    def remove_tag(self, tag_id: str) -> Optional[BridgeConfig]:
        """Remove tag_id from the stored configuration

        The live cache entry is evicted in every case. The running
        epoch keeps its configuration until the next start.

        Returns:
            the updated configuration, or None when none is stored
        """
        self.cache.remove(tag_id)

        config = self.storage.load()
        if config is None:
            return None

        updated = config.without_tag(tag_id)
        self.storage.save(updated)
        logger.info(f"[BRIDGE] tag {tag_id} removed from configuration")
        return updated

    # ------------------------------------------------------------
    # 5. get_status()
    # ------------------------------------------------------------
    def get_status(self) -> Dict[str, Any]:
        return {
            "active": self._active,
            "watermark": self.watermark.isoformat(),
            "live_tags": len(self.cache),
            "session": self.session.get_status(),
            "loops": {name: dict(loop.stats) for name, loop in self._loops.items()},
        }


# ------------------------------------------------------------
# Application-wide instance
# ------------------------------------------------------------
_supervisor: Optional[BridgeSupervisor] = None


def get_supervisor() -> BridgeSupervisor:
    global _supervisor
    if _supervisor is None:
        _supervisor = BridgeSupervisor()
    return _supervisor
