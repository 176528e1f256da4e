# ============================================================
# File: bridge_loop.py - shared polling loop skeleton
# ============================================================
# Each loop iteration walks Connect -> Subscribe -> Poll* and, on
# any failure, Teardown -> Backoff -> Connect. Blocking OPC and
# InfluxDB calls run in worker threads so a hung call only stalls
# its own loop. The epoch stop event is checked at the top of each
# cycle and after every blocking call; sleeps wake up on it.
# ============================================================

import asyncio
import logging
import math
from typing import Any, Dict, Optional

from gateway.opc.tag_group import TagGroup, create_group, remove_group

logger = logging.getLogger(__name__)


def parse_number(value: Any) -> Optional[float]:
    """Value as a finite float, or None when it does not parse"""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class BridgeLoop:
    """Base class of the ingestion and actuation loops"""

    name = "LOOP"
    group_prefix = "Loop"

    def __init__(self, config, session, store, settings, stop_event: asyncio.Event):
        self.config = config
        self.session = session
        self.store = store
        self.settings = settings
        self._stop_event = stop_event

        self.stats: Dict[str, Any] = {
            "cycles": 0,
            "errors": 0,
            "last_error": None,
        }

    @property
    def interval(self) -> float:
        raise NotImplementedError

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early when the epoch is stopped"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _prepare(self, group: TagGroup) -> None:
        """Register whatever the loop subscribes to up front"""

    async def cycle(self, group: TagGroup) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------
    # run() - outer reconnect loop
    # ------------------------------------------------------------
    async def run(self) -> None:
        logger.info(f"[{self.name}] loop started")
        host, prog_id = self.config.opc_host, self.config.opc_prog_id

        while not self.stopped:
            group: Optional[TagGroup] = None
            try:
                connected = await asyncio.to_thread(self.session.ensure_connected, host, prog_id)
                if not connected:
                    await self._sleep(self.settings.reconnect_backoff)
                    continue
                if self.stopped:
                    break

                group = await asyncio.to_thread(create_group, self.session, self.group_prefix)
                await self._prepare(group)

                while not self.stopped and await asyncio.to_thread(self.session.is_connected):
                    await self.cycle(group)
                    self.stats["cycles"] += 1
                    if self.stopped:
                        break
                    await self._sleep(self.interval)

                if not self.stopped:
                    logger.warning(f"[{self.name}] OPC session lost, reconnecting")
                    await self._sleep(self.settings.reconnect_backoff)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats["errors"] += 1
                self.stats["last_error"] = str(e)
                logger.warning(f"[{self.name}] cycle failed: {e}")
                await self._sleep(self.settings.reconnect_backoff)
            finally:
                if group is not None:
                    await asyncio.to_thread(remove_group, group)

        logger.info(f"[{self.name}] loop stopped")
