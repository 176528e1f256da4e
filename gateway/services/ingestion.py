# ============================================================
# File: ingestion.py - device -> InfluxDB telemetry loop
# ============================================================
# Every cycle reads the whole read-group from the device, updates
# the live cache and writes one float field per tag (read alias
# applied) to the read measurement.
# ============================================================

import asyncio
import logging

from gateway.core.influxdb import build_point
from gateway.core.timezone_utils import now_utc, utc_isoformat
from gateway.opc.tag_group import TagGroup, add_items
from gateway.services.bridge_loop import BridgeLoop, parse_number

logger = logging.getLogger(__name__)


class IngestionLoop(BridgeLoop):
    """Polls the configured read tags and ingests them into InfluxDB"""

    name = "INGEST"
    group_prefix = "Ingest"

    def __init__(self, config, session, store, settings, stop_event: asyncio.Event, cache):
        super().__init__(config, session, store, settings, stop_event)
        self.cache = cache
        self.stats.update({"points_written": 0, "last_write_time": None})

    @property
    def interval(self) -> float:
        return self.settings.ingest_interval

    async def run(self) -> None:
        if not self.config.subscribable_tags():
            logger.info("[INGEST] no read tags configured, ingestion idle")
            return
        await super().run()

    async def _prepare(self, group: TagGroup) -> None:
        tags = self.config.subscribable_tags()
        registered = await asyncio.to_thread(add_items, group, tags)
        logger.info(f"[INGEST] {group.name}: {len(registered)}/{len(tags)} tags registered")

    async def cycle(self, group: TagGroup) -> None:
        await asyncio.to_thread(self.poll_once, group)

    def poll_once(self, group: TagGroup) -> int:
        """Read the group once and write the numeric values

        Returns:
            number of points written
        """
        timestamp = now_utc()
        points = []

        for tag, value, _quality in group.read():
            if value is None:
                continue
            self.cache.set(tag, value)

            number = parse_number(value)
            if number is None:
                continue
            point = build_point(
                self.settings.read_measurement,
                tags={},
                fields={self.config.read_field_for(tag): number},
                timestamp=timestamp,
            )
            if point is not None:
                points.append(point)

        self.store.write_points(points)
        if points:
            self.stats["points_written"] += len(points)
            self.stats["last_write_time"] = utc_isoformat(timestamp)
        return len(points)
