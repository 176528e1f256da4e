# ============================================================
# File: actuation.py - InfluxDB -> device command loop
# ============================================================
# Every cycle queries the last record per field of the command
# measurement, applies the records newer than the watermark in
# ascending time order, and acknowledges each applied command in
# the feedback measurement.
#
# The watermark only moves forward, to the timestamp of the last
# applied command. A command whose tag cannot be resolved is kept
# in a retry set and tried again on the next cycle even when later
# commands have already moved the watermark past it.
# ============================================================

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Set, Tuple

from gateway.core.influxdb import CommandRecord, build_point
from gateway.core.timezone_utils import now_utc, to_utc, utc_isoformat
from gateway.opc.tag_group import TagGroup, resolve_or_add_item
from gateway.services.bridge_loop import BridgeLoop, parse_number

logger = logging.getLogger(__name__)


class Watermark:
    """Timestamp of the most recently applied command (monotonic)"""

    def __init__(self, value: Optional[datetime] = None):
        self._value = to_utc(value) if value is not None else now_utc()

    @property
    def value(self) -> datetime:
        return self._value

    def reset(self, lookback_seconds: float) -> None:
        """Start a new epoch at now - lookback (tolerates clock drift)"""
        self._value = now_utc() - timedelta(seconds=lookback_seconds)

    def is_new(self, timestamp: datetime) -> bool:
        return to_utc(timestamp) > self._value

    def advance(self, timestamp: datetime) -> bool:
        """Move forward to timestamp, never backwards"""
        timestamp = to_utc(timestamp)
        if timestamp > self._value:
            self._value = timestamp
            return True
        return False

    def isoformat(self) -> str:
        return utc_isoformat(self._value)


class ActuationLoop(BridgeLoop):
    """Applies InfluxDB command records to OPC items"""

    name = "ACTUATION"
    group_prefix = "Act"

    def __init__(self, config, session, store, settings, stop_event: asyncio.Event, watermark: Watermark):
        super().__init__(config, session, store, settings, stop_event)
        self.watermark = watermark
        # (field, timestamp) of commands whose tag failed to resolve
        self._retry: Set[Tuple[str, datetime]] = set()
        self.stats.update({"commands_applied": 0, "commands_pending": 0, "last_command_time": None})

    @property
    def interval(self) -> float:
        return self.settings.actuation_interval

    async def cycle(self, group: TagGroup) -> None:
        records = await asyncio.to_thread(
            self.store.query_last_records,
            self.settings.command_measurement,
            self.settings.command_query_window,
        )
        if self.stopped:
            return
        await asyncio.to_thread(self.process_records, group, records)

    def _is_due(self, record: CommandRecord) -> bool:
        return self.watermark.is_new(record.timestamp) or \
            (record.field, to_utc(record.timestamp)) in self._retry

    def process_records(self, group: TagGroup, records: Iterable[CommandRecord]) -> int:
        """Apply due commands oldest first

        Returns:
            number of commands written to the device
        """
        records = sorted(records, key=lambda r: to_utc(r.timestamp))

        # a retried command that is no longer returned was superseded
        returned = {(r.field, to_utc(r.timestamp)) for r in records}
        self._retry &= returned

        applied = 0
        for record in records:
            if self.stopped:
                logger.info("[ACTUATION] epoch stopped, remaining commands left for the next start")
                break
            if not self._is_due(record):
                continue
            key = (record.field, to_utc(record.timestamp))
            tag = self.config.write_tag_for(record.field)

            item = resolve_or_add_item(group, tag)
            if item is None:
                self._retry.add(key)
                logger.warning(f"[ACTUATION] Cannot resolve {tag} for '{record.field}', retrying next cycle")
                continue

            group.write(item, record.value)
            self._retry.discard(key)
            self.watermark.advance(record.timestamp)
            applied += 1
            self.stats["commands_applied"] += 1
            self.stats["last_command_time"] = utc_isoformat(record.timestamp)
            logger.info(f"[ACTUATION] Executed: {tag} = {record.value}")

            number = parse_number(record.value)
            if number is not None:
                feedback = build_point(
                    self.settings.feedback_measurement,
                    tags={"status": "success", "alias": record.field},
                    fields={"value": number},
                )
                self.store.write_points([feedback])

        self.stats["commands_pending"] = len(self._retry)
        return applied
