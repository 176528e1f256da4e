# ============================================================
# File: influxdb.py - InfluxDB store client
# ============================================================
# One InfluxStore per bridge configuration epoch (URL, token, org
# and bucket come from the posted configuration, not from settings).
#
# Methods:
# 1. client / write_api       - lazily created, reused
# 2. check_health()           - InfluxDB health probe
# 3. write_points()           - write a batch of points (raises)
# 4. query_last_records()     - last record per field in a window
# 5. close()                  - release write_api and client
# Helpers:
# 6. build_point()            - build a Point (ns precision, UTC)
# ============================================================

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS, WriteApi

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandRecord:
    """One command row read back from the command measurement"""
    field: str
    value: Any
    timestamp: datetime


# ------------------------------------------------------------
# 6. build_point() - build a Point object
# ------------------------------------------------------------
def build_point(measurement: str, tags: Dict[str, str], fields: Dict[str, Any],
                timestamp: Optional[datetime] = None) -> Optional[Point]:
    """Build an InfluxDB Point

    # 1, None and string field values are skipped (field type conflicts)
    # 2, naive timestamps are treated as UTC, precision is nanoseconds

    Returns:
        Point, or None when no usable field remains
    """
    point = Point(measurement)

    for k, v in tags.items():
        point = point.tag(k, v)

    valid_fields = 0
    for k, v in fields.items():
        if v is None or isinstance(v, str):
            continue
        point = point.field(k, v)
        valid_fields += 1

    if valid_fields == 0:
        return None

    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    elif timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    else:
        timestamp = timestamp.astimezone(timezone.utc)
    return point.time(timestamp, WritePrecision.NS)


# ------------------------------------------------------------
# InfluxStore
# ------------------------------------------------------------
class InfluxStore:
    """InfluxDB access for one bridge configuration"""

    def __init__(self, url: str, token: str, org: str, bucket: str, timeout_ms: int = 30_000):
        self.url = url
        self.token = token
        self.org = org
        self.bucket = bucket
        self.timeout_ms = timeout_ms

        # writes from both loops go through one write_api
        self._write_lock = threading.Lock()
        self._client: Optional[InfluxDBClient] = None
        self._write_api: Optional[WriteApi] = None

    @classmethod
    def from_config(cls, config, timeout_ms: int = 30_000) -> "InfluxStore":
        return cls(config.influx_url, config.influx_token, config.influx_org,
                   config.influx_bucket, timeout_ms=timeout_ms)

    # ------------------------------------------------------------
    # 1. client / write_api
    # ------------------------------------------------------------
    @property
    def client(self) -> InfluxDBClient:
        if self._client is None:
            self._client = InfluxDBClient(
                url=self.url,
                token=self.token,
                org=self.org,
                enable_gzip=True,
                timeout=self.timeout_ms,
            )
        return self._client

    def _get_write_api(self) -> WriteApi:
        if self._write_api is None:
            self._write_api = self.client.write_api(write_options=SYNCHRONOUS)
        return self._write_api

    # ------------------------------------------------------------
    # 2. check_health()
    # ------------------------------------------------------------
    def check_health(self) -> Tuple[bool, str]:
        """Returns (healthy, message)"""
        try:
            health = self.client.health()
            if health.status == "pass":
                return (True, "InfluxDB OK")
            return (False, f"InfluxDB status: {health.status}")
        except Exception as e:
            return (False, str(e))

    # ------------------------------------------------------------
    # 3. write_points()
    # ------------------------------------------------------------
    def write_points(self, points: List[Point]) -> None:
        """Write points to the configured bucket

        Raises whatever the client raises; loops treat that as a
        store I/O error and back off.
        """
        if not points:
            return
        with self._write_lock:
            self._get_write_api().write(bucket=self.bucket, org=self.org, record=points)

    # ------------------------------------------------------------
    # 4. query_last_records()
    # ------------------------------------------------------------
    def query_last_records(self, measurement: str, window_seconds: int) -> List[CommandRecord]:
        """Most recent record of every field of a measurement

        Args:
            measurement: measurement to scan
            window_seconds: how far back to look

        Returns:
            records in the order the query returned them
        """
        query = f'''
        from(bucket: "{self.bucket}")
            |> range(start: -{int(window_seconds)}s)
            |> filter(fn: (r) => r["_measurement"] == "{measurement}")
            |> last()
        '''
        tables = self.client.query_api().query(query, org=self.org)

        records = []
        for table in tables or []:
            for record in table.records:
                ts = record.get_time()
                if ts is None:
                    continue
                records.append(CommandRecord(
                    field=record.get_field(),
                    value=record.get_value(),
                    timestamp=ts,
                ))
        return records

    # ------------------------------------------------------------
    # 5. close()
    # ------------------------------------------------------------
    def close(self) -> None:
        """Close write_api first, then the client"""
        if self._write_api is not None:
            try:
                self._write_api.close()
            except Exception as e:
                logger.warning(f"[INFLUX] Closing write_api failed: {e}")
            finally:
                self._write_api = None

        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning(f"[INFLUX] Closing client failed: {e}")
            finally:
                self._client = None
