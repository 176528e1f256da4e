# ============================================================
# File: timezone_utils.py - time helpers
# ============================================================
# All timestamps exchanged with OPC and InfluxDB are UTC
# ============================================================

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Current time, timezone-aware UTC"""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Convert any datetime to aware UTC (naive input is assumed UTC)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_isoformat(dt: datetime = None) -> str:
    if dt is None:
        dt = now_utc()
    return to_utc(dt).isoformat()
