# ============================================================
# File: health.py - health check routes
# ============================================================
# Routes:
# 1. GET /api/health           - liveness
# 2. GET /api/health/opc       - OPC session state
# 3. GET /api/health/database  - InfluxDB of the active config
# ============================================================

import asyncio

from fastapi import APIRouter, Depends

from gateway.core.influxdb import InfluxStore
from gateway.core.timezone_utils import utc_isoformat
from gateway.models.response import ApiResponse
from gateway.opc.opc_client import OPENOPC_AVAILABLE
from gateway.services.supervisor import BridgeSupervisor, get_supervisor

router = APIRouter(prefix="/api", tags=["health"])


# ------------------------------------------------------------
# 1. GET /api/health
# ------------------------------------------------------------
@router.get("/health")
async def health_check(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    opc_connected = await asyncio.to_thread(supervisor.session.is_connected)
    return ApiResponse.ok({
        "status": "healthy",
        "timestamp": utc_isoformat(),
        "bridge_active": supervisor.active,
        "opc_connected": opc_connected,
        "openopc_available": OPENOPC_AVAILABLE,
    })


# ------------------------------------------------------------
# 2. GET /api/health/opc
# ------------------------------------------------------------
@router.get("/health/opc")
async def opc_health(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    status = await asyncio.to_thread(supervisor.session.get_status)
    return ApiResponse.ok({**status, "openopc_available": OPENOPC_AVAILABLE})


# ------------------------------------------------------------
# 3. GET /api/health/database
# ------------------------------------------------------------
@router.get("/health/database")
async def database_health(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    """Probe the InfluxDB named by the active (or stored) configuration"""
    config = supervisor.config or await asyncio.to_thread(supervisor.storage.load)
    if config is None or not config.influx_url:
        return ApiResponse.fail("No InfluxDB configured")

    store = InfluxStore.from_config(config, timeout_ms=supervisor.settings.influx_timeout_ms)
    try:
        healthy, message = await asyncio.to_thread(store.check_health)
    finally:
        store.close()
    return ApiResponse.ok({
        "status": "healthy" if healthy else "degraded",
        "influxdb": {"connected": healthy, "message": message},
    })
