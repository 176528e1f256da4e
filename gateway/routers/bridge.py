# ============================================================
# File: bridge.py - bridge control routes
# ============================================================
# Routes:
# 1. POST /api/bridge/start   - start (or restart) the bridge
# 2. POST /api/bridge/stop    - stop the bridge
# 3. GET  /api/bridge/status  - supervisor status
# 4. GET  /api/live           - live values
# 5. GET  /api/browse         - browse the OPC address space
# ============================================================

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from gateway.models.bridge_config import BridgeConfig
from gateway.models.response import ApiResponse
from gateway.services.supervisor import BridgeSupervisor, get_supervisor

router = APIRouter(prefix="/api", tags=["bridge"])


# ------------------------------------------------------------
# 1. POST /api/bridge/start
# ------------------------------------------------------------
@router.post("/bridge/start")
async def start_bridge(config: BridgeConfig, supervisor: BridgeSupervisor = Depends(get_supervisor)):
    """Save the configuration and start both loops"""
    ok, status = await supervisor.start(config)
    if not ok:
        raise HTTPException(status_code=500, detail=status)
    return {"status": status}


# ------------------------------------------------------------
# 2. POST /api/bridge/stop
# ------------------------------------------------------------
@router.post("/bridge/stop")
async def stop_bridge(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    _, status = await supervisor.stop()
    return {"status": status}


# ------------------------------------------------------------
# 3. GET /api/bridge/status
# ------------------------------------------------------------
@router.get("/bridge/status")
async def bridge_status(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    status = await asyncio.to_thread(supervisor.get_status)
    return ApiResponse.ok(status)


# ------------------------------------------------------------
# 4. GET /api/live
# ------------------------------------------------------------
@router.get("/live")
async def live_values(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    """Last value read for every ingested tag"""
    return supervisor.live_values()


# ------------------------------------------------------------
# 5. GET /api/browse
# ------------------------------------------------------------
@router.get("/browse")
async def browse(
    host: str,
    prog_id: str = Query(..., alias="progId"),
    node_id: Optional[str] = Query(None, alias="nodeId"),
    supervisor: BridgeSupervisor = Depends(get_supervisor),
):
    """Folders first, then tags, each sorted by name"""
    session = supervisor.session
    if not session.accepts(host, prog_id):
        raise HTTPException(status_code=409, detail="OPC session in use by the running bridge.")
    if not await asyncio.to_thread(session.ensure_connected, host, prog_id):
        raise HTTPException(status_code=500, detail="OPC Connection Failed.")
    try:
        return await asyncio.to_thread(session.browse, host, prog_id, node_id or "")
    except Exception as e:
        return {"error": str(e)}
