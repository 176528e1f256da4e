# ============================================================
# File: config.py - bridge configuration routes
# ============================================================
# Routes:
# 1. GET    /api/config        - stored configuration
# 2. POST   /api/config/save   - store a configuration
# 3. DELETE /api/config/tag    - remove one tag everywhere
# ============================================================

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query

from gateway.models.bridge_config import BridgeConfig
from gateway.services.supervisor import BridgeSupervisor, get_supervisor

router = APIRouter(prefix="/api/config", tags=["config"])


# ------------------------------------------------------------
# 1. GET /api/config
# ------------------------------------------------------------
@router.get("")
async def get_config(supervisor: BridgeSupervisor = Depends(get_supervisor)):
    """Stored configuration, or an empty one pointing at localhost"""
    config = await asyncio.to_thread(supervisor.storage.load)
    return (config or BridgeConfig.empty()).to_wire()


# ------------------------------------------------------------
# 2. POST /api/config/save
# ------------------------------------------------------------
@router.post("/save")
async def save_config(config: BridgeConfig, supervisor: BridgeSupervisor = Depends(get_supervisor)):
    if not await asyncio.to_thread(supervisor.storage.save, config):
        raise HTTPException(status_code=500, detail="Configuration could not be written")
    return {"status": "Saved"}


# ------------------------------------------------------------
# 3. DELETE /api/config/tag
# ------------------------------------------------------------
@router.delete("/tag")
async def delete_tag(tag_id: str = Query(..., alias="tagId"),
                     supervisor: BridgeSupervisor = Depends(get_supervisor)):
    """Remove a tag from read tags and both alias maps"""
    updated = await asyncio.to_thread(supervisor.remove_tag, tag_id)
    if updated is None:
        raise HTTPException(status_code=404, detail="No stored configuration")
    return updated.to_wire()
