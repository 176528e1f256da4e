# ============================================================
# Models package
# ============================================================
# Pydantic models: the bridge configuration record and the
# API response envelope used by the status routes
# ============================================================

from gateway.models.bridge_config import BridgeConfig
from gateway.models.response import ApiResponse

__all__ = ['BridgeConfig', 'ApiResponse']
