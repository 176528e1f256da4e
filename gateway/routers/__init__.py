# ============================================================
# Routers package - HTTP control surface
# ============================================================
# - bridge: start / stop / status / live values / browse
# - config: stored configuration (/api/config)
# - health: health checks (/api/health)
# ============================================================

from . import bridge
from . import config
from . import health

__all__ = ['bridge', 'config', 'health']
