# ============================================================
# Services package - synchronization core
# ============================================================
# - live_cache:  latest value per device tag
# - ingestion:   device -> InfluxDB loop
# - actuation:   InfluxDB -> device loop and its watermark
# - supervisor:  start/stop of both loops per configuration
# ============================================================

from .live_cache import LiveValueCache
from .ingestion import IngestionLoop
from .actuation import ActuationLoop, Watermark
from .supervisor import BridgeSupervisor, get_supervisor

__all__ = [
    'LiveValueCache',
    'IngestionLoop',
    'ActuationLoop',
    'Watermark',
    'BridgeSupervisor',
    'get_supervisor',
]
