# ============================================================
# File: config.py - application settings
# ============================================================
# Settings are managed with pydantic-settings and can be overridden
# by environment variables or by an .env file next to the app.
# The bridge configuration itself (OPC host, Influx bucket, tags)
# is NOT stored here: it is posted by the operator and persisted by
# gateway.core.config_storage.
# ============================================================

import sys
from pathlib import Path
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


# ------------------------------------------------------------
# Application root (supports frozen executables)
# ------------------------------------------------------------
def get_app_root() -> Path:
    """Return the application root directory

    Development: project root
    Frozen build: directory holding the executable
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent


APP_ROOT = get_app_root()


class Settings(BaseSettings):
    """Application settings

    Priority (high to low):
    1. environment variables
    2. .env file
    3. defaults below
    """

    # HTTP server
    server_host: str = "127.0.0.1"
    server_port: int = 5005
    debug: bool = False

    # Start the bridge from the stored configuration on boot
    autostart_bridge: bool = False

    # Storage locations (relative paths are resolved against APP_ROOT)
    settings_dir: str = "data"
    settings_file: str = "bridge_settings.yaml"
    log_dir: str = "logs"

    # Loop timing (seconds)
    ingest_interval: float = 1.0
    actuation_interval: float = 2.0
    reconnect_backoff: float = 5.0
    restart_grace: float = 0.5
    stop_timeout: float = 5.0

    # Command deduplication (seconds)
    command_query_window: int = 900
    watermark_lookback: float = 10.0

    # InfluxDB measurements
    read_measurement: str = "kiln1"
    command_measurement: str = "kiln2"
    feedback_measurement: str = "kiln2_feedback"
    influx_timeout_ms: int = 30_000

    # OPC DA
    opc_update_rate_ms: int = 1000
    opc_gateway_host: Optional[str] = None  # use an OpenOPC gateway instead of local DCOM
    opc_gateway_port: int = 7766

    @field_validator('debug', 'autostart_bridge', mode='before')
    @classmethod
    def parse_bool(cls, v):
        """Parse booleans leniently (true/1/yes/on)"""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            v_lower = v.lower()
            if v_lower in ('true', '1', 'yes', 'on'):
                return True
            if v_lower in ('false', '0', 'no', 'off', ''):
                return False
            return False
        return bool(v)

    def resolve_path(self, relative: str) -> Path:
        path = Path(relative)
        return path if path.is_absolute() else APP_ROOT / path

    class Config:
        env_file = str(APP_ROOT / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False


# ------------------------------------------------------------
# Settings singleton
# ------------------------------------------------------------
@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance"""
    return Settings()
