# ============================================================
# File: config_storage.py - bridge configuration persistence
# ============================================================
# Methods:
# 1. load()   - load the stored bridge configuration
# 2. save()   - overwrite the stored bridge configuration
# ============================================================

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from gateway.models.bridge_config import BridgeConfig

logger = logging.getLogger(__name__)


class BridgeConfigStorage:
    """YAML storage for the single active bridge configuration

    The file holds the camelCase wire record so it can be edited by
    hand and read back by the web UI unchanged.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    # ------------------------------------------------------------
    # 1. load()
    # ------------------------------------------------------------
    def load(self) -> Optional[BridgeConfig]:
        """Load the stored configuration

        Returns:
            BridgeConfig, or None when the file is missing or unreadable
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            data.pop('_updated_at', None)
            return BridgeConfig.from_wire(data)
        except (OSError, yaml.YAMLError, ValidationError, AttributeError) as e:
            logger.error(f"[CONFIG] Load error ({self.path}): {e}")
            return None

    # ------------------------------------------------------------
    # 2. save()
    # ------------------------------------------------------------
    def save(self, config: BridgeConfig) -> bool:
        """Persist the configuration, returns whether it was written"""
        data = config.to_wire()
        data['_updated_at'] = datetime.now().isoformat()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)
            return True
        except OSError as e:
            logger.error(f"[CONFIG] Save error ({self.path}): {e}")
            return False


def get_config_storage() -> BridgeConfigStorage:
    """Storage at the location named by settings"""
    from config import get_settings

    settings = get_settings()
    return BridgeConfigStorage(settings.resolve_path(settings.settings_dir) / settings.settings_file)
