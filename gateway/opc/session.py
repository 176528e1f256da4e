# ============================================================
# File: session.py - device session manager
# ============================================================
# Owns the single OPC DA connection shared by both loops. Every
# call that touches the server (connect, disconnect, group and
# item operations, reads and writes) runs under one lock so the
# ingestion and actuation loops never race on the session.
#
# While the bridge runs the session is pinned to the bridge's
# server: a request for any other address is refused. Every new
# connection starts a new generation, and group operations made
# with a handle from an older generation raise OpcClientError.
#
# Methods:
# 1. ensure_connected()  - create / connect lazily, never raises
# 2. pin() / unpin()     - lock the session to one address
# 3. stop()              - disconnect (idempotent)
# 4. browse()            - discovery for the web UI
# 5. group operations    - create / add items / read / write / remove
# 6. get_status()        - connection statistics
# ============================================================

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from gateway.core.timezone_utils import utc_isoformat
from gateway.opc.opc_client import OpcClientError, OpcDaClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], Any]


def default_client_factory(host: str, prog_id: str) -> OpcDaClient:
    from config import get_settings

    settings = get_settings()
    return OpcDaClient(
        host, prog_id,
        gateway_host=settings.opc_gateway_host,
        gateway_port=settings.opc_gateway_port,
        update_rate_ms=settings.opc_update_rate_ms,
    )


class DeviceSessionManager:
    """Lazily connected, lock-protected OPC DA session"""

    def __init__(self, client_factory: Optional[ClientFactory] = None):
        self._client_factory = client_factory or default_client_factory
        self._client = None
        self._address: Optional[Tuple[str, str]] = None
        self._pinned: Optional[Tuple[str, str]] = None
        self._generation = 0
        self._lock = threading.RLock()

        self._stats = {
            "connect_count": 0,
            "error_count": 0,
            "last_error": None,
            "last_connect_time": None,
        }

    @property
    def generation(self) -> int:
        return self._generation

    def accepts(self, host: str, prog_id: str) -> bool:
        """Whether (host, prog_id) may be used without re-addressing a pinned session"""
        pinned = self._pinned
        return pinned is None or pinned == (host, prog_id)

    # ------------------------------------------------------------
    # 1. ensure_connected()
    # ------------------------------------------------------------
    def ensure_connected(self, host: str, prog_id: str) -> bool:
        """Make sure a connected session to (host, prog_id) exists

        Returns:
            False on any failure (logged); callers retry later
        """
        with self._lock:
            if not self.accepts(host, prog_id):
                logger.warning(f"[OPC] session pinned to {self._pinned[1]} on {self._pinned[0]}, "
                               f"refusing {prog_id} on {host}")
                return False
            try:
                if self._client is None or self._address != (host, prog_id):
                    if self._client is not None:
                        self._client.disconnect()
                    self._client = self._client_factory(host, prog_id)
                    self._address = (host, prog_id)
                    self._generation += 1

                if not self._client.is_connected():
                    self._client.connect()
                    self._generation += 1
                    self._stats["connect_count"] += 1
                    self._stats["last_connect_time"] = utc_isoformat()
                    logger.info(f"[OPC] Connected to {prog_id} on {host}")
                return True
            except Exception as e:
                self._stats["error_count"] += 1
                self._stats["last_error"] = str(e)
                logger.warning(f"[OPC] Connection Failed: {e}")
                return False

    def is_connected(self) -> bool:
        with self._lock:
            return self._client is not None and self._client.is_connected()

    # ------------------------------------------------------------
    # 2. pin() / unpin()
    # ------------------------------------------------------------
    def pin(self, host: str, prog_id: str) -> None:
        with self._lock:
            self._pinned = (host, prog_id)

    def unpin(self) -> None:
        with self._lock:
            self._pinned = None

    # ------------------------------------------------------------
    # 3. stop()
    # ------------------------------------------------------------
    def stop(self) -> None:
        """Disconnect; safe to call when already disconnected"""
        with self._lock:
            if self._client is None:
                return
            try:
                if self._client.is_connected():
                    self._client.disconnect()
                    logger.info("[OPC] Disconnected")
            except Exception as e:
                logger.warning(f"[OPC] Disconnect failed: {e}")

    # ------------------------------------------------------------
    # 4. browse()
    # ------------------------------------------------------------
    def browse(self, host: str, prog_id: str, node_id: str = "") -> List[Dict[str, str]]:
        """Children of node_id, folders first then tags, each sorted by name

        Raises:
            OpcClientError: address refused, not connectable or browse rejected
        """
        if not self.accepts(host, prog_id):
            raise OpcClientError("OPC session in use by the running bridge.")
        if not self.ensure_connected(host, prog_id):
            raise OpcClientError("OPC Connection Failed.")
        with self._lock:
            nodes = self._client.browse(node_id or "")
        folders = sorted((n for n in nodes if n["type"] == "folder"), key=lambda n: n["name"])
        tags = sorted((n for n in nodes if n["type"] != "folder"), key=lambda n: n["name"])
        return folders + tags

    # ------------------------------------------------------------
    # 5. group operations
    # ------------------------------------------------------------
    def _require_client(self, generation: Optional[int] = None):
        if self._client is None:
            raise OpcClientError("no OPC session")
        if generation is not None and generation != self._generation:
            raise OpcClientError("group belongs to a previous OPC session")
        return self._client

    def create_group(self, name: str) -> int:
        """Declare a group, returns the generation it belongs to"""
        with self._lock:
            self._require_client().add_group(name)
            return self._generation

    def add_items(self, group: str, tags: List[str], generation: Optional[int] = None) -> Dict[str, Optional[str]]:
        with self._lock:
            return self._require_client(generation).add_items(group, tags)

    def read_group(self, group: str, generation: Optional[int] = None) -> List[Tuple[str, Any, str]]:
        with self._lock:
            return self._require_client(generation).read(group)

    def write_item(self, group: str, tag: str, value: Any, generation: Optional[int] = None) -> None:
        with self._lock:
            self._require_client(generation).write(group, tag, value)

    def remove_group(self, group: str, generation: Optional[int] = None) -> None:
        """Drop a group; does nothing when the session it lived in is gone"""
        with self._lock:
            if self._client is None or not self._client.is_connected():
                return
            if generation is not None and generation != self._generation:
                return
            self._client.remove_group(group)

    # ------------------------------------------------------------
    # 6. get_status()
    # ------------------------------------------------------------
    def get_status(self) -> Dict[str, Any]:
        host, prog_id = self._address or (None, None)
        return {
            "connected": self.is_connected(),
            "host": host,
            "prog_id": prog_id,
            "pinned": self._pinned is not None,
            "generation": self._generation,
            **self._stats,
        }
