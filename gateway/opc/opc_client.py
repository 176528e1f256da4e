# ============================================================
# File: opc_client.py - OPC DA client (OpenOPC, long connection)
# ============================================================
# Methods:
# 1. connect()        - connect to the OPC DA server
# 2. disconnect()     - close the connection
# 3. is_connected()   - probe the connection
# 4. add_group()      - declare a server-side group
# 5. add_items()      - register items in a group
# 6. read()           - synchronous device read of a group
# 7. write()          - write one item
# 8. remove_group()   - drop a server-side group
# 9. browse()         - list branches and leaves under a node
# ============================================================

import logging
from typing import Any, Dict, List, Optional, Tuple

try:
    import OpenOPC
    OPENOPC_AVAILABLE = True
except ImportError:
    OpenOPC = None
    OPENOPC_AVAILABLE = False

logger = logging.getLogger(__name__)


class OpcClientError(ConnectionError):
    """Raised for any failure reported by the OPC DA server"""


# ------------------------------------------------------------
# OpcDaClient - OPC DA client (long connection)
# ------------------------------------------------------------
class OpcDaClient:
    """OPC DA client addressed by (host, prog_id)

    Talks DCOM directly on Windows, or goes through an OpenOPC
    gateway service when gateway_host is set.
    """

    def __init__(self, host: str, prog_id: str, gateway_host: Optional[str] = None,
                 gateway_port: int = 7766, update_rate_ms: int = 1000):
        self.host = host or "localhost"
        self.prog_id = prog_id
        self.gateway_host = gateway_host
        self.gateway_port = gateway_port
        self.update_rate_ms = update_rate_ms
        self._opc = None
        self._connected = False
        self._groups: Dict[str, List[str]] = {}

    # ------------------------------------------------------------
    # 1. connect()
    # ------------------------------------------------------------
    def connect(self) -> bool:
        """Connect to the server (keeps the connection open)

        Raises:
            OpcClientError: library missing or connection refused
        """
        if self.is_connected():
            return True

        if not OPENOPC_AVAILABLE:
            raise OpcClientError("OpenOPC is not installed")

        try:
            if self._opc is None:
                if self.gateway_host:
                    self._opc = OpenOPC.open_client(self.gateway_host, self.gateway_port)
                else:
                    self._opc = OpenOPC.client()
            self._opc.connect(self.prog_id, self.host)
        except Exception as e:
            self._connected = False
            raise OpcClientError(f"connect to {self.prog_id}@{self.host} failed: {e}") from e

        self._connected = True
        self._groups.clear()
        return True

    # ------------------------------------------------------------
    # 2. disconnect()
    # ------------------------------------------------------------
    def disconnect(self) -> None:
        if self._opc is not None and self._connected:
            try:
                self._opc.close()
            except Exception as e:
                logger.debug(f"[OPC] close failed: {e}")
        self._connected = False
        self._groups.clear()

    # ------------------------------------------------------------
    # 3. is_connected()
    # ------------------------------------------------------------
    def is_connected(self) -> bool:
        """Probe the server; a dropped session reads as disconnected"""
        if not self._connected or self._opc is None:
            return False
        try:
            alive = bool(self._opc.ping())
        except Exception:
            alive = False
        if not alive:
            self._connected = False
        return alive

    # ------------------------------------------------------------
    # 4. add_group()
    # ------------------------------------------------------------
    def add_group(self, name: str) -> None:
        # OpenOPC creates the server group on the first grouped read
        self._groups[name] = []

    # ------------------------------------------------------------
    # 5. add_items()
    # ------------------------------------------------------------
    def add_items(self, group: str, tags: List[str]) -> Dict[str, Optional[str]]:
        """Register tags in a group

        Returns:
            {tag: None on success, or the server's error message}
        """
        if group not in self._groups:
            raise OpcClientError(f"unknown group {group}")
        if not tags:
            return {}

        try:
            rows = self._opc.read(tags, group=group, update=self.update_rate_ms,
                                  sync=True, include_error=True)
        except Exception as e:
            raise OpcClientError(f"add items to {group} failed: {e}") from e

        results: Dict[str, Optional[str]] = {}
        for row in rows:
            tag, quality = row[0], row[2]
            error = row[4] if len(row) > 4 else None
            if quality == 'Error':
                results[tag] = error or "rejected by server"
            else:
                results[tag] = None
                self._groups[group].append(tag)
        return results

    # ------------------------------------------------------------
    # 6. read()
    # ------------------------------------------------------------
    def read(self, group: str) -> List[Tuple[str, Any, str]]:
        """Read every item of a group from the device

        Returns:
            [(tag, value, quality), ...]
        """
        tags = self._groups.get(group)
        if not tags:
            return []
        try:
            rows = self._opc.read(tags, group=group, source='device', sync=True)
        except Exception as e:
            raise OpcClientError(f"read {group} failed: {e}") from e
        return [(row[0], row[1], row[2]) for row in rows]

    # ------------------------------------------------------------
    # 7. write()
    # ------------------------------------------------------------
    def write(self, group: str, tag: str, value: Any) -> None:
        try:
            rows = self._opc.write([(tag, value)], include_error=True)
        except Exception as e:
            raise OpcClientError(f"write {tag} failed: {e}") from e

        for row in rows or []:
            status = row[1]
            if status != 'Success':
                error = row[2] if len(row) > 2 else status
                raise OpcClientError(f"write {tag} rejected: {error}")

    # ------------------------------------------------------------
    # 8. remove_group()
    # ------------------------------------------------------------
    def remove_group(self, group: str) -> None:
        self._groups.pop(group, None)
        try:
            self._opc.remove(group)
        except Exception as e:
            raise OpcClientError(f"remove {group} failed: {e}") from e

    # ------------------------------------------------------------
    # 9. browse()
    # ------------------------------------------------------------
    def browse(self, node_id: str = "") -> List[Dict[str, str]]:
        """Children of node_id as [{id, name, type: folder|tag}]"""
        path = f"{node_id}.*" if node_id else "*"
        prefix = f"{node_id}." if node_id else ""

        def _item_id(name: str) -> str:
            return name if name.startswith(prefix) else prefix + name

        try:
            nodes = self._opc.list(path, include_type=True)
            return [
                {"id": _item_id(name), "name": name.split('.')[-1],
                 "type": "folder" if node_type == 'Branch' else "tag"}
                for name, node_type in nodes
            ]
        except Exception as e:
            logger.debug(f"[OPC] typed browse of '{node_id}' failed, using flat list: {e}")

        # servers without branch/leaf separation
        try:
            items = self._opc.list(path, flat=True)
        except Exception as e:
            raise OpcClientError(f"browse '{node_id}' failed: {e}") from e
        return [{"id": _item_id(name), "name": name.split('.')[-1], "type": "tag"} for name in items]
