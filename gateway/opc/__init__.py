"""OPC DA communication module"""

from gateway.opc.opc_client import OpcDaClient, OpcClientError, OPENOPC_AVAILABLE
from gateway.opc.session import DeviceSessionManager
from gateway.opc.tag_group import TagGroup, create_group, add_items, resolve_or_add_item, remove_group

__all__ = [
    'OpcDaClient',
    'OpcClientError',
    'OPENOPC_AVAILABLE',
    'DeviceSessionManager',
    'TagGroup',
    'create_group',
    'add_items',
    'resolve_or_add_item',
    'remove_group',
]
