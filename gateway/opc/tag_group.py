# ============================================================
# File: tag_group.py - tag group lifecycle
# ============================================================
# A TagGroup is owned by exactly one loop iteration. It keeps a
# tag id -> item handle cache so a tag is never subscribed twice,
# and the session generation it was created in: once the session
# reconnects or moves to another server the group stops working.
#
# Functions:
# 1. create_group()          - new uniquely named group
# 2. add_items()             - register several tags at once
# 3. resolve_or_add_item()   - get-or-register a single tag
# 4. remove_group()          - best-effort teardown
# ============================================================

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TagGroup:
    """Server-side group plus its resolved items"""

    def __init__(self, session, name: str, generation: Optional[int] = None):
        self.session = session
        self.name = name
        self.generation = generation
        self.items: Dict[str, str] = {}

    def __contains__(self, tag_id: str) -> bool:
        return tag_id in self.items

    def __len__(self) -> int:
        return len(self.items)

    def read(self) -> List[Tuple[str, Any, str]]:
        if not self.items:
            return []
        return self.session.read_group(self.name, self.generation)

    def write(self, item: str, value: Any) -> None:
        self.session.write_item(self.name, item, value, self.generation)

    def __repr__(self) -> str:
        return f"TagGroup({self.name!r}, items={len(self.items)})"


# ------------------------------------------------------------
# 1. create_group()
# ------------------------------------------------------------
def create_group(session, prefix: str) -> TagGroup:
    """Create a group named <prefix>_<8 hex chars>"""
    name = f"{prefix}_{uuid.uuid4().hex[:8]}"
    generation = session.create_group(name)
    return TagGroup(session, name, generation)


# ------------------------------------------------------------
# 2. add_items()
# ------------------------------------------------------------
def add_items(group: TagGroup, tags: Iterable[str]) -> List[str]:
    """Register every tag not yet in the group

    Returns:
        tags that ended up resolved in the group
    """
    tags = list(dict.fromkeys(tags))
    pending = [t for t in tags if t not in group.items]
    if pending:
        results = group.session.add_items(group.name, pending, group.generation)
        for tag in pending:
            error = results.get(tag, "no result from server")
            if error is None:
                group.items[tag] = tag
            else:
                logger.warning(f"[OPC] {group.name}: item {tag} rejected: {error}")
    return [t for t in tags if t in group.items]


# ------------------------------------------------------------
# 3. resolve_or_add_item()
# ------------------------------------------------------------
def resolve_or_add_item(group: TagGroup, tag_id: str) -> Optional[str]:
    """Item handle for tag_id, registering it on first use

    Returns:
        the handle, or None when the server rejects the tag
    """
    item = group.items.get(tag_id)
    if item is not None:
        return item
    add_items(group, [tag_id])
    return group.items.get(tag_id)


# ------------------------------------------------------------
# 4. remove_group()
# ------------------------------------------------------------
def remove_group(group: Optional[TagGroup]) -> None:
    """Remove the group from its session, never raises

    A dropped session already invalidated its groups server-side,
    so failures here are only logged.
    """
    if group is None:
        return
    try:
        group.session.remove_group(group.name, group.generation)
    except Exception as e:
        logger.debug(f"[OPC] remove {group.name} failed: {e}")
    group.items.clear()
