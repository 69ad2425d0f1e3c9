"""
Class and record level access checks.

Users carry their groups (expanded, with the permission bits each group has
per class). Records may additionally be restricted to a set of groups through
`groupRestrictions`.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..database.records import CLASS, RID, cast_to_rid
from ..models.class_model import Permission

logger = logging.getLogger(__name__)


def _group_rids(groups: Optional[Iterable[Any]]) -> Set[str]:
    rids = set()
    for group in groups or []:
        try:
            rids.add(cast_to_rid(group))
        except ValueError:
            logger.warning(f"Ignoring malformed group reference: {group!r}")
    return rids


def check_user_access_for(user: Dict[str, Any], class_name: str, permission: int) -> bool:
    """
    Check if any group of the user grants the permission on the class.

    Args:
        user: The user record with expanded groups
        class_name: Name of the class being accessed
        permission: The required permission bit(s)

    Returns:
        bool: True if at least one group grants the permission
    """
    for group in user.get("groups") or []:
        if not isinstance(group, dict):
            continue
        granted = (group.get("permissions") or {}).get(class_name, Permission.NONE)
        if int(granted) & int(permission):
            return True
    return False


def has_record_access(user: Dict[str, Any], record: Dict[str, Any]) -> bool:
    """
    Check the group restrictions of a record against the groups of a user.

    Records without restrictions are accessible to everyone.
    """
    restrictions = _group_rids(record.get("groupRestrictions"))
    if not restrictions:
        return True
    return bool(restrictions & _group_rids(user.get("groups")))


class _RecordFilter:
    """Decides which records (and nested records) a user may read."""

    def __init__(self, user: Optional[Dict[str, Any]] = None):
        self.user = user
        self.groups: Set[str] = set()
        self.readable: Set[str] = set()

        if user is not None:
            for group in user.get("groups") or []:
                self.groups |= _group_rids([group])
                if not isinstance(group, dict):
                    continue
                for cls, granted in (group.get("permissions") or {}).items():
                    if int(granted) & Permission.READ:
                        self.readable.add(cls)

    def access_ok(self, record: Dict[str, Any]) -> bool:
        if self.user is None:
            return True
        # embedded records have no identity and no class-level permissions
        cls = record.get(CLASS) if record.get(RID) is not None else None
        if cls and cls not in self.readable:
            return False
        restrictions = _group_rids(record.get("groupRestrictions"))
        if not restrictions:
            return True
        return bool(restrictions & self.groups)


def _is_record(value: Any) -> bool:
    return isinstance(value, dict) and value.get(RID) is not None


def trim_records(
    records: List[Dict[str, Any]],
    history: bool = False,
    user: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Remove records (and nested records) the user may not see.

    Nested linked records are dropped when they are not readable by the user
    or (unless history is requested) deleted. Expanded edge lists are
    filtered the same way. Top level records are removed last.

    Args:
        records: Selected records, modified in place
        history: Keep deleted records
        user: The acting user (no access checks when omitted)

    Returns:
        List[Dict[str, Any]]: The accessible top level records
    """
    check = _RecordFilter(user)
    queue = list(records)
    visited: Set[int] = set()

    def keep(value: Dict[str, Any]) -> bool:
        return check.access_ok(value) and (history or value.get("deletedAt") is None)

    while queue:
        current = queue.pop(0)
        if id(current) in visited:
            continue
        visited.add(id(current))
        top_level = any(current is record for record in records)

        for attr in list(current.keys()):
            value = current[attr]

            if attr == "history" and value is not None:
                if not history and not top_level:
                    del current[attr]
                elif _is_record(value):
                    current[attr] = value[RID]
            elif _is_record(value):
                if keep(value):
                    queue.append(value)
                else:
                    del current[attr]
            elif attr.startswith(("out_", "in_")) and isinstance(value, list):
                kept = [edge for edge in value if not isinstance(edge, dict) or check.access_ok(edge)]
                if not kept:
                    del current[attr]
                else:
                    queue.extend(edge for edge in kept if isinstance(edge, dict))
                    current[attr] = kept
            elif isinstance(value, list) and any(_is_record(item) for item in value):
                kept = [item for item in value if not _is_record(item) or keep(item)]
                queue.extend(item for item in kept if _is_record(item))
                current[attr] = kept

    return [record for record in records if keep(record)]


__all__ = ["check_user_access_for", "has_record_access", "trim_records"]
