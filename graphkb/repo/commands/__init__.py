"""
Repository commands: reading, creating, updating and deleting records.
"""

from .create import create, create_edge, create_user
from .select import fetch_display_name, get_user_by_name, select, select_by_rid, select_counts
from .update import modify, remove, update

__all__ = [
    "create",
    "create_edge",
    "create_user",
    "fetch_display_name",
    "get_user_by_name",
    "select",
    "select_by_rid",
    "select_counts",
    "modify",
    "remove",
    "update",
]
