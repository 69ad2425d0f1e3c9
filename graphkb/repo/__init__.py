"""
Repository layer: the query builder, access checks and the record commands
used by the route layer.
"""

from .commands import (
    create,
    create_user,
    fetch_display_name,
    get_user_by_name,
    remove,
    select,
    select_by_rid,
    select_counts,
    update,
)
from .permissions import check_user_access_for, has_record_access, trim_records
from .query_builder import parse, parse_record

__all__ = [
    "create",
    "create_user",
    "fetch_display_name",
    "get_user_by_name",
    "remove",
    "select",
    "select_by_rid",
    "select_counts",
    "update",
    "check_user_access_for",
    "has_record_access",
    "trim_records",
    "parse",
    "parse_record",
]
