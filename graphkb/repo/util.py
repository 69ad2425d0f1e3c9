"""
Repository helpers shared by the query builder and the commands.
"""

from typing import Any, Dict


def omit_db_attributes(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy a record without its store-managed attributes.

    Drops the identity and class (``@`` prefixed keys), expanded edge lists
    (``out_*`` / ``in_*``) and internal (``_`` prefixed) keys.
    """
    return {
        key: value for key, value in record.items()
        if not key.startswith(("@", "out_", "in_", "_"))
    }


__all__ = ["omit_db_attributes"]
