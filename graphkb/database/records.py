"""
Record representation helpers.

Records are stored with their identity (`@rid`) and class (`@class`) as plain
properties. Embedded objects cannot be stored as property values, so they are
flattened into dotted keys on write (``break1Start.pos``) and re-nested when
records are read back.
"""

import re
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from neo4j.graph import Node, Relationship

RID = "@rid"
CLASS = "@class"

_SIMPLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# keywords that cannot be used as bare names in statements
_RESERVED = {
    "all", "and", "any", "as", "asc", "by", "call", "case", "contains", "count", "create",
    "delete", "desc", "distinct", "end", "ends", "exists", "false", "in", "is", "limit",
    "match", "merge", "none", "not", "null", "or", "order", "return", "set", "single",
    "skip", "starts", "true", "union", "where", "with", "xor",
}
_RID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def escape_name(name: str) -> str:
    """Quote a property or variable name for use in a statement when required."""
    if _SIMPLE_NAME.match(name) and name.lower() not in _RESERVED:
        return name
    return "`{}`".format(name.replace("`", "``"))


def property_ref(variable: str, name: str) -> str:
    """
    Reference a property of a bound variable.

    Example:
        >>> property_ref("n0", "@rid")
        'n0.`@rid`'
    """
    return f"{variable}.{escape_name(name)}"


def labels_clause(labels: Iterable[str]) -> str:
    """Render a label list as ``:A:B:C``."""
    return "".join(f":{escape_name(label)}" for label in labels)


def flatten_record(content: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten embedded objects into dotted property keys.

    Null values are dropped since the store does not keep null properties.
    """
    result: Dict[str, Any] = {}

    for key, value in content.items():
        if isinstance(value, dict):
            for sub_key, sub_value in flatten_record(value).items():
                result[f"{key}.{sub_key}"] = sub_value
        elif isinstance(value, (set, frozenset, tuple)):
            result[key] = sorted(value) if isinstance(value, (set, frozenset)) else list(value)
        elif value is not None:
            result[key] = value
    return result


def nest_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Inverse of `flatten_record`, applied recursively to nested records."""
    result: Dict[str, Any] = {}

    for key, value in record.items():
        if isinstance(value, dict):
            value = nest_record(value)
        elif isinstance(value, list):
            value = [nest_record(v) if isinstance(v, dict) else v for v in value]

        if "." not in key:
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key].update(value)
            else:
                result[key] = value
            continue

        if value is None:
            # unset embedded sub-properties
            continue
        path = key.split(".")
        level = result
        for part in path[:-1]:
            if not isinstance(level.get(part), dict):
                level[part] = {}
            level = level[part]
        level[path[-1]] = value
    return result


def to_record(value: Any) -> Any:
    """Convert driver graph types (nodes, relationships, maps, lists) to plain values."""
    if isinstance(value, Node):
        return {key: to_record(v) for key, v in value.items()}
    if isinstance(value, Relationship):
        result = {key: to_record(v) for key, v in value.items()}
        if value.start_node is not None and value.start_node.get(RID) is not None:
            result.setdefault("out", value.start_node.get(RID))
        if value.end_node is not None and value.end_node.get(RID) is not None:
            result.setdefault("in", value.end_node.get(RID))
        return result
    if isinstance(value, dict):
        return {key: to_record(v) for key, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_record(v) for v in value]
    return value


def record_to_dict(keys: List[str], values: List[Any]) -> Dict[str, Any]:
    """
    Convert one result row to a dictionary.

    A row holding a single graph element (or map) is returned as that element;
    any other row is keyed by its column names.
    """
    if len(values) == 1 and isinstance(values[0], (Node, Relationship, dict)):
        return nest_record(to_record(values[0]))
    return nest_record({key: to_record(value) for key, value in zip(keys, values)})


def timestamp_now() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def generate_rid() -> str:
    """Create a new record identity."""
    return str(uuid.uuid4())


def looks_like_rid(value: Any) -> bool:
    """Check if a value is a record identity string."""
    return isinstance(value, str) and bool(_RID_PATTERN.match(value))


def cast_to_rid(value: Any) -> Optional[str]:
    """
    Reduce a record, or a record identity, to the identity string.

    Raises:
        ValueError: If the value cannot be interpreted as a record identity
    """
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get(RID)
    if looks_like_rid(value):
        return value.lower()
    raise ValueError(f"not a valid record id ({value!r})")
