"""
Option casting and property lookup helpers for the query builder.
"""

from typing import Any, Dict, Optional

from ...database.base import ValidationError
from ...database.records import CLASS
from ...database.transaction import display_statement
from ...models.class_model import ClassModel
from ...models.property import Property
from ...models.registry import SchemaDefinition
from .constants import MAX_LIMIT, MAX_NEIGHBORS

_TRUE_VALUES = {"t", "true", "1"}
_FALSE_VALUES = {"f", "false", "0", "null", "none"}


def cast_range_int(value: Any, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """
    Cast a value to an integer within an (inclusive) range.

    Raises:
        ValidationError: If the value is not an integer or is out of range
    """
    try:
        if isinstance(value, bool):
            raise ValueError(value)
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        cast_value = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Expected an integer value but found {value!r}")

    if minimum is not None and cast_value < minimum:
        raise ValidationError(f"value ({cast_value}) must be greater than or equal to {minimum}")
    if maximum is not None and cast_value > maximum:
        raise ValidationError(f"value ({cast_value}) must be less than or equal to {maximum}")
    return cast_value


def cast_boolean(value: Any) -> bool:
    """
    Cast flag-like values ('t', 'true', '1', 'f', 'false', '0', 'null') to a boolean.

    Raises:
        ValidationError: If the value is not a recognized flag
    """
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValidationError(f"Expected a boolean value but found {text}")


def _split_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value]
    return [item.strip() for item in str(value).split(",")]


def check_standard_options(opt: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and cast the paging, ordering and output options of a query.

    Args:
        opt: The raw query description

    Returns:
        Dict[str, Any]: A copy of the description with the options cast

    Raises:
        ValidationError: On out of range or malformed options
    """
    options = dict(opt)

    if opt.get("limit") is not None:
        options["limit"] = cast_range_int(opt["limit"], 1, MAX_LIMIT)
    if opt.get("neighbors") is not None:
        options["neighbors"] = cast_range_int(opt["neighbors"], 0, MAX_NEIGHBORS)
    if opt.get("skip") is not None:
        options["skip"] = cast_range_int(opt["skip"], 0, None)
    if opt.get("orderBy"):
        options["orderBy"] = _split_list(opt["orderBy"])
    if opt.get("orderByDirection"):
        direction = str(opt["orderByDirection"]).strip().upper()
        if direction not in ("ASC", "DESC"):
            raise ValidationError(
                f"Bad value ({opt['orderByDirection']}). orderByDirection must be one of ASC or DESC"
            )
        options["orderByDirection"] = direction
    if opt.get("returnProperties"):
        options["returnProperties"] = _split_list(opt["returnProperties"])
    if "history" in opt:
        options["history"] = cast_boolean(opt["history"])
    if opt.get("count"):
        options["count"] = cast_boolean(opt["count"])
    return options


def embedded_properties(schema: SchemaDefinition, prop: Property) -> Dict[str, Property]:
    """
    Properties that may appear on records embedded in the given property.

    Combines the linked class with all of its subclasses since the concrete
    class of an embedded record is only known per record.
    """
    result: Dict[str, Property] = {CLASS: Property(name=CLASS)}
    if not prop.linked_class:
        return result

    for name in schema.descendants(prop.linked_class, include_self=True):
        for sub_name, sub_prop in schema.get(name).query_properties.items():
            result.setdefault(sub_name, sub_prop)
    return result


def get_queryable_props(
    schema: SchemaDefinition,
    model: ClassModel,
    include_embedded: bool = False,
) -> Dict[str, Property]:
    """
    Properties of a class that may be used in filters.

    Embedded properties are replaced by their sub-properties under dotted
    names (``break1Start.pos``); the embedded property itself is only kept
    when `include_embedded` is set.
    """
    result: Dict[str, Property] = {}

    for prop in model.query_properties.values():
        if prop.is_embedded and prop.linked_class:
            if include_embedded:
                result[prop.name] = prop
            for sub_name, sub_prop in embedded_properties(schema, prop).items():
                result[f"{prop.name}.{sub_name}"] = sub_prop
        else:
            result[prop.name] = prop
    return result


def display_query(statement: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Readable statement text with the parameter values substituted in."""
    return display_statement(statement, params)


__all__ = [
    "cast_boolean",
    "cast_range_int",
    "check_standard_options",
    "display_query",
    "embedded_properties",
    "get_queryable_props",
]
