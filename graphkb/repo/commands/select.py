"""
Read commands: selecting records, counting records per class, looking up
users, and resolving the display names of new or changed records.
"""

import logging
from typing import Any, Dict, List, Optional

from ...database.base import (
    DatabaseSession,
    GraphKBError,
    MultipleRecordsFoundError,
    NoRecordFoundError,
    ValidationError,
)
from ...database.records import RID, property_ref
from ...models.class_model import ClassModel
from ...models.property import PropertyType
from ...models.registry import SchemaDefinition
from ...models.templates import choose_default_template
from ...models.variant import stringify_variant
from ..permissions import trim_records
from ..query_builder import WrapperQuery, parse
from ..query_builder.fragment import match_pattern

logger = logging.getLogger(__name__)


async def select(
    session: DatabaseSession,
    query: WrapperQuery,
    exactly_n: Optional[int] = None,
    user: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Run a query and return the records the user may read.

    Args:
        session: The database session
        query: The parsed query
        exactly_n: Fail unless exactly this many records are found
        user: The acting user (records are not access checked when omitted)

    Returns:
        List[Dict[str, Any]]: The selected records

    Raises:
        NoRecordFoundError: If fewer than `exactly_n` records are found
        MultipleRecordsFoundError: If more than `exactly_n` records are found
    """
    statement, params = query.to_cypher()
    display = query.display_string()
    logger.debug(f"select: {display}")

    try:
        records = await session.query(statement, params)
    except GraphKBError as err:
        if err.sql is None:
            err.sql = display
        raise

    logger.debug(f"selected {len(records)} records")
    records = trim_records(records, history=query.history, user=user)

    if exactly_n is not None and len(records) != exactly_n:
        if len(records) < exactly_n:
            raise NoRecordFoundError(
                f"query expected {exactly_n} records but only found {len(records)}",
                sql=display,
            )
        raise MultipleRecordsFoundError(
            f"query returned unexpected number of results. Found {len(records)} results "
            f"but expected {exactly_n} results",
            sql=display,
        )
    return records


def _groupable_properties(schema: SchemaDefinition) -> List[str]:
    """Link properties of vertex classes whose linked class has a display name."""
    names = set()
    for model in schema.models.values():
        if model.is_edge or model.is_embedded or not model.inherits_from("V"):
            continue
        for name, prop in model.query_properties.items():
            if prop.type != PropertyType.LINK or not prop.linked_class:
                continue
            if "displayName" in schema.get(prop.linked_class).query_properties:
                names.add(name)
    return sorted(names)


async def select_counts(
    session: DatabaseSession,
    schema: SchemaDefinition,
    class_list: Optional[List[str]] = None,
    history: bool = False,
    group_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Count the records of each class.

    Args:
        session: The database session
        schema: The schema definition
        class_list: Classes to count (defaults to every non-embedded class)
        history: Count deleted records as well
        group_by: Link property whose linked record display names subdivide the counts

    Returns:
        Dict[str, Any]: Counts per class name, or per class and display name when grouped

    Raises:
        ValidationError: If `group_by` cannot be used for grouping
    """
    if group_by and group_by not in _groupable_properties(schema):
        raise ValidationError(
            f"Invalid groupBy property ({group_by}). Must be one of: {', '.join(_groupable_properties(schema))}"
        )
    if class_list is None:
        class_list = sorted(name for name, model in schema.models.items() if not model.is_embedded)

    counts: Dict[str, Any] = {}
    for name in class_list:
        model = schema.get(name)
        statement = match_pattern("n", model)
        if not history:
            statement = f"{statement} WHERE n.deletedAt IS NULL"

        if group_by:
            statement = (
                f"{statement} OPTIONAL MATCH (g:V) WHERE {property_ref('g', RID)} = {property_ref('n', group_by)} "
                "RETURN g.displayName AS value, count(n) AS count"
            )
        else:
            statement = f"{statement} RETURN count(n) AS count"

        logger.debug(f"count: {statement}")
        rows = await session.query(statement)

        if group_by:
            counts[model.name] = {row.get("value"): row["count"] for row in rows}
        else:
            counts[model.name] = rows[0]["count"] if rows else 0
    return counts


USER_BY_NAME = (
    "MATCH (u:User) WHERE u.name = $name AND u.deletedAt IS NULL "
    "RETURN u {.*, groups: COLLECT { "
    f"MATCH (g:UserGroup) WHERE {property_ref('g', RID)} IN coalesce(u.groups, []) RETURN g {{.*}} "
    "} } AS user"
)


async def get_user_by_name(session: DatabaseSession, username: str) -> Dict[str, Any]:
    """
    Look up an active user by name, with its groups expanded.

    Raises:
        NoRecordFoundError: If no such user exists
        MultipleRecordsFoundError: If the username is not unique
    """
    logger.debug(f"getUserByName: {username}")
    users = await session.query(USER_BY_NAME, {"name": username})

    if len(users) > 1:
        raise MultipleRecordsFoundError(
            f"username ({username}) is not unique and returned multiple ({len(users)}) records"
        )
    if not users:
        raise NoRecordFoundError(f"no user found for the username '{username}'")
    return users[0]


# ================================
# Record Lookup
# ================================

async def select_by_rid(
    session: DatabaseSession,
    schema: SchemaDefinition,
    rids: List[str],
) -> Dict[str, Dict[str, Any]]:
    """
    Select records by their ids regardless of their deletion state.

    Returns:
        Dict[str, Dict[str, Any]]: The records keyed by record id

    Raises:
        NoRecordFoundError: If any of the records does not exist
    """
    rids = [rid for rid in dict.fromkeys(rids) if rid]
    if not rids:
        return {}
    records = await select(session, parse(schema, {"target": rids, "history": True, "limit": None}))
    by_rid = {record[RID]: record for record in records}

    missing = [rid for rid in rids if rid not in by_rid]
    if missing:
        raise NoRecordFoundError(f"linked records could not be found ({', '.join(missing)})")
    return by_rid


# ================================
# Display Names
# ================================

def _display(record: Dict[str, Any]) -> Optional[str]:
    return record.get("displayName") or record.get("name")


async def fetch_display_name(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model_name: Any,
    content: Dict[str, Any],
) -> Optional[str]:
    """
    Build the display name of a record from the records it links to.

    Variants are named by their type and references (positional variants by
    their notation), statements get a sentence template. Other records are
    named after their name.

    Args:
        session: The database session
        schema: The schema definition
        model_name: The class (name or model) of the record
        content: The (formatted) record content

    Returns:
        Optional[str]: The display name, or the display template for statements
    """
    model: ClassModel = schema.get(model_name)

    if model.inherits_from("Variant"):
        links = [content.get("type"), content.get("reference1"), content.get("reference2")]
        linked = await select_by_rid(session, schema, [link for link in links if link])
        variant_type = linked[content["type"]]
        reference1 = linked[content["reference1"]]
        reference2 = linked.get(content.get("reference2"))

        if model.name == "CategoryVariant":
            if reference2:
                return f"{_display(reference1)} and {_display(reference2)} {_display(variant_type)}"
            return f"{_display(reference1)} {_display(variant_type)}"

        if model.name == "PositionalVariant":
            return stringify_variant({
                **content,
                "multiFeature": bool(reference2 and _display(reference2)),
                "reference1": _display(reference1),
                "reference2": _display(reference2) if reference2 else None,
                "type": content.get("hgvsType") or variant_type.get("shortName") or _display(variant_type),
            })

    if model.name == "Statement":
        conditions = list(content.get("conditions") or [])
        evidence = list(content.get("evidence") or [])
        links = conditions + evidence + [content.get("relevance"), content.get("subject")]
        linked = await select_by_rid(session, schema, [link for link in links if link])

        return choose_default_template({
            **content,
            "conditions": [linked[rid] for rid in conditions],
            "evidence": [linked[rid] for rid in evidence],
            "relevance": linked.get(content.get("relevance")),
            "subject": linked.get(content.get("subject")),
        })

    return content.get("name")


__all__ = [
    "USER_BY_NAME",
    "fetch_display_name",
    "get_user_by_name",
    "select",
    "select_by_rid",
    "select_counts",
]
