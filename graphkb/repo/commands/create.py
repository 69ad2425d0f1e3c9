"""
Create commands: new vertices, new edges and new users.

Creation is a single statement so no transaction is required. Uniqueness
among active records cannot be enforced by the store (deleted copies share
the same values) so it is checked with a select before the insert.
"""

import logging
from typing import Any, Dict, List, Optional

from ...database.base import (
    DatabaseRequestError,
    DatabaseSession,
    GraphKBError,
    PermissionDeniedError,
    RecordConflictError,
    ValidationError,
)
from ...database.records import CLASS, RID, flatten_record, labels_clause, property_ref
from ...models.class_model import ClassModel, Permission
from ...models.registry import SchemaDefinition
from ..permissions import check_user_access_for
from ..query_builder import parse, parse_record
from ..util import omit_db_attributes
from .select import fetch_display_name, get_user_by_name, select, select_by_rid

logger = logging.getLogger(__name__)


def _user_rid(user: Dict[str, Any]) -> str:
    if not user or not user.get(RID):
        raise ValidationError("The user creating the record is required")
    return user[RID]


async def _insert(session: DatabaseSession, model: ClassModel, record: Dict[str, Any]) -> Dict[str, Any]:
    statement = f"CREATE (n{labels_clause(model.labels)} $content) RETURN n {{.*}} AS record"
    rows = await session.query(statement, {"content": flatten_record(record)})

    if not rows:
        raise DatabaseRequestError(f"Failed to create the {model.name} record")
    logger.debug(f"created {rows[0].get(RID)}")
    return rows[0]


async def create_edge(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model_name: Any,
    content: Dict[str, Any],
    user: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Create a new edge between two existing vertices.

    Args:
        session: The database session
        schema: The schema definition
        model_name: The edge class
        content: The edge content including its `out` and `in` vertices
        user: The user creating the edge

    Returns:
        Dict[str, Any]: The new edge

    Raises:
        ValidationError: If the content is invalid or the edge would be a self-loop
        PermissionDeniedError: If the user may not create records of either endpoint class
        NoRecordFoundError: If either endpoint does not exist
    """
    model = schema.get(model_name)
    content = {**omit_db_attributes(content), "createdBy": _user_rid(user)}
    record = schema.format_record(model, content, add_defaults=True, drop_extra=False)
    source_rid = record.pop("out")
    target_rid = record.pop("in")

    if source_rid == target_rid:
        raise ValidationError("an edge cannot be used to relate a node/vertex to itself")

    endpoints = await select_by_rid(session, schema, [source_rid, target_rid])
    source, target = endpoints[source_rid], endpoints[target_rid]

    if (
        not check_user_access_for(user, source[CLASS], Permission.CREATE)
        and not check_user_access_for(user, target[CLASS], Permission.CREATE)
    ):
        raise PermissionDeniedError(
            f"user has insufficient permissions to link records of types ({source[CLASS]}, {target[CLASS]})"
        )

    for label, allowed, vertex in (
        ("source", model.source_models, source),
        ("target", model.target_models, target),
    ):
        if allowed and not any(schema.get(vertex[CLASS]).inherits_from(name) for name in allowed):
            raise ValidationError(
                f"The {label} record ({vertex[RID]}) of class {vertex[CLASS]} cannot be used with "
                f"{model.name} edges. Must be one of: {', '.join(allowed)}"
            )

    statement = " ".join([
        f"MATCH (s:V), (t:V) WHERE {property_ref('s', RID)} = $source AND {property_ref('t', RID)} = $target",
        f"CREATE (s)-[r{labels_clause([model.name])} $content]->(t)",
        f"RETURN r {{.*, out: {property_ref('s', RID)}, `in`: {property_ref('t', RID)}}} AS record",
    ])
    rows = await session.query(statement, {
        "source": source_rid,
        "target": target_rid,
        "content": flatten_record(record),
    })

    if not rows:
        raise DatabaseRequestError(f"Failed to create the {model.name} edge")
    logger.debug(f"created {model.name} edge {rows[0].get(RID)} ({source_rid} -> {target_rid})")
    return rows[0]


async def create(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model_name: Any,
    content: Dict[str, Any],
    user: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Create a new record.

    The content is formatted against the class (defaults added, unknown
    properties rejected) and stamped with the creating user. Computed display
    names are filled in when they were not given.

    Args:
        session: The database session
        schema: The schema definition
        model_name: The class of the new record
        content: The record content
        user: The user creating the record

    Returns:
        Dict[str, Any]: The new record

    Raises:
        ValidationError: If the content is invalid or the class cannot have records
        RecordConflictError: If an active record with the same active index exists
        PermissionDeniedError: If an edge cannot be created by the user
    """
    model = schema.get(model_name)

    if model.is_abstract or model.is_embedded:
        kind = "abstract" if model.is_abstract else "embedded"
        raise ValidationError(f"Cannot create records of the {kind} class {model.name}")
    if model.is_edge:
        return await create_edge(session, schema, model, content, user)

    new_content = {**omit_db_attributes(content), "createdBy": _user_rid(user)}
    if model.inherits_from("V"):
        new_content["updatedBy"] = new_content["createdBy"]

    record = schema.format_record(model, new_content, add_defaults=True, drop_extra=False)

    if model.name == "Statement" and record["subject"] not in record["conditions"]:
        record["conditions"].append(record["subject"])

    if schema.active_properties(model.name):
        query = parse_record(schema, model.name, record, active_index_only=True)
        try:
            matches = await select(session, query)
        except GraphKBError as err:
            logger.error(f"Active index check failed for {model.name}: {err}")
            raise

        if matches:
            raise RecordConflictError(
                f"Cannot create the record. Violates the unique constraint ({model.name}.active)",
                sql=query.display_string(),
            )

    properties = model.query_properties
    if not content.get("displayName") and "displayName" in properties:
        record["displayName"] = await fetch_display_name(session, schema, model, record)
    elif not content.get("displayNameTemplate") and "displayNameTemplate" in properties:
        record["displayNameTemplate"] = await fetch_display_name(session, schema, model, record)

    return await _insert(session, model, record)


async def create_user(
    session: DatabaseSession,
    schema: SchemaDefinition,
    user_name: str,
    group_names: List[str],
    signed_license_at: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a new user and add it to the named groups.

    Unknown group names are ignored.

    Returns:
        Dict[str, Any]: The new user with its groups expanded
    """
    groups = await select(session, parse(schema, {"target": "UserGroup", "limit": None}))
    group_rids = [group[RID] for group in groups if group.get("name") in group_names]

    model = schema.get("User")
    record = schema.format_record(model, {
        "groups": group_rids,
        "name": user_name,
        "signedLicenseAt": signed_license_at,
    }, add_defaults=True, drop_extra=False)

    await _insert(session, model, record)
    logger.info(f"Created user {user_name} in groups: {', '.join(sorted(group_names))}")
    return await get_user_by_name(session, user_name)


__all__ = ["create", "create_edge", "create_user"]
