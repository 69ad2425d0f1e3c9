"""
Update and delete commands.

Records are never changed in place without keeping their previous version:
the current content is copied into a new deleted record, which the live
record points to through its ``history`` link. The live record keeps its
identity (and so its edges). Deleted edges are moved onto copies of their
vertices so that later changes to the vertices do not alter the deleted
subgraph.

Every step of a mutation is submitted in a single transaction. Steps that
change an existing record are guarded by the ``createdAt`` value observed when
the record was selected; if another request changed the record first the
transaction is rolled back.
"""

import logging
from typing import Any, Dict, List, Optional

from ...database.base import (
    DatabaseRequestError,
    DatabaseSession,
    GraphKBError,
    OperationNotImplementedError,
    PermissionDeniedError,
    RecordConflictError,
    ValidationError,
)
from ...database.records import CLASS, RID, generate_rid, property_ref, timestamp_now
from ...database.transaction import ConditionalUpdate, CreateRecord, RelinkEdge, Select, describe_steps
from ...models.class_model import ClassModel, Permission
from ...models.registry import SchemaDefinition
from ..permissions import check_user_access_for, has_record_access
from ..query_builder import DefaultProjection, WrapperQuery, parse, parse_record
from ..util import omit_db_attributes
from .select import fetch_display_name, select, select_by_rid

logger = logging.getLogger(__name__)

# derived from other properties, regenerated on every update
GENERATED_ON_UPDATE = ("displayName", "break1Repr", "break2Repr")


# ================================
# Step Builders
# ================================

def _history_copy(
    schema: SchemaDefinition,
    record: Dict[str, Any],
    user_rid: str,
    now: int,
) -> CreateRecord:
    """Step creating a deleted copy of the current content of a vertex."""
    model = schema.get(record[CLASS])
    content = schema.format_record(
        model,
        omit_db_attributes(record),
        add_defaults=False,
        drop_extra=True,
        ignore_missing=True,
    )
    content.update({
        RID: generate_rid(),
        CLASS: model.name,
        "deletedAt": now,
        "deletedBy": user_rid,
    })
    return CreateRecord(tuple(model.labels), content)


def _archive_vertex(
    schema: SchemaDefinition,
    record: Dict[str, Any],
    user_rid: str,
    now: int,
) -> List[Any]:
    """
    Steps copying a vertex into its history and re-stamping the live vertex.

    Used for the vertices of edges being deleted, which change without their
    own content changing.
    """
    copy = _history_copy(schema, record, user_rid, now)
    return [
        copy,
        ConditionalUpdate(
            record[RID],
            {"history": copy.rid, "createdAt": now, "createdBy": user_rid},
            created_at=record.get("createdAt"),
        ),
    ]


def _result_step(schema: SchemaDefinition, model: ClassModel, rid: str) -> Select:
    query = parse(schema, {"target": [rid], "model": model.name, "history": True, "limit": None})
    return Select(*query.to_cypher())


def _unset_embedded(model: ClassModel, original: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Null out the stored sub-properties of embedded values being replaced.

    Embedded values are stored as dotted properties, so sub-properties missing
    from the new value would otherwise survive the update.
    """
    unset = {}
    for name, value in changes.items():
        prop = model.query_properties.get(name)
        if prop is None or not prop.is_embedded or not isinstance(original.get(name), dict):
            continue
        new_keys = set(value) if isinstance(value, dict) else set()
        for sub_name in original[name]:
            if sub_name not in new_keys:
                unset[f"{name}.{sub_name}"] = None
    return unset


def _include_subject(original: Dict[str, Any], changes: Dict[str, Any]) -> None:
    """Statement conditions always contain the statement subject."""
    subject = changes.get("subject") or original.get("subject")

    if "conditions" in changes:
        conditions = changes["conditions"]
    elif "subject" in changes:
        conditions = list(original.get("conditions") or [])
    else:
        return

    if subject not in conditions:
        conditions.append(subject)
    changes["conditions"] = conditions


async def update_node_steps(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model: ClassModel,
    original: Dict[str, Any],
    changes: Dict[str, Any],
    user_rid: str,
) -> List[Any]:
    """
    Transaction steps for updating a vertex.

    1. copy the current content to a new deleted record
    2. apply the changes to the live record and point its history at the copy
    3. select the updated record
    """
    now = timestamp_now()
    changes = dict(changes)
    content = schema.format_record(
        model, omit_db_attributes(original), add_defaults=False, drop_extra=True, ignore_missing=True
    )

    if model.name == "Statement":
        _include_subject(content, changes)

    post_update = {
        key: value for key, value in {**content, **changes}.items()
        if key not in GENERATED_ON_UPDATE
    }

    if model.name == "PositionalVariant":
        reformatted = schema.format_record(model, post_update, add_defaults=True)
        changes["break1Repr"] = reformatted.get("break1Repr")
        changes["break2Repr"] = reformatted.get("break2Repr")
        post_update.update(changes)

    properties = model.query_properties
    if "displayName" in properties and not changes.get("displayName"):
        changes["displayName"] = await fetch_display_name(session, schema, model, post_update)
    elif "displayNameTemplate" in properties and not changes.get("displayNameTemplate"):
        changes["displayNameTemplate"] = await fetch_display_name(session, schema, model, post_update)

    copy = _history_copy(schema, original, user_rid, now)
    changes.update(_unset_embedded(model, original, changes))
    changes.update({"history": copy.rid, "updatedAt": now, "updatedBy": user_rid})

    return [
        copy,
        ConditionalUpdate(original[RID], changes, created_at=original.get("createdAt")),
        _result_step(schema, model, original[RID]),
    ]


ADJACENT_EDGES = (
    f"MATCH (n:V)-[e]-(t:V) WHERE {property_ref('n', RID)} = $rid AND e.deletedAt IS NULL "
    "RETURN e {.*} AS edge, type(e) AS edgeClass, t {.*} AS target, startNode(e) = n AS outgoing"
)


async def delete_node_steps(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model: ClassModel,
    original: Dict[str, Any],
    user_rid: str,
) -> List[Any]:
    """
    Transaction steps for deleting a vertex and its edges.

    Every active edge of the vertex is deleted and moved onto a copy of the
    vertex at its other end. Vertices connected by several edges are copied
    once.
    """
    now = timestamp_now()
    rid = original[RID]
    steps: List[Any] = [
        ConditionalUpdate(rid, {"deletedAt": now, "deletedBy": user_rid}, created_at=original.get("createdAt")),
    ]
    copies: Dict[str, str] = {}

    rows = await session.query(ADJACENT_EDGES, {"rid": rid})
    logger.debug(f"deleting {rid} with {len(rows)} active edges")

    for row in rows:
        edge, target = row["edge"], row["target"]
        target_rid = target[RID]

        if target_rid not in copies:
            archive = _archive_vertex(schema, target, user_rid, now)
            copies[target_rid] = archive[0].rid
            steps.extend(archive)

        if row["outgoing"]:
            source_rid, new_target_rid = rid, copies[target_rid]
        else:
            source_rid, new_target_rid = copies[target_rid], rid

        steps.append(RelinkEdge(
            edge[RID],
            row["edgeClass"],
            source_rid,
            new_target_rid,
            {"deletedAt": now, "deletedBy": user_rid},
            created_at=edge.get("createdAt"),
        ))

    steps.append(_result_step(schema, model, rid))
    return steps


async def modify_edge_steps(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model: ClassModel,
    original: Dict[str, Any],
    changes: Optional[Dict[str, Any]],
    user: Dict[str, Any],
) -> List[Any]:
    """
    Transaction steps for deleting an edge.

    Both vertices are copied and the edge is moved onto the copies and marked
    deleted.

    Raises:
        PermissionDeniedError: If the user may not delete records of either vertex class
        OperationNotImplementedError: If the edge has changes (edges cannot be updated)
    """
    endpoints = await select_by_rid(session, schema, [original["out"], original["in"]])
    source, target = endpoints[original["out"]], endpoints[original["in"]]

    if (
        not check_user_access_for(user, source[CLASS], Permission.DELETE)
        and not check_user_access_for(user, target[CLASS], Permission.DELETE)
    ):
        raise PermissionDeniedError(
            f"user has insufficient permissions to delete edges between records of types "
            f"({source[CLASS]}, {target[CLASS]})"
        )
    if changes is not None:
        raise OperationNotImplementedError(
            "Cannot update edges. Edges cannot be moved between vertices and changed in a single step"
        )

    now = timestamp_now()
    user_rid = user[RID]
    source_archive = _archive_vertex(schema, source, user_rid, now)
    target_archive = _archive_vertex(schema, target, user_rid, now)

    return [
        *source_archive,
        *target_archive,
        RelinkEdge(
            original[RID],
            model.name,
            source_archive[0].rid,
            target_archive[0].rid,
            {"deletedAt": now, "deletedBy": user_rid},
            created_at=original.get("createdAt"),
        ),
        _result_step(schema, model, original[RID]),
    ]


# ================================
# Integrity Checks
# ================================

async def _count(session: DatabaseSession, schema: SchemaDefinition, target: str, filters: Dict[str, Any]) -> int:
    rows = await select(session, parse(schema, {"target": target, "filters": filters, "count": True}))
    return rows[0]["count"] if rows else 0


async def active_index_check(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model: ClassModel,
    original: Dict[str, Any],
    changes: Dict[str, Any],
) -> None:
    """
    Check that no other active record shares the active index of the updated record.

    Only runs when the changes touch an active index property.

    Raises:
        RecordConflictError: If another active record has the same index values
    """
    active = schema.active_properties(model.name)
    if not active or not set(active) & set(changes):
        return

    content = schema.format_record(
        model, omit_db_attributes(original), add_defaults=False, drop_extra=True, ignore_missing=True
    )
    query = parse_record(
        schema, model.name, {**content, **changes}, active_index_only=True, exclude_rid=original[RID]
    )
    if await select(session, query):
        raise RecordConflictError(
            f"Cannot update the record. Violates the unique constraint ({model.name}.active)",
            sql=query.display_string(),
        )


async def deletion_link_checks(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model: ClassModel,
    rid: str,
) -> None:
    """
    Check that no active variant or statement uses a term being deleted.

    Raises:
        RecordConflictError: If the record is still in use
    """
    if model.name == "Vocabulary":
        variant_filters = {"type": rid}
    elif model.inherits_from("Ontology"):
        variant_filters = {"OR": [{"reference1": rid}, {"reference2": rid}]}
    else:
        return

    count = await _count(session, schema, "Variant", variant_filters)
    if count > 0:
        raise RecordConflictError(f"Cannot delete {rid} since it is used by {count} Variant records")

    count = await _count(session, schema, "Statement", {"OR": [
        {"conditions": rid, "operator": "CONTAINS"},
        {"evidence": rid, "operator": "CONTAINS"},
        {"subject": rid},
    ]})
    if count > 0:
        raise RecordConflictError(f"Cannot delete {rid} since it is used by {count} Statement records")


# ================================
# Commands
# ================================

async def modify(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model_name: Any,
    query: WrapperQuery,
    user: Dict[str, Any],
    changes: Optional[Dict[str, Any]] = None,
    paranoid: bool = True,
) -> Any:
    """
    Update (or, when changes is None, delete) the single record selected by a query.

    Args:
        session: The database session
        schema: The schema definition
        model_name: The class used to format the changes
        query: Query selecting exactly one active record
        user: The user making the change
        changes: The new property values, None to delete the record
        paranoid: Keep the previous version of the record. Without it the
            changes are applied in place and the affected row count returned

    Returns:
        Any: The record after the change (or the affected row count when not paranoid)

    Raises:
        NoRecordFoundError: If the query matches no active record
        MultipleRecordsFoundError: If the query matches more than one record
        PermissionDeniedError: If the record is restricted from the user
        RecordConflictError: If a deleted record is still in use, or an update matches
            the active index of another record
        ConcurrentModificationError: If the record changed since it was selected
    """
    if query is None or model_name is None or not user:
        raise ValidationError("missing required argument")
    model = schema.get(model_name)

    if paranoid:
        query.projection = DefaultProjection()

    original = (await select(session, query, exactly_n=1))[0]

    if not has_record_access(user, original):
        raise PermissionDeniedError(
            f"The user '{user.get('name')}' does not have sufficient permissions to interact with "
            f"record {original[RID]}"
        )

    if changes is None:
        await deletion_link_checks(session, schema, model, original[RID])
    else:
        changes = schema.format_record(
            model,
            omit_db_attributes(changes),
            add_defaults=False,
            drop_extra=False,
            ignore_extra=False,
            ignore_missing=True,
        )
        await active_index_check(session, schema, model, original, changes)

    if not paranoid:
        if changes is None:
            changes = {"deletedAt": timestamp_now(), "deletedBy": user[RID]}
        else:
            changes.update(_unset_embedded(model, original, changes))
        step = ConditionalUpdate(original[RID], changes, is_edge=model.is_edge)
        rows = await session.commit([step])

        if len(rows) != 1:
            raise DatabaseRequestError("Failed to modify", sql=describe_steps([step]))
        return len(rows)

    if model.is_edge:
        steps = await modify_edge_steps(session, schema, model, original, changes, user)
    elif changes is None:
        steps = await delete_node_steps(session, schema, model, original, user[RID])
    else:
        steps = await update_node_steps(session, schema, model, original, changes, user[RID])

    sql = describe_steps(steps)
    logger.debug(sql)

    try:
        rows = await session.commit(steps)
    except GraphKBError as err:
        if err.sql is None:
            err.sql = sql
        raise

    if not rows:
        raise DatabaseRequestError("Failed to modify", sql=sql)
    return rows[0]


async def update(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model_name: Any,
    query: WrapperQuery,
    changes: Dict[str, Any],
    user: Dict[str, Any],
    paranoid: bool = True,
) -> Any:
    """
    Update a vertex, keeping its previous version as history.

    Raises:
        ValidationError: If no changes are given
    """
    if changes is None:
        raise ValidationError("changes is a required argument")
    return await modify(session, schema, model_name, query, user, changes=changes, paranoid=paranoid)


async def remove(
    session: DatabaseSession,
    schema: SchemaDefinition,
    model_name: Any,
    query: WrapperQuery,
    user: Dict[str, Any],
    paranoid: bool = True,
) -> Any:
    """Delete a record by marking it deleted. Edges of deleted vertices are deleted as well."""
    return await modify(session, schema, model_name, query, user, changes=None, paranoid=paranoid)


__all__ = [
    "ADJACENT_EDGES",
    "active_index_check",
    "delete_node_steps",
    "deletion_link_checks",
    "modify",
    "modify_edge_steps",
    "remove",
    "update",
    "update_node_steps",
]
