"""
Typed transaction steps.

A copy-on-write mutation is an ordered list of steps submitted to the store as
a single transaction. Each step compiles to exactly one statement, so the step
sequence can be inspected (and tested) independently of the driver.

Record identities are generated before the transaction is built, which lets
later steps refer to records created by earlier ones without statement
variables.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from .records import CLASS, RID, escape_name, flatten_record, labels_clause, property_ref


def flatten_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a change set, keeping explicit nulls so that they unset properties."""
    result = flatten_record(changes)
    for key, value in changes.items():
        if value is None:
            result[key] = None
    return result


def cypher_literal(value: Any) -> str:
    """Render a parameter value as statement literal text (display only)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return "'{}'".format(value.replace("'", "\\'"))
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[{}]".format(", ".join(cypher_literal(v) for v in value))
    if isinstance(value, dict):
        return "{{{}}}".format(", ".join(
            f"{escape_name(str(k))}: {cypher_literal(v)}" for k, v in value.items()
        ))
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(str(value))


def display_statement(statement: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Substitute parameter values into the statement text for human consumption.

    Example:
        >>> display_statement("MATCH (n0:Disease) WHERE n0.name = $param0 RETURN n0", {"param0": "cancer"})
        "MATCH (n0:Disease) WHERE n0.name = 'cancer' RETURN n0"
    """
    result = statement
    for key, value in (params or {}).items():
        literal = cypher_literal(value)
        result = re.sub(r"\$" + re.escape(key) + r"\b", lambda _: literal, result)
    return result


@dataclass(frozen=True)
class CreateRecord:
    """Create a new vertex with the given labels and content."""

    labels: Tuple[str, ...]
    content: Dict[str, Any]

    expected_rows = 1

    @property
    def rid(self) -> str:
        return self.content[RID]

    def to_cypher(self) -> Tuple[str, Dict[str, Any]]:
        statement = (
            f"CREATE (n{labels_clause(self.labels)} $content) "
            f"RETURN {property_ref('n', RID)} AS rid"
        )
        return statement, {"content": flatten_record(self.content)}


@dataclass(frozen=True)
class ConditionalUpdate:
    """
    Apply changes to an existing record.

    When `created_at` is given the update only applies if the record still
    carries that timestamp, i.e. nobody modified it since it was selected.
    """

    rid: str
    changes: Dict[str, Any]
    created_at: Optional[int] = None
    is_edge: bool = False

    @property
    def expected_rows(self) -> Optional[int]:
        return 1 if self.created_at is not None else None

    def to_cypher(self) -> Tuple[str, Dict[str, Any]]:
        params: Dict[str, Any] = {"rid": self.rid, "changes": flatten_changes(self.changes)}
        match = "MATCH ()-[n]->()" if self.is_edge else "MATCH (n:V)"
        conditions = [f"{property_ref('n', RID)} = $rid"]

        if self.created_at is not None:
            conditions.append("n.createdAt = $createdAt")
            params["createdAt"] = self.created_at

        statement = (
            f"{match} WHERE {' AND '.join(conditions)} "
            f"SET n += $changes RETURN {property_ref('n', RID)} AS rid"
        )
        return statement, params


@dataclass(frozen=True)
class RelinkEdge:
    """
    Move an edge onto new endpoints and apply changes to it.

    Relationships cannot change endpoints in place, so the edge is re-created
    between the new endpoints with all of its properties (identity included)
    and the old relationship is removed.
    """

    rid: str
    edge_class: str
    source_rid: str
    target_rid: str
    changes: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[int] = None

    expected_rows = 1

    def to_cypher(self) -> Tuple[str, Dict[str, Any]]:
        edge_type = escape_name(self.edge_class)
        params: Dict[str, Any] = {
            "rid": self.rid,
            "source": self.source_rid,
            "target": self.target_rid,
            "changes": flatten_changes(self.changes),
        }
        conditions = [f"{property_ref('e', RID)} = $rid"]

        if self.created_at is not None:
            conditions.append("e.createdAt = $createdAt")
            params["createdAt"] = self.created_at

        statement = " ".join([
            f"MATCH ()-[e:{edge_type}]->() WHERE {' AND '.join(conditions)}",
            f"MATCH (s:V), (t:V) WHERE {property_ref('s', RID)} = $source AND {property_ref('t', RID)} = $target",
            f"CREATE (s)-[r:{edge_type}]->(t)",
            "SET r = properties(e)",
            "SET r += $changes",
            "DELETE e",
            f"RETURN {property_ref('r', RID)} AS rid",
        ])
        return statement, params


@dataclass(frozen=True)
class Select:
    """Read records back at the end of the transaction."""

    statement: str
    params: Dict[str, Any] = field(default_factory=dict)

    expected_rows = None

    def to_cypher(self) -> Tuple[str, Dict[str, Any]]:
        return self.statement, dict(self.params)


def describe_steps(steps: Sequence[Any]) -> str:
    """Render a transaction as readable statement text, one step per line."""
    lines = []
    for step in steps:
        statement, params = step.to_cypher()
        lines.append(display_statement(statement, params))
    return ";\n".join(lines)


__all__ = [
    "CLASS",
    "RID",
    "ConditionalUpdate",
    "CreateRecord",
    "RelinkEdge",
    "Select",
    "cypher_literal",
    "describe_steps",
    "display_statement",
    "flatten_changes",
]
