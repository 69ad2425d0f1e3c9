"""
Projections: which properties of the selected records are returned, and how
far linked records and edges are expanded.

Projections compile to Cypher map projections. Linked records are expanded
with ``COLLECT`` subqueries matching the stored record ids, so every level of
expansion costs one nested subquery per link property.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from ...database.base import ValidationError
from ...database.records import RID, escape_name, labels_clause, property_ref
from ...models.class_model import ClassModel
from ...models.property import Property
from ...models.registry import SchemaDefinition
from .context import CompileContext, element_ref
from .util import embedded_properties, get_queryable_props

# never expanded in neighbor projections
DEFAULT_EXCLUDE = ("groupRestrictions", "permissions", "groups")
# expanded but not beyond the first level
DEFAULT_TERMINAL = ("createdBy", "updatedBy", "deletedBy")


def _map_projection(variable: str, entries: List[str]) -> str:
    return f"{variable} {{{', '.join(entries)}}}"


def _expand_link(
    ctx: CompileContext,
    variable: str,
    model: ClassModel,
    prop: Property,
    linked: ClassModel,
    inner: Callable[[str], str],
) -> str:
    """Map projection entry replacing a link (or linkset) by the linked record(s)."""
    linked_var = ctx.new_variable()
    ref = element_ref(variable, prop.name, model.is_edge)
    comparison = "IN" if prop.iterable else "="
    subquery = (
        f"COLLECT {{ MATCH ({linked_var}{labels_clause([linked.name])}) "
        f"WHERE {property_ref(linked_var, RID)} {comparison} {ref} "
        f"RETURN {inner(linked_var)} }}"
    )
    value = subquery if prop.iterable else f"head({subquery})"
    return f"{escape_name(prop.name)}: {value}"


def _endpoint_entries(variable: str, model: ClassModel, skip: Iterable[str] = ()) -> List[str]:
    """Edge endpoints are not stored as properties so they are always listed explicitly."""
    if not model.is_edge:
        return []
    return [
        f"{escape_name(name)}: {element_ref(variable, name, True)}"
        for name in ("out", "in")
        if name not in skip
    ]


class DefaultProjection:
    """All stored properties of the selected records."""

    def to_cypher(self, ctx: CompileContext, variable: str, model: ClassModel) -> str:
        return _map_projection(variable, [".*", *_endpoint_entries(variable, model)])


class RecordProjection:
    """
    All properties with links expanded to a given depth.

    Args:
        schema: The schema used to resolve linked classes
        depth: Levels of links to expand
        history: Expand the history and deletedBy links as well
        exclude: Links that are never expanded
        terminal: Links whose records are expanded without their own links
    """

    def __init__(
        self,
        schema: SchemaDefinition,
        depth: int = 1,
        history: bool = False,
        exclude: Iterable[str] = ("history",),
        terminal: Iterable[str] = (),
    ):
        self.schema = schema
        self.depth = depth
        self.history = history
        self.exclude = set(exclude)
        self.terminal = set(terminal)
        if not history:
            self.exclude |= {"history", "deletedBy"}

    def entries(self, ctx: CompileContext, variable: str, model: ClassModel, depth: int) -> List[str]:
        entries = [".*"]
        expanded = []

        if depth > 0:
            for name, prop in sorted(model.query_properties.items()):
                if not prop.is_link or name in self.exclude:
                    continue
                linked = self.schema.get(prop.linked_class or "V")
                inner_depth = 0 if name in self.terminal else depth - 1

                def inner(linked_var: str, linked: ClassModel = linked, inner_depth: int = inner_depth) -> str:
                    return _map_projection(linked_var, self.entries(ctx, linked_var, linked, inner_depth))

                entries.append(_expand_link(ctx, variable, model, prop, linked, inner))
                expanded.append(name)

        entries.extend(_endpoint_entries(variable, model, skip=expanded))
        return entries

    def to_cypher(self, ctx: CompileContext, variable: str, model: ClassModel) -> str:
        return _map_projection(variable, self.entries(ctx, variable, model, self.depth))


class NeighborProjection(RecordProjection):
    """
    Record projection that also expands the edges of vertices.

    Edges are returned under ``out_<EdgeClass>`` / ``in_<EdgeClass>`` keys,
    each edge with the record on its other end expanded one level less.
    """

    def __init__(
        self,
        schema: SchemaDefinition,
        depth: int = 1,
        edges: Optional[Iterable[str]] = None,
        history: bool = False,
        exclude: Iterable[str] = DEFAULT_EXCLUDE,
        terminal: Iterable[str] = DEFAULT_TERMINAL,
    ):
        super().__init__(schema, depth=depth, history=history, exclude=exclude, terminal=terminal)
        self.edges = sorted(edges) if edges is not None else schema.edge_names

    def _edge_entry(self, ctx: CompileContext, variable: str, edge: str, direction: str) -> str:
        edge_var = ctx.new_variable("e")
        other_var = ctx.new_variable()
        edge_label = labels_clause([edge])
        vertex = self.schema.get("V")

        if direction == "out":
            pattern = f"({variable})-[{edge_var}{edge_label}]->({other_var}:V)"
            own, other = "out", "in"
        else:
            pattern = f"({variable})<-[{edge_var}{edge_label}]-({other_var}:V)"
            own, other = "in", "out"

        where = "" if self.history else f" WHERE {edge_var}.deletedAt IS NULL"
        other_projection = _map_projection(
            other_var, self.entries(ctx, other_var, vertex, max(self.depth - 1, 0))
        )
        edge_projection = _map_projection(edge_var, [
            ".*",
            f"{escape_name(own)}: {property_ref(variable, RID)}",
            f"{escape_name(other)}: {other_projection}",
        ])
        key = escape_name(f"{direction}_{edge}")
        return f"{key}: COLLECT {{ MATCH {pattern}{where} RETURN {edge_projection} }}"

    def to_cypher(self, ctx: CompileContext, variable: str, model: ClassModel) -> str:
        entries = self.entries(ctx, variable, model, self.depth)
        if not model.is_edge:
            for direction in ("out", "in"):
                for edge in self.edges:
                    entries.append(self._edge_entry(ctx, variable, edge, direction))
        return _map_projection(variable, entries)


class SelectedProjection:
    """Only the listed properties (see `parse_property_list`)."""

    def __init__(self, schema: SchemaDefinition, properties: Dict[str, Dict]):
        self.schema = schema
        self.properties = properties

    def _entries(self, ctx: CompileContext, variable: str, model: ClassModel, tree: Dict[str, Dict]) -> List[str]:
        entries = []
        props = get_queryable_props(self.schema, model, include_embedded=True)

        for name in sorted(tree):
            prop = props[name]
            nested = tree[name]

            if prop.is_embedded:
                sub_names = sorted(nested) if nested else sorted(embedded_properties(self.schema, prop))
                entries.extend(
                    f".{escape_name(f'{name}.{sub_name}')}" for sub_name in sub_names
                )
            elif prop.is_link and nested:
                linked = self.schema.get(prop.linked_class or "V")

                def inner(linked_var: str, linked: ClassModel = linked, nested: Dict = nested) -> str:
                    return _map_projection(linked_var, self._entries(ctx, linked_var, linked, nested))

                entries.append(_expand_link(ctx, variable, model, prop, linked, inner))
            elif model.is_edge and name in ("out", "in"):
                entries.append(f"{escape_name(name)}: {element_ref(variable, name, True)}")
            else:
                entries.append(f".{escape_name(name)}")
        return entries

    def to_cypher(self, ctx: CompileContext, variable: str, model: ClassModel) -> str:
        return _map_projection(variable, self._entries(ctx, variable, model, self.properties))


# ================================
# Builders
# ================================

def _merge(target: Dict[str, Dict], source: Dict[str, Dict]) -> None:
    for key, value in source.items():
        _merge(target.setdefault(key, {}), value)


def parse_property_list(
    schema: SchemaDefinition,
    model: ClassModel,
    properties: Iterable[str],
    allow_direct_embedded: bool = False,
) -> Dict[str, Dict]:
    """
    Validate a list of (dotted) property names and nest them by link level.

    Example:
        >>> parse_property_list(schema, schema.get("Disease"), ["name", "source.name"])
        {'name': {}, 'source': {'name': {}}}

    Raises:
        ValidationError: If a property does not exist or cannot be expanded
    """
    projections: Dict[str, Dict] = {}
    props = get_queryable_props(schema, model, include_embedded=allow_direct_embedded)

    for raw in properties:
        path = raw.strip()
        direct = path.split(".")[0]
        prop = props.get(direct)

        if prop is None:
            raise ValidationError(
                f"property {direct} does not exist or cannot be accessed on the model {model.name}"
            )
        projections.setdefault(direct, {})
        nested = path[len(direct) + 1:]

        if nested:
            if not prop.linked_class and not prop.is_link:
                raise ValidationError(
                    f"Cannot return nested property ({path}), the property ({prop.name}) "
                    "does not have a linked class"
                )
            if prop.is_embedded:
                sub_props = embedded_properties(schema, prop)
                if nested not in sub_props:
                    raise ValidationError(
                        f"property {nested} does not exist on the embedded property {prop.name}"
                    )
                projections[direct][nested] = {}
            else:
                linked = schema.get(prop.linked_class or "V")
                _merge(projections[direct], parse_property_list(schema, linked, [nested]))
    return projections


def props_to_projection(
    schema: SchemaDefinition,
    model: ClassModel,
    properties: Iterable[str],
    allow_direct_embedded: bool = False,
) -> SelectedProjection:
    """Projection returning only the listed properties."""
    return SelectedProjection(schema, parse_property_list(schema, model, properties, allow_direct_embedded))


def nested_projection(schema: SchemaDefinition, depth: int, exclude_history: bool = True) -> RecordProjection:
    """Projection expanding all links (except history) to the given depth."""
    return RecordProjection(
        schema,
        depth=depth,
        history=not exclude_history,
        exclude=("history",) if exclude_history else (),
    )


def non_specific_projection(
    schema: SchemaDefinition,
    depth: int,
    edges: Optional[Iterable[str]] = None,
    history: bool = False,
) -> NeighborProjection:
    """Projection expanding links and edges to the given depth."""
    return NeighborProjection(schema, depth=depth, edges=edges, history=history)


def order_expression(ctx: CompileContext, variable: str, model: ClassModel, path: str) -> str:
    """
    Expression to sort by a (possibly dotted) property.

    Dotted paths through a link sort by the property of the linked record;
    any other dotted path addresses an embedded sub-property.
    """
    direct, _, nested = path.partition(".")
    prop: Optional[Any] = model.query_properties.get(direct)

    if nested and prop is not None and prop.is_link and not prop.iterable:
        linked_var = ctx.new_variable()
        return (
            f"head(COLLECT {{ MATCH ({linked_var}:V) "
            f"WHERE {property_ref(linked_var, RID)} = {element_ref(variable, direct, model.is_edge)} "
            f"RETURN {property_ref(linked_var, nested)} }})"
        )
    return element_ref(variable, path, model.is_edge)


__all__ = [
    "DEFAULT_EXCLUDE",
    "DEFAULT_TERMINAL",
    "DefaultProjection",
    "NeighborProjection",
    "RecordProjection",
    "SelectedProjection",
    "nested_projection",
    "non_specific_projection",
    "order_expression",
    "parse_property_list",
    "props_to_projection",
]
