"""
Fixed queries: traversals and searches with their own shape.

Each fixed query starts from a set of records (a class with filters, a list
of record ids, or a nested subquery), walks the graph, and leaves the
resulting records bound to a single variable, so it can be used as the
target of any other query.

Arguments are validated when the query is built; compilation only renders
the statement.
"""

import logging
from typing import Any, Iterable, List, Optional, Tuple, Union

from ...database.base import ValidationError
from ...database.records import CLASS, RID, escape_name, labels_clause, looks_like_rid, property_ref
from ...models.class_model import ClassModel
from ...models.registry import SchemaDefinition
from .constants import (
    DEFAULT_NEIGHBORS,
    DIRECTIONS,
    MAX_NEIGHBORS,
    MAX_TRAVEL_DEPTH,
    MIN_WORD_SIZE,
    SIMILARITY_EDGES,
    TREE_EDGES,
    Operator,
)
from .context import CompileContext
from .fragment import Clause, Subquery, SubqueryBase
from .util import cast_range_int

logger = logging.getLogger(__name__)

Target = Union[str, List[str], SubqueryBase]


def _edge_types(edges: Iterable[str]) -> str:
    """Relationship type filter (``:A|B``), empty to follow any edge."""
    edges = list(edges)
    if not edges:
        return ""
    return ":" + "|".join(escape_name(edge) for edge in edges)


def _check_edges(schema: SchemaDefinition, edges: Iterable[str]) -> List[str]:
    names = []
    for edge in edges:
        if not schema.has(edge) or not schema.get(edge).is_edge:
            raise ValidationError(f"unrecognized edge class ({edge})")
        names.append(schema.get(edge).name)
    return names


def _deleted_filter(variable: str, history: bool) -> List[str]:
    return [] if history else [f"{variable}.deletedAt IS NULL"]


def _where(conditions: List[str]) -> str:
    return f" WHERE {' AND '.join(conditions)}" if conditions else ""


class FixedSubquery(SubqueryBase):
    """Base class of all fixed queries."""

    query_type = ""

    def __init__(
        self,
        schema: SchemaDefinition,
        target: Target,
        model: ClassModel,
        filters: Optional[Clause] = None,
        history: bool = False,
    ):
        self.schema = schema
        self.target = target
        self.model = model
        self.filters = filters
        self.history = bool(history)

    def start(self, ctx: CompileContext) -> Tuple[str, str]:
        """Compile the starting records of the traversal."""
        if isinstance(self.target, SubqueryBase):
            return self.target.compile(ctx)

        if isinstance(self.target, list):
            variable = ctx.new_variable()
            param = ctx.add_param(list(self.target))
            return f"MATCH ({variable}:V) WHERE {property_ref(variable, RID)} IN {param}", variable

        start = Subquery(self.target, self.schema.get(self.target), filters=self.filters, history=True)
        return start.compile(ctx)

    def similar(self, ctx: CompileContext, body: str, variable: str, edges: Iterable[str]) -> Tuple[str, str]:
        """Expand records to everything within a few similarity edges of them."""
        similar = ctx.new_variable()
        body = (
            f"{body} MATCH ({variable})-[{_edge_types(edges)}*0..{MAX_NEIGHBORS}]-({similar}:V) "
            f"WITH DISTINCT {similar}"
        )
        return body, similar

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.target!r})"


class TreeQuery(FixedSubquery):
    """
    Follow tree edges (SubClassOf by default) from the starting records.

    Args:
        direction: 'in' follows incoming edges (ancestors), 'out' outgoing ones (descendants)
        edges: Edge classes to follow
        depth: Maximum number of edges to follow (1-50)
        disambiguate: First expand the starting records by similarity edges
    """

    def __init__(
        self,
        schema: SchemaDefinition,
        target: Target,
        model: ClassModel,
        direction: str,
        filters: Optional[Clause] = None,
        history: bool = False,
        edges: Optional[List[str]] = None,
        depth: Optional[int] = None,
        disambiguate: bool = True,
    ):
        super().__init__(schema, target, model, filters=filters, history=history)

        if direction not in ("out", "in"):
            raise ValidationError(f"direction ({direction}) must be in or out")
        if isinstance(target, str) and not schema.has(target):
            raise ValidationError(f"Invalid target class ({target})")

        self.direction = direction
        self.query_type = "ancestors" if direction == "in" else "descendants"
        self.edges = _check_edges(schema, edges or ["SubClassOf"])
        self.depth = cast_range_int(depth or MAX_TRAVEL_DEPTH, 1, MAX_TRAVEL_DEPTH)
        self.disambiguate = bool(disambiguate)

    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        body, variable = self.start(ctx)

        if self.disambiguate:
            body, variable = self.similar(ctx, body, variable, SIMILARITY_EDGES)

        result = ctx.new_variable()
        edges = f"[{_edge_types(self.edges)}*0..{self.depth}]"
        if self.direction == "in":
            pattern = f"({variable})<-{edges}-({result}:V)"
        else:
            pattern = f"({variable})-{edges}->({result}:V)"

        body = f"{body} MATCH {pattern} WITH DISTINCT {result}{_where(_deleted_filter(result, self.history))}"
        return body, result


def ancestors(schema: SchemaDefinition, target: Target, model: ClassModel, **opt: Any) -> TreeQuery:
    """Records reachable by following incoming tree edges."""
    return TreeQuery(schema, target, model, direction="in", **opt)


def descendants(schema: SchemaDefinition, target: Target, model: ClassModel, **opt: Any) -> TreeQuery:
    """Records reachable by following outgoing tree edges."""
    return TreeQuery(schema, target, model, direction="out", **opt)


class NeighborhoodQuery(FixedSubquery):
    """All vertices within some number of edges (in either direction) of the starting records."""

    query_type = "neighborhood"

    def __init__(
        self,
        schema: SchemaDefinition,
        target: Target,
        model: ClassModel,
        filters: Optional[Clause] = None,
        history: bool = False,
        edges: Optional[List[str]] = None,
        depth: Optional[int] = None,
    ):
        super().__init__(schema, target, model, filters=filters, history=history)

        if isinstance(target, str) and not schema.has(target):
            raise ValidationError(f"Invalid target class ({target})")
        self.edges = _check_edges(schema, edges or [])
        self.depth = cast_range_int(DEFAULT_NEIGHBORS if depth is None else depth, 0, MAX_NEIGHBORS)

    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        body, variable = self.start(ctx)
        path = ctx.new_variable("p")
        element = ctx.new_variable()
        result = ctx.new_variable()

        body = (
            f"{body} MATCH {path} = ({variable})-[{_edge_types(self.edges)}*0..{self.depth}]-(:V) "
            f"UNWIND nodes({path}) AS {element} "
            f"WITH DISTINCT {element} AS {result}{_where(_deleted_filter(result, self.history))}"
        )
        return body, result


class SimilarToQuery(FixedSubquery):
    """
    Records equivalent (or closely related) to the starting records.

    Starting records are expanded by similarity edges, then up and down the
    tree edges, then by similarity edges again.

    Args:
        edges: Similarity edge classes
        tree_edges: Tree edge classes (none to skip the tree expansion)
        match_type: Only return records of this class (or its subclasses)
    """

    query_type = "similarTo"

    def __init__(
        self,
        schema: SchemaDefinition,
        target: Target,
        model: ClassModel,
        filters: Optional[Clause] = None,
        history: bool = False,
        edges: Optional[List[str]] = None,
        tree_edges: Optional[List[str]] = None,
        match_type: Optional[str] = None,
    ):
        super().__init__(schema, target, model, filters=filters, history=history)

        edges = list(SIMILARITY_EDGES) if edges is None else edges
        tree_edges = list(TREE_EDGES) if tree_edges is None else tree_edges

        self.edges = _check_edges(schema, edges)
        self.tree_edges = _check_edges(schema, tree_edges)
        if not self.edges:
            raise ValidationError("Must specify 1 or more edge types to follow")

        self.match_types: Optional[List[str]] = None
        if match_type:
            if not schema.has(match_type):
                raise ValidationError(f"Did not recognize type matchType ({match_type})")
            self.match_types = schema.descendants(match_type, include_self=True)

    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        body, variable = self.start(ctx)
        body, result = self.similar(ctx, body, variable, self.edges)

        if self.tree_edges:
            tree = f"[{_edge_types(self.tree_edges)}*0..{MAX_TRAVEL_DEPTH}]"
            related = ctx.new_variable()
            body = (
                f"{body} CALL {{ "
                f"WITH {result} MATCH ({result})<-{tree}-({related}:V) RETURN {related} "
                f"UNION "
                f"WITH {result} MATCH ({result})-{tree}->({related}:V) RETURN {related} "
                f"}} WITH DISTINCT {related}"
            )
            body, result = self.similar(ctx, body, related, self.edges)

        conditions = []
        if self.match_types:
            conditions.append(f"{property_ref(result, CLASS)} IN {ctx.add_param(self.match_types)}")
        conditions.extend(_deleted_filter(result, self.history))
        return f"{body}{_where(conditions)}", result


class KeywordQuery(FixedSubquery):
    """
    Search records of a class by keywords.

    Every keyword must match. Ontology terms match on name or sourceId,
    variants and statements match through the ontology terms they link to.
    """

    query_type = "keyword"

    def __init__(
        self,
        schema: SchemaDefinition,
        target: Target,
        model: ClassModel,
        keyword: Optional[str] = None,
        operator: Union[str, Operator] = Operator.CONTAINSTEXT,
        history: bool = False,
        filters: Optional[Clause] = None,
    ):
        super().__init__(schema, target, model, filters=filters, history=history)

        try:
            operator = Operator(operator)
        except ValueError:
            operator = None
        if operator not in (Operator.CONTAINSTEXT, Operator.EQ):
            raise ValidationError("Invalid operator. Keyword search only accepts = or CONTAINSTEXT")
        if not isinstance(target, str) or not schema.has(target):
            raise ValidationError("Invalid target class")
        if schema.get(target).is_edge:
            raise ValidationError(f"Cannot keyword search edge classes ({target})")
        if not keyword:
            raise ValidationError("Missing required keyword parameter")

        keyword = str(keyword)
        if operator == Operator.CONTAINSTEXT:
            words = [word.strip().lower() for word in keyword.split()]
        else:
            words = [keyword.strip().lower()]
        self.keywords = sorted({word for word in words if word})
        if not self.keywords:
            raise ValidationError("missing keywords")

        self.target_model = schema.get(target)
        # short keywords would match too much as substrings
        self.operator = operator if len(keyword) >= MIN_WORD_SIZE else Operator.EQ

    def _match(self, expr: str, param: str) -> str:
        if self.operator == Operator.CONTAINSTEXT:
            return f"{expr} CONTAINS {param}"
        return f"{expr} = {param}"

    def _ontology(self, variable: str, param: str) -> str:
        return (
            f"{self._match(property_ref(variable, 'name'), param)} "
            f"OR {self._match(property_ref(variable, 'sourceId'), param)}"
        )

    def _variant(self, ctx: CompileContext, variable: str, param: str) -> str:
        term = ctx.new_variable()
        links = ", ".join(property_ref(variable, name) for name in ("type", "reference1", "reference2"))
        return (
            f"EXISTS {{ MATCH ({term}:Ontology) "
            f"WHERE {property_ref(term, RID)} IN [{links}] AND ({self._ontology(term, param)}) }}"
        )

    def _statement(self, ctx: CompileContext, variable: str, param: str) -> str:
        implicable = ctx.new_variable()
        term = ctx.new_variable()
        rid = property_ref(implicable, RID)
        term_rid = property_ref(term, RID)
        return (
            f"EXISTS {{ MATCH ({implicable}:Biomarker) "
            f"WHERE ({rid} IN {property_ref(variable, 'conditions')} OR {rid} = {property_ref(variable, 'subject')}) "
            f"AND ({self._ontology(implicable, param)} OR {self._variant(ctx, implicable, param)}) }} "
            f"OR EXISTS {{ MATCH ({term}:Ontology) "
            f"WHERE ({term_rid} IN {property_ref(variable, 'evidence')} "
            f"OR {term_rid} IN coalesce({property_ref(variable, 'evidenceLevel')}, []) "
            f"OR {term_rid} = {property_ref(variable, 'relevance')}) "
            f"AND ({self._ontology(term, param)}) }}"
        )

    def _condition(self, ctx: CompileContext, variable: str, param: str) -> str:
        model = self.target_model

        if model.name == "EvidenceLevel":
            source = ctx.new_variable()
            return (
                f"{self._ontology(variable, param)} OR EXISTS {{ MATCH ({source}:Source) "
                f"WHERE {property_ref(source, RID)} = {property_ref(variable, 'source')} "
                f"AND {self._match(property_ref(source, 'name'), param)} }}"
            )
        if model.inherits_from("Ontology"):
            return self._ontology(variable, param)
        if model.name == "Statement":
            return self._statement(ctx, variable, param)
        if model.inherits_from("Variant"):
            return self._variant(ctx, variable, param)
        return self._match(property_ref(variable, "name"), param)

    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        variable = ctx.new_variable()

        if len(self.keywords) == 1 and looks_like_rid(self.keywords[0]):
            param = ctx.add_param(self.keywords[0])
            return f"MATCH ({variable}:V) WHERE {property_ref(variable, RID)} = {param}", variable

        conditions = [
            f"({self._condition(ctx, variable, ctx.add_param(word))})"
            for word in self.keywords
        ]
        conditions.append(f"{variable}.deletedAt IS NULL")
        match = f"MATCH ({variable}{labels_clause([self.target_model.name])})"
        return f"{match}{_where(conditions)}", variable


class EdgeQuery(FixedSubquery):
    """
    Edges of a class attached to a set of vertices.

    Args:
        vertex_filter: The vertices, as a list of record ids or a subquery
        direction: Which edges of the vertices to select ('out', 'in' or 'both')
    """

    query_type = "edge"

    def __init__(
        self,
        schema: SchemaDefinition,
        target: Target,
        model: ClassModel,
        vertex_filter: Union[List[str], SubqueryBase, None] = None,
        direction: str = "both",
        history: bool = False,
        filters: Optional[Clause] = None,
    ):
        if not vertex_filter:
            raise ValidationError("edge query must be filtered by a vertex")
        if direction not in DIRECTIONS:
            raise ValidationError(f"direction ({direction}) must be one of: in, out, both")
        if not isinstance(target, str) or not schema.has(target) or not schema.get(target).is_edge:
            raise ValidationError(f"target ({target}) must be an edge class")

        super().__init__(schema, vertex_filter, schema.get(target), filters=filters, history=history)
        self.edge_model = schema.get(target)
        self.direction = direction

    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        body, variable = self.start(ctx)
        edge = ctx.new_variable()
        types = "" if self.edge_model.is_abstract else labels_clause([self.edge_model.name])

        if self.direction == "out":
            pattern = f"({variable})-[{edge}{types}]->()"
        elif self.direction == "in":
            pattern = f"({variable})<-[{edge}{types}]-()"
        else:
            pattern = f"({variable})-[{edge}{types}]-()"

        body = f"{body} MATCH {pattern} WITH DISTINCT {edge}{_where(_deleted_filter(edge, self.history))}"
        return body, edge


FIXED_QUERIES = {
    "ancestors": ancestors,
    "descendants": descendants,
    "neighborhood": NeighborhoodQuery,
    "similarTo": SimilarToQuery,
    "keyword": KeywordQuery,
    "edge": EdgeQuery,
}


__all__ = [
    "FIXED_QUERIES",
    "EdgeQuery",
    "FixedSubquery",
    "KeywordQuery",
    "NeighborhoodQuery",
    "SimilarToQuery",
    "TreeQuery",
    "ancestors",
    "descendants",
]
