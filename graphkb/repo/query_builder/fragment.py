"""
Query fragments and their compilation to Cypher.

A query is a tree of fragments: a `WrapperQuery` (paging, ordering, counting
and projection) around a `Subquery` (target and filters), whose filters are
`Clause` and `Comparison` objects. Subqueries may target other subqueries or
fixed queries (see `fixed.py`), which nest by piping their result variable
into the enclosing query.

Compilation threads a `CompileContext` through the tree so that every
parameter (``$param0``, ``$param1``...) and variable (``n0``, ``n1``...) name
is unique within the final statement.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Union

from ...database.base import ValidationError
from ...database.records import CLASS, RID, labels_clause, property_ref
from ...database.transaction import display_statement
from ...models.class_model import ClassModel
from ...models.property import Property
from .constants import MAX_LIMIT, NUMBER_ONLY_OPERATORS, Operator
from .context import CompileContext, element_ref
from .projection import DefaultProjection, order_expression

logger = logging.getLogger(__name__)

THIS = "@this"


class SubqueryBase(ABC):
    """Anything that selects a set of records and can be nested in another query."""

    model: ClassModel
    history: bool = False

    @abstractmethod
    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        """
        Compile to a read pipeline.

        Returns:
            Tuple[str, str]: The statement body and the variable bound to the selected records
        """
        pass

    def expected_count(self) -> Optional[int]:
        return None


# ================================
# Filters
# ================================

class Comparison:
    """A single property comparison, e.g. ``name = 'cancer'``."""

    def __init__(
        self,
        name: str,
        prop: Property,
        value: Any,
        operator: Operator = Operator.EQ,
        negate: bool = False,
        is_length: bool = False,
        is_edge: bool = False,
    ):
        self.name = name
        self.prop = prop
        self.value = value
        self.operator = Operator(operator)
        self.negate = bool(negate)
        self.is_length = bool(is_length)
        self.is_edge = is_edge

    @property
    def value_is_iterable(self) -> bool:
        return isinstance(self.value, (list, SubqueryBase))

    def _cast(self, value: Any) -> Any:
        if value is None or isinstance(value, SubqueryBase):
            return value
        if self.is_length:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError("The length comparison can only be used with number values")
            return value
        if self.name == THIS:
            return value
        result = self.prop.cast_element(value)
        self.prop.check_choices(result)
        return result

    def validate(self) -> None:
        """
        Check the operator against the property and value, and cast the value(s).

        Raises:
            ValidationError: If the comparison cannot be expressed
        """
        prop, operator = self.prop, self.operator

        if self.is_length and (
            operator not in (*NUMBER_ONLY_OPERATORS, Operator.EQ) or not prop.iterable
        ):
            raise ValidationError(
                "The length comparison can only be used with number values on iterable properties"
            )

        if operator in NUMBER_ONLY_OPERATORS and not self.is_length:
            if prop.iterable or self.value_is_iterable:
                raise ValidationError(
                    f"Non-equality operator ({operator.value}) cannot be used in conjunction "
                    f"with an iterable property or value ({prop.name})"
                )
        elif operator == Operator.IS and self.value is not None:
            raise ValidationError(
                f"IS operator ({operator.value}) can only be used on prop ({prop.name}) "
                f"compared with null ({self.value})"
            )

        if operator == Operator.CONTAINS and not prop.iterable:
            raise ValidationError(
                f"CONTAINS can only be used with iterable properties ({prop.name}). "
                "To check for a substring, use CONTAINSTEXT instead"
            )
        if operator == Operator.INSTANCEOF and self.name != THIS:
            raise ValidationError("INSTANCEOF can only be used with the @this property")

        if self.value_is_iterable:
            if operator == Operator.CONTAINS:
                raise ValidationError(
                    f"CONTAINS should be used with non-iterable values ({prop.name}). To compare "
                    "two iterables for intersecting values use CONTAINSANY or CONTAINSALL instead"
                )
            if operator == Operator.EQ and not prop.iterable:
                raise ValidationError(
                    f"Using a direct comparison ({operator.value}) of a non-iterable property "
                    f"({prop.name}) against a list or set"
                )
        elif operator in (Operator.IN, Operator.CONTAINSALL, Operator.CONTAINSANY):
            raise ValidationError(f"{operator.value} should only be used with iterable values")

        if isinstance(self.value, list):
            self.value = [self._cast(v) for v in self.value]
        elif self.value is not None:
            self.value = self._cast(self.value)
        elif operator not in (Operator.EQ, Operator.IS):
            raise ValidationError(f"Invalid operator ({operator.value}) used for NULL comparison")

    def _subquery_condition(self, ctx: CompileContext, expr: str) -> str:
        def collection() -> str:
            body, inner = self.value.compile(ctx)
            return f"COLLECT {{ {body} RETURN {property_ref(inner, RID)} }}"

        operator = self.operator
        if operator == Operator.IN:
            return f"{expr} IN {collection()}"

        item = ctx.new_variable("x")
        if operator == Operator.CONTAINSANY:
            return f"any({item} IN {expr} WHERE {item} IN {collection()})"
        if operator == Operator.CONTAINSALL:
            return f"all({item} IN {collection()} WHERE {item} IN {expr})"
        if operator == Operator.EQ:
            return (
                f"(all({item} IN {collection()} WHERE {item} IN {expr}) "
                f"AND size({expr}) = size({collection()}))"
            )
        raise ValidationError(f"Invalid operator ({operator.value}) used with a subquery value")

    def _list_condition(self, ctx: CompileContext, expr: str) -> str:
        operator = self.operator
        param = ctx.add_param(list(self.value))

        if operator in (Operator.IN, Operator.INSTANCEOF):
            return f"{expr} IN {param}"

        item = ctx.new_variable("x")
        if operator == Operator.EQ:
            return f"(all({item} IN {param} WHERE {item} IN {expr}) AND size({expr}) = size({param}))"
        if operator == Operator.CONTAINSALL:
            return f"all({item} IN {param} WHERE {item} IN {expr})"
        if operator == Operator.CONTAINSANY:
            return f"any({item} IN {param} WHERE {item} IN {expr})"
        raise ValidationError(f"Invalid operator ({operator.value}) used with a list value")

    def to_cypher(self, ctx: CompileContext, variable: str) -> str:
        name = CLASS if self.name == THIS else self.name
        expr = element_ref(variable, name, self.is_edge)
        if self.is_length:
            expr = f"size({expr})"

        if isinstance(self.value, SubqueryBase):
            query = self._subquery_condition(ctx, expr)
        elif isinstance(self.value, list):
            query = self._list_condition(ctx, expr)
        elif self.value is None:
            query = f"{expr} IS NULL"
        elif self.operator == Operator.CONTAINS:
            query = f"{ctx.add_param(self.value)} IN {expr}"
        elif self.operator == Operator.CONTAINSTEXT:
            query = f"{expr} CONTAINS {ctx.add_param(self.value)}"
        else:
            query = f"{expr} {self.operator.value} {ctx.add_param(self.value)}"

        if self.negate:
            query = f"NOT ({query})"
        return query

    def __repr__(self) -> str:
        return f"Comparison({self.name} {self.operator.value} {self.value!r})"


class Clause:
    """Comparisons (or nested clauses) joined by AND or OR."""

    def __init__(self, operator: Operator, filters: List[Union["Clause", Comparison]]):
        self.operator = Operator(operator)
        self.filters = filters

    def to_cypher(self, ctx: CompileContext, variable: str) -> str:
        components = []
        for component in self.filters:
            query = component.to_cypher(ctx, variable)
            if isinstance(component, Clause) and len(component.filters) > 1:
                query = f"({query})"
            components.append(query)
        return f" {self.operator.value} ".join(components)

    def __repr__(self) -> str:
        return f"Clause({self.operator.value}, {self.filters!r})"


# ================================
# Queries
# ================================

def match_pattern(variable: str, model: ClassModel) -> str:
    """MATCH clause selecting all records of a class."""
    if model.is_edge:
        if model.is_abstract:
            return f"MATCH ()-[{variable}]->()"
        return f"MATCH ()-[{variable}{labels_clause([model.name])}]->()"
    return f"MATCH ({variable}{labels_clause([model.name])})"


class Subquery(SubqueryBase):
    """
    Select records from a target, filtered and (unless history is requested)
    restricted to records that have not been deleted.

    The target is a class name, a list of record ids, or another subquery.
    """

    def __init__(
        self,
        target: Any,
        model: ClassModel,
        filters: Optional[Clause] = None,
        history: bool = False,
    ):
        self.target = target
        self.model = model
        self.filters = filters
        self.history = bool(history)

    def expected_count(self) -> Optional[int]:
        if not self.filters and isinstance(self.target, list):
            return len(self.target)
        return None

    def compile(self, ctx: CompileContext) -> Tuple[str, str]:
        conditions = []

        if isinstance(self.target, SubqueryBase):
            inner_body, inner = self.target.compile(ctx)
            variable = ctx.new_variable()
            match = f"{inner_body} WITH DISTINCT {inner} AS {variable}"
        else:
            variable = ctx.new_variable()
            match = match_pattern(variable, self.model)
            if isinstance(self.target, list):
                conditions.append(f"{property_ref(variable, RID)} IN {ctx.add_param(list(self.target))}")

        if self.filters and self.filters.filters:
            clause = self.filters.to_cypher(ctx, variable)
            if len(self.filters.filters) > 1 and (conditions or not self.history):
                clause = f"({clause})"
            conditions.append(clause)

        if not self.history:
            conditions.append(f"{variable}.deletedAt IS NULL")

        if conditions:
            return f"{match} WHERE {' AND '.join(conditions)}", variable
        return match, variable

    def __repr__(self) -> str:
        return f"Subquery({self.target!r}, filters={self.filters!r}, history={self.history})"


class WrapperQuery:
    """
    Top level query: paging, ordering, counting and the projection of the
    selected records.
    """

    def __init__(
        self,
        query: SubqueryBase,
        model: ClassModel,
        target: Any = None,
        limit: Optional[int] = MAX_LIMIT,
        skip: Optional[int] = None,
        projection: Any = None,
        order_by: Optional[List[str]] = None,
        order_by_direction: str = "ASC",
        count: bool = False,
        history: bool = False,
    ):
        self.query = query
        self.model = model
        self.target = target
        self.limit = limit
        self.skip = skip
        self.projection = projection
        self.order_by = order_by
        self.order_by_direction = order_by_direction or "ASC"
        self.count = bool(count)
        self.history = bool(history)

    @property
    def is_unwrapped(self) -> bool:
        """No counting, ordering or paging applies to the selection."""
        return not self.count and not self.order_by and not self.skip and self.limit is None

    def expected_count(self) -> Optional[int]:
        count = self.query.expected_count()
        if self.count or count is None or self.skip:
            return None
        if self.limit is not None:
            count = min(self.limit, count)
        return count

    def to_cypher(self) -> Tuple[str, Dict[str, Any]]:
        """
        Compile the query.

        Returns:
            Tuple[str, Dict[str, Any]]: The statement and its parameters
        """
        ctx = CompileContext()
        body, variable = self.query.compile(ctx)

        if self.count:
            return f"{body} RETURN count({variable}) AS count", ctx.params

        parts = [body]
        if not self.is_unwrapped:
            parts.append(f"WITH {variable}")
            if self.order_by:
                ordering = ", ".join(
                    f"{order_expression(ctx, variable, self.model, prop)} {self.order_by_direction}"
                    for prop in self.order_by
                )
                parts.append(f"ORDER BY {ordering}")
            if self.skip:
                parts.append(f"SKIP {int(self.skip)}")
            if self.limit is not None:
                parts.append(f"LIMIT {int(self.limit)}")

        projection = self.projection or DefaultProjection()
        parts.append(f"RETURN {projection.to_cypher(ctx, variable, self.model)} AS record")
        return " ".join(parts), ctx.params

    def display_string(self) -> str:
        return display_statement(*self.to_cypher())

    def __repr__(self) -> str:
        return f"WrapperQuery({self.query!r}, limit={self.limit}, count={self.count})"


__all__ = [
    "THIS",
    "Clause",
    "Comparison",
    "CompileContext",
    "Subquery",
    "SubqueryBase",
    "WrapperQuery",
    "element_ref",
    "match_pattern",
]
