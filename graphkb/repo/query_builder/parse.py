"""
Parse JSON-like query descriptions into query fragments.

Example:
    >>> query = parse(schema, {
    ...     "target": "Disease",
    ...     "filters": {"OR": [{"name": "cancer"}, {"sourceId": "doid:162"}]},
    ...     "limit": 10,
    ... })
    >>> query.display_string()
    "MATCH (n0:Disease) WHERE (n0.name = 'cancer' OR n0.sourceId = 'doid:162') AND ..."
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ...database.base import ValidationError
from ...database.records import CLASS, RID, cast_to_rid
from ...models.class_model import ClassModel
from ...models.property import Property
from ...models.registry import SchemaDefinition
from .constants import MAX_LIMIT, Operator
from .fixed import FIXED_QUERIES, EdgeQuery
from .fragment import THIS, Clause, Comparison, Subquery, SubqueryBase, WrapperQuery
from .projection import nested_projection, non_specific_projection, parse_property_list, props_to_projection
from .util import cast_boolean, check_standard_options, get_queryable_props

logger = logging.getLogger(__name__)

CLAUSE_OPERATORS = (Operator.AND.value, Operator.OR.value)
LENGTH_SUFFIX = ".length"

# arguments accepted by each fixed query type, by their option name
FIXED_QUERY_ARGS = {
    "ancestors": {"edges": "edges", "depth": "depth", "disambiguate": "disambiguate"},
    "descendants": {"edges": "edges", "depth": "depth", "disambiguate": "disambiguate"},
    "neighborhood": {"edges": "edges", "depth": "depth"},
    "similarTo": {"edges": "edges", "treeEdges": "tree_edges", "matchType": "match_type"},
    "keyword": {"keyword": "keyword", "operator": "operator"},
    "edge": {"vertexFilter": "vertex_filter", "direction": "direction"},
}

# fixed queries whose filters apply to their results rather than their starting records
FILTER_RESULTS = ("keyword", "edge")


def _is_clause(content: Any) -> bool:
    return isinstance(content, dict) and len(content) == 1 and next(iter(content)) in CLAUSE_OPERATORS


def _is_subquery(content: Any) -> bool:
    return isinstance(content, dict) and "target" in content


def _cast_rid(value: Any) -> str:
    try:
        return cast_to_rid(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _cast_rid_list(values: Any) -> List[str]:
    return [_cast_rid(value) for value in values]


def parse_comparison(schema: SchemaDefinition, model: ClassModel, opt: Dict[str, Any]) -> Comparison:
    """
    Parse a single comparison.

    The comparison is an object with one property name key (plus optional
    ``operator`` and ``negate``). A ``.length`` suffix compares the size of
    an iterable property; ``@this`` compares the class of the record.

    Raises:
        ValidationError: If the comparison is malformed
    """
    opt = dict(opt)
    operator = opt.pop("operator", None)
    negate = opt.pop("negate", False)

    if len(opt) != 1:
        raise ValidationError(
            f"Filter must be an object with a single property key (found: {', '.join(opt) or 'none'})"
        )
    name, value = next(iter(opt.items()))

    if operator is not None and not isinstance(operator, Operator):
        try:
            operator = Operator(str(operator).strip().upper())
        except ValueError:
            raise ValidationError(f"Invalid operator ({operator})")
    if operator in (Operator.AND, Operator.OR):
        raise ValidationError(f"Invalid comparison operator ({operator.value})")

    is_length = False
    props = get_queryable_props(schema, model)

    if name == THIS:
        if operator not in (None, Operator.INSTANCEOF):
            raise ValidationError("The @this property can only be used with the INSTANCEOF operator")
        if not schema.has(value):
            raise ValidationError(f"Invalid class ({value}) for INSTANCEOF comparison")
        comparison = Comparison(
            name,
            Property(name=CLASS),
            schema.descendants(value, include_self=True),
            operator=Operator.INSTANCEOF,
            negate=negate,
            is_edge=model.is_edge,
        )
        comparison.validate()
        return comparison

    if name.endswith(LENGTH_SUFFIX) and name[: -len(LENGTH_SUFFIX)] in props:
        name = name[: -len(LENGTH_SUFFIX)]
        is_length = True

    prop = props.get(name)
    if prop is None:
        raise ValidationError(f"The property ({name}) does not exist on the model ({model.name})")

    if _is_subquery(value):
        value = parse_subquery(schema, value)
    elif isinstance(value, dict) and prop.is_link and value.get(RID) is not None:
        value = value[RID]
    elif isinstance(value, (tuple, set, frozenset)):
        value = list(value)

    if operator is None:
        if is_length:
            operator = Operator.EQ
        elif prop.iterable:
            if isinstance(value, list):
                operator = Operator.EQ
            elif isinstance(value, SubqueryBase):
                operator = Operator.CONTAINSANY
            else:
                operator = Operator.CONTAINS
        elif isinstance(value, (list, SubqueryBase)):
            operator = Operator.IN
        else:
            operator = Operator.EQ

    comparison = Comparison(
        name,
        prop,
        value,
        operator=operator,
        negate=cast_boolean(negate) if not isinstance(negate, bool) else negate,
        is_length=is_length,
        is_edge=model.is_edge,
    )
    comparison.validate()
    return comparison


def parse_clause(schema: SchemaDefinition, model: ClassModel, content: Dict[str, Any]) -> Clause:
    """
    Parse an AND/OR clause of comparisons and nested clauses.

    Raises:
        ValidationError: If the clause is malformed
    """
    if not _is_clause(content):
        raise ValidationError("Filter clauses must be an object with a single AND or OR key")

    operator, filters = next(iter(content.items()))
    if not isinstance(filters, list) or not filters:
        raise ValidationError(f"The value of the {operator} clause must be a non-empty list")

    components = []
    for component in filters:
        if _is_clause(component):
            components.append(parse_clause(schema, model, component))
        elif isinstance(component, dict):
            components.append(parse_comparison(schema, model, component))
        else:
            raise ValidationError(f"Invalid filter ({component!r})")
    return Clause(operator, components)


def parse_filters(schema: SchemaDefinition, model: ClassModel, filters: Any) -> Optional[Clause]:
    """Parse filters given as a clause, a single comparison or a list of comparisons."""
    if not filters:
        return None
    if isinstance(filters, list):
        return parse_clause(schema, model, {"AND": filters})
    if _is_clause(filters):
        return parse_clause(schema, model, filters)
    if isinstance(filters, dict):
        return parse_clause(schema, model, {"AND": [filters]})
    raise ValidationError(f"Invalid filters ({filters!r})")


def parse_vertex_filter(schema: SchemaDefinition, vertex_filter: Any) -> Union[List[str], SubqueryBase]:
    """Vertices of an edge query: a record id, a list of record ids or a subquery."""
    if isinstance(vertex_filter, (list, tuple)):
        return _cast_rid_list(vertex_filter)
    if _is_subquery(vertex_filter):
        return parse_subquery(schema, vertex_filter)
    return [_cast_rid(vertex_filter)]


def _endpoint_filter(filters: Any) -> Optional[Dict[str, Any]]:
    """An edge endpoint comparison (on out or in) that can drive an edge query."""
    if _is_clause(filters):
        if next(iter(filters)) != "AND":
            return None
        candidates = filters["AND"]
    elif isinstance(filters, list):
        candidates = filters
    else:
        candidates = [filters]

    for candidate in candidates:
        if not isinstance(candidate, dict) or _is_clause(candidate) or candidate.get("negate"):
            continue
        if candidate.get("operator") not in (None, Operator.EQ.value, Operator.IN.value):
            continue
        keys = set(candidate) - {"operator", "negate"}
        if keys in ({"out"}, {"in"}):
            return candidate
    return None


def parse_fixed_query(
    schema: SchemaDefinition,
    query_type: str,
    target: Any,
    model: ClassModel,
    filters: Any,
    history: bool,
    args: Dict[str, Any],
) -> SubqueryBase:
    """
    Build a fixed query from its query type and arguments.

    Raises:
        ValidationError: On an unknown query type or arguments
    """
    if query_type not in FIXED_QUERIES:
        raise ValidationError(f"Unrecognized query type ({query_type})")

    accepted = FIXED_QUERY_ARGS[query_type]
    unknown = sorted(set(args) - set(accepted))
    if unknown:
        raise ValidationError(f"unrecognized arguments ({', '.join(unknown)})")

    kwargs = {accepted[key]: value for key, value in args.items()}
    if "vertex_filter" in kwargs:
        kwargs["vertex_filter"] = parse_vertex_filter(schema, kwargs["vertex_filter"])
    if "disambiguate" in kwargs and not isinstance(kwargs["disambiguate"], bool):
        kwargs["disambiguate"] = cast_boolean(kwargs["disambiguate"])

    clause = parse_filters(schema, model, filters)

    if query_type in FILTER_RESULTS:
        query = FIXED_QUERIES[query_type](schema, target, model, history=history, **kwargs)
        if clause is None:
            return query
        return Subquery(query, query.model, filters=clause, history=history)

    return FIXED_QUERIES[query_type](schema, target, model, filters=clause, history=history, **kwargs)


def parse_subquery(schema: SchemaDefinition, opt: Dict[str, Any]) -> SubqueryBase:
    """
    Parse a (sub)query description.

    Args:
        schema: The schema definition
        opt: The description with a target (class name, record ids or
            nested description), optional filters, history flag, query
            type (for fixed queries) and the fixed query arguments

    Returns:
        SubqueryBase: The parsed query

    Raises:
        ValidationError: If the description is malformed
    """
    opt = dict(opt)
    target = opt.pop("target", None)
    history = opt.pop("history", False)
    history = history if isinstance(history, bool) else cast_boolean(history)
    filters = opt.pop("filters", None)
    query_type = opt.pop("queryType", None)
    model_name = opt.pop("model", None)

    if target is None:
        raise ValidationError("Missing required query target")

    if isinstance(target, (list, tuple)):
        if not target:
            raise ValidationError("target cannot be an empty list")
        target = _cast_rid_list(target)
    elif isinstance(target, dict):
        target = parse_subquery(schema, target)
    elif isinstance(target, str):
        if not schema.has(target):
            raise ValidationError(f"Invalid target class ({target})")
        target = schema.get(target).name
    else:
        raise ValidationError(f"Invalid query target ({target!r})")

    if opt and not query_type:
        raise ValidationError(f"Unrecognized query arguments: {', '.join(sorted(opt))}")

    if isinstance(target, str):
        model = schema.get(target)
    elif model_name:
        model = schema.get(model_name)
    elif isinstance(target, SubqueryBase):
        model = target.model
    else:
        model = schema.get("V")

    if query_type:
        return parse_fixed_query(schema, query_type, target, model, filters, history, opt)

    if model.is_edge and isinstance(target, str) and filters:
        endpoint = _endpoint_filter(filters)
        if endpoint is not None:
            direction = "out" if "out" in endpoint else "in"
            logger.debug(f"Selecting {model.name} edges through the {direction} vertices")
            target = EdgeQuery(
                schema,
                model.name,
                model,
                vertex_filter=parse_vertex_filter(schema, endpoint[direction]),
                direction=direction,
                history=history,
            )

    return Subquery(target, model, filters=parse_filters(schema, model, filters), history=history)


def parse(schema: SchemaDefinition, opt: Dict[str, Any]) -> WrapperQuery:
    """
    Parse a complete query description, including paging, ordering and the
    projection of the results.

    Args:
        schema: The schema definition
        opt: The query description (see `parse_subquery`) plus limit, skip,
            orderBy, orderByDirection, count, neighbors and returnProperties

    Returns:
        WrapperQuery: The parsed query

    Raises:
        ValidationError: If the description is malformed
    """
    opt = check_standard_options(opt)

    limit = opt.pop("limit", MAX_LIMIT)
    skip = opt.pop("skip", None)
    history = opt.pop("history", False)
    neighbors = opt.pop("neighbors", None)
    order_by = opt.pop("orderBy", None)
    order_by_direction = opt.pop("orderByDirection", None) or "ASC"
    return_properties = opt.pop("returnProperties", None)
    count = opt.pop("count", False)
    model_name = opt.pop("model", None)

    query_opt = {**opt, "history": history}
    if model_name:
        query_opt["model"] = model_name
    query = parse_subquery(schema, query_opt)
    model = schema.get(model_name) if model_name else query.model

    if order_by:
        parse_property_list(schema, model, order_by)

    projection = None
    if return_properties:
        projection = props_to_projection(schema, model, return_properties, allow_direct_embedded=True)
    elif neighbors and neighbors < 2:
        projection = nested_projection(schema, neighbors)
    elif neighbors:
        projection = non_specific_projection(schema, neighbors, edges=schema.edge_names, history=history)

    return WrapperQuery(
        query,
        model,
        target=opt.get("target"),
        limit=limit,
        skip=skip,
        projection=projection,
        order_by=order_by,
        order_by_direction=order_by_direction,
        count=count,
        history=history,
    )


def parse_record(
    schema: SchemaDefinition,
    model_name: Any,
    record: Dict[str, Any],
    active_index_only: bool = False,
    exclude_rid: Optional[str] = None,
    **opt: Any,
) -> WrapperQuery:
    """
    Build a query matching the content of a record.

    Args:
        schema: The schema definition
        model_name: Class of the record
        record: The record content
        active_index_only: Only match on the active index properties; unset
            index properties must be null on the matching records
        exclude_rid: Record id that may not match (the record being changed)
        **opt: Additional query options (see `parse`)

    Returns:
        WrapperQuery: The query
    """
    model = schema.get(model_name)
    queryable = get_queryable_props(schema, model)
    content = dict(record)

    if active_index_only:
        names = sorted(schema.active_properties(model.name) or [])
        for name in names:
            content.setdefault(name, None)
    else:
        names = sorted(model.query_properties)

    filters = []
    for name in names:
        if name in (RID, CLASS) or name not in content:
            continue
        prop = model.query_properties[name]
        value = content[name]

        if prop.is_embedded:
            if not prop.linked_class or not isinstance(value, dict):
                continue
            for sub_name, sub_value in sorted(value.items()):
                key = f"{name}.{sub_name}"
                if key in queryable and sub_value is not None:
                    filters.append({key: sub_value})
        elif prop.is_link:
            filters.append({name: prop.validate_value(value)})
        else:
            filters.append({name: value})

    if exclude_rid:
        filters.append({RID: _cast_rid(exclude_rid), "negate": True})

    if record.get(RID) and not active_index_only:
        query_opt = {"target": [_cast_rid(record[RID])], "model": model.name}
    else:
        query_opt = {"target": model.name}
    if filters:
        query_opt["filters"] = {"AND": filters}

    return parse(schema, {**opt, **query_opt})


__all__ = [
    "parse",
    "parse_clause",
    "parse_comparison",
    "parse_filters",
    "parse_fixed_query",
    "parse_record",
    "parse_subquery",
    "parse_vertex_filter",
]
