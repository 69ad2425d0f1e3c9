"""
Query builder: compiles JSON-like query descriptions into parameterized Cypher.
"""

from .constants import (
    DEFAULT_NEIGHBORS,
    MAX_LIMIT,
    MAX_NEIGHBORS,
    MAX_TRAVEL_DEPTH,
    MIN_WORD_SIZE,
    SIMILARITY_EDGES,
    TREE_EDGES,
    Operator,
)
from .context import CompileContext
from .fixed import EdgeQuery, FixedSubquery, KeywordQuery, NeighborhoodQuery, SimilarToQuery, TreeQuery
from .fragment import Clause, Comparison, Subquery, SubqueryBase, WrapperQuery
from .parse import parse, parse_record, parse_subquery
from .projection import DefaultProjection, nested_projection, non_specific_projection, props_to_projection
from .util import check_standard_options, display_query

__all__ = [
    "DEFAULT_NEIGHBORS",
    "MAX_LIMIT",
    "MAX_NEIGHBORS",
    "MAX_TRAVEL_DEPTH",
    "MIN_WORD_SIZE",
    "SIMILARITY_EDGES",
    "TREE_EDGES",
    "Operator",
    "CompileContext",
    "EdgeQuery",
    "FixedSubquery",
    "KeywordQuery",
    "NeighborhoodQuery",
    "SimilarToQuery",
    "TreeQuery",
    "Clause",
    "Comparison",
    "Subquery",
    "SubqueryBase",
    "WrapperQuery",
    "parse",
    "parse_record",
    "parse_subquery",
    "DefaultProjection",
    "nested_projection",
    "non_specific_projection",
    "props_to_projection",
    "check_standard_options",
    "display_query",
]
