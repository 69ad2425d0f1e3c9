"""
Query builder constants.
"""

from enum import Enum

MAX_NEIGHBORS = 4
MAX_TRAVEL_DEPTH = 50
MAX_LIMIT = 1000
DEFAULT_NEIGHBORS = 3
MIN_WORD_SIZE = 3

PARAM_PREFIX = "param"


class Operator(str, Enum):
    """Operators accepted in filter comparisons and clauses."""
    AND = "AND"
    OR = "OR"
    CONTAINS = "CONTAINS"
    CONTAINSALL = "CONTAINSALL"
    CONTAINSANY = "CONTAINSANY"
    CONTAINSTEXT = "CONTAINSTEXT"
    EQ = "="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    IN = "IN"
    INSTANCEOF = "INSTANCEOF"
    IS = "IS"


NUMBER_ONLY_OPERATORS = (Operator.GT, Operator.GTE, Operator.LT, Operator.LTE)

DIRECTIONS = ("out", "in", "both")

TREE_EDGES = ("SubClassOf", "ElementOf")

SIMILARITY_EDGES = (
    "AliasOf",
    "CrossReferenceOf",
    "DeprecatedBy",
    "GeneralizationOf",
    "Infers",
)
