"""
Name bookkeeping for statement compilation.
"""

from typing import Any, Dict

from ...database.records import RID, escape_name, property_ref
from .constants import PARAM_PREFIX


class CompileContext:
    """
    Hands out parameter and variable names while a statement is compiled.

    Every parameter (``$param0``, ``$param1``...) and variable (``n0``,
    ``n1``...) name is unique within the final statement.
    """

    def __init__(self):
        self.params: Dict[str, Any] = {}
        self._variables = 0

    def add_param(self, value: Any) -> str:
        """Bind a value and return its placeholder (``$param0``)."""
        name = f"{PARAM_PREFIX}{len(self.params)}"
        self.params[name] = value
        return f"${name}"

    def new_variable(self, prefix: str = "n") -> str:
        name = f"{prefix}{self._variables}"
        self._variables += 1
        return name


def element_ref(variable: str, name: str, is_edge: bool = False) -> str:
    """Reference a property of a record, resolving edge endpoints."""
    if is_edge and name == "out":
        return f"startNode({variable}).{escape_name(RID)}"
    if is_edge and name == "in":
        return f"endNode({variable}).{escape_name(RID)}"
    return property_ref(variable, name)
