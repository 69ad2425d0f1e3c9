"""
Schema models for the knowledge base.
"""

from .property import Property, PropertyType
from .class_model import ClassModel, Permission, DEFAULT_GROUPS, default_permissions
from .registry import SchemaDefinition, load_schema
from .variant import break_repr, position_repr, stringify_variant
from .templates import choose_default_template

__all__ = [
    "Property",
    "PropertyType",
    "ClassModel",
    "Permission",
    "DEFAULT_GROUPS",
    "default_permissions",
    "SchemaDefinition",
    "load_schema",
    "break_repr",
    "position_repr",
    "stringify_variant",
    "choose_default_template",
]
