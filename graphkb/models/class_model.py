"""
Class model descriptors for the knowledge base schema.

A class model lists the properties of a vertex, edge or embedded class along
with its inheritance, permission matrix and active (unique among active
records) index. Inherited properties and ancestors are resolved by the
schema registry when the class set is frozen.
"""

from enum import IntFlag
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .property import Property


class Permission(IntFlag):
    """Permission bits granted to user groups per class."""
    NONE = 0
    DELETE = 1
    UPDATE = 2
    READ = 4
    CREATE = 8
    ALL = DELETE | UPDATE | READ | CREATE


DEFAULT_GROUPS = ("admin", "manager", "regular", "readonly")


def default_permissions(**overrides: int) -> Dict[str, int]:
    """Default permission matrix: full access for editors, read access for readonly users."""
    permissions = {
        "default": int(Permission.NONE),
        "admin": int(Permission.ALL),
        "manager": int(Permission.ALL),
        "regular": int(Permission.ALL),
        "readonly": int(Permission.READ),
    }
    permissions.update({key: int(value) for key, value in overrides.items()})
    return permissions


class ClassModel(BaseModel):
    """
    Schema description of a single record class.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Name of the class"
    )

    inherits: List[str] = Field(
        default_factory=list,
        description="Direct parent classes"
    )

    properties: Dict[str, Property] = Field(
        default_factory=dict,
        description="Properties defined directly on this class"
    )

    is_abstract: bool = Field(default=False, description="Records cannot be created directly")
    is_embedded: bool = Field(default=False, description="Records only exist embedded in other records")
    is_edge: bool = Field(default=False, description="Records are edges between two vertices")

    active_properties: Optional[List[str]] = Field(
        default=None,
        description="Properties forming the index that must be unique among active records"
    )

    permissions: Dict[str, int] = Field(
        default_factory=default_permissions,
        description="Permission bits per user group name ('default' for unlisted groups)"
    )

    source_models: Optional[List[str]] = Field(
        default=None,
        description="Allowed classes of the edge source vertex"
    )

    target_models: Optional[List[str]] = Field(
        default=None,
        description="Allowed classes of the edge target vertex"
    )

    format_hook: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = Field(
        default=None,
        exclude=True,
        description="Derives computed properties after a record has been formatted"
    )

    description: str = Field(default="", description="Human readable description")

    # resolved by the registry
    ancestors: List[str] = Field(
        default_factory=list,
        description="All ancestor classes, nearest first"
    )

    query_properties: Dict[str, Property] = Field(
        default_factory=dict,
        description="Own and inherited properties"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Class names are used as labels so must be simple identifiers."""
        if not v.replace("_", "").isalnum() or v[0].isdigit():
            raise ValueError(f"Invalid class name '{v}'")
        return v

    @property
    def labels(self) -> List[str]:
        """Store labels of records of this class: the class and its ancestors."""
        return [self.name] + self.ancestors

    def inherits_from(self, name: str) -> bool:
        return name == self.name or name in self.ancestors

    def get_property(self, name: str) -> Optional[Property]:
        return self.query_properties.get(name)

    def group_permission(self, group_name: str) -> int:
        return self.permissions.get(group_name, self.permissions.get("default", 0))

    def __repr__(self) -> str:
        return f"ClassModel({self.name})"
