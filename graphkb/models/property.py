"""
Property descriptors for schema classes.

A property describes a single attribute of a class: its storage type, the
class it links to (links and embedded records), and the casting and
validation applied to incoming values.
"""

from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..database.base import ValidationError
from ..database.records import cast_to_rid


class PropertyType(str, Enum):
    """Storage types of class properties."""
    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    BOOLEAN = "boolean"
    LINK = "link"
    LINKSET = "linkset"
    EMBEDDED = "embedded"
    EMBEDDEDSET = "embeddedset"
    EMBEDDEDLIST = "embeddedlist"
    ANY = "any"


ITERABLE_TYPES = {PropertyType.LINKSET, PropertyType.EMBEDDEDSET, PropertyType.EMBEDDEDLIST}
NUMERIC_TYPES = {PropertyType.INTEGER, PropertyType.LONG}

_INTEGER = TypeAdapter(int)
_BOOLEAN = TypeAdapter(bool)


class Property(BaseModel):
    """
    A single attribute of a schema class.

    Properties are immutable once defined; the registry shares the same
    instances between a class and every class inheriting from it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Name of the property"
    )

    type: PropertyType = Field(
        default=PropertyType.STRING,
        description="Storage type of the property"
    )

    linked_class: Optional[str] = Field(
        default=None,
        description="Class of the linked or embedded record(s)"
    )

    mandatory: bool = Field(
        default=False,
        description="The property must be given when a record is created"
    )

    nullable: bool = Field(
        default=True,
        description="The property may be explicitly set to null"
    )

    choices: Optional[List[Any]] = Field(
        default=None,
        description="Allowed values (enum properties)"
    )

    default: Any = Field(
        default=None,
        description="Static default value"
    )

    generate_default: Optional[Callable[[], Any]] = Field(
        default=None,
        exclude=True,
        description="Factory producing the default value"
    )

    cast: Optional[str] = Field(
        default=None,
        description="Casting applied to string values ('lowercase' or 'trim')"
    )

    generated: bool = Field(
        default=False,
        description="Value is maintained by the system rather than by users"
    )

    description: str = Field(
        default="",
        description="Human readable description"
    )

    @field_validator("cast")
    @classmethod
    def validate_cast(cls, v):
        """Validate the cast name."""
        if v is not None and v not in ("lowercase", "trim"):
            raise ValueError(f"Unsupported cast '{v}'. Must be 'lowercase' or 'trim'")
        return v

    @property
    def iterable(self) -> bool:
        return self.type in ITERABLE_TYPES

    @property
    def is_link(self) -> bool:
        return self.type in (PropertyType.LINK, PropertyType.LINKSET)

    @property
    def is_embedded(self) -> bool:
        return self.type in (PropertyType.EMBEDDED, PropertyType.EMBEDDEDSET, PropertyType.EMBEDDEDLIST)

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.generate_default is not None

    def default_value(self) -> Any:
        """Produce the default value for a new record."""
        if self.generate_default is not None:
            return self.generate_default()
        if isinstance(self.default, (list, dict)):
            return type(self.default)(self.default)
        return self.default

    def cast_element(self, value: Any) -> Any:
        """
        Cast a single (non-list) value to the type of this property.

        Args:
            value: The raw value

        Returns:
            Any: The cast value

        Raises:
            ValidationError: If the value cannot be cast
        """
        try:
            if self.type in (PropertyType.LINK, PropertyType.LINKSET):
                return cast_to_rid(value)

            if self.type == PropertyType.STRING:
                if not isinstance(value, str):
                    raise ValueError(f"expected a string but found {type(value).__name__}")
                if self.cast == "lowercase":
                    return value.strip().lower()
                if self.cast == "trim":
                    return value.strip()
                return value

            if self.type in NUMERIC_TYPES:
                if isinstance(value, bool):
                    raise ValueError("expected an integer but found a boolean")
                if isinstance(value, str):
                    value = value.strip()
                return _INTEGER.validate_python(value)

            if self.type == PropertyType.BOOLEAN:
                if isinstance(value, str):
                    value = value.strip().lower()
                return _BOOLEAN.validate_python(value)

            if self.is_embedded and not isinstance(value, dict):
                raise ValueError(f"expected an embedded record but found {type(value).__name__}")

        except PydanticValidationError as e:
            raise ValidationError(f"Invalid value for property ({self.name}): {e.errors()[0]['msg']}") from e
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid value for property ({self.name}): {e}") from e

        return value

    def validate_value(self, value: Any) -> Any:
        """
        Cast a value (or list of values for iterable properties) and check its choices.

        Null values are returned unchanged; nullability is checked by the class
        model since it depends on the operation.
        """
        if value is None:
            return None

        if self.iterable:
            if not isinstance(value, (list, tuple, set, frozenset)):
                raise ValidationError(f"Invalid value for property ({self.name}): expected a list")
            result = [self.cast_element(v) for v in value]
            if self.type == PropertyType.LINKSET or self.type == PropertyType.EMBEDDEDSET:
                # sets keep the first occurrence of each element
                unique = []
                for item in result:
                    if item not in unique:
                        unique.append(item)
                result = unique
        else:
            result = self.cast_element(value)

        self.check_choices(result)
        return result

    def check_choices(self, value: Any) -> None:
        """Raise if the (cast) value is not one of the allowed choices."""
        if not self.choices or value is None:
            return
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item not in self.choices:
                raise ValidationError(
                    f"Violated the choices constraint of {self.name}. "
                    f"Got {item!r}, expected one of {', '.join(str(c) for c in self.choices)}"
                )
