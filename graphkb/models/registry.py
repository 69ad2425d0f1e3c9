"""
Schema Registry for the knowledge base.

The registry resolves class inheritance (kept as a networkx DiGraph from
parent to child), merges inherited properties into each class model, and
formats/validates record content against the class definitions.

The registry is immutable once built. `load_schema()` builds the default
class set once per process; every component receives the resulting
`SchemaDefinition` explicitly.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

import networkx as nx

from ..database.base import ValidationError
from .class_model import DEFAULT_GROUPS, ClassModel
from .definitions import build_models
from .property import Property, PropertyType

logger = logging.getLogger(__name__)

CLASS = "@class"


class SchemaDefinition:
    """
    Frozen collection of class models.

    Example:
        >>> schema = load_schema()
        >>> schema.ancestors("Disease")
        ['Ontology', 'Biomarker', 'V']
        >>> schema.get("Disease").labels
        ['Disease', 'Ontology', 'Biomarker', 'V']
    """

    def __init__(self, models: Iterable[ClassModel]):
        """
        Resolve and freeze a set of class models.

        Args:
            models: Class models as defined (own properties only)

        Raises:
            ValueError: If a class is defined twice, inherits from an unknown
                class, or the inheritance contains a cycle
        """
        defined: Dict[str, ClassModel] = {}
        self._graph = nx.DiGraph()

        for model in models:
            if model.name in defined:
                raise ValueError(f"Duplicate class definition ({model.name})")
            defined[model.name] = model
            self._graph.add_node(model.name)

        for model in defined.values():
            for parent in model.inherits:
                if parent not in defined:
                    raise ValueError(f"Class {model.name} inherits from undefined class ({parent})")
                self._graph.add_edge(parent, model.name)

        if not nx.is_directed_acyclic_graph(self._graph):
            raise ValueError("Class inheritance must not contain cycles")

        resolved: Dict[str, ClassModel] = {}

        for name in nx.topological_sort(self._graph):
            model = defined[name]
            ancestors = self._ordered_ancestors(model, defined)
            parents = [resolved[parent] for parent in ancestors]

            query_properties: Dict[str, Property] = {}
            for ancestor in reversed(ancestors):
                query_properties.update(defined[ancestor].properties)
            query_properties.update(model.properties)

            active_properties = model.active_properties
            format_hook = model.format_hook
            for parent in parents:
                if active_properties is None:
                    active_properties = parent.active_properties
                if format_hook is None:
                    format_hook = parent.format_hook

            resolved[name] = model.model_copy(update={
                "ancestors": ancestors,
                "query_properties": query_properties,
                "active_properties": active_properties,
                "format_hook": format_hook,
                "is_edge": model.is_edge or any(parent.is_edge for parent in parents),
                "is_embedded": model.is_embedded or any(parent.is_embedded for parent in parents),
            })

        self._models: Mapping[str, ClassModel] = MappingProxyType(resolved)
        self._lookup = {name.lower(): name for name in resolved}
        logger.info(f"Loaded schema definition with {len(resolved)} classes")

    @staticmethod
    def _ordered_ancestors(model: ClassModel, defined: Dict[str, ClassModel]) -> List[str]:
        """Ancestors in breadth-first order so that the nearest parents come first."""
        result: List[str] = []
        queue = list(model.inherits)

        while queue:
            parent = queue.pop(0)
            if parent in result:
                continue
            result.append(parent)
            queue.extend(defined[parent].inherits)
        return result

    # ================================
    # Lookup
    # ================================

    @property
    def models(self) -> Mapping[str, ClassModel]:
        return self._models

    def has(self, name: str) -> bool:
        return isinstance(name, str) and name.lower() in self._lookup

    def get(self, name: Any) -> ClassModel:
        """
        Get a class model by name (case-insensitive).

        Raises:
            ValidationError: If no such class is defined
        """
        if isinstance(name, ClassModel):
            return name
        if not self.has(name):
            raise ValidationError(f"Unable to find the class ({name}) in the schema")
        return self._models[self._lookup[name.lower()]]

    def ancestors(self, name: str) -> List[str]:
        return list(self.get(name).ancestors)

    def descendants(self, name: str, include_self: bool = False, include_abstract: bool = True) -> List[str]:
        """
        All classes inheriting (directly or not) from the given class.

        Returns:
            List[str]: Sorted class names
        """
        model = self.get(name)
        names = set(nx.descendants(self._graph, model.name))
        if include_self:
            names.add(model.name)
        if not include_abstract:
            names = {n for n in names if not self._models[n].is_abstract}
        return sorted(names)

    def is_subclass(self, name: str, parent: str) -> bool:
        return self.get(name).inherits_from(self.get(parent).name)

    def get_properties(self, name: str) -> Dict[str, Property]:
        return dict(self.get(name).query_properties)

    def active_properties(self, name: str) -> Optional[List[str]]:
        active = self.get(name).active_properties
        return list(active) if active else None

    @property
    def edge_models(self) -> List[ClassModel]:
        """Concrete edge classes."""
        return [m for m in self._models.values() if m.is_edge and not m.is_abstract and m.name != "E"]

    @property
    def edge_names(self) -> List[str]:
        return sorted(m.name for m in self.edge_models)

    # ================================
    # Record Formatting
    # ================================

    def format_record(
        self,
        model_name: Any,
        content: Dict[str, Any],
        add_defaults: bool = True,
        drop_extra: bool = False,
        ignore_missing: bool = False,
        ignore_extra: bool = False,
    ) -> Dict[str, Any]:
        """
        Check and cast record content against a class definition.

        Args:
            model_name: The class (name or model) of the record
            content: The record content
            add_defaults: Fill unset properties that have defaults
            drop_extra: Silently drop properties the class does not define
            ignore_missing: Do not require mandatory properties (partial updates)
            ignore_extra: Keep undefined properties unchecked

        Returns:
            Dict[str, Any]: The formatted record

        Raises:
            ValidationError: On missing required, badly typed, or unexpected properties
        """
        model = self.get(model_name)
        properties = model.query_properties
        record: Dict[str, Any] = {}

        if content.get(CLASS) is not None and str(content[CLASS]).lower() != model.name.lower():
            raise ValidationError(
                f"Record class ({content[CLASS]}) does not match the class it is formatted as ({model.name})"
            )

        for key, value in content.items():
            if key == CLASS or key in properties:
                continue
            if drop_extra:
                continue
            if ignore_extra:
                record[key] = value
                continue
            raise ValidationError(f"Unexpected attribute ({key}) is not defined on this class model ({model.name})")

        for name, prop in properties.items():
            if name in content:
                value = content[name]
                if value is None:
                    if not prop.nullable:
                        raise ValidationError(f"Attribute ({name}) of {model.name} cannot be null")
                    record[name] = None
                elif prop.is_embedded:
                    record[name] = self._format_embedded(prop, value, add_defaults)
                else:
                    record[name] = prop.validate_value(value)
            elif add_defaults and prop.has_default:
                record[name] = prop.default_value()
            elif prop.mandatory and not ignore_missing:
                raise ValidationError(f"Missing required attribute ({name}) on class {model.name}")

        if add_defaults or CLASS in content:
            record[CLASS] = model.name

        if add_defaults and model.format_hook is not None:
            record = model.format_hook(record)

        return record

    def _format_embedded(self, prop: Property, value: Any, add_defaults: bool) -> Any:
        if prop.type == PropertyType.EMBEDDED:
            return self._format_embedded_record(prop, value, add_defaults)
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"Invalid value for property ({prop.name}): expected a list")
        return [self._format_embedded_record(prop, item, add_defaults) for item in value]

    def _format_embedded_record(self, prop: Property, value: Any, add_defaults: bool) -> Dict[str, Any]:
        if not isinstance(value, dict):
            raise ValidationError(f"Invalid value for property ({prop.name}): expected an embedded record")
        if not prop.linked_class:
            return dict(value)

        model = self.get(value.get(CLASS) or prop.linked_class)
        if not model.inherits_from(prop.linked_class):
            raise ValidationError(
                f"Embedded class ({model.name}) of {prop.name} must inherit from {prop.linked_class}"
            )
        if model.is_abstract:
            raise ValidationError(
                f"The class of the embedded record ({prop.name}) must be given since {model.name} is abstract"
            )
        return self.format_record(model, value, add_defaults=add_defaults)

    # ================================
    # Permissions
    # ================================

    def default_group_permissions(self) -> List[Dict[str, Any]]:
        """
        Permission matrices for the default user groups.

        Returns:
            List[Dict[str, Any]]: One entry per group with its name and class permissions
        """
        groups = []
        for group_name in DEFAULT_GROUPS:
            permissions = {
                model.name: model.group_permission(group_name)
                for model in self._models.values()
                if not model.is_embedded
            }
            groups.append({"name": group_name, "permissions": permissions})
        return groups


# ================================
# Load-once Default Schema
# ================================

_schema: Optional[SchemaDefinition] = None


def load_schema(reload: bool = False) -> SchemaDefinition:
    """
    Build the default class set, once per process.

    Args:
        reload: Rebuild even if the schema was already loaded

    Returns:
        SchemaDefinition: The shared schema
    """
    global _schema
    if _schema is None or reload:
        _schema = SchemaDefinition(build_models())
    return _schema
