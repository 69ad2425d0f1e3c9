"""
Default class definitions of the knowledge base.

Vertex classes inherit from `V`, edge classes from `E`. Position classes are
embedded in positional variants and never stored as records of their own.
"""

from typing import Any, Dict, List

from ..database.records import generate_rid, timestamp_now
from .class_model import ClassModel, Permission, default_permissions
from .property import Property, PropertyType as T
from .variant import positional_variant_hook

ZYGOSITY = ["heterozygous", "homozygous"]
REVIEW_STATUS = ["pending", "not required", "passed", "failed", "initial"]

# classes whose records may only be changed by administrators
ADMIN_ONLY = default_permissions(
    manager=Permission.READ,
    regular=Permission.READ,
    readonly=Permission.READ,
)


def _props(*properties: Property) -> Dict[str, Property]:
    return {prop.name: prop for prop in properties}


def _link(name: str, linked_class: str, **kwargs: Any) -> Property:
    return Property(name=name, type=T.LINK, linked_class=linked_class, **kwargs)


def _linkset(name: str, linked_class: str, **kwargs: Any) -> Property:
    return Property(name=name, type=T.LINKSET, linked_class=linked_class, **kwargs)


def _tracking_properties() -> List[Property]:
    """Identity and history properties shared by vertices and edges."""
    return [
        Property(name="@rid", generate_default=generate_rid, generated=True, nullable=False,
                 description="Stable record identity"),
        Property(name="@class", generated=True, nullable=False, description="Class of the record"),
        Property(name="createdAt", type=T.LONG, generate_default=timestamp_now, generated=True, nullable=False),
        _link("createdBy", "User", generated=True),
        Property(name="deletedAt", type=T.LONG, generated=True),
        _link("deletedBy", "User", generated=True),
        _link("history", "V", generated=True, description="Previous version of this record"),
        Property(name="comment"),
        _linkset("groupRestrictions", "UserGroup", description="Groups allowed to read the record"),
    ]


def _base_models() -> List[ClassModel]:
    return [
        ClassModel(
            name="V",
            is_abstract=True,
            properties=_props(
                *_tracking_properties(),
                Property(name="updatedAt", type=T.LONG, generated=True),
                _link("updatedBy", "User", generated=True),
            ),
            description="Base class of all vertex records",
        ),
        ClassModel(
            name="E",
            is_abstract=True,
            is_edge=True,
            properties=_props(
                _link("out", "V", mandatory=True, nullable=False),
                _link("in", "V", mandatory=True, nullable=False),
                *_tracking_properties(),
            ),
            description="Base class of all edge records",
        ),
        ClassModel(
            name="UserGroup",
            inherits=["V"],
            properties=_props(
                Property(name="name", mandatory=True, nullable=False, cast="lowercase"),
                Property(name="permissions", type=T.EMBEDDED, description="Permission bits per class name"),
                Property(name="description"),
            ),
            active_properties=["name"],
            permissions=ADMIN_ONLY,
        ),
        ClassModel(
            name="User",
            inherits=["V"],
            properties=_props(
                Property(name="name", mandatory=True, nullable=False),
                _linkset("groups", "UserGroup", default=[]),
                Property(name="email"),
                Property(name="signedLicenseAt", type=T.LONG),
                Property(name="firstLoginAt", type=T.LONG),
                Property(name="lastLoginAt", type=T.LONG),
                Property(name="loginCount", type=T.INTEGER),
            ),
            active_properties=["name"],
            permissions=ADMIN_ONLY,
        ),
        ClassModel(
            name="Source",
            inherits=["V"],
            properties=_props(
                Property(name="name", mandatory=True, nullable=False, cast="lowercase"),
                Property(name="version"),
                Property(name="displayName"),
                Property(name="url"),
                Property(name="description"),
                Property(name="usage"),
                Property(name="sort", type=T.INTEGER),
            ),
            active_properties=["name", "version"],
        ),
    ]


def _ontology_models() -> List[ClassModel]:
    leaf_classes = [
        ("Disease", "Ontology", {}),
        ("Therapy", "Ontology", {}),
        ("AnatomicalEntity", "Ontology", {}),
        ("Pathway", "Ontology", {}),
        ("Feature", "Ontology", _props(
            Property(name="biotype", choices=["gene", "protein", "transcript", "exon", "chromosome"]),
        )),
        ("Vocabulary", "Ontology", _props(Property(name="shortName"))),
        ("EvidenceLevel", "Evidence", {}),
        ("Publication", "Evidence", _props(
            Property(name="journalName"),
            Property(name="year", type=T.INTEGER),
        )),
    ]

    models = [
        ClassModel(name="Biomarker", inherits=["V"], is_abstract=True),
        ClassModel(
            name="Ontology",
            inherits=["Biomarker"],
            is_abstract=True,
            properties=_props(
                _link("source", "Source", mandatory=True, nullable=False),
                Property(name="sourceId", mandatory=True, nullable=False, cast="lowercase"),
                Property(name="name", cast="lowercase"),
                Property(name="displayName"),
                Property(name="sourceIdVersion"),
                Property(name="description"),
                Property(name="url"),
                Property(name="deprecated", type=T.BOOLEAN, default=False, nullable=False),
                _link("dependency", "Ontology"),
            ),
            active_properties=["source", "sourceId", "name", "deprecated", "sourceIdVersion"],
        ),
        ClassModel(name="Evidence", inherits=["Ontology"], is_abstract=True),
    ]
    for name, parent, properties in leaf_classes:
        models.append(ClassModel(name=name, inherits=[parent], properties=properties))
    return models


def _position_models() -> List[ClassModel]:
    pos = Property(name="pos", type=T.INTEGER)

    return [
        ClassModel(name="Position", is_abstract=True, is_embedded=True),
        ClassModel(name="BasicPosition", inherits=["Position"], is_abstract=True, properties=_props(pos)),
        ClassModel(name="GenomicPosition", inherits=["BasicPosition"]),
        ClassModel(name="ExonicPosition", inherits=["BasicPosition"]),
        ClassModel(name="IntronicPosition", inherits=["BasicPosition"]),
        ClassModel(
            name="ProteinPosition",
            inherits=["BasicPosition"],
            properties=_props(Property(name="refAA")),
        ),
        ClassModel(
            name="CdsPosition",
            inherits=["BasicPosition"],
            properties=_props(Property(name="offset", type=T.INTEGER)),
        ),
        ClassModel(
            name="CytobandPosition",
            inherits=["Position"],
            properties=_props(
                Property(name="arm", mandatory=True, nullable=False, choices=["p", "q"]),
                Property(name="majorBand", type=T.INTEGER),
                Property(name="minorBand", type=T.INTEGER),
            ),
        ),
    ]


def _variant_models() -> List[ClassModel]:
    return [
        ClassModel(
            name="Variant",
            inherits=["Biomarker"],
            is_abstract=True,
            properties=_props(
                _link("type", "Vocabulary", mandatory=True, nullable=False),
                _link("reference1", "Ontology", mandatory=True, nullable=False),
                _link("reference2", "Ontology"),
                Property(name="zygosity", choices=ZYGOSITY),
                Property(name="germline", type=T.BOOLEAN),
                Property(name="displayName"),
            ),
        ),
        ClassModel(
            name="CategoryVariant",
            inherits=["Variant"],
            active_properties=["type", "reference1", "reference2", "zygosity", "germline"],
        ),
        ClassModel(
            name="PositionalVariant",
            inherits=["Variant"],
            properties=_props(
                Property(name="break1Start", type=T.EMBEDDED, linked_class="Position",
                         mandatory=True, nullable=False),
                Property(name="break1End", type=T.EMBEDDED, linked_class="Position"),
                Property(name="break2Start", type=T.EMBEDDED, linked_class="Position"),
                Property(name="break2End", type=T.EMBEDDED, linked_class="Position"),
                Property(name="break1Repr", generated=True),
                Property(name="break2Repr", generated=True),
                Property(name="refSeq"),
                Property(name="untemplatedSeq"),
                Property(name="untemplatedSeqSize", type=T.INTEGER),
                Property(name="truncation", type=T.INTEGER),
                Property(name="hgvsType"),
            ),
            format_hook=positional_variant_hook,
        ),
        ClassModel(
            name="Statement",
            inherits=["V"],
            properties=_props(
                _linkset("conditions", "Biomarker", mandatory=True, nullable=False),
                _link("subject", "Biomarker", mandatory=True, nullable=False),
                _linkset("evidence", "Evidence", mandatory=True, nullable=False),
                _link("relevance", "Vocabulary", mandatory=True, nullable=False),
                _linkset("evidenceLevel", "EvidenceLevel"),
                _link("source", "Source"),
                Property(name="sourceId"),
                Property(name="displayNameTemplate"),
                Property(name="description"),
                Property(name="reviewStatus", choices=REVIEW_STATUS),
            ),
        ),
    ]


def _edge_models() -> List[ClassModel]:
    edges = [
        ("AliasOf", None, None),
        ("CrossReferenceOf", None, None),
        ("DeprecatedBy", None, None),
        ("ElementOf", None, None),
        ("GeneralizationOf", None, None),
        ("Infers", ["Variant"], ["Variant"]),
        ("OppositeOf", None, None),
        ("SubClassOf", None, None),
        ("TargetOf", None, None),
    ]
    return [
        ClassModel(name=name, inherits=["E"], source_models=source, target_models=target)
        for name, source, target in edges
    ]


def build_models() -> List[ClassModel]:
    """All default class models, as defined (before inheritance is resolved)."""
    return [
        *_base_models(),
        *_ontology_models(),
        *_position_models(),
        *_variant_models(),
        *_edge_models(),
    ]
