"""
Variant notation formatting.

Positional variants are displayed in an HGVS-like shorthand built from the
reference feature names, the break positions and the variant type, e.g.
``KRAS:p.G12D``, ``EGFR:c.2235_2249del`` or ``(BCR,ABL1):fusion(e.13,e.2)``.
"""

from typing import Any, Dict, Optional

from ..database.base import ValidationError

POSITION_PREFIX = {
    "GenomicPosition": "g",
    "CdsPosition": "c",
    "ProteinPosition": "p",
    "ExonicPosition": "e",
    "IntronicPosition": "i",
    "CytobandPosition": "y",
}

TYPE_NOTATION = {
    "substitution": ">",
    "deletion": "del",
    "insertion": "ins",
    "indel": "delins",
    "duplication": "dup",
    "frameshift": "fs",
    "extension": "ext",
    "splice-site": "spl",
    "truncating": "trunc",
    "inversion": "inv",
    "fusion": "fusion",
    "translocation": "trans",
    "inverted translocation": "itrans",
    "methylation": "mt",
    "phosphorylation": "phos",
    "ubiquitination": "ub",
    "copy gain": "copygain",
    "copy loss": "copyloss",
}

MULTI_FEATURE_TYPES = {"fusion", "trans", "itrans"}


def position_repr(position: Optional[Dict[str, Any]]) -> str:
    """
    Represent a single position without its coordinate-system prefix.

    Unknown positions (or unknown parts of positions) render as '?'.
    """
    if not position:
        return "?"

    cls = position.get("@class")
    pos = position.get("pos")
    pos_text = "?" if pos is None else str(pos)

    if cls == "CdsPosition":
        offset = position.get("offset") or 0
        if offset > 0:
            return f"{pos_text}+{offset}"
        if offset < 0:
            return f"{pos_text}{offset}"
        return pos_text
    if cls == "ProteinPosition":
        return f"{position.get('refAA') or ''}{pos_text}"
    if cls == "CytobandPosition":
        result = f"{position.get('arm', '?')}"
        if position.get("majorBand") is not None:
            result += str(position["majorBand"])
            if position.get("minorBand") is not None:
                result += f".{position['minorBand']}"
        return result
    return pos_text


def break_repr(start: Optional[Dict[str, Any]], end: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """
    Represent a breakpoint (a position or a range of positions) with its prefix.

    Example:
        >>> break_repr({"@class": "ProteinPosition", "pos": 12, "refAA": "G"})
        'p.G12'
        >>> break_repr({"@class": "ExonicPosition", "pos": 1}, {"@class": "ExonicPosition", "pos": 3})
        'e.(1_3)'
    """
    if not start:
        return None

    cls = start.get("@class")
    if cls not in POSITION_PREFIX:
        raise ValidationError(f"Unsupported position class ({cls})")
    if end and end.get("@class") != cls:
        raise ValidationError("Breakpoint range positions must use the same coordinate system")

    prefix = POSITION_PREFIX[cls]
    if end:
        return f"{prefix}.({position_repr(start)}_{position_repr(end)})"
    return f"{prefix}.{position_repr(start)}"


def _strip_prefix(representation: str) -> str:
    return representation.split(".", 1)[1] if "." in representation else representation


def type_notation(variant_type: str) -> str:
    """Map a variant type name to its notation shorthand (or leave it as-is)."""
    return TYPE_NOTATION.get(str(variant_type).lower(), variant_type)


def stringify_variant(variant: Dict[str, Any]) -> str:
    """
    Build the display notation for a positional variant.

    Args:
        variant: Variant content where reference1/reference2 are the display
            names of the referenced features, `type` is the type name or
            shorthand, and `multiFeature` marks two-feature variants

    Returns:
        str: The notation
    """
    notation = type_notation(variant.get("type") or "")
    break1 = variant.get("break1Repr") or break_repr(variant.get("break1Start"), variant.get("break1End"))
    break2 = variant.get("break2Repr") or break_repr(variant.get("break2Start"), variant.get("break2End"))

    if not break1:
        raise ValidationError("Positional variants require a first breakpoint (break1Start)")

    if variant.get("multiFeature") or notation in MULTI_FEATURE_TYPES:
        features = variant["reference1"]
        if variant.get("reference2"):
            features = f"({variant['reference1']},{variant['reference2']})"
        prefix = break1.split(".", 1)[0]
        positions = _strip_prefix(break1)
        if break2:
            positions = f"{positions},{_strip_prefix(break2)}"
        result = f"{features}:{notation}({prefix}.{positions})"
        if variant.get("untemplatedSeq"):
            result += variant["untemplatedSeq"]
        return result

    result = f"{variant['reference1']}:{break1}"
    if break2:
        result += f"_{_strip_prefix(break2)}"

    ref_seq = variant.get("refSeq") or ""
    alt_seq = variant.get("untemplatedSeq") or ""
    is_protein = break1.startswith("p.")

    if notation == ">":
        if is_protein:
            return result + alt_seq
        return f"{result}{ref_seq}>{alt_seq}"
    if notation == "del":
        return f"{result}del{ref_seq}"
    if notation == "ins":
        return f"{result}ins{alt_seq}"
    if notation == "delins":
        return f"{result}del{ref_seq}ins{alt_seq}"
    if notation == "dup":
        return f"{result}dup{ref_seq}"
    if notation == "fs":
        truncation = variant.get("truncation")
        suffix = "" if truncation is None else f"*{truncation}"
        return f"{result}{alt_seq}fs{suffix}"
    return f"{result}{notation}{alt_seq}"


def positional_variant_hook(record: Dict[str, Any]) -> Dict[str, Any]:
    """Derive the break representations of a formatted positional variant."""
    record["break1Repr"] = break_repr(record.get("break1Start"), record.get("break1End"))
    if record.get("break2Start"):
        record["break2Repr"] = break_repr(record.get("break2Start"), record.get("break2End"))
    else:
        record.pop("break2Repr", None)
    return record
