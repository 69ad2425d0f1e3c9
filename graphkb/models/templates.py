"""
Statement sentence templates.

A statement is displayed as a sentence built from its linked records. The
template holds placeholders (``{conditions:variant}``, ``{relevance}``,
``{subject}``, ``{evidence}``...) that are filled from the current linked
records when the statement is rendered, so it only depends on the kinds of
records involved and the relevance term.
"""

from typing import Any, Dict, List, Optional

THERAPEUTIC = {
    "sensitivity", "resistance", "response", "no response", "likely sensitivity",
    "likely resistance", "reduced sensitivity", "increased toxicity", "targetable",
}
DIAGNOSTIC = {"diagnostic indicator", "favours diagnosis", "opposes diagnosis", "likely diagnostic"}
PROGNOSTIC = {
    "prognostic indicator", "favourable prognosis", "unfavourable prognosis",
    "poor prognosis", "better prognosis",
}
BIOLOGICAL = {
    "gain of function", "loss of function", "likely gain of function",
    "likely loss of function", "oncogenic", "likely oncogenic", "tumour suppressive",
    "switch of function", "dominant negative", "increased expression", "decreased expression",
}
ELIGIBILITY = {"eligibility", "eligible"}

VARIANT_CLASSES = {"Variant", "CategoryVariant", "PositionalVariant"}


def _relevance_name(relevance: Optional[Dict[str, Any]]) -> str:
    if not relevance:
        return ""
    return str(relevance.get("displayName") or relevance.get("name") or "").lower()


def _condition_kinds(record: Dict[str, Any]) -> List[str]:
    """Placeholder groups present among the conditions other than the subject."""
    subject = record.get("subject") or {}
    subject_rid = subject.get("@rid")
    kinds = []

    for condition in record.get("conditions") or []:
        if not condition or condition.get("@rid") == subject_rid:
            continue
        cls = condition.get("@class")
        if cls in VARIANT_CLASSES:
            kind = "variant"
        elif cls == "Disease":
            kind = "disease"
        else:
            kind = "other"
        if kind not in kinds:
            kinds.append(kind)
    return kinds


def choose_default_template(record: Dict[str, Any]) -> str:
    """
    Pick the sentence template that fits the linked records of a statement.

    Args:
        record: Statement content with conditions, evidence, relevance and
            subject already resolved to records (dictionaries with at least
            @rid, @class and displayName)

    Returns:
        str: The display template
    """
    relevance = _relevance_name(record.get("relevance"))
    kinds = _condition_kinds(record)
    subject_class = (record.get("subject") or {}).get("@class")

    variants = "{conditions:variant}" if "variant" in kinds else "{conditions}"
    disease = " in {conditions:disease}" if "disease" in kinds and variants != "{conditions}" else ""
    other = " (with {conditions:other})" if "other" in kinds and variants != "{conditions}" else ""

    if relevance in THERAPEUTIC or subject_class == "Therapy":
        template = f"{variants}{other} is associated with {{relevance}} to {{subject}}{disease}"
    elif relevance in DIAGNOSTIC:
        template = f"{variants}{other} is a {{relevance}} of {{subject}}"
    elif relevance in PROGNOSTIC:
        scope = disease or " in {subject}"
        template = f"{variants}{other} predicts {{relevance}}{scope}"
    elif relevance in BIOLOGICAL:
        template = f"{variants}{other} results in {{relevance}} of {{subject}}{disease}"
    elif relevance in ELIGIBILITY:
        template = f"{{subject}} is {{relevance}} for patients with {variants}{other}{disease}"
    else:
        template = f"{variants}{other} is associated with {{relevance}} to {{subject}}{disease}"

    return f"{template} ({{evidence}})"
