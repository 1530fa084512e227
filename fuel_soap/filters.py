"""Filter Encoder - Turns filter expressions into partner API FilterParts.

A filter expression is a mapping with ``leftOperand``, ``operator`` and
``rightOperand``. When both operands are themselves mappings the node is a
boolean combination (ComplexFilterPart); every other node is a leaf
(SimpleFilterPart).

    {"leftOperand": {"leftOperand": "Name", "operator": "equals", "rightOperand": "a"},
     "operator": "OR",
     "rightOperand": {"leftOperand": "Name", "operator": "equals", "rightOperand": "b"}}
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

SIMPLE_FILTER_PART = "SimpleFilterPart"
COMPLEX_FILTER_PART = "ComplexFilterPart"


def is_structured(value: Any) -> bool:
    """True if *value* is a nested filter expression rather than a scalar."""
    return isinstance(value, Mapping)


def encode_filter(expr: Mapping[str, Any]) -> dict[str, Any]:
    """Encode a filter expression tree into its wire structure.

    A node with only one structured operand is encoded as a
    SimpleFilterPart carrying that structure as its Property or Value.
    Callers building trees by hand get exactly what they wrote.

    Args:
        expr: Filter expression. Missing keys encode as empty elements.

    Returns:
        New dict with an ``@xsi:type`` discriminator; *expr* is not modified.
    """
    left = expr.get("leftOperand")
    right = expr.get("rightOperand")
    operator = expr.get("operator")

    if is_structured(left) and is_structured(right):
        return {
            "@xsi:type": COMPLEX_FILTER_PART,
            "LeftOperand": encode_filter(left),
            "LogicalOperator": operator,
            "RightOperand": encode_filter(right),
        }

    part: dict[str, Any] = {
        "@xsi:type": SIMPLE_FILTER_PART,
        "Property": left,
        "SimpleOperator": operator,
    }
    # Date comparisons must use DateValue or the service compares strings
    if isinstance(right, (datetime, date)):
        part["DateValue"] = right
    else:
        part["Value"] = right
    return part
