"""
Natural-language predicate to Lean 4 notation translation
"""

import re
from typing import List

from ..core.config import PREDICATE_REWRITES

_WHITESPACE = re.compile(r"\s+")


def translate_predicate(predicate: str) -> str:
    """
    Rewrite common idioms into Lean notation.

    Only the fixed idioms in PREDICATE_REWRITES are touched (null checks,
    type checks, comparisons, string length, boolean equality, logical
    operators); anything else passes through unchanged.

    Examples:
        "amount is not null/undefined" -> "amount ≠ none"
        "name.length > 0 && age >= 18" -> '¬(name = "") ∧ age ≥ 18'
    """
    result = predicate
    for pattern, replacement in PREDICATE_REWRITES:
        result = pattern.sub(replacement, result)
    return _WHITESPACE.sub(" ", result).strip()


def translate_predicates(predicates: List[str]) -> List[str]:
    return [translate_predicate(p) for p in predicates if p.strip()]


def conjoin(predicates: List[str], empty: str = "True") -> str:
    """Join translated predicates with ∧, parenthesizing each compound one"""
    if not predicates:
        return empty
    if len(predicates) == 1:
        return predicates[0]
    return " ∧ ".join(f"({p})" if " " in p else p for p in predicates)
