"""
Predicate translation to Lean 4 notation
"""

from specsync.translators.predicates import conjoin, translate_predicate, translate_predicates

__all__ = ['translate_predicate', 'translate_predicates', 'conjoin']
