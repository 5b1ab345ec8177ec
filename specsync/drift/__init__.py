"""
Drift detection between implementations and recorded specifications
"""

from specsync.drift.detector import (
    COMPLEXITY_INCREASED,
    FACTS_UNAVAILABLE,
    NO_BASELINE,
    VALIDATION_CHANGED,
    DriftDetector,
    structural_fingerprint
)

__all__ = [
    'DriftDetector',
    'structural_fingerprint',
    'NO_BASELINE',
    'COMPLEXITY_INCREASED',
    'VALIDATION_CHANGED',
    'FACTS_UNAVAILABLE'
]
