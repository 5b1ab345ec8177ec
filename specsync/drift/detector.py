"""
Specification drift detection.

Compares the structural fingerprint of a function's current implementation
with the baseline stored alongside its previous specification record.
"""

import logging
from typing import Optional

from ..api_models import DriftResult, SpecificationRecord, StructuralFingerprint
from ..core.models import ControlFlowFacts, FunctionChange

logger = logging.getLogger(__name__)

NO_BASELINE = "no baseline"
COMPLEXITY_INCREASED = "complexity increased significantly"
VALIDATION_CHANGED = "input validation patterns changed"
FACTS_UNAVAILABLE = "facts unavailable"


def structural_fingerprint(facts: ControlFlowFacts, line_count: int = 0) -> StructuralFingerprint:
    """Coarse structural summary of a function"""
    return StructuralFingerprint(
        complexity=max(1, facts.complexity),
        has_validation=facts.has_validation,
        has_return=facts.has_return,
        line_count=max(0, line_count)
    )


class DriftDetector:
    """
    Heuristic drift check.

    Args:
        threshold: Complexity growth factor that counts as drift
        reason_weight: Confidence contributed by each triggered reason
    """

    def __init__(self, threshold: float = 1.5, reason_weight: int = 25):
        self.threshold = threshold
        self.reason_weight = reason_weight

    def detect(self, function_key: str, facts: ControlFlowFacts,
               previous: Optional[SpecificationRecord],
               change: Optional[FunctionChange] = None) -> DriftResult:
        """
        Decide whether the current implementation drifted from its record.

        Args:
            function_key: "file:function" key
            facts: Facts for the current implementation
            previous: Previously stored record, if any
            change: Current change, used for the line count

        Returns:
            DriftResult; without a usable baseline or usable facts has_drift
            is False
        """
        if previous is None or previous.baseline is None:
            return DriftResult(function_key=function_key, has_drift=False, reasons=[NO_BASELINE])
        if facts.degraded:
            logger.info("Skipping drift check for %s: facts unavailable", function_key)
            return DriftResult(function_key=function_key, has_drift=False, reasons=[FACTS_UNAVAILABLE])

        baseline = previous.baseline
        current = structural_fingerprint(facts, change.line_count if change else 0)

        reasons = []
        if current.complexity > self.threshold * baseline.complexity:
            reasons.append(COMPLEXITY_INCREASED)
        if current.has_validation != baseline.has_validation:
            reasons.append(VALIDATION_CHANGED)

        if reasons:
            logger.info("Drift detected for %s: %s", function_key, ", ".join(reasons))

        return DriftResult(
            function_key=function_key,
            has_drift=bool(reasons),
            reasons=reasons,
            confidence=min(100, self.reason_weight * len(reasons))
        )
