"""
Tests for drift detection against stored specification baselines.
"""

import pytest
from pydantic import ValidationError

from specsync.api_models import DriftResult, Provenance, SpecificationRecord, StructuralFingerprint
from specsync.core.models import ControlFlowFacts, Guard
from specsync.drift import (
    COMPLEXITY_INCREASED,
    FACTS_UNAVAILABLE,
    NO_BASELINE,
    VALIDATION_CHANGED,
    DriftDetector,
    structural_fingerprint
)


def previous_record(complexity=2, has_validation=True):
    return SpecificationRecord(
        function_key="src/bank.js:withdraw",
        confidence=80,
        rationale="stored",
        provenance=Provenance.SYNTHESIZED,
        baseline=StructuralFingerprint(
            complexity=complexity,
            has_validation=has_validation,
            has_return=True,
            line_count=5
        )
    )


def facts(complexity, validated=True):
    guards = (Guard("amount <= 0", 2),) if validated else ()
    return ControlFlowFacts(guards=guards, has_return=True, complexity=complexity)


def test_complexity_doubling_is_drift():
    """Complexity 2 -> 4 exceeds the 1.5x threshold."""
    result = DriftDetector().detect("src/bank.js:withdraw", facts(4), previous_record(2))

    assert result.has_drift
    assert result.reasons == [COMPLEXITY_INCREASED]
    assert result.confidence == 25


def test_equal_structure_is_stable():
    result = DriftDetector().detect("src/bank.js:withdraw", facts(2), previous_record(2))

    assert not result.has_drift
    assert result.reasons == []
    assert result.confidence == 0


def test_growth_within_threshold_is_not_drift():
    result = DriftDetector().detect("k", facts(3), previous_record(2))
    assert not result.has_drift


def test_validation_change_is_drift():
    result = DriftDetector().detect("k", facts(2, validated=False), previous_record(2))

    assert result.has_drift
    assert result.reasons == [VALIDATION_CHANGED]


def test_both_reasons_add_up():
    result = DriftDetector().detect("k", facts(5, validated=False), previous_record(2))

    assert result.reasons == [COMPLEXITY_INCREASED, VALIDATION_CHANGED]
    assert result.confidence == 50


def test_no_previous_record_means_no_baseline():
    detector = DriftDetector()

    missing = detector.detect("k", facts(10), None)
    assert not missing.has_drift
    assert missing.reasons == [NO_BASELINE]

    record = previous_record()
    record.baseline = None
    unbaselined = detector.detect("k", facts(10), record)
    assert unbaselined.reasons == [NO_BASELINE]


def test_threshold_and_weight_are_configurable():
    detector = DriftDetector(threshold=3.0, reason_weight=60)

    assert not detector.detect("k", facts(4), previous_record(2)).has_drift

    both = detector.detect("k", facts(7, validated=False), previous_record(2))
    assert both.confidence == 100


def test_fingerprint_of_facts():
    fingerprint = structural_fingerprint(facts(3), line_count=12)

    assert fingerprint.complexity == 3
    assert fingerprint.has_validation
    assert fingerprint.has_return
    assert fingerprint.line_count == 12

    raising = ControlFlowFacts(raises=("ValueError()",))
    assert structural_fingerprint(raising).has_validation


def test_drift_result_requires_reasons():
    with pytest.raises(ValidationError):
        DriftResult(function_key="k", has_drift=True, reasons=[])

    clamped = DriftResult(function_key="k", has_drift=True, reasons=["x"], confidence=400)
    assert clamped.confidence == 100


def test_degraded_facts_are_not_compared_with_baseline():
    degraded = ControlFlowFacts.degraded_facts()
    result = DriftDetector().detect("k", degraded, previous_record(4, has_validation=True))

    assert not result.has_drift
    assert result.reasons == [FACTS_UNAVAILABLE]
