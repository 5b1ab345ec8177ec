"""
Specification synthesis for changed functions.

Backends are tried in order; the first one whose payload passes the
BackendResponse schema wins. When every backend fails (or none is
configured) a deterministic specification is built from the extracted facts.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ..api_models import (
    BackendResponse,
    ComplexityEstimate,
    Provenance,
    SecurityAnalysis,
    SpecificationRecord,
    SpecificationRequest
)
from ..cache import SpecificationCache, compute_body_hash
from ..core.errors import BackendFailure
from ..core.models import CodeComment, ControlFlowFacts, FunctionChange
from ..drift.detector import structural_fingerprint
from .backends import SpecificationBackend

logger = logging.getLogger(__name__)

MAX_FALLBACK_CONFIDENCE = 85
DEGRADED_CONFIDENCE_CAP = 30
INVARIANT_COMPLEXITY_THRESHOLD = 5


def build_request(change: FunctionChange, facts: ControlFlowFacts) -> SpecificationRequest:
    """Package a change and its facts for the backends"""
    return SpecificationRequest(
        function_key=change.function_key,
        function_name=change.function_name,
        language=change.language or "unknown",
        function_body=change.clean_body(),
        facts=facts.to_dict(),
        comments=[_comment_text(c) for c in change.comments]
    )


def _comment_text(comment: CodeComment) -> str:
    return f"[{comment.kind.value}] {comment.text}"


def deterministic_specification(function_key: str, facts: ControlFlowFacts,
                                line_count: int = 0,
                                body_hash: Optional[str] = None) -> SpecificationRecord:
    """
    Build a specification from structural facts alone.

    Only entries backed by a fact are emitted; a function with nothing to
    say gets empty lists rather than placeholder text.

    Args:
        function_key: "file:function" key
        facts: Extracted control-flow facts
        line_count: Number of diff lines in the change, stored in the baseline
        body_hash: Hash of the body the record describes

    Returns:
        SpecificationRecord with provenance "synthesized"
    """
    preconditions = []
    for param in facts.parameters:
        if param.typed:
            preconditions.append(f"{param.name} is of type {param.type}")
        elif param.required:
            preconditions.append(f"{param.name} is not null/undefined")

    postconditions = []
    for early in facts.early_returns:
        if not early.value:
            continue
        condition = f"Function may return {early.value} under certain conditions"
        if condition not in postconditions:
            postconditions.append(condition)

    invariants = []
    if facts.complexity > INVARIANT_COMPLEXITY_THRESHOLD:
        invariants.append("Function maintains internal state consistency")

    edge_cases = [f"Handle case where {guard.condition} is false" for guard in facts.guards]
    if facts.parameters:
        edge_cases.append("Handle empty/null input values")
        edge_cases.append("Handle boundary conditions")

    confidence = min(MAX_FALLBACK_CONFIDENCE, 100 - 5 * facts.complexity)
    if facts.degraded:
        confidence = min(confidence, DEGRADED_CONFIDENCE_CAP)

    rationale = (
        f"Derived from structure: {len(facts.parameters)} parameters, "
        f"{len(facts.guards)} guards, {len(facts.loops)} loops, "
        f"{len(facts.early_returns)} early returns, complexity {facts.complexity}"
    )
    if facts.degraded:
        rationale += " (function could not be parsed; structural facts unavailable)"

    return SpecificationRecord(
        function_key=function_key,
        preconditions=preconditions,
        postconditions=postconditions,
        invariants=invariants,
        edge_cases=edge_cases,
        complexity_estimate=ComplexityEstimate(
            time="O(n)" if facts.loops else "O(1)",
            space="O(1)"
        ),
        security=SecurityAnalysis(vulnerabilities=[], mitigations=[]),
        confidence=confidence,
        rationale=rationale,
        provenance=Provenance.SYNTHESIZED,
        baseline=structural_fingerprint(facts, line_count),
        body_hash=body_hash,
        degraded=facts.degraded
    )


class SpecificationSynthesizer:
    """
    Produces one SpecificationRecord per changed function.

    Args:
        backends: Ordered backend chain (may be empty)
        cache: Shared cache; a private one is created when omitted
        timeout: Seconds allowed for each backend call
    """

    def __init__(self, backends: Optional[Sequence[SpecificationBackend]] = None,
                 cache: Optional[SpecificationCache] = None,
                 timeout: float = 30.0):
        self.backends: List[SpecificationBackend] = list(backends or [])
        self.cache = cache if cache is not None else SpecificationCache()
        self.timeout = timeout

    async def synthesize(self, change: FunctionChange, facts: ControlFlowFacts) -> SpecificationRecord:
        """
        Cached specification for a change.

        An unchanged body returns the cached record without calling any
        backend; a changed body replaces the cache entry.
        """
        body_hash = compute_body_hash(change, facts.degraded)

        async def create() -> SpecificationRecord:
            return await self._synthesize(change, facts, body_hash)

        return await self.cache.get_or_create(change.function_key, body_hash, create)

    async def _synthesize(self, change: FunctionChange, facts: ControlFlowFacts,
                          body_hash: str) -> SpecificationRecord:
        request = build_request(change, facts)

        for backend in self.backends:
            try:
                response = await self._call(backend, request)
            except BackendFailure as e:
                logger.warning("%s; trying next backend for %s", e, change.function_key)
                continue

            logger.info("Specification for %s from %s", change.function_key, backend.name)
            return SpecificationRecord(
                function_key=change.function_key,
                preconditions=response.preconditions,
                postconditions=response.postconditions,
                invariants=response.invariants,
                edge_cases=response.edge_cases,
                complexity_estimate=response.complexity,
                security=response.security,
                confidence=response.confidence,
                rationale=response.rationale,
                provenance=Provenance.BACKEND,
                backend=backend.name,
                baseline=structural_fingerprint(facts, change.line_count),
                body_hash=body_hash,
                degraded=facts.degraded
            )

        logger.info("Using deterministic specification for %s", change.function_key)
        return deterministic_specification(change.function_key, facts, change.line_count, body_hash)

    async def _call(self, backend: SpecificationBackend, request: SpecificationRequest) -> BackendResponse:
        """
        Run one backend with a timeout and validate its payload.

        Raises:
            BackendFailure: On any error, timeout or schema violation.
                Cancellation is not converted and propagates.
        """
        try:
            payload = await asyncio.wait_for(backend.synthesize(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise BackendFailure(backend.name, f"timed out after {self.timeout}s", e) from e
        except BackendFailure:
            raise
        except Exception as e:
            raise BackendFailure(backend.name, str(e) or type(e).__name__, e) from e

        try:
            return BackendResponse.model_validate(payload)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise BackendFailure(backend.name, f"response failed schema validation ({fields})", e) from e
