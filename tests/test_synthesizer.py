"""
Tests for specification synthesis: backend chain, fallback and caching.
"""

import asyncio

import pytest
from pydantic import ValidationError

from specsync.api_models import BackendResponse, Provenance, SpecificationRecord
from specsync.cache import SpecificationCache
from specsync.core.config import PipelineConfig
from specsync.core.errors import BackendFailure
from specsync.core.models import (
    ChangeType,
    ControlFlowFacts,
    EarlyReturn,
    FunctionChange,
    Guard,
    Loop,
    Parameter
)
from specsync.llm import (
    AnthropicBackend,
    OpenAIBackend,
    SpecificationBackend,
    SpecificationSynthesizer,
    build_backends,
    build_prompt,
    build_request,
    deterministic_specification,
    parse_json_payload
)


VALID_PAYLOAD = {
    "preconditions": ["amount > 0"],
    "postconditions": ["result.balance = account.balance - amount"],
    "invariants": ["account.balance ≥ 0"],
    "edgeCases": ["amount equals balance"],
    "complexity": {"time": "O(1)", "space": "O(1)"},
    "security": {"vulnerabilities": [], "mitigations": []},
    "confidence": 90,
    "rationale": "Withdrawal subtracts the amount after validating it"
}


class StaticBackend(SpecificationBackend):
    """Returns a fixed payload and counts calls"""

    def __init__(self, payload, name="static", delay=0.0):
        self.payload = payload
        self.name = name
        self.delay = delay
        self.calls = 0

    async def synthesize(self, request):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return dict(self.payload)


class FailingBackend(SpecificationBackend):
    name = "failing"

    def __init__(self):
        self.calls = 0

    async def synthesize(self, request):
        self.calls += 1
        raise RuntimeError("service unavailable")


class HangingBackend(SpecificationBackend):
    name = "hanging"

    async def synthesize(self, request):
        await asyncio.sleep(10)
        return dict(VALID_PAYLOAD)


def make_change(body="+function withdraw(account, amount) {\n+  return account;\n+}", name="withdraw"):
    return FunctionChange(
        file_path="src/bank.js",
        function_name=name,
        raw_body=body,
        start_line=1,
        change_type=ChangeType.ADDED,
        language="javascript"
    )


def three_params_facts():
    return ControlFlowFacts(
        parameters=(Parameter("a"), Parameter("b"), Parameter("c")),
        has_return=True,
        complexity=1
    )


def test_fallback_three_required_parameters():
    """Three required parameters and complexity 1 give three preconditions at 85."""
    record = deterministic_specification("calc.js:sum3", three_params_facts())

    assert len(record.preconditions) == 3
    assert record.preconditions[0] == "a is not null/undefined"
    assert record.confidence == 85
    assert record.provenance == Provenance.SYNTHESIZED
    assert record.postconditions == []
    assert record.invariants == []
    assert record.edge_cases == ["Handle empty/null input values", "Handle boundary conditions"]
    assert record.rationale


def test_fallback_uses_types_and_guards():
    facts = ControlFlowFacts(
        parameters=(Parameter("amount", "number"), Parameter("note", "any", required=False)),
        guards=(Guard("amount <= 0", 2), Guard("amount > limit", 4)),
        loops=(Loop("for", "item of items", 6),),
        early_returns=(EarlyReturn("null", 3), EarlyReturn("null", 5)),
        has_return=True,
        complexity=6
    )
    record = deterministic_specification("bank.js:withdraw", facts)

    assert record.preconditions == ["amount is of type number"]
    assert record.postconditions == ["Function may return null under certain conditions"]
    assert record.invariants == ["Function maintains internal state consistency"]
    assert record.edge_cases[:2] == [
        "Handle case where amount <= 0 is false",
        "Handle case where amount > limit is false"
    ]
    assert record.complexity_estimate.time == "O(n)"
    assert record.confidence == 70
    assert record.baseline.complexity == 6
    assert record.baseline.has_validation


def test_fallback_for_degraded_facts_is_capped():
    record = deterministic_specification("x.js:f", ControlFlowFacts.degraded_facts())

    assert record.degraded
    assert record.confidence <= 30
    assert record.preconditions == []


@pytest.mark.asyncio
async def test_failing_and_incomplete_backends_fall_back():
    """One backend raises, the next omits confidence: the fallback is used."""
    failing = FailingBackend()
    incomplete_payload = {k: v for k, v in VALID_PAYLOAD.items() if k != "confidence"}
    incomplete = StaticBackend(incomplete_payload, name="incomplete")

    synthesizer = SpecificationSynthesizer(backends=[failing, incomplete])
    record = await synthesizer.synthesize(make_change(), three_params_facts())

    assert failing.calls == 1
    assert incomplete.calls == 1
    assert record.provenance == Provenance.SYNTHESIZED
    assert record.backend is None


@pytest.mark.asyncio
async def test_valid_backend_response_is_used_and_clamped():
    payload = dict(VALID_PAYLOAD, confidence=150)
    backend = StaticBackend(payload, name="primary")
    synthesizer = SpecificationSynthesizer(backends=[backend])

    record = await synthesizer.synthesize(make_change(), three_params_facts())

    assert record.provenance == Provenance.BACKEND
    assert record.backend == "primary"
    assert record.confidence == 100
    assert record.edge_cases == ["amount equals balance"]
    assert record.baseline is not None


@pytest.mark.asyncio
async def test_second_request_for_unchanged_key_is_cached():
    backend = StaticBackend(VALID_PAYLOAD)
    synthesizer = SpecificationSynthesizer(backends=[backend])

    first = await synthesizer.synthesize(make_change(), three_params_facts())
    second = await synthesizer.synthesize(make_change(), three_params_facts())

    assert backend.calls == 1
    assert second is first
    assert synthesizer.cache.hits == 1


@pytest.mark.asyncio
async def test_changed_body_replaces_cache_entry():
    backend = StaticBackend(VALID_PAYLOAD)
    cache = SpecificationCache()
    synthesizer = SpecificationSynthesizer(backends=[backend], cache=cache)

    first = await synthesizer.synthesize(make_change(), three_params_facts())
    changed = make_change("+function withdraw(account, amount) {\n+  return null;\n+}")
    second = await synthesizer.synthesize(changed, three_params_facts())

    assert backend.calls == 2
    assert second is not first
    assert cache.get("src/bank.js:withdraw") is second
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_synthesis():
    backend = StaticBackend(VALID_PAYLOAD, delay=0.05)
    synthesizer = SpecificationSynthesizer(backends=[backend])

    records = await asyncio.gather(*[
        synthesizer.synthesize(make_change(), three_params_facts()) for _ in range(5)
    ])

    assert backend.calls == 1
    assert all(r is records[0] for r in records)
    assert synthesizer.cache._locks == {}


@pytest.mark.asyncio
async def test_backend_timeout_is_a_failure():
    synthesizer = SpecificationSynthesizer(backends=[HangingBackend()], timeout=0.05)
    record = await synthesizer.synthesize(make_change(), three_params_facts())

    assert record.provenance == Provenance.SYNTHESIZED


@pytest.mark.asyncio
async def test_cancellation_propagates():
    synthesizer = SpecificationSynthesizer(backends=[HangingBackend()], timeout=30)
    task = asyncio.ensure_future(synthesizer.synthesize(make_change(), three_params_facts()))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert "src/bank.js:withdraw" not in synthesizer.cache


def test_parse_json_payload_variants():
    fenced = 'Here you go:\n```json\n{"confidence": 80}\n```'
    prose = 'Result: {"confidence": 75} hope that helps'

    assert parse_json_payload(fenced, "test") == {"confidence": 80}
    assert parse_json_payload(prose, "test") == {"confidence": 75}

    for bad in ("", "no json here", "{not json}"):
        with pytest.raises(BackendFailure):
            parse_json_payload(bad, "test")


def test_backend_response_schema_is_strict():
    response = BackendResponse.model_validate(dict(VALID_PAYLOAD, extra="ignored"))
    assert response.edge_cases == ["amount equals balance"]

    with pytest.raises(ValidationError):
        BackendResponse.model_validate(dict(VALID_PAYLOAD, confidence="90"))
    with pytest.raises(ValidationError):
        BackendResponse.model_validate({k: v for k, v in VALID_PAYLOAD.items() if k != "invariants"})
    with pytest.raises(ValidationError):
        BackendResponse.model_validate(dict(VALID_PAYLOAD, complexity={"time": "O(1)"}))


def test_record_requires_confidence_and_rationale():
    with pytest.raises(ValidationError):
        SpecificationRecord(function_key="a:b", rationale="r", provenance=Provenance.BACKEND)
    with pytest.raises(ValidationError):
        SpecificationRecord(function_key="a:b", confidence=50, provenance=Provenance.BACKEND)
    with pytest.raises(ValidationError):
        SpecificationRecord(function_key="a:b", confidence=50, rationale="", provenance=Provenance.BACKEND)

    record = SpecificationRecord(function_key="a:b", confidence=-5, rationale="r",
                                 provenance=Provenance.BACKEND)
    assert record.confidence == 0
    assert record.preconditions == []


def test_build_backends_from_config():
    assert build_backends(PipelineConfig()) == []

    backends = build_backends(PipelineConfig(anthropic_api_key="sk-ant-test", openai_api_key="sk-test"))
    assert [type(b) for b in backends] == [AnthropicBackend, OpenAIBackend]
    assert [b.name for b in backends] == ["anthropic", "openai"]


@pytest.mark.asyncio
async def test_empty_rationale_is_a_backend_failure():
    backend = StaticBackend(dict(VALID_PAYLOAD, rationale=""), name="terse")
    synthesizer = SpecificationSynthesizer(backends=[backend])

    record = await synthesizer.synthesize(make_change(), three_params_facts())

    assert backend.calls == 1
    assert record.provenance == Provenance.SYNTHESIZED
    assert record.backend is None
    assert record.rationale.startswith("Derived from structure")

    with pytest.raises(ValidationError):
        BackendResponse.model_validate(dict(VALID_PAYLOAD, rationale=""))


def test_prompt_names_the_language():
    prompt = build_prompt(build_request(make_change(), three_params_facts()))

    assert prompt.startswith("Analyze this JavaScript function")
    assert "```javascript\nfunction withdraw(account, amount) {" in prompt
    assert "Function: withdraw" in prompt
