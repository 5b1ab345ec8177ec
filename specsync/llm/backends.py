"""
Generative backends that turn a SpecificationRequest into a JSON payload
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from ..api_models import SpecificationRequest
from ..core.config import DEFAULT_ANTHROPIC_MODEL, DEFAULT_OPENAI_MODEL, LANGUAGE_DISPLAY_NAMES, PipelineConfig
from ..core.errors import BackendFailure

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a formal specification expert. Analyze code functions and generate "
    "precise preconditions, postconditions, invariants, and edge cases. "
    "Always respond with valid JSON."
)

SPEC_GENERATION_PROMPT = """Analyze this {language_name} function and generate a formal specification.

Function: {function_name}

Function body:
```{language}
{function_body}
```

Structural facts extracted from the parse tree:
- Parameters: {parameters}
- Return type: {return_type}
- Guards: {guards}
- Loops: {loops}
- Early returns: {early_returns}
- Complexity: {complexity}

Nearby comments:
{comments}

Your task:
1. Preconditions - what must be true about the inputs before the function runs?
2. Postconditions - what is guaranteed about the result and state afterwards?
3. Invariants - what holds throughout execution?
4. Edge cases - inputs or states the implementation must handle
5. Time and space complexity
6. Security concerns and their mitigations

Write conditions as short predicates over parameter names and `result`,
e.g. "amount > 0", "result.balance = account.balance - amount".

Respond in this exact JSON format:
{{
  "preconditions": ["precondition1"],
  "postconditions": ["postcondition1"],
  "invariants": ["invariant1"],
  "edgeCases": ["edge case1"],
  "complexity": {{"time": "O(n)", "space": "O(1)"}},
  "security": {{"vulnerabilities": [], "mitigations": []}},
  "confidence": 85,
  "rationale": "Brief explanation of why these specifications are correct"
}}

Confidence is a number from 0 to 100. Use empty lists where nothing applies.
"""


def _describe(items: List[Any]) -> str:
    return json.dumps(items) if items else "none"


def build_prompt(request: SpecificationRequest) -> str:
    """
    Format the generation prompt for a request.

    Args:
        request: Request carrying the cleaned body and extracted facts

    Returns:
        Prompt text shared by all backends
    """
    facts = request.facts
    comments = "\n".join(f"- {c}" for c in request.comments) or "none"
    return SPEC_GENERATION_PROMPT.format(
        language=request.language,
        language_name=LANGUAGE_DISPLAY_NAMES.get(request.language, request.language),
        function_name=request.function_name,
        function_body=request.function_body,
        parameters=_describe(facts.get("parameters", [])),
        return_type=facts.get("return_type", "any"),
        guards=_describe([g["condition"] for g in facts.get("guards", [])]),
        loops=_describe([loop["condition"] for loop in facts.get("loops", [])]),
        early_returns=_describe([r["value"] for r in facts.get("early_returns", [])]),
        complexity=facts.get("complexity", 1),
        comments=comments
    )


def parse_json_payload(text: Optional[str], backend: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Handles ```json fences and prose around the object.

    Raises:
        BackendFailure: When no JSON object can be decoded
    """
    if not text:
        raise BackendFailure(backend, "empty response")

    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        text = text[start:end if end != -1 else None]
    else:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end < start:
            raise BackendFailure(backend, "no JSON object in response")
        text = text[start:end + 1]

    try:
        data = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise BackendFailure(backend, f"invalid JSON: {e.msg}", e) from e

    if not isinstance(data, dict):
        raise BackendFailure(backend, "response JSON is not an object")
    return data


class SpecificationBackend(ABC):
    """One generative service in the synthesis chain"""

    name = "backend"

    @abstractmethod
    async def synthesize(self, request: SpecificationRequest) -> Dict[str, Any]:
        """Return the raw JSON payload for a request"""


class AnthropicBackend(SpecificationBackend):
    """Claude through the anthropic SDK"""

    name = "anthropic"

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_ANTHROPIC_MODEL,
                 max_tokens: int = 2000, client: Optional[AsyncAnthropic] = None):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def synthesize(self, request: SpecificationRequest) -> Dict[str, Any]:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0.1,
            system=SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": build_prompt(request)
            }]
        )
        if not response.content:
            raise BackendFailure(self.name, "response has no content blocks")
        return parse_json_payload(response.content[0].text, self.name)


class OpenAIBackend(SpecificationBackend):
    """Chat completions through the openai SDK"""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_OPENAI_MODEL,
                 max_tokens: int = 2000, client: Optional[AsyncOpenAI] = None):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def synthesize(self, request: SpecificationRequest) -> Dict[str, Any]:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0.1,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(request)}
            ]
        )
        if not response.choices:
            raise BackendFailure(self.name, "response has no choices")
        return parse_json_payload(response.choices[0].message.content, self.name)


def build_backends(config: PipelineConfig) -> List[SpecificationBackend]:
    """
    Backends for which credentials are configured, in chain order.

    Anthropic is tried first, then OpenAI. An empty list means every
    request is answered by the deterministic fallback.
    """
    backends: List[SpecificationBackend] = []
    if config.anthropic_api_key:
        backends.append(AnthropicBackend(
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            max_tokens=config.max_tokens
        ))
    if config.openai_api_key:
        backends.append(OpenAIBackend(
            api_key=config.openai_api_key,
            model=config.openai_model,
            max_tokens=config.max_tokens
        ))
    if not backends:
        logger.warning("No backend credentials configured; using deterministic specifications only")
    return backends
