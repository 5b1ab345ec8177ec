"""
Specification synthesis: generative backends and the deterministic fallback
"""

from specsync.llm.backends import (
    AnthropicBackend,
    OpenAIBackend,
    SpecificationBackend,
    build_backends,
    build_prompt,
    parse_json_payload
)
from specsync.llm.spec_generator import (
    SpecificationSynthesizer,
    build_request,
    deterministic_specification
)

__all__ = [
    'SpecificationBackend',
    'AnthropicBackend',
    'OpenAIBackend',
    'build_backends',
    'build_prompt',
    'parse_json_payload',
    'SpecificationSynthesizer',
    'build_request',
    'deterministic_specification'
]
