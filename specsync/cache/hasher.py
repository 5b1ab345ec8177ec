"""
Function body hashing for specification cache lookup.
Hashes are stable across whitespace-only changes.
"""

import ast
import hashlib
import json
import logging
import textwrap
from typing import Any, Dict

from ..core.models import FunctionChange

logger = logging.getLogger(__name__)


def _canonical_hash(components: Dict[str, Any]) -> str:
    canonical = json.dumps(components, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def compute_body_hash(change: FunctionChange, degraded: bool = False) -> str:
    """
    Compute a hash of the current version of a changed function.

    Python bodies are hashed through their AST dump, so indentation and
    comments do not matter. Other languages (and Python fragments that do
    not parse on their own) are hashed line by line with surrounding
    whitespace removed.

    A record built from degraded facts hashes differently from one built
    from real facts, so it is not served once the source becomes readable.

    Args:
        change: The function change to hash
        degraded: Whether the facts for this change were unavailable

    Returns:
        64-character SHA-256 hex digest
    """
    body = change.clean_body()
    components: Dict[str, Any] = {
        "key": change.function_key,
        "language": change.language or ""
    }
    if degraded:
        components["degraded"] = True

    if change.language == "python":
        try:
            tree = ast.parse(textwrap.dedent(body))
            components["body_ast"] = ast.dump(tree, annotate_fields=False)
            return _canonical_hash(components)
        except SyntaxError as e:
            logger.debug("AST hashing failed for %s, using text hash: %s", change.function_key, e)

    components["body"] = [line.strip() for line in body.splitlines() if line.strip()]
    return _canonical_hash(components)
