"""
Proof-obligation generators
"""

from specsync.generators.lean import (
    TheoremSkeletonEmitter,
    lean_identifier,
    map_type_to_lean,
    required_structures,
    sanitize_name
)

__all__ = [
    'TheoremSkeletonEmitter',
    'map_type_to_lean',
    'lean_identifier',
    'required_structures',
    'sanitize_name'
]
