"""
Specification cache

Keeps synthesized specification records in memory, keyed by "file:function",
and recognizes unchanged function bodies by hash.
"""

from specsync.cache.hasher import compute_body_hash
from specsync.cache.spec_cache import SpecificationCache

__all__ = ['compute_body_hash', 'SpecificationCache']
