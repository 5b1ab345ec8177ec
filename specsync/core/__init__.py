"""
Core models, configuration, errors and the pipeline
"""

from .errors import BackendFailure, ParseFailure, SchemaViolation, SpecSyncError
from .models import ChangeType, CommentKind, ControlFlowFacts, FunctionChange, TheoremArtifact

__all__ = [
    "SpecSyncError",
    "ParseFailure",
    "BackendFailure",
    "SchemaViolation",
    "ChangeType",
    "CommentKind",
    "FunctionChange",
    "ControlFlowFacts",
    "TheoremArtifact"
]
