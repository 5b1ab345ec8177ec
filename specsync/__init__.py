"""
SpecSync: change-to-specification pipeline

Turns code diffs into formal specification candidates, drift signals and
Lean 4 theorem skeletons.
"""

__version__ = "0.1.0"

from .core.config import PipelineConfig
from .core.models import ChangedFile, ControlFlowFacts, FunctionChange, TheoremArtifact
from .core.pipeline import FunctionResult, PipelineResult, SpecSyncPipeline
from .api_models import DriftResult, SpecificationRecord

__all__ = [
    "SpecSyncPipeline",
    "PipelineConfig",
    "PipelineResult",
    "FunctionResult",
    "ChangedFile",
    "FunctionChange",
    "ControlFlowFacts",
    "SpecificationRecord",
    "DriftResult",
    "TheoremArtifact"
]
