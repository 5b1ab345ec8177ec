"""
Error taxonomy for the change-to-specification pipeline.

None of these escape the pipeline: each one has a degraded outcome
(empty facts, the next backend, a generic type) that callers receive instead.
"""

from typing import Optional


class SpecSyncError(Exception):
    """Base class for pipeline errors"""


class ParseFailure(SpecSyncError):
    """File could not be parsed or the target function was not found"""

    def __init__(self, file_path: str, function_name: str, reason: str):
        super().__init__(f"{file_path}:{function_name}: {reason}")
        self.file_path = file_path
        self.function_name = function_name
        self.reason = reason


class BackendFailure(SpecSyncError):
    """Generative backend raised, timed out or returned an invalid payload"""

    def __init__(self, backend: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"backend {backend!r} failed: {reason}")
        self.backend = backend
        self.reason = reason
        self.cause = cause


class SchemaViolation(SpecSyncError):
    """Artifact input uses a type or predicate shape with no known mapping"""

    def __init__(self, subject: str, reason: str):
        super().__init__(f"{subject}: {reason}")
        self.subject = subject
        self.reason = reason
