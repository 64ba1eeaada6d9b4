"""Execution models, deadline guard, memory accounting and output sanitization."""

from .guard import ExecutionTimer, ResourceGuard, with_deadline
from .models import ExecutionOutcome, ExecutionRequest, FailureKind, Language
from .sanitizer import OutputSanitizer

__all__ = [
    "ExecutionOutcome",
    "ExecutionRequest",
    "ExecutionTimer",
    "FailureKind",
    "Language",
    "OutputSanitizer",
    "ResourceGuard",
    "with_deadline",
]
