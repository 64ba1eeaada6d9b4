"""
code-runner: sandboxed JavaScript and Python execution for untrusted snippets.

Features:
- Static security rules checked before anything runs
- In-process QuickJS sandbox for JavaScript
- Child-process sandbox with guarded imports for Python
- Deadlines, bounded output and sanitized results
- MCP server front end and a Rich CLI
"""

__version__ = "0.1.0"

from .execution.dispatcher import ExecutionDispatcher  # noqa: E402
from .execution.models import (  # noqa: E402
    ExecutionOutcome,
    ExecutionRequest,
    FailureKind,
    Language,
)
from .validation.models import ValidationOutcome, Violation  # noqa: E402

__all__ = [
    "ExecutionDispatcher",
    "ExecutionOutcome",
    "ExecutionRequest",
    "FailureKind",
    "Language",
    "ValidationOutcome",
    "Violation",
    "__version__",
]
