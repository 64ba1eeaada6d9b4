"""
Heuristic memory accounting.

Nothing here measures resident memory. Estimates come from the size of
what a run produced and are reported, never enforced.
"""

import json
import re
from typing import Any

from ..core.config import MAX_MEMORY_MB

# Serialized characters are counted as UTF-16 code units.
SIZE_FACTOR = 2

HIGH_MEMORY_MB = 256

MEMORY_SIGNATURE = re.compile(
    r"out of memory|memoryerror|allocation failed|cannot allocate|"
    r"stack overflow|maximum call stack|heap limit|memory limit",
    re.IGNORECASE,
)


def estimate_outcome_memory(stdout: str, stderr: str, return_value: Any = None) -> int:
    """Estimate the memory cost of a run from its serialized outcome."""
    try:
        serialized = json.dumps(
            {"output": stdout, "errorOutput": stderr, "returnValue": return_value},
            ensure_ascii=False,
            default=str,
        )
    except (TypeError, ValueError):
        serialized = stdout + stderr + repr(return_value)
    return len(serialized) * SIZE_FACTOR


def estimate_object_size(value: Any, _seen: set[int] | None = None) -> int:
    """Rough byte size of a Python value graph."""
    if _seen is None:
        _seen = set()

    if value is None:
        return 0
    if isinstance(value, bool):
        return 4
    if isinstance(value, (int, float)):
        return 8
    if isinstance(value, str):
        return len(value) * SIZE_FACTOR
    if isinstance(value, (bytes, bytearray)):
        return len(value)

    if id(value) in _seen:
        return 0
    _seen.add(id(value))

    if isinstance(value, dict):
        return sum(
            estimate_object_size(k, _seen) + estimate_object_size(v, _seen)
            for k, v in value.items()
        )
    if isinstance(value, (list, tuple, set, frozenset)):
        return sum(estimate_object_size(item, _seen) for item in value)
    return 8


def format_bytes(num_bytes: int) -> str:
    """Render a byte count for humans."""
    if num_bytes <= 0:
        return "0 B"
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)} B" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


def validate_memory_limit(memory_limit_mb: int) -> tuple[bool, str | None, str | None]:
    """
    Check a requested memory limit.

    Returns:
        Tuple of (valid, error, warning)
    """
    if memory_limit_mb < 0:
        return False, "Memory limit must be non-negative", None
    if memory_limit_mb > MAX_MEMORY_MB:
        return False, f"Memory limit cannot exceed {MAX_MEMORY_MB} MB", None
    if memory_limit_mb > HIGH_MEMORY_MB:
        return True, None, "High memory limit may impact system performance"
    return True, None, None


def is_memory_fault(message: str | None) -> bool:
    """Whether an interpreter fault message looks like memory exhaustion."""
    return bool(message) and bool(MEMORY_SIGNATURE.search(message))


def over_limit_warning(estimated_bytes: int, memory_limit_mb: int) -> str | None:
    """Advisory text when an estimate exceeds the requested limit."""
    if memory_limit_mb <= 0:
        return None
    limit_bytes = memory_limit_mb * 1024 * 1024
    if estimated_bytes <= limit_bytes:
        return None
    return (
        f"Estimated memory usage {format_bytes(estimated_bytes)} exceeds "
        f"the requested limit of {memory_limit_mb} MB"
    )
