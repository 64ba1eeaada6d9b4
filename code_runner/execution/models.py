"""
Request and outcome types shared by the dispatcher and the sandboxes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Language(Enum):
    """Languages the runner can execute."""

    JAVASCRIPT = "javascript"
    PYTHON = "python"

    @classmethod
    def parse(cls, value: "str | Language") -> "Language":
        """Resolve a language name, case-insensitively."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(
            f"Unsupported language: {value}. "
            f"Supported languages: {', '.join(m.value for m in cls)}"
        )


class FailureKind(Enum):
    """Error taxonomy reported to callers."""

    VALIDATION = "validation_error"
    SECURITY = "security_error"
    COMPILATION = "compilation_error"
    TIMEOUT = "timeout_error"
    MEMORY = "memory_error"
    RUNTIME = "runtime_error"
    INTERNAL = "internal_error"


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """A validated, immutable execution request."""

    code: str
    language: Language
    stdin: str | None = None
    timeout_ms: int = 10_000
    memory_limit_mb: int = 128
    networking_enabled: bool = False

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of one sandbox run, frozen once the run is over."""

    succeeded: bool
    language: Language | None = None
    stdout: str = ""
    stderr: str = ""
    return_value: Any = None
    elapsed_ms: float = 0.0
    estimated_memory_bytes: int = 0
    failure_kind: FailureKind | None = None
    failure_message: str | None = None
    failure_detail: str | None = None
    line: int | None = None
    truncated_stack: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return self.succeeded

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        message: str,
        *,
        language: Language | None = None,
        detail: str | None = None,
        warnings: tuple[str, ...] | list[str] = (),
        elapsed_ms: float = 0.0,
    ) -> "ExecutionOutcome":
        """Build a failed outcome that never reached a sandbox."""
        return cls(
            succeeded=False,
            language=language,
            failure_kind=kind,
            failure_message=message,
            failure_detail=detail,
            warnings=tuple(warnings),
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the outbound result shape."""
        data: dict[str, Any] = {
            "success": self.succeeded,
            "output": self.stdout,
            "errorOutput": self.stderr,
            "returnValue": self.return_value,
            "executionTime": round(self.elapsed_ms, 3),
            "memoryUsed": self.estimated_memory_bytes,
            "language": self.language.value if self.language else None,
        }
        if not self.succeeded:
            data["type"] = self.failure_kind.value if self.failure_kind else FailureKind.INTERNAL.value
            data["message"] = self.failure_message or "Execution failed"
            if self.failure_detail:
                data["details"] = self.failure_detail
            if self.line is not None:
                data["line"] = self.line
            if self.truncated_stack:
                data["stack"] = self.truncated_stack
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data
