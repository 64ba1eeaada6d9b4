"""
Base types for language sandboxes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ...core.config import MAX_OUTPUT_BYTES
from ...execution.guard import ExecutionTimer
from ...execution.memory import estimate_outcome_memory
from ...execution.models import ExecutionOutcome, ExecutionRequest, FailureKind, Language
from ...execution.sanitizer import SIZE_MARKER
from ...validation.models import ValidationOutcome


class _BoundedStream:
    """Append-only text buffer that stops growing at ``limit`` characters."""

    __slots__ = ("_chunks", "_size", "limit", "truncated")

    def __init__(self, limit: int):
        self._chunks: list[str] = []
        self._size = 0
        self.limit = limit
        self.truncated = False

    def write(self, text: str) -> None:
        if not text or self.truncated:
            return
        room = self.limit - self._size
        if len(text) > room:
            text = text[:room]
            self.truncated = True
        self._chunks.append(text)
        self._size += len(text)

    def getvalue(self) -> str:
        value = "".join(self._chunks).rstrip("\n")
        return value + SIZE_MARKER if self.truncated else value


@dataclass(slots=True)
class SandboxSession:
    """
    State of a single sandbox run.

    Owned by the run that created it and populated as the run proceeds.
    ``freeze`` turns it into an immutable ExecutionOutcome; the session is
    not reused afterwards.
    """

    request: ExecutionRequest
    max_output_chars: int = MAX_OUTPUT_BYTES
    return_value: Any = None
    failure_kind: FailureKind | None = None
    failure_message: str | None = None
    failure_detail: str | None = None
    line: int | None = None
    stack: str | None = None
    timer: ExecutionTimer = field(default_factory=lambda: ExecutionTimer().start())
    _stdout: _BoundedStream | None = None
    _stderr: _BoundedStream | None = None

    def __post_init__(self) -> None:
        self._stdout = _BoundedStream(self.max_output_chars)
        self._stderr = _BoundedStream(self.max_output_chars)

    # ── Capture ───────────────────────────────────────────────────────

    def write_stdout(self, text: str) -> None:
        self._stdout.write(text)

    def write_stderr(self, text: str) -> None:
        self._stderr.write(text)

    @property
    def stdout(self) -> str:
        return self._stdout.getvalue()

    @property
    def stderr(self) -> str:
        return self._stderr.getvalue()

    # ── Outcome ───────────────────────────────────────────────────────

    @property
    def failed(self) -> bool:
        return self.failure_kind is not None

    def fail(
        self,
        kind: FailureKind,
        message: str,
        *,
        detail: str | None = None,
        line: int | None = None,
        stack: str | None = None,
    ) -> None:
        """Record the first failure of the run; later ones are ignored."""
        if self.failure_kind is not None:
            return
        self.failure_kind = kind
        self.failure_message = message
        self.failure_detail = detail
        self.line = line
        self.stack = stack

    def freeze(self) -> ExecutionOutcome:
        elapsed_ms = self.timer.stop()
        stdout = self.stdout
        stderr = self.stderr
        return ExecutionOutcome(
            succeeded=not self.failed,
            language=self.request.language,
            stdout=stdout,
            stderr=stderr,
            return_value=None if self.failed else self.return_value,
            elapsed_ms=elapsed_ms,
            estimated_memory_bytes=estimate_outcome_memory(stdout, stderr, self.return_value),
            failure_kind=self.failure_kind,
            failure_message=self.failure_message,
            failure_detail=self.failure_detail,
            line=self.line,
            truncated_stack=self.stack,
        )


class LanguageSandbox(Protocol):
    """Contract shared by the in-process and child-process sandboxes."""

    language: Language

    def validate(self, code: str, *, networking_enabled: bool = False) -> ValidationOutcome:
        """Run static validation for this sandbox's language."""

    async def run(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Execute a validated request and return its outcome. Never raises."""
