"""
Output sanitization.

Everything a sandbox produced passes through here before it reaches a
caller: size and line ceilings, control-sequence stripping, line-ending
normalization and redaction of credential-shaped text and host paths.
All operations are pure and idempotent.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

from ..core.config import MAX_OUTPUT_BYTES, MAX_OUTPUT_LINES

REDACTED = "[REDACTED]"
PATH_REDACTED = "[PATH_REDACTED]"
CIRCULAR = "[Circular Reference]"
FUNCTION = "[Function]"
MAX_DEPTH_MARKER = "[Max Depth Exceeded]"

SIZE_MARKER = "\n... (output truncated due to size limit)"
LINE_MARKER = "... (output truncated due to line limit)"
ERROR_MARKER = "... (error message truncated)"

MAX_ERROR_LENGTH = 2000
MAX_SAFE_MESSAGE_LENGTH = 500
MAX_STACK_FRAMES = 10
MAX_VALUE_DEPTH = 32

# CSI and OSC escapes, then any remaining C0/C1 control except tab and newline.
_CONTROL_SEQUENCES = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]"
)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\x80-\x9f]")

_SENSITIVE_PATTERNS = (
    re.compile(r"(?i)\b(?:password|passwd|api[_-]?key|secret|token|auth)[ \t]*[=:][ \t]*\S+"),
    re.compile(r"(?i)\bbearer[ \t]+[A-Za-z0-9\-._~+/=]+"),
    re.compile(r"(?i)\b[A-Z]:\\Users\\[^\s\\]+(?:\\[^\s]*)?"),
    re.compile(r"/home/[^\s/]+(?:/\S*)?"),
    re.compile(r"/Users/[^\s/]+(?:/\S*)?"),
    re.compile(r"/root(?:/\S*)?(?=\s|$)"),
)

_ABSOLUTE_PATH = re.compile(
    r"(?:(?<=\s)|(?<=^)|(?<=[\"'(]))(?:[A-Za-z]:\\[^\s\"']+|/(?:[\w.\-]+/)+[\w.\-]+)",
    re.MULTILINE,
)

_INTERNAL_MARKERS = (
    "site-packages",
    "node_modules",
    "internal/",
    "<frozen ",
    "importlib._bootstrap",
    "code_runner/",
    "code_runner_wrapper_",
    "vm2",
    "pyodide",
)

_PY_FRAME = re.compile(r'File "([^"]+)", line (\d+)')

_SAFETY_CHECKS = (
    (
        re.compile(r"(?i)\b(?:password|secret|token|api[_-]?key|private[_-]?key)\b"),
        "Output may contain sensitive information",
    ),
    (re.compile(r"(?:^|\s)(?:/[\w.\-]+){2,}|[A-Za-z]:\\"), "Output contains file system paths"),
    (re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"), "Output may contain IP addresses"),
    (re.compile(r"\bhttps?://\S+"), "Output contains URLs"),
)


@dataclass(slots=True)
class SafetyReport:
    """Advisory result of an output safety scan."""

    issues: list[str] = field(default_factory=list)

    @property
    def safe(self) -> bool:
        return not self.issues


class OutputSanitizer:
    """Stateless sanitizer configured with output ceilings."""

    def __init__(self, max_bytes: int = MAX_OUTPUT_BYTES, max_lines: int = MAX_OUTPUT_LINES):
        self.max_bytes = max_bytes
        self.max_lines = max_lines

    # ── Text ──────────────────────────────────────────────────────────

    def sanitize_output(self, text: str | None) -> str:
        """Bound, clean and redact captured output."""
        if not text:
            return ""

        text = self.strip_control_sequences(text)
        text = self.normalize_line_endings(text)
        text = self.redact(text)
        text = self._truncate_lines(text)
        return self._truncate_bytes(text)

    def _truncate_lines(self, text: str) -> str:
        lines = text.split("\n")
        if len(lines) <= self.max_lines:
            return text
        return "\n".join(lines[: max(self.max_lines - 1, 0)] + [LINE_MARKER])

    def _truncate_bytes(self, text: str) -> str:
        encoded = text.encode("utf-8", errors="replace")
        if len(encoded) <= self.max_bytes:
            return text
        budget = max(self.max_bytes - len(SIZE_MARKER.encode("utf-8")), 0)
        head = encoded[:budget].decode("utf-8", errors="ignore")
        # The marker opens a new line; keep the result within the line ceiling.
        head_lines = head.split("\n")
        if len(head_lines) >= self.max_lines:
            head = "\n".join(head_lines[: max(self.max_lines - 1, 1)])
        return head + SIZE_MARKER

    @staticmethod
    def strip_control_sequences(text: str) -> str:
        text = _CONTROL_SEQUENCES.sub("", text)
        return _CONTROL_CHARS.sub("", text.replace("\r\n", "\n").replace("\r", "\n"))

    @staticmethod
    def normalize_line_endings(text: str) -> str:
        return text.replace("\r\n", "\n").replace("\r", "\n")

    @staticmethod
    def redact(text: str) -> str:
        for pattern in _SENSITIVE_PATTERNS:
            text = pattern.sub(REDACTED, text)
        return text

    # ── Errors ────────────────────────────────────────────────────────

    def sanitize_error(self, message: str | None) -> str:
        """Strip paths and internal-tool lines from an error message."""
        if not message:
            return ""

        text = self.strip_control_sequences(str(message))
        kept = [line for line in text.split("\n") if not _is_internal(line)]
        text = "\n".join(kept)
        text = _ABSOLUTE_PATH.sub(PATH_REDACTED, text)
        text = self.redact(text)

        if len(text) > MAX_ERROR_LENGTH:
            text = text[: MAX_ERROR_LENGTH - len(ERROR_MARKER) - 1] + "\n" + ERROR_MARKER
        return text

    def sanitize_stack_trace(self, stack: str | None, max_frames: int = MAX_STACK_FRAMES) -> str:
        """Keep at most ``max_frames`` user frames, with paths reduced to file names."""
        if not stack:
            return ""

        frames: list[str] = []
        for line in self.strip_control_sequences(str(stack)).split("\n"):
            if not line.strip() or _is_internal(line):
                continue
            if "at eval" in line or "runInContext" in line:
                continue
            line = _PY_FRAME.sub(lambda m: f'File "{_basename(m.group(1))}", line {m.group(2)}', line)
            frames.append(self.redact(line))
            if len(frames) >= max_frames:
                break
        return "\n".join(frames)

    @staticmethod
    def create_safe_error_message(error: BaseException | str, context: str = "") -> str:
        """Short, path-free message suitable for an internal_error reply."""
        text = str(error) or type(error).__name__
        text = _ABSOLUTE_PATH.sub(PATH_REDACTED, text)
        text = OutputSanitizer.redact(text)
        if context:
            text = f"{context}: {text}"
        if len(text) > MAX_SAFE_MESSAGE_LENGTH:
            text = text[: MAX_SAFE_MESSAGE_LENGTH - 3] + "..."
        return text

    # ── Values ────────────────────────────────────────────────────────

    def sanitize_return_value(self, value: Any) -> Any:
        """
        Deep-copy ``value`` into a JSON-safe structure.

        Cycles become CIRCULAR, callables become FUNCTION and anything else
        that JSON cannot carry becomes a type-tagged placeholder. Strings
        are redacted. Sanitizing an already-sanitized value returns an
        equal value.
        """
        return self._sanitize_value(value, ancestors=set(), depth=0)

    def _sanitize_value(self, value: Any, ancestors: set[int], depth: int) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return value if math.isfinite(value) else None
        if isinstance(value, str):
            return self.redact(value)
        if callable(value) and not isinstance(value, type):
            return FUNCTION
        if depth >= MAX_VALUE_DEPTH:
            return MAX_DEPTH_MARKER

        if isinstance(value, (dict, list, tuple, set, frozenset)):
            marker = id(value)
            if marker in ancestors:
                return CIRCULAR
            ancestors.add(marker)
            try:
                if isinstance(value, dict):
                    return {
                        str(k): self._sanitize_value(v, ancestors, depth + 1)
                        for k, v in value.items()
                    }
                return [self._sanitize_value(item, ancestors, depth + 1) for item in value]
            finally:
                ancestors.discard(marker)

        return f"[Object: {type(value).__name__}]"

    # ── Advisory scan ─────────────────────────────────────────────────

    @staticmethod
    def validate_output_safety(text: str | None) -> SafetyReport:
        """Flag, without blocking, output that looks sensitive."""
        report = SafetyReport()
        if not text:
            return report
        for pattern, issue in _SAFETY_CHECKS:
            if pattern.search(text):
                report.issues.append(issue)
        return report


def _is_internal(line: str) -> bool:
    return any(marker in line for marker in _INTERNAL_MARKERS)


def _basename(path: str) -> str:
    return re.split(r"[\\/]", path)[-1] or path
