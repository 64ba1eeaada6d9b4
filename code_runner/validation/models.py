"""
Data models for code validation.
"""

from dataclasses import dataclass, field
from enum import Enum


class IssueSeverity(Enum):
    """Severity levels for validation rules."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class SecurityRule:
    """A single pattern rule. ERROR rules block execution, WARNING rules are advisory."""

    rule_id: str
    pattern: str
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR


@dataclass(frozen=True, slots=True)
class Violation:
    """A rule that matched submitted code."""

    rule_id: str
    message: str
    line: int | None = None

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"Line {self.line}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of static validation. ``accepted`` is true iff there are no violations."""

    violations: tuple[Violation, ...] = ()
    advisories: tuple[Violation, ...] = ()

    @property
    def accepted(self) -> bool:
        return not self.violations

    def __bool__(self) -> bool:
        return self.accepted

    @property
    def errors(self) -> list[str]:
        return [v.message for v in self.violations]

    @property
    def warnings(self) -> list[str]:
        return [a.message for a in self.advisories]

    def to_dict(self) -> dict:
        return {
            "valid": self.accepted,
            "errors": self.errors,
            "warnings": self.warnings,
            "violations": [
                {"rule": v.rule_id, "message": v.message, "line": v.line}
                for v in self.violations
            ],
        }


@dataclass(slots=True)
class RequestValidation:
    """Outcome of request-parameter validation."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid

    def to_dict(self) -> dict:
        return {"valid": self.is_valid, "errors": list(self.errors), "warnings": list(self.warnings)}
