"""
Validation for execution requests.

Request-parameter checks run first, then the per-language static rules.
"""

from .input_validator import InputValidator
from .models import IssueSeverity, RequestValidation, SecurityRule, ValidationOutcome, Violation
from .security import SecurityValidator

__all__ = [
    "InputValidator",
    "IssueSeverity",
    "RequestValidation",
    "SecurityRule",
    "SecurityValidator",
    "ValidationOutcome",
    "Violation",
]
