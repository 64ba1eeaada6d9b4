"""
Input validation for execution requests and injected variables.
"""

import json
import keyword
import re
from collections.abc import Mapping
from typing import Any

from ..core.config import MAX_CODE_LENGTH, MAX_INPUT_LENGTH, MAX_TIMEOUT_MS, MIN_TIMEOUT_MS
from ..core.logging import get_logger
from ..execution.memory import validate_memory_limit
from ..execution.models import Language
from .models import RequestValidation

logger = get_logger(__name__)

VARIABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*$")

LONG_TIMEOUT_MS = 30_000

JAVASCRIPT_RESERVED = frozenset(
    {
        "await", "case", "catch", "class", "const", "debugger", "default", "delete",
        "do", "enum", "export", "extends", "false", "function", "implements",
        "instanceof", "interface", "let", "new", "null", "package", "private",
        "protected", "public", "static", "super", "switch", "this", "throw", "true",
        "typeof", "var", "void", "yield",
    }
)


class InputValidator:
    """Validates request parameters before any code is inspected or run."""

    def __init__(self, max_code_length: int = MAX_CODE_LENGTH, max_input_length: int = MAX_INPUT_LENGTH):
        self.max_code_length = max_code_length
        self.max_input_length = max_input_length

    def validate_request(
        self,
        code: Any,
        language: Any,
        stdin: Any = None,
        timeout_ms: Any = None,
        memory_limit_mb: Any = None,
        networking_enabled: bool = False,
    ) -> RequestValidation:
        """
        Validate raw request parameters.

        Args:
            code: Source text
            language: Language name or Language
            stdin: Optional stdin text
            timeout_ms: Optional timeout in milliseconds
            memory_limit_mb: Optional memory limit in megabytes
            networking_enabled: Whether the caller asked for network access

        Returns:
            RequestValidation with errors and warnings
        """
        result = RequestValidation()

        self._validate_code(code, result)

        try:
            Language.parse(language)
        except ValueError as e:
            result.errors.append(str(e))

        if stdin is not None:
            if not isinstance(stdin, str):
                result.errors.append("Input must be a string")
            elif len(stdin) > self.max_input_length:
                result.errors.append(
                    f"Input exceeds maximum length of {self.max_input_length} characters"
                )

        if timeout_ms is not None:
            self._validate_timeout(timeout_ms, result)

        if memory_limit_mb is not None:
            self._validate_memory(memory_limit_mb, result)

        if networking_enabled:
            result.warnings.append("Network access is enabled - use with caution")

        if result.errors:
            logger.debug(f"Request rejected: {result.errors}")
        return result

    def _validate_code(self, code: Any, result: RequestValidation) -> None:
        if code is None:
            result.errors.append("Code is required")
        elif not isinstance(code, str):
            result.errors.append("Code must be a string")
        elif not code.strip():
            result.errors.append("Code cannot be empty or contain only whitespace")
        elif len(code) > self.max_code_length:
            result.errors.append(
                f"Code exceeds maximum length of {self.max_code_length} characters"
            )

    def _validate_timeout(self, timeout_ms: Any, result: RequestValidation) -> None:
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int):
            result.errors.append("Timeout must be an integer number of milliseconds")
        elif timeout_ms < MIN_TIMEOUT_MS or timeout_ms > MAX_TIMEOUT_MS:
            result.errors.append(
                f"Timeout must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS} milliseconds"
            )
        elif timeout_ms > LONG_TIMEOUT_MS:
            result.warnings.append("Long timeout may impact performance")

    def _validate_memory(self, memory_limit_mb: Any, result: RequestValidation) -> None:
        if isinstance(memory_limit_mb, bool) or not isinstance(memory_limit_mb, int):
            result.errors.append("Memory limit must be an integer number of megabytes")
            return
        valid, error, warning = validate_memory_limit(memory_limit_mb)
        if not valid:
            result.errors.append(error)
        elif warning:
            result.warnings.append(warning)

    def validate_variable_name(self, name: str) -> bool:
        """Check that a name is a valid identifier in both languages."""
        if not isinstance(name, str) or not VARIABLE_NAME_PATTERN.match(name):
            return False
        if "$" in name:
            # Legal in JavaScript only
            return False
        return not keyword.iskeyword(name) and name not in JAVASCRIPT_RESERVED

    def parse_variables(self, variables: Mapping[str, Any] | str | None) -> dict[str, Any]:
        """
        Normalize injected variables to a dict.

        Raises:
            ValueError: If the value is not a mapping/JSON object or a name is invalid
        """
        if variables is None:
            return {}
        if isinstance(variables, str):
            try:
                variables = json.loads(variables)
            except json.JSONDecodeError as e:
                raise ValueError(f"Variables must be a JSON object: {e.msg}")
        if not isinstance(variables, Mapping):
            raise ValueError("Variables must be an object mapping names to values")

        for name in variables:
            if not self.validate_variable_name(name):
                raise ValueError(
                    f"Invalid variable name: '{name}'. Variable names must be valid identifiers."
                )
        return dict(variables)
