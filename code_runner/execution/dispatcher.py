"""
Execution dispatcher.

The single entry point for front ends: validates the request, runs the
static rules, hands the request to the language sandbox and sanitizes
what comes back. Every phase is wrapped so one bad request can never
take down the host or another request.
"""

from __future__ import annotations

import dataclasses
import json
import math
from collections.abc import Mapping
from typing import Any

from ..core.config import (
    MAX_CODE_LENGTH,
    MAX_MEMORY_MB,
    MAX_OUTPUT_BYTES,
    MAX_TIMEOUT_MS,
    RunnerConfig,
)
from ..core.logging import get_logger
from ..sandbox.runtimes import LanguageSandbox, create_sandboxes
from ..validation.input_validator import InputValidator
from ..validation.models import ValidationOutcome
from ..validation.security import SecurityValidator
from .guard import ExecutionTimer
from .memory import over_limit_warning
from .models import ExecutionOutcome, ExecutionRequest, FailureKind, Language
from .sanitizer import OutputSanitizer

logger = get_logger(__name__)

LARGE_CODE_THRESHOLD = 10_000

TOOL_NAMES = ("execute_code", "execute_code_with_variables", "get_capabilities", "validate_code")


class ExecutionDispatcher:
    """Routes execution requests to the matching language sandbox."""

    def __init__(
        self,
        config: RunnerConfig | None = None,
        sandboxes: Mapping[Language, LanguageSandbox] | None = None,
    ):
        self.config = config or RunnerConfig()
        self.input_validator = InputValidator(
            max_code_length=self.config.execution.max_code_length,
            max_input_length=self.config.execution.max_input_length,
        )
        self.security_validator = SecurityValidator()
        self.sanitizer = OutputSanitizer(
            max_bytes=self.config.output.max_bytes,
            max_lines=self.config.output.max_lines,
        )
        self.sandboxes = dict(
            sandboxes or create_sandboxes(self.config, self.security_validator)
        )

    # ── Entry points ──────────────────────────────────────────────────

    async def dispatch(
        self,
        language: Language | str,
        code: str,
        stdin: str | None = None,
        timeout_ms: int | None = None,
        memory_limit_mb: int | None = None,
        networking_enabled: bool | None = None,
    ) -> ExecutionOutcome:
        """
        Validate and execute code.

        Args:
            language: "javascript" or "python"
            code: Source text
            stdin: Optional text fed to the program's input
            timeout_ms: Deadline in milliseconds (100-60000)
            memory_limit_mb: Advisory memory limit (0-512)
            networking_enabled: Permit network modules (Python only)

        Returns:
            The sanitized ExecutionOutcome. Never raises.
        """
        timer = ExecutionTimer().start()
        lang: Language | None = None
        try:
            try:
                lang = Language.parse(language)
            except ValueError:
                lang = None

            if networking_enabled is None:
                networking_enabled = self.config.execution.networking_enabled

            checked = self.input_validator.validate_request(
                code,
                language,
                stdin=stdin,
                timeout_ms=timeout_ms,
                memory_limit_mb=memory_limit_mb,
                networking_enabled=networking_enabled,
            )
            if not checked.is_valid:
                return ExecutionOutcome.failure(
                    FailureKind.VALIDATION,
                    "Input validation failed: " + "; ".join(checked.errors),
                    language=lang,
                    detail="\n".join(checked.errors),
                    warnings=checked.warnings,
                    elapsed_ms=timer.stop(),
                )

            request = ExecutionRequest(
                code=code,
                language=lang,
                stdin=stdin,
                timeout_ms=timeout_ms if timeout_ms is not None else self.config.execution.default_timeout_ms,
                memory_limit_mb=memory_limit_mb
                if memory_limit_mb is not None
                else self.config.execution.default_memory_limit_mb,
                networking_enabled=bool(networking_enabled),
            )
            return await self._execute(request, list(checked.warnings))

        except Exception as e:
            logger.error(f"Dispatch failed: {e}", exc_info=self.config.debug)
            return ExecutionOutcome.failure(
                FailureKind.INTERNAL,
                "An unexpected error occurred during code execution",
                language=lang,
                detail=self.sanitizer.create_safe_error_message(e),
                elapsed_ms=timer.stop(),
            )

    async def dispatch_with_variables(
        self,
        language: Language | str,
        code: str,
        variables: Mapping[str, Any] | str | None = None,
        stdin: str | None = None,
        timeout_ms: int | None = None,
        memory_limit_mb: int | None = None,
        networking_enabled: bool | None = None,
    ) -> ExecutionOutcome:
        """Prepend variable declarations to ``code`` and dispatch the result."""
        try:
            lang = Language.parse(language)
            values = self.input_validator.parse_variables(variables)
            declarations = render_variables(lang, values)
        except (ValueError, TypeError) as e:
            return ExecutionOutcome.failure(
                FailureKind.VALIDATION,
                f"Input validation failed: {e}",
                detail=str(e),
            )

        combined = f"{declarations}\n{code}" if declarations else code
        return await self.dispatch(
            lang,
            combined,
            stdin=stdin,
            timeout_ms=timeout_ms,
            memory_limit_mb=memory_limit_mb,
            networking_enabled=networking_enabled,
        )

    def validate_only(
        self,
        language: Language | str,
        code: str,
        *,
        networking_enabled: bool = False,
    ) -> ValidationOutcome:
        """Run static validation alone; no sandbox is touched."""
        return self.security_validator.validate(
            Language.parse(language), code, networking_enabled=networking_enabled
        )

    def review_code(self, language: Language | str, code: str) -> dict[str, Any]:
        """Request checks, static rules and recommendations for a snippet."""
        input_check = self.input_validator.validate_request(code, language)
        try:
            lang = Language.parse(language)
        except ValueError:
            return {
                "valid": False,
                "inputValidation": input_check.to_dict(),
                "languageValidation": None,
                "recommendations": [],
            }

        language_check = (
            self.validate_only(lang, code) if isinstance(code, str) else ValidationOutcome()
        )
        return {
            "valid": input_check.is_valid and language_check.accepted,
            "inputValidation": input_check.to_dict(),
            "languageValidation": language_check.to_dict(),
            "recommendations": _recommendations(lang, code if isinstance(code, str) else ""),
        }

    def describe_capabilities(self) -> dict[str, Any]:
        """Static description of languages, limits and security posture."""
        return {
            "languages": {
                Language.JAVASCRIPT.value: {
                    "engine": "QuickJS (in-process)",
                    "features": [
                        "ES2020 syntax",
                        "console.log/info/warn/error",
                        "readline() for stdin",
                        "Math, Date, JSON, RegExp, Map, Set",
                        "final expression value returned",
                    ],
                    "restrictions": [
                        "No require() or ES module imports",
                        "No process, Buffer or global object access",
                        "No eval() or Function constructor",
                        "setTimeout limited to short delays; no setInterval",
                    ],
                },
                Language.PYTHON.value: {
                    "engine": "CPython (child process)",
                    "features": [
                        "print() and input()",
                        "Standard utility modules (math, json, re, collections, ...)",
                        "final expression value returned",
                    ],
                    "restrictions": [
                        "No file operations",
                        "No system, process or network modules",
                        "No eval(), exec(), compile() or __import__()",
                        "Imports limited to an allow-list",
                    ],
                },
            },
            "tools": list(TOOL_NAMES),
            "limits": {
                "maxExecutionTime": MAX_TIMEOUT_MS,
                "maxMemoryMb": MAX_MEMORY_MB,
                "maxCodeLength": MAX_CODE_LENGTH,
                "maxOutputSize": MAX_OUTPUT_BYTES,
            },
            "security": {
                "staticValidation": True,
                "guardedImports": True,
                "fileSystemAccess": False,
                "networkAccess": "opt-in (Python network modules only)",
                "outputSanitization": True,
                "isolation": "application-level",
            },
        }

    # ── Pipeline ──────────────────────────────────────────────────────

    async def _execute(self, request: ExecutionRequest, warnings: list[str]) -> ExecutionOutcome:
        sandbox = self.sandboxes[request.language]

        validation = sandbox.validate(request.code, networking_enabled=request.networking_enabled)
        warnings.extend(validation.warnings)
        if not validation.accepted:
            logger.debug(f"Static validation rejected {request.language.value} code")
            return ExecutionOutcome.failure(
                FailureKind.SECURITY,
                "Code validation failed",
                language=request.language,
                detail="\n".join(str(v) for v in validation.violations),
                warnings=warnings,
            )

        logger.debug(f"Dispatching {request.language.value} request ({len(request.code)} chars)")
        try:
            outcome = await sandbox.run(request)
        except Exception as e:
            logger.error(f"Sandbox raised: {e}", exc_info=self.config.debug)
            return ExecutionOutcome.failure(
                FailureKind.INTERNAL,
                "An unexpected error occurred during code execution",
                language=request.language,
                detail=self.sanitizer.create_safe_error_message(e, "executor failed"),
                warnings=warnings,
            )

        try:
            outcome = self._sanitize(outcome)
        except Exception as e:
            logger.warning(f"Sanitization failed, returning unsanitized outcome: {e}")

        if outcome.succeeded:
            warnings.extend(self.sanitizer.validate_output_safety(outcome.stdout).issues)
        memory_warning = over_limit_warning(outcome.estimated_memory_bytes, request.memory_limit_mb)
        if memory_warning:
            warnings.append(memory_warning)

        return dataclasses.replace(outcome, warnings=tuple(dict.fromkeys(warnings)))

    def _sanitize(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        s = self.sanitizer
        if outcome.succeeded:
            return dataclasses.replace(
                outcome,
                stdout=s.sanitize_output(outcome.stdout),
                stderr=s.sanitize_output(outcome.stderr),
                return_value=s.sanitize_return_value(outcome.return_value),
            )
        return dataclasses.replace(
            outcome,
            stdout=s.sanitize_output(outcome.stdout),
            stderr=s.sanitize_output(outcome.stderr),
            failure_message=s.sanitize_error(outcome.failure_message) or outcome.failure_message,
            failure_detail=s.sanitize_error(outcome.failure_detail) or None,
            truncated_stack=s.sanitize_stack_trace(outcome.truncated_stack) or None,
        )


def render_variables(language: Language, variables: Mapping[str, Any]) -> str:
    """Render injected values as declarations in the target language."""
    lines = []
    for name, value in variables.items():
        if language is Language.JAVASCRIPT:
            lines.append(f"const {name} = {json.dumps(value)};")
        else:
            lines.append(f"{name} = {_python_literal(value)}")
    return "\n".join(lines)


def _python_literal(value: Any) -> str:
    if value is None or isinstance(value, (bool, int, str)):
        return repr(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else "None"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_python_literal(item) for item in value) + "]"
    if isinstance(value, Mapping):
        items = ", ".join(f"{str(k)!r}: {_python_literal(v)}" for k, v in value.items())
        return "{" + items + "}"
    raise TypeError(f"Unsupported variable value of type {type(value).__name__}")


def _recommendations(language: Language, code: str) -> list[str]:
    recommendations = []
    if len(code) > LARGE_CODE_THRESHOLD:
        recommendations.append("Consider breaking large code into smaller functions")
    if language is Language.JAVASCRIPT and "console.log" in code:
        recommendations.append("Use console.log sparingly for better performance")
    if language is Language.PYTHON and "print(" in code:
        recommendations.append("Use print statements sparingly for better performance")
    return recommendations
