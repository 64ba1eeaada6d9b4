"""
Custom exceptions for code-runner.

Provides specific exception types for better error handling and user feedback.
"""


class CodeRunnerError(Exception):
    """Base exception for code-runner errors."""


class ConfigurationError(CodeRunnerError):
    """Error in configuration."""


# Execution Errors


class ExecutionError(CodeRunnerError):
    """Base exception for execution errors."""


class ExecutionTimeoutError(ExecutionError):
    """Code execution exceeded time limit."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Code execution timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms
        self.user_message = f"Code execution took longer than {timeout_ms} milliseconds."
        self.recovery_hint = "Check for infinite loops or raise timeoutMs (maximum 60000)."


class InterpreterNotFoundError(ExecutionError):
    """No usable interpreter executable was found."""

    def __init__(self, candidates: list[str]):
        super().__init__(
            "No Python interpreter could be found. Tried: " + ", ".join(candidates)
        )
        self.candidates = list(candidates)
        self.user_message = "Python execution is unavailable on this host."
        self.recovery_hint = "Install Python 3 or set sandbox.python_candidates in code_runner.yaml."


def format_error_message(error: Exception) -> str:
    """
    Format an error message for display to user.

    Args:
        error: Exception to format

    Returns:
        Formatted error message with recovery hints
    """
    if isinstance(error, CodeRunnerError) and hasattr(error, "user_message"):
        message = error.user_message
        if hasattr(error, "recovery_hint"):
            message += f"\n\nHint: {error.recovery_hint}"
        return message
    return str(error)
