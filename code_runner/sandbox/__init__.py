"""
Sandboxes that run submitted code.

JavaScript runs in-process in a fresh QuickJS context; Python runs in a
short-lived child interpreter behind a generated wrapper.
"""

from .runtimes import (
    JavaScriptSandbox,
    LanguageSandbox,
    PythonSandbox,
    create_sandbox,
    create_sandboxes,
    detect_runtime_health,
    run_runtime_doctor,
)

__all__ = [
    "JavaScriptSandbox",
    "LanguageSandbox",
    "PythonSandbox",
    "create_sandbox",
    "create_sandboxes",
    "detect_runtime_health",
    "run_runtime_doctor",
]
