"""Language sandbox implementations."""

from .base import LanguageSandbox, SandboxSession
from .javascript_runtime import QUICKJS_AVAILABLE, JavaScriptSandbox
from .python_runtime import PythonSandbox
from .registry import (
    SUPPORTED_LANGUAGES,
    RuntimeDoctorCheck,
    RuntimeHealth,
    create_sandbox,
    create_sandboxes,
    detect_runtime_health,
    run_runtime_doctor,
)

__all__ = [
    "QUICKJS_AVAILABLE",
    "SUPPORTED_LANGUAGES",
    "JavaScriptSandbox",
    "LanguageSandbox",
    "PythonSandbox",
    "RuntimeDoctorCheck",
    "RuntimeHealth",
    "SandboxSession",
    "create_sandbox",
    "create_sandboxes",
    "detect_runtime_health",
    "run_runtime_doctor",
]
