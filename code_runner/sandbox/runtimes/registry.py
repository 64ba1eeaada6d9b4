"""
Sandbox registry and health checks.
"""

from dataclasses import dataclass

from ...core.config import RunnerConfig
from ...core.exceptions import ConfigurationError
from ...core.logging import get_logger
from ...execution.models import Language
from ...validation.security import SecurityValidator
from .base import LanguageSandbox
from .interpreter import check_interpreter_health
from .javascript_runtime import QUICKJS_AVAILABLE, JavaScriptSandbox
from .python_runtime import PythonSandbox

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = {language.value for language in Language}

_SANDBOX_TYPES = {
    Language.JAVASCRIPT: JavaScriptSandbox,
    Language.PYTHON: PythonSandbox,
}


@dataclass(slots=True)
class RuntimeHealth:
    """Availability information for a language sandbox."""

    runtime: str
    available: bool
    detail: str


@dataclass(slots=True)
class RuntimeDoctorCheck:
    """Detailed doctor check for sandbox diagnostics."""

    name: str
    status: str  # pass | warn | fail
    detail: str
    recommendation: str | None = None


def create_sandbox(
    language: "Language | str",
    config: RunnerConfig | None = None,
    validator: SecurityValidator | None = None,
) -> LanguageSandbox:
    """Create the sandbox for a language."""
    try:
        resolved = Language.parse(language)
    except ValueError as e:
        raise ConfigurationError(str(e))
    return _SANDBOX_TYPES[resolved](config=config, validator=validator)


def create_sandboxes(
    config: RunnerConfig | None = None,
    validator: SecurityValidator | None = None,
) -> dict[Language, LanguageSandbox]:
    """One sandbox per supported language, sharing a validator."""
    validator = validator or SecurityValidator()
    return {language: create_sandbox(language, config, validator) for language in Language}


def detect_runtime_health(config: RunnerConfig | None = None) -> dict[str, RuntimeHealth]:
    """Probe sandbox availability for diagnostics."""
    config = config or RunnerConfig()
    results = []

    js_ok, js_detail = JavaScriptSandbox.check_health()
    results.append(RuntimeHealth(runtime=Language.JAVASCRIPT.value, available=js_ok, detail=js_detail))

    py_ok, py_detail = check_interpreter_health(config.sandbox.python_candidates)
    results.append(RuntimeHealth(runtime=Language.PYTHON.value, available=py_ok, detail=py_detail))

    return {item.runtime: item for item in results}


def run_runtime_doctor(config: RunnerConfig | None = None) -> list[RuntimeDoctorCheck]:
    """Run sandbox diagnostics and return actionable checks."""
    config = config or RunnerConfig()
    health = detect_runtime_health(config)
    checks: list[RuntimeDoctorCheck] = []

    js = health[Language.JAVASCRIPT.value]
    checks.append(
        RuntimeDoctorCheck(
            name="javascript_engine",
            status="pass" if js.available else "fail",
            detail=js.detail,
            recommendation=None if js.available else "pip install quickjs",
        )
    )

    py = health[Language.PYTHON.value]
    checks.append(
        RuntimeDoctorCheck(
            name="python_interpreter",
            status="pass" if py.available else "fail",
            detail=py.detail,
            recommendation=None
            if py.available
            else "Install Python 3 or list its path under sandbox.python_candidates",
        )
    )

    default_timeout = config.execution.default_timeout_ms
    checks.append(
        RuntimeDoctorCheck(
            name="default_timeout",
            status="warn" if default_timeout > 30_000 else "pass",
            detail=f"{default_timeout}ms",
            recommendation="Lower execution.default_timeout_ms to 30000 or less"
            if default_timeout > 30_000
            else None,
        )
    )

    networking = config.execution.networking_enabled
    checks.append(
        RuntimeDoctorCheck(
            name="networking",
            status="warn" if networking else "pass",
            detail="enabled by default" if networking else "disabled by default",
            recommendation="Unset ENABLE_NETWORKING unless callers need network modules"
            if networking
            else None,
        )
    )

    checks.append(
        RuntimeDoctorCheck(
            name="isolation",
            status="warn",
            detail="application-level sandbox only (no containers, namespaces or seccomp)",
            recommendation="Run the server as an unprivileged user inside a container or VM",
        )
    )

    if not QUICKJS_AVAILABLE:
        logger.warning("quickjs is not installed; JavaScript requests will fail")
    return checks
