"""
Child-process Python sandbox.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import tempfile
from pathlib import Path

from ...core.config import RunnerConfig
from ...core.exceptions import ExecutionTimeoutError, InterpreterNotFoundError
from ...core.logging import get_logger
from ...execution.guard import ResourceGuard
from ...execution.memory import is_memory_fault
from ...execution.models import ExecutionOutcome, ExecutionRequest, FailureKind, Language
from ...validation.models import ValidationOutcome
from ...validation.security import SecurityValidator
from .base import SandboxSession
from .interpreter import resolve_interpreter
from .python_wrapper import WrapperReport, build_wrapper, module_policy, parse_wrapper_output

logger = get_logger(__name__)

WRAPPER_PREFIX = "code_runner_wrapper_"
COMPILATION_FAULTS = {"SyntaxError", "IndentationError", "TabError"}

_DIAGNOSTIC_LINE = re.compile(r"line (\d+)")


class PythonSandbox:
    """Runs Python code in a short-lived child interpreter."""

    language = Language.PYTHON

    def __init__(
        self,
        config: RunnerConfig | None = None,
        validator: SecurityValidator | None = None,
    ):
        self.config = config or RunnerConfig()
        self.validator = validator or SecurityValidator()

    def validate(self, code: str, *, networking_enabled: bool = False) -> ValidationOutcome:
        return self.validator.validate(self.language, code, networking_enabled=networking_enabled)

    async def run(self, request: ExecutionRequest) -> ExecutionOutcome:
        session = SandboxSession(request, max_output_chars=self.config.output.max_bytes)

        try:
            interpreter = await resolve_interpreter(self.config.sandbox.python_candidates)
        except InterpreterNotFoundError as e:
            logger.error(str(e))
            session.fail(FailureKind.RUNTIME, str(e), detail=e.recovery_hint)
            return session.freeze()

        # Restart the clock so interpreter discovery is not billed to the run.
        session.timer.start()
        allowed, denied = module_policy(request.networking_enabled)
        script = build_wrapper(
            request.code,
            max_output_chars=session.max_output_chars + 1,
            allowed=allowed,
            denied=denied,
        )

        try:
            with tempfile.TemporaryDirectory(prefix="code_runner_") as workdir:
                await self._run_script(session, interpreter, script, Path(workdir))
        except Exception as e:
            logger.error(f"Python sandbox failed: {e}")
            session.fail(FailureKind.RUNTIME, f"Python execution failed: {e}")

        outcome = session.freeze()
        logger.debug(
            f"Python run finished in {outcome.elapsed_ms:.1f}ms (success={outcome.succeeded})"
        )
        return outcome

    async def _run_script(
        self,
        session: SandboxSession,
        interpreter: str,
        script: str,
        workdir: Path,
    ) -> None:
        request = session.request
        with tempfile.NamedTemporaryFile(
            mode="w",
            suffix=".py",
            prefix=WRAPPER_PREFIX,
            dir=workdir,
            delete=False,
            encoding="utf-8",
        ) as f:
            f.write(script)
            script_path = Path(f.name)

        proc = None
        try:
            proc = await asyncio.create_subprocess_exec(
                interpreter,
                "-I",
                "-X",
                "utf8",
                str(script_path),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(workdir),
                env=self._get_safe_env(workdir),
            )
            stdin_bytes = (request.stdin or "").encode("utf-8")

            guard = ResourceGuard(request.timeout_ms)
            try:
                stdout_b, stderr_b = await guard.run(
                    proc.communicate(stdin_bytes),
                    on_timeout=lambda: _terminate(proc),
                )
            except ExecutionTimeoutError as e:
                session.fail(FailureKind.TIMEOUT, str(e))
                return

            report = parse_wrapper_output(
                stdout_b.decode("utf-8", errors="replace"),
                stderr_b.decode("utf-8", errors="replace"),
            )
            self._apply_report(session, proc.returncode, report)
        finally:
            if proc is not None and proc.returncode is None:
                await _terminate(proc)
            script_path.unlink(missing_ok=True)

    def _get_safe_env(self, workdir: Path) -> dict[str, str]:
        """Minimal environment for the child interpreter."""
        return {
            "PATH": "/usr/bin:/bin",
            "HOME": str(workdir),
            "TMPDIR": str(workdir),
            "PYTHONPATH": "",
            "PYTHONUNBUFFERED": "1",
            "LANG": "C.UTF-8",
        }

    # ── Classification ────────────────────────────────────────────────

    def _apply_report(self, session: SandboxSession, return_code: int, report: WrapperReport) -> None:
        session.write_stdout(report.stdout)
        session.write_stderr(report.stderr)

        if return_code == 0 and report.has_records and report.fault is None:
            session.return_value = report.return_value
            return

        if report.fault is not None:
            self._classify_fault(session, report.fault)
        else:
            self._classify_diagnostics(session, return_code, report.diagnostics)

    def _classify_fault(self, session: SandboxSession, fault: dict) -> None:
        fault_type = str(fault.get("type") or "")
        message = str(fault.get("message") or fault_type or "Unknown error")
        line = fault.get("line") if isinstance(fault.get("line"), int) else None
        frames = fault.get("frames") or []
        stack = "\n".join(str(frame) for frame in frames) or None

        if fault_type == "SecurityError":
            detail = message.split(": ", 1)[-1]
            session.fail(
                FailureKind.SECURITY,
                f"Code execution blocked: {detail}",
                detail=detail,
                line=line,
            )
        elif fault_type in COMPILATION_FAULTS:
            session.fail(
                FailureKind.COMPILATION,
                "Syntax error in Python code",
                detail=message,
                line=line,
            )
        elif fault_type == "MemoryError" or is_memory_fault(message):
            session.fail(
                FailureKind.MEMORY,
                "Memory limit exceeded",
                detail="Try processing data in smaller chunks",
                line=line,
            )
        else:
            session.fail(FailureKind.RUNTIME, message, line=line, stack=stack)

    def _classify_diagnostics(
        self,
        session: SandboxSession,
        return_code: int,
        diagnostics: list[str],
    ) -> None:
        text = "\n".join(diagnostics)
        headline = diagnostics[-1].strip() if diagnostics else f"Interpreter exited with code {return_code}"
        match = _DIAGNOSTIC_LINE.search(text)
        line = int(match.group(1)) if match else None

        if "SecurityError" in text:
            session.fail(FailureKind.SECURITY, f"Code execution blocked: {headline}")
        elif any(name in text for name in COMPILATION_FAULTS):
            session.fail(FailureKind.COMPILATION, "Syntax error in Python code", detail=headline, line=line)
        elif is_memory_fault(text):
            session.fail(
                FailureKind.MEMORY,
                "Memory limit exceeded",
                detail="Try processing data in smaller chunks",
            )
        else:
            session.fail(FailureKind.RUNTIME, headline, stack=text or None)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill the child if it is still running and reap it."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()
