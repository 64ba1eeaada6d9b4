"""
Python interpreter discovery for the process sandbox.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import sys
from collections.abc import Iterable

from ...core.exceptions import InterpreterNotFoundError
from ...core.logging import get_logger

logger = get_logger(__name__)

PROBE_TIMEOUT_SECONDS = 5.0


def candidate_interpreters(configured: Iterable[str] | None = None) -> list[str]:
    """Ordered, de-duplicated interpreter candidates."""
    candidates: list[str] = []
    for candidate in [*(configured or ()), sys.executable]:
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


def _is_python3(version_output: str) -> bool:
    return version_output.strip().startswith("Python 3")


async def probe_interpreter(candidate: str) -> str | None:
    """Return the version string if ``candidate`` is a working Python 3, else None."""
    executable = shutil.which(candidate)
    if executable is None:
        return None

    try:
        proc = await asyncio.create_subprocess_exec(
            executable,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        logger.debug(f"Interpreter candidate {candidate} failed to start: {e}")
        return None

    try:
        output, _ = await asyncio.wait_for(proc.communicate(), timeout=PROBE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return None

    version = output.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0 or not _is_python3(version):
        return None
    return version


async def resolve_interpreter(configured: Iterable[str] | None = None) -> str:
    """
    Find the first candidate that reports a working Python 3 version.

    Raises:
        InterpreterNotFoundError: If no candidate works
    """
    candidates = candidate_interpreters(configured)
    for candidate in candidates:
        version = await probe_interpreter(candidate)
        if version is not None:
            logger.debug(f"Using interpreter {candidate} ({version})")
            return shutil.which(candidate) or candidate
    raise InterpreterNotFoundError(candidates)


def check_interpreter_health(configured: Iterable[str] | None = None) -> tuple[bool, str]:
    """Synchronous probe used by diagnostics."""
    for candidate in candidate_interpreters(configured):
        executable = shutil.which(candidate)
        if executable is None:
            continue
        try:
            result = subprocess.run(
                [executable, "--version"],
                capture_output=True,
                text=True,
                timeout=PROBE_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            continue
        version = (result.stdout or result.stderr).strip()
        if result.returncode == 0 and _is_python3(version):
            return True, f"{version} at {executable}"
    return False, "no working Python 3 interpreter found"
