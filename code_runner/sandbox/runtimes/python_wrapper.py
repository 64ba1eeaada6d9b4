"""
Generated wrapper script for the Python child process.

The wrapper runs the submitted code with an isolated globals dict whose
``__builtins__`` mapping carries a capability-gated ``__import__``, a
refusing ``open`` and refusing ``eval``/``exec``/``compile``. The
child's real ``builtins`` module is left untouched; the wrapper's own
``exec`` is the only path that runs the submitted code.

Captured streams, the final expression value and any fault are written
back as single-line records: a sentinel prefix followed by JSON.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

STDOUT_PREFIX = "@@code-runner:stdout@@"
STDERR_PREFIX = "@@code-runner:stderr@@"
RESULT_PREFIX = "@@code-runner:result@@"
FAULT_PREFIX = "@@code-runner:fault@@"

SOURCE_FILENAME = "<sandbox>"

ALLOWED_MODULES = frozenset(
    {
        "math",
        "cmath",
        "random",
        "datetime",
        "json",
        "base64",
        "hashlib",
        "collections",
        "itertools",
        "functools",
        "re",
        "string",
        "statistics",
        "decimal",
        "fractions",
        "textwrap",
        "heapq",
        "bisect",
        "copy",
        "dataclasses",
        "enum",
        "typing",
        "time",
        "calendar",
        "operator",
        "uuid",
        "unicodedata",
        "numbers",
    }
)

DENIED_MODULES = frozenset(
    {
        "os",
        "sys",
        "subprocess",
        "socket",
        "urllib",
        "urllib2",
        "urllib3",
        "requests",
        "http",
        "ftplib",
        "smtplib",
        "telnetlib",
        "webbrowser",
        "tempfile",
        "shutil",
        "glob",
        "fnmatch",
        "pathlib",
        "importlib",
        "ctypes",
        "multiprocessing",
        "threading",
        "_thread",
        "signal",
        "pty",
        "inspect",
        "gc",
        "builtins",
        "io",
        "pickle",
        "marshal",
        "ssl",
        "asyncio",
        "code",
        "codeop",
        "runpy",
    }
)

NETWORK_MODULES = frozenset({"socket", "ssl", "http", "urllib"})

WRAPPER_TEMPLATE = r'''
import ast
import builtins
import contextlib
import io
import json
import linecache
import sys
import traceback

SOURCE = __SOURCE__
ALLOWED = frozenset(__ALLOWED__)
DENIED = frozenset(__DENIED__)
MAX_CHARS = __MAX_CHARS__
FILENAME = __FILENAME__
RESULT_NAME = "__code_runner_result__"
REMOVED_BUILTINS = ("breakpoint", "help", "exit", "quit", "copyright", "credits", "license")

_original_import = builtins.__import__
_original_exec = builtins.exec


class SecurityError(Exception):
    pass


class BoundedBuffer(io.StringIO):
    def __init__(self):
        super().__init__()
        self.size = 0
        self.truncated = False

    def write(self, text):
        if self.truncated:
            return len(text)
        room = MAX_CHARS - self.size
        if len(text) > room:
            text = text[:room]
            self.truncated = True
        self.size += len(text)
        return super().write(text)


def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
    if level:
        raise SecurityError("Relative imports are not allowed")
    root = name.partition(".")[0]
    if root in DENIED:
        raise SecurityError(f"Import of module '{root}' is not allowed")
    if root not in ALLOWED:
        raise SecurityError(f"Module '{root}' is not in the list of permitted modules")
    return _original_import(name, globals, locals, fromlist, level)


def refuse_open(*args, **kwargs):
    raise SecurityError("File operations are not allowed")


def refusing(name):
    def refuse(*args, **kwargs):
        raise SecurityError(f"{name}() is not allowed")
    refuse.__name__ = name
    return refuse


def sandbox_builtins():
    table = dict(vars(builtins))
    for name in REMOVED_BUILTINS:
        table.pop(name, None)
    table["__import__"] = guarded_import
    table["open"] = refuse_open
    for name in ("eval", "exec", "compile"):
        table[name] = refusing(name)
    return table


def compile_source():
    tree = ast.parse(SOURCE, filename=FILENAME, mode="exec")
    capture = bool(tree.body) and isinstance(tree.body[-1], ast.Expr)
    if capture:
        last = tree.body[-1]
        tree.body[-1] = ast.copy_location(
            ast.Assign(targets=[ast.Name(id=RESULT_NAME, ctx=ast.Store())], value=last.value),
            last,
        )
        ast.fix_missing_locations(tree)
    return compile(tree, FILENAME, "exec"), capture


def jsonable(value):
    def fallback(item):
        if isinstance(item, (set, frozenset, tuple)):
            return list(item)
        if callable(item):
            return "[Function]"
        return f"[Object: {type(item).__name__}]"

    try:
        return json.loads(json.dumps(value, default=fallback))
    except ValueError:
        return "[Circular Reference]"


def describe(error):
    frames = [
        frame for frame in traceback.extract_tb(error.__traceback__)
        if frame.filename == FILENAME
    ]
    return {
        "type": type(error).__name__,
        "message": f"{type(error).__name__}: {error}",
        "line": frames[-1].lineno if frames else None,
        "frames": [line.rstrip("\n") for line in traceback.format_list(frames)],
    }


def emit(stream, prefix, payload):
    stream.write(prefix + json.dumps(payload) + "\n")
    stream.flush()


def main():
    linecache.cache[FILENAME] = (len(SOURCE), None, SOURCE.splitlines(True), FILENAME)
    stdout = BoundedBuffer()
    stderr = BoundedBuffer()
    fault = None
    result = None

    try:
        code, capture = compile_source()
    except SyntaxError as e:
        fault = {
            "type": type(e).__name__,
            "message": f"{e.msg} (line {e.lineno})",
            "line": e.lineno,
            "frames": [],
        }
    else:
        namespace = {"__builtins__": sandbox_builtins(), "__name__": "__main__"}
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            try:
                _original_exec(code, namespace)
                if capture:
                    result = jsonable(namespace.get(RESULT_NAME))
            except SystemExit as e:
                if e.code not in (None, 0):
                    fault = {"type": "SystemExit", "message": f"SystemExit: {e.code}",
                             "line": None, "frames": []}
            except BaseException as e:
                fault = describe(e)

    emit(sys.__stdout__, __STDOUT_PREFIX__, stdout.getvalue())
    emit(sys.__stderr__, __STDERR_PREFIX__, stderr.getvalue())
    if fault is None:
        emit(sys.__stdout__, __RESULT_PREFIX__, result)
        return 0
    emit(sys.__stderr__, __FAULT_PREFIX__, fault)
    return 1


sys.exit(main())
'''


def build_wrapper(
    code: str,
    *,
    max_output_chars: int,
    allowed: Iterable[str] = ALLOWED_MODULES,
    denied: Iterable[str] = DENIED_MODULES,
) -> str:
    """Render the wrapper script with ``code`` embedded as a string literal."""
    replacements = {
        "__SOURCE__": repr(code),
        "__ALLOWED__": repr(sorted(allowed)),
        "__DENIED__": repr(sorted(denied)),
        "__MAX_CHARS__": repr(int(max_output_chars)),
        "__FILENAME__": repr(SOURCE_FILENAME),
        "__STDOUT_PREFIX__": repr(STDOUT_PREFIX),
        "__STDERR_PREFIX__": repr(STDERR_PREFIX),
        "__RESULT_PREFIX__": repr(RESULT_PREFIX),
        "__FAULT_PREFIX__": repr(FAULT_PREFIX),
    }
    script = WRAPPER_TEMPLATE
    # SOURCE goes last so submitted text is never rescanned for placeholders.
    for placeholder, value in replacements.items():
        if placeholder != "__SOURCE__":
            script = script.replace(placeholder, value)
    return script.replace("__SOURCE__", replacements["__SOURCE__"], 1)


def module_policy(networking_enabled: bool) -> tuple[frozenset[str], frozenset[str]]:
    """Allowed and denied module sets for a request."""
    if not networking_enabled:
        return ALLOWED_MODULES, DENIED_MODULES
    return ALLOWED_MODULES | NETWORK_MODULES, DENIED_MODULES - NETWORK_MODULES


@dataclass(slots=True)
class WrapperReport:
    """Records parsed back out of the child's streams."""

    stdout: str = ""
    stderr: str = ""
    return_value: Any = None
    fault: dict[str, Any] | None = None
    has_records: bool = False
    diagnostics: list[str] = field(default_factory=list)


def parse_wrapper_output(stdout: str, stderr: str) -> WrapperReport:
    """Split sentinel records from interpreter diagnostics."""
    report = WrapperReport()

    for index, stream in enumerate((stdout, stderr)):
        for line in stream.splitlines():
            if line.startswith(STDOUT_PREFIX):
                report.stdout = _load(line[len(STDOUT_PREFIX):], "")
                report.has_records = True
            elif line.startswith(STDERR_PREFIX):
                report.stderr = _load(line[len(STDERR_PREFIX):], "")
                report.has_records = True
            elif line.startswith(RESULT_PREFIX):
                report.return_value = _load(line[len(RESULT_PREFIX):], None)
            elif line.startswith(FAULT_PREFIX):
                fault = _load(line[len(FAULT_PREFIX):], None)
                report.fault = fault if isinstance(fault, dict) else None
            elif index == 1 and line.strip():
                report.diagnostics.append(line)

    return report


def _load(payload: str, default: Any) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return default
