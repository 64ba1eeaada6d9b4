"""
In-process JavaScript sandbox backed by QuickJS.

Architecture:

    JavaScriptSandbox.run(request)
        │
        ├── ResourceGuard (asyncio.wait_for) ──────────────┐
        │                                                  │ races
        └── asyncio.to_thread(_execute) ◄──────────────────┘
                │
                ├── quickjs.Context()          fresh per run, same thread
                ├── set_time_limit / set_memory_limit
                ├── eval(PRELUDE)              strip globals, install console,
                │                              readline, timers, serializer
                ├── eval(try { code } catch)   completion value = returnValue
                ├── eval(flush timers)
                └── drain()                    captured stdout/stderr as JSON

quickjs refuses calls into Python while a time limit is set, so the
context never calls back into the host: console output is buffered inside
the context and stdin is handed in as an array. The buffers are read after
the run, on the fault path as well.

A QuickJS context records the stack position of the thread that created
it, so the context is created, used and dropped inside the worker thread.
The interpreter deadline and the guard share the same budget; whichever
fires first decides the timeout.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

from ...core.config import RunnerConfig
from ...core.exceptions import ExecutionTimeoutError
from ...core.logging import get_logger
from ...execution.guard import ResourceGuard
from ...execution.memory import is_memory_fault
from ...execution.models import ExecutionOutcome, ExecutionRequest, FailureKind, Language
from ...validation.models import ValidationOutcome
from ...validation.security import SecurityValidator
from .base import SandboxSession

try:
    import quickjs

    QUICKJS_AVAILABLE = True
except ImportError:
    quickjs = None
    QUICKJS_AVAILABLE = False

logger = get_logger(__name__)

SAFE_GLOBALS = (
    "Object",
    "Array",
    "Number",
    "parseFloat",
    "parseInt",
    "Infinity",
    "NaN",
    "undefined",
    "Boolean",
    "String",
    "Symbol",
    "Date",
    "RegExp",
    "JSON",
    "Math",
    "Map",
    "Set",
    "WeakMap",
    "WeakSet",
    "BigInt",
    "Error",
    "EvalError",
    "RangeError",
    "ReferenceError",
    "SyntaxError",
    "TypeError",
    "URIError",
    "AggregateError",
    "isNaN",
    "isFinite",
    "encodeURI",
    "encodeURIComponent",
    "decodeURI",
    "decodeURIComponent",
    "escape",
    "unescape",
    "globalThis",
)

# Names of helpers the prelude installs on the global object.
RECORD_FN = "__code_runner_record"
FLUSH_FN = "__code_runner_flush_timers"
SERIALIZE_FN = "__code_runner_serialize"
DRAIN_FN = "__code_runner_drain"

PRELUDE = r"""
(function (allowed, timerCeiling, stdinLines, outputLimit) {
  "use strict";
  var streams = { stdout: [], stderr: [] };
  var sizes = { stdout: 0, stderr: 0 };
  function write(stream, text) {
    var room = outputLimit - sizes[stream];
    if (room <= 0) return;
    text = text + "\n";
    if (text.length > room) text = text.slice(0, room);
    streams[stream].push(text);
    sizes[stream] += text.length;
  }
  var stringify = JSON.stringify;
  function drain() {
    return stringify({ stdout: streams.stdout.join(""), stderr: streams.stderr.join("") });
  }

  var keep = {};
  for (var i = 0; i < allowed.length; i++) keep[allowed[i]] = true;
  Object.getOwnPropertyNames(globalThis).forEach(function (name) {
    if (!keep[name]) {
      try { delete globalThis[name]; } catch (e) { globalThis[name] = undefined; }
    }
  });
  [function () {}, function* () {}, async function () {}, async function* () {}].forEach(
    function (fn) { delete Object.getPrototypeOf(fn).constructor; }
  );

  function format(value) {
    if (Array.isArray(value)) return "[ " + value.join(", ") + " ]";
    if (value !== null && typeof value === "object") {
      try { return stringify(value); } catch (e) { return String(value); }
    }
    return String(value);
  }
  function render(args) {
    return Array.prototype.map.call(args, format).join(" ");
  }

  var console = Object.freeze({
    log: function () { write("stdout", render(arguments)); },
    info: function () { write("stdout", "INFO: " + render(arguments)); },
    warn: function () { write("stderr", "WARN: " + render(arguments)); },
    error: function () { write("stderr", render(arguments)); }
  });

  var timers = [];
  function setTimeout(fn, delay) {
    delay = Number(delay) || 0;
    if (delay >= timerCeiling) {
      throw new RangeError("setTimeout delay must be less than " + timerCeiling + "ms");
    }
    if (typeof fn !== "function") throw new TypeError("setTimeout callback must be a function");
    timers.push({ fn: fn, delay: delay, args: Array.prototype.slice.call(arguments, 2),
                  seq: timers.length, done: false });
    return timers.length;
  }
  function clearTimeout(id) {
    var timer = timers[id - 1];
    if (timer) timer.done = true;
  }
  function setInterval() { throw new Error("setInterval is not allowed"); }
  function flushTimers() {
    for (;;) {
      var next = null;
      for (var i = 0; i < timers.length; i++) {
        var t = timers[i];
        if (!t.done && (next === null || t.delay < next.delay)) next = t;
      }
      if (next === null) return;
      next.done = true;
      next.fn.apply(undefined, next.args);
    }
  }

  function record(error) {
    var text = (error !== null && typeof error === "object" && "message" in error)
      ? error.message : String(error);
    write("stderr", text);
  }

  function serialize(value) {
    var ancestors = [];
    return stringify(value, function (key, item) {
      if (typeof item === "function") return "[Function]";
      if (typeof item === "bigint") return item.toString();
      if (item === undefined) return null;
      if (item !== null && typeof item === "object") {
        while (ancestors.length && ancestors[ancestors.length - 1] !== this) ancestors.pop();
        if (ancestors.indexOf(item) !== -1) return "[Circular Reference]";
        ancestors.push(item);
      }
      return item;
    });
  }

  function readline() {
    return stdinLines.length ? stdinLines.shift() : "";
  }

  var installed = {
    console: console, readline: readline, setTimeout: setTimeout,
    clearTimeout: clearTimeout, setInterval: setInterval
  };
  installed["%(record)s"] = record;
  installed["%(flush)s"] = flushTimers;
  installed["%(serialize)s"] = serialize;
  installed["%(drain)s"] = drain;
  Object.keys(installed).forEach(function (name) {
    Object.defineProperty(globalThis, name, { value: installed[name], writable: false });
  });
})(%(allowed)s, %(ceiling)d, %(stdin)s, %(limit)d);
"""

# User code starts on the second line of the wrapped script.
LINE_OFFSET = 1

_LINE_PATTERNS = (re.compile(r"<input>:(\d+)"), re.compile(r"line (\d+)", re.IGNORECASE))


def _wrap_user_code(code: str) -> str:
    return (
        "try {\n"
        f"{code}\n"
        f"}} catch (__code_runner_error) {{ {RECORD_FN}(__code_runner_error); "
        "throw __code_runner_error; }"
    )


def _extract_line(text: str, line_count: int | None = None) -> int | None:
    for pattern in _LINE_PATTERNS:
        match = pattern.search(text)
        if match:
            line = max(int(match.group(1)) - LINE_OFFSET, 1)
            if line_count is not None:
                # QuickJS reports unexpected end of input one line past the source.
                line = min(line, max(line_count, 1))
            return line
    return None


class _JavaScriptFault(Exception):
    """Carries a QuickJS exception message out of the worker thread."""

    def __init__(self, text: str):
        super().__init__(text)
        self.text = text


class JavaScriptSandbox:
    """Runs JavaScript in a fresh QuickJS context per request."""

    language = Language.JAVASCRIPT

    def __init__(
        self,
        config: RunnerConfig | None = None,
        validator: SecurityValidator | None = None,
    ):
        self.config = config or RunnerConfig()
        self.validator = validator or SecurityValidator()

    @classmethod
    def check_health(cls) -> tuple[bool, str]:
        """Report whether QuickJS can run code and capture its console output."""
        if not QUICKJS_AVAILABLE:
            return False, "quickjs not installed (pip install quickjs)"
        session = SandboxSession(
            ExecutionRequest(code='console.log("ok")', language=Language.JAVASCRIPT, timeout_ms=1000)
        )
        try:
            cls()._execute(session)
        except _JavaScriptFault as fault:
            return False, f"quickjs failed to run console.log: {fault.text}"
        except Exception as e:
            return False, f"quickjs failed to run console.log: {e}"
        if session.stdout != "ok":
            return False, f"quickjs console capture returned {session.stdout!r}"
        return True, "quickjs available"

    def validate(self, code: str, *, networking_enabled: bool = False) -> ValidationOutcome:
        return self.validator.validate(self.language, code, networking_enabled=networking_enabled)

    async def run(self, request: ExecutionRequest) -> ExecutionOutcome:
        session = SandboxSession(request, max_output_chars=self.config.output.max_bytes)

        if not QUICKJS_AVAILABLE:
            session.fail(
                FailureKind.RUNTIME,
                "JavaScript engine is not available",
                detail="Install the quickjs package to enable JavaScript execution",
            )
            return session.freeze()

        guard = ResourceGuard(request.timeout_ms)
        logger.debug(f"Starting JavaScript run with {request.timeout_ms}ms deadline")
        try:
            session.return_value = await guard.run(asyncio.to_thread(self._execute, session))
        except ExecutionTimeoutError as e:
            session.fail(FailureKind.TIMEOUT, str(e))
        except _JavaScriptFault as fault:
            self._classify_fault(session, fault.text)
        except Exception as e:
            logger.error(f"JavaScript sandbox failed: {e}")
            session.fail(FailureKind.RUNTIME, f"JavaScript execution failed: {e}")

        outcome = session.freeze()
        logger.debug(
            f"JavaScript run finished in {outcome.elapsed_ms:.1f}ms (success={outcome.succeeded})"
        )
        return outcome

    # ── Worker thread ─────────────────────────────────────────────────

    def _execute(self, session: SandboxSession) -> Any:
        request = session.request
        stdin_lines = request.stdin.split("\n") if request.stdin else []

        context = quickjs.Context()
        context.set_memory_limit(self.config.sandbox.javascript_heap_limit_mb * 1024 * 1024)
        context.set_time_limit(request.timeout_seconds)

        prelude = PRELUDE % {
            "record": RECORD_FN,
            "flush": FLUSH_FN,
            "serialize": SERIALIZE_FN,
            "drain": DRAIN_FN,
            "allowed": json.dumps(list(SAFE_GLOBALS)),
            "ceiling": self.config.sandbox.timer_ceiling_ms,
            "stdin": json.dumps(stdin_lines),
            "limit": session.max_output_chars + 1,
        }

        try:
            context.eval(prelude)
            try:
                completion = context.eval(_wrap_user_code(request.code))
                context.eval(f"{FLUSH_FN}()")
                return self._to_python(context, completion)
            finally:
                self._drain(context, session)
        except quickjs.JSException as e:
            raise _JavaScriptFault(str(e)) from None

    @staticmethod
    def _drain(context: Any, session: SandboxSession) -> None:
        """Copy the console buffers out of the context into the session."""
        drain = context.get(DRAIN_FN)
        if drain is None:
            return
        try:
            captured = json.loads(drain())
        except quickjs.JSException as e:
            logger.debug(f"Could not read JavaScript console buffers: {e}")
            return
        session.write_stdout(captured["stdout"])
        session.write_stderr(captured["stderr"])

    @staticmethod
    def _to_python(context: Any, value: Any) -> Any:
        if isinstance(value, quickjs.Object):
            serialized = context.get(SERIALIZE_FN)(value)
            return None if serialized is None else json.loads(serialized)
        return value

    # ── Classification ────────────────────────────────────────────────

    def _classify_fault(self, session: SandboxSession, text: str) -> None:
        lines = [line for line in text.strip().split("\n") if line.strip()]
        headline = lines[0].strip() if lines else "Unknown JavaScript error"
        trace = "\n".join(line.strip() for line in lines[1:]) or None
        line_count = len(session.request.code.split("\n"))

        if headline.startswith("InternalError: interrupted"):
            session.fail(
                FailureKind.TIMEOUT,
                f"Code execution timed out after {session.request.timeout_ms}ms",
            )
        elif is_memory_fault(headline):
            session.fail(
                FailureKind.MEMORY,
                "Memory limit exceeded",
                detail="Try processing data in smaller chunks",
            )
        elif headline.startswith("SyntaxError"):
            session.fail(
                FailureKind.COMPILATION,
                "Syntax error in JavaScript code",
                detail=headline,
                line=_extract_line(text, line_count),
            )
        else:
            session.fail(
                FailureKind.RUNTIME,
                headline,
                line=_extract_line(trace or "", line_count),
                stack=trace,
            )
