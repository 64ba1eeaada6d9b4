"""
Tests for the in-process QuickJS sandbox.
"""

import asyncio
import time

import pytest

from code_runner.execution.models import FailureKind
from code_runner.sandbox.runtimes import QUICKJS_AVAILABLE, JavaScriptSandbox
from code_runner.sandbox.runtimes.javascript_runtime import (
    _extract_line,
    _JavaScriptFault,
    _wrap_user_code,
)

pytestmark = pytest.mark.skipif(not QUICKJS_AVAILABLE, reason="quickjs not installed")


@pytest.fixture
def sandbox(runner_config):
    return JavaScriptSandbox(runner_config)


def test_wrapped_code_starts_on_second_line():
    wrapped = _wrap_user_code("x")

    assert wrapped.split("\n")[1] == "x"
    assert _extract_line("SyntaxError: bad\n    at <input>:3") == 2


def test_reported_line_stays_within_the_source():
    assert _extract_line("SyntaxError: unexpected token\n    at <input>:2", line_count=1) == 1
    assert _extract_line("SyntaxError: bad\n    at <input>:3", line_count=5) == 2


def test_health_check():
    available, detail = JavaScriptSandbox.check_health()

    assert available, detail


def test_health_check_reports_engine_faults(monkeypatch):
    def refuse(self, session):
        raise _JavaScriptFault("InternalError: Can not call into Python with a time limit set.")

    monkeypatch.setattr(JavaScriptSandbox, "_execute", refuse)

    available, detail = JavaScriptSandbox.check_health()

    assert available is False
    assert "Can not call into Python" in detail


def test_health_check_requires_captured_output(monkeypatch):
    monkeypatch.setattr(JavaScriptSandbox, "_execute", lambda self, session: None)

    available, detail = JavaScriptSandbox.check_health()

    assert available is False
    assert "console capture" in detail


class TestOutput:
    @pytest.mark.asyncio
    async def test_hello_world(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", 'console.log("Hello, World!");'))

        assert outcome.succeeded, outcome.failure_message
        assert outcome.stdout == "Hello, World!"
        assert outcome.stderr == ""

    @pytest.mark.asyncio
    async def test_completion_value_is_returned(self, sandbox, make_request, sample_javascript_code):
        outcome = await sandbox.run(make_request("javascript", sample_javascript_code))

        assert outcome.stdout == "Sum: 15"
        assert outcome.return_value == 30

    @pytest.mark.asyncio
    async def test_objects_are_returned_as_json(self, sandbox, make_request):
        code = "const point = { x: 1, tags: ['a', 'b'], nested: { ok: true } };\npoint"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.return_value == {"x": 1, "tags": ["a", "b"], "nested": {"ok": True}}

    @pytest.mark.asyncio
    async def test_cyclic_values_are_marked(self, sandbox, make_request):
        code = "const node = { name: 'root' };\nnode.self = node;\nnode"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.return_value == {"name": "root", "self": "[Circular Reference]"}

    @pytest.mark.asyncio
    async def test_console_levels(self, sandbox, make_request):
        code = "console.log('a', 1, [1, 2]);\nconsole.info('b');\nconsole.warn('c');\nconsole.error('d');"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.stdout == "a 1 [ 1, 2 ]\nINFO: b"
        assert outcome.stderr == "WARN: c\nd"

    @pytest.mark.asyncio
    async def test_multibyte_output(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "console.log('héllo ✓ 日本語');"))

        assert outcome.stdout == "héllo ✓ 日本語"

    @pytest.mark.asyncio
    async def test_readline_consumes_stdin(self, sandbox, make_request):
        code = (
            "console.log('What is your name?');\n"
            "const name = readline();\n"
            "console.log('Hello, ' + name + '!');"
        )

        outcome = await sandbox.run(make_request("javascript", code, stdin="Alice"))

        assert outcome.stdout == "What is your name?\nHello, Alice!"

    @pytest.mark.asyncio
    async def test_readline_reads_lines_in_order(self, sandbox, make_request):
        code = "const a = readline();\nconst b = readline();\nconsole.log(b + ',' + a);\nreadline()"

        outcome = await sandbox.run(make_request("javascript", code, stdin="first\nsecond"))

        assert outcome.stdout == "second,first"
        assert outcome.return_value == ""

    @pytest.mark.asyncio
    async def test_readline_without_stdin_returns_empty(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "readline()"))

        assert outcome.return_value == ""


class TestTimers:
    @pytest.mark.asyncio
    async def test_timers_run_after_main_code_in_delay_order(self, sandbox, make_request):
        code = (
            "setTimeout(() => console.log('slow'), 50);\n"
            "setTimeout(() => console.log('fast'), 10);\n"
            "console.log('now');"
        )

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.stdout == "now\nfast\nslow"

    @pytest.mark.asyncio
    async def test_cleared_timer_does_not_run(self, sandbox, make_request):
        code = "const id = setTimeout(() => console.log('never'), 5);\nclearTimeout(id);"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.succeeded
        assert outcome.stdout == ""

    @pytest.mark.asyncio
    async def test_long_delays_are_rejected(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "setTimeout(() => {}, 1000);"))

        assert outcome.failure_kind is FailureKind.RUNTIME
        assert "less than 1000ms" in outcome.failure_message

    @pytest.mark.asyncio
    async def test_set_interval_is_rejected(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "setInterval(() => {}, 10);"))

        assert outcome.failure_kind is FailureKind.RUNTIME
        assert "setInterval is not allowed" in outcome.failure_message


class TestIsolation:
    @pytest.mark.asyncio
    async def test_host_globals_are_absent(self, sandbox, make_request):
        code = "[typeof require, typeof process, typeof Function, typeof eval, typeof __host_write]"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.return_value == ["undefined"] * 5

    @pytest.mark.asyncio
    async def test_function_constructor_is_unreachable(self, sandbox, make_request):
        code = "(function () {}).constructor === Object"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.return_value is True

    @pytest.mark.asyncio
    async def test_globals_do_not_leak_between_runs(self, sandbox, make_request):
        await sandbox.run(make_request("javascript", "var leaked = 42;"))
        outcome = await sandbox.run(make_request("javascript", "typeof leaked"))

        assert outcome.return_value == "undefined"

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_isolated(self, sandbox, make_request):
        outcomes = await asyncio.gather(
            *(
                sandbox.run(make_request("javascript", f"var v = {i};\nconsole.log(v);\nv"))
                for i in range(4)
            )
        )

        assert [o.stdout for o in outcomes] == ["0", "1", "2", "3"]
        assert [o.return_value for o in outcomes] == [0, 1, 2, 3]


class TestFailures:
    @pytest.mark.asyncio
    async def test_syntax_error(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "const x = ;"))

        assert outcome.failure_kind is FailureKind.COMPILATION
        assert outcome.failure_message == "Syntax error in JavaScript code"
        assert outcome.failure_detail.startswith("SyntaxError")

    @pytest.mark.asyncio
    async def test_unterminated_source_points_at_last_line(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "function f( {"))

        assert outcome.failure_kind is FailureKind.COMPILATION
        assert outcome.line == 1

    @pytest.mark.asyncio
    async def test_runtime_error(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "const a = null;\na.missing;"))

        assert outcome.failure_kind is FailureKind.RUNTIME
        assert outcome.failure_message.startswith("TypeError")
        assert outcome.line == 2
        assert outcome.return_value is None

    @pytest.mark.asyncio
    async def test_output_before_a_throw_is_kept(self, sandbox, make_request):
        code = "console.log('before');\nconsole.error('oops');\nthrow new Error('x');"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.failure_kind is FailureKind.RUNTIME
        assert outcome.stdout == "before"
        assert outcome.stderr.startswith("oops")

    @pytest.mark.asyncio
    async def test_thrown_values(self, sandbox, make_request):
        outcome = await sandbox.run(make_request("javascript", "throw new Error('custom failure');"))

        assert outcome.failure_kind is FailureKind.RUNTIME
        assert "custom failure" in outcome.failure_message

    @pytest.mark.asyncio
    async def test_infinite_loop_times_out(self, sandbox, make_request):
        started = time.perf_counter()
        outcome = await sandbox.run(make_request("javascript", "while (true) {}", timeout_ms=1_000))
        elapsed = time.perf_counter() - started

        assert outcome.failure_kind is FailureKind.TIMEOUT
        assert outcome.failure_message == "Code execution timed out after 1000ms"
        assert elapsed < 2.0

    @pytest.mark.asyncio
    async def test_heap_exhaustion_is_a_memory_error(self, runner_config, make_request):
        runner_config.sandbox.javascript_heap_limit_mb = 32
        sandbox = JavaScriptSandbox(runner_config)
        code = "const chunks = [];\nfor (let i = 0; i >= 0; i++) { chunks.push(new Array(100000).fill(i)); }"

        outcome = await sandbox.run(make_request("javascript", code))

        assert outcome.failure_kind is FailureKind.MEMORY
        assert outcome.failure_message == "Memory limit exceeded"

    @pytest.mark.asyncio
    async def test_output_ceiling(self, runner_config, make_request):
        runner_config.output.max_bytes = 500
        sandbox = JavaScriptSandbox(runner_config)

        outcome = await sandbox.run(
            make_request("javascript", "for (let i = 0; i < 2000; i++) { console.log(i); }")
        )

        assert outcome.succeeded
        assert outcome.stdout.endswith("(output truncated due to size limit)")
