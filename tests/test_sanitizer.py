"""
Tests for output sanitization.
"""

import math

from hypothesis import given
from hypothesis import strategies as st

from code_runner.execution.sanitizer import (
    CIRCULAR,
    ERROR_MARKER,
    FUNCTION,
    LINE_MARKER,
    PATH_REDACTED,
    REDACTED,
    SIZE_MARKER,
    OutputSanitizer,
)

json_values = st.recursive(
    st.none()
    | st.booleans()
    | st.integers()
    | st.floats(allow_nan=True, allow_infinity=True)
    | st.text(max_size=30),
    lambda children: st.lists(children, max_size=5)
    | st.dictionaries(st.text(max_size=10), children, max_size=5),
    max_leaves=25,
)


class TestSanitizeOutput:
    def test_plain_text_is_unchanged(self):
        assert OutputSanitizer().sanitize_output("Hello, World!") == "Hello, World!"

    def test_multibyte_text_is_unchanged(self):
        text = "héllo wörld ✓ 日本語"

        assert OutputSanitizer().sanitize_output(text) == text

    def test_empty_and_none(self):
        sanitizer = OutputSanitizer()

        assert sanitizer.sanitize_output("") == ""
        assert sanitizer.sanitize_output(None) == ""

    def test_strips_ansi_sequences(self):
        text = "\x1b[31mred\x1b[0m and \x1b]0;title\x07plain\x00"

        assert OutputSanitizer().sanitize_output(text) == "red and plain"

    def test_normalizes_line_endings(self):
        assert OutputSanitizer().sanitize_output("a\r\nb\rc") == "a\nb\nc"

    def test_redacts_credentials(self):
        text = "password=hunter2 api_key: abc123 Authorization: Bearer eyJhbGci"
        result = OutputSanitizer().sanitize_output(text)

        assert "hunter2" not in result
        assert "abc123" not in result
        assert "eyJhbGci" not in result
        assert REDACTED in result

    def test_redacts_home_directories(self):
        result = OutputSanitizer().sanitize_output("saved to /home/alice/secrets.txt")

        assert "alice" not in result
        assert REDACTED in result

    def test_byte_ceiling(self):
        sanitizer = OutputSanitizer(max_bytes=100)
        result = sanitizer.sanitize_output("x" * 1000)

        assert result.endswith(SIZE_MARKER)
        assert len(result.encode("utf-8")) <= 100

    def test_byte_ceiling_never_splits_characters(self):
        sanitizer = OutputSanitizer(max_bytes=101)
        result = sanitizer.sanitize_output("é" * 500)

        result.encode("utf-8")
        assert result.endswith(SIZE_MARKER)

    def test_line_ceiling(self):
        sanitizer = OutputSanitizer(max_lines=5)
        result = sanitizer.sanitize_output("\n".join(str(i) for i in range(20)))

        lines = result.split("\n")
        assert len(lines) == 5
        assert lines[-1] == LINE_MARKER

    @given(text=st.text(max_size=500))
    def test_sanitize_output_is_idempotent(self, text):
        sanitizer = OutputSanitizer(max_bytes=200, max_lines=10)
        once = sanitizer.sanitize_output(text)

        assert sanitizer.sanitize_output(once) == once


class TestSanitizeErrors:
    def test_removes_internal_lines_and_paths(self):
        message = (
            "ValueError: bad value\n"
            '  File "/usr/lib/python3/site-packages/thing.py", line 3\n'
            "while reading /var/data/input.csv"
        )
        result = OutputSanitizer().sanitize_error(message)

        assert "site-packages" not in result
        assert "/var/data/input.csv" not in result
        assert PATH_REDACTED in result
        assert result.startswith("ValueError: bad value")

    def test_long_errors_are_truncated(self):
        result = OutputSanitizer().sanitize_error("e" * 5000)

        assert len(result) <= 2000
        assert result.endswith(ERROR_MARKER)

    def test_stack_trace_keeps_basenames_and_frame_limit(self):
        frames = "\n".join(f'  File "/srv/app/module{i}.py", line {i}, in f' for i in range(20))
        result = OutputSanitizer().sanitize_stack_trace(frames)

        lines = result.split("\n")
        assert len(lines) == 10
        assert lines[0] == '  File "module0.py", line 0, in f'
        assert "/srv/app" not in result

    def test_stack_trace_drops_internal_frames(self):
        stack = (
            '  File "<sandbox>", line 2, in <module>\n'
            '  File "/tmp/code_runner_wrapper_abc.py", line 80, in main\n'
            '  File "<frozen importlib._bootstrap>", line 1, in _find'
        )
        result = OutputSanitizer().sanitize_stack_trace(stack)

        assert result == '  File "<sandbox>", line 2, in <module>'

    def test_safe_error_message(self):
        result = OutputSanitizer.create_safe_error_message(
            RuntimeError("failed at /opt/runner/core.py"), "executor failed"
        )

        assert result.startswith("executor failed: ")
        assert "/opt/runner" not in result
        assert len(OutputSanitizer.create_safe_error_message("x" * 900)) <= 500


class TestSanitizeReturnValue:
    def test_plain_values(self):
        sanitizer = OutputSanitizer()

        assert sanitizer.sanitize_return_value(42) == 42
        assert sanitizer.sanitize_return_value("text") == "text"
        assert sanitizer.sanitize_return_value([1, {"a": None}]) == [1, {"a": None}]

    def test_non_finite_floats_become_null(self):
        sanitizer = OutputSanitizer()

        assert sanitizer.sanitize_return_value(math.inf) is None
        assert sanitizer.sanitize_return_value([math.nan]) == [None]

    def test_cycles_become_markers(self):
        data = {"name": "root"}
        data["self"] = data
        items = [1]
        items.append(items)

        sanitizer = OutputSanitizer()
        assert sanitizer.sanitize_return_value(data) == {"name": "root", "self": CIRCULAR}
        assert sanitizer.sanitize_return_value(items) == [1, CIRCULAR]

    def test_shared_references_are_not_cycles(self):
        shared = [1, 2]
        result = OutputSanitizer().sanitize_return_value({"a": shared, "b": shared})

        assert result == {"a": [1, 2], "b": [1, 2]}

    def test_callables_and_objects(self):
        result = OutputSanitizer().sanitize_return_value({"f": len, "o": object()})

        assert result == {"f": FUNCTION, "o": "[Object: object]"}

    def test_strings_are_redacted(self):
        result = OutputSanitizer().sanitize_return_value({"note": "token=abc"})

        assert result == {"note": REDACTED}

    @given(value=json_values)
    def test_return_value_sanitization_is_idempotent(self, value):
        sanitizer = OutputSanitizer()
        once = sanitizer.sanitize_return_value(value)

        assert sanitizer.sanitize_return_value(once) == once


class TestOutputSafety:
    def test_clean_output_is_safe(self):
        assert OutputSanitizer.validate_output_safety("Sum: 15").safe

    def test_flags_sensitive_output(self):
        report = OutputSanitizer.validate_output_safety(
            "secret at https://example.com from 10.0.0.1"
        )

        assert not report.safe
        assert "Output may contain sensitive information" in report.issues
        assert "Output contains URLs" in report.issues
        assert "Output may contain IP addresses" in report.issues
