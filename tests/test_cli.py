"""
Tests for the code-runner command line.
"""

import json
import sys

import pytest
import yaml

from code_runner import __version__
from code_runner.cli import EXTENSIONS, build_parser, main
from code_runner.execution.models import Language


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.setenv("COLUMNS", "200")
    for name in ("DEBUG", "MAX_EXECUTION_TIME", "MAX_MEMORY_USAGE", "ENABLE_NETWORKING"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "code_runner.yaml").write_text(
        yaml.safe_dump({"sandbox": {"python_candidates": [sys.executable]}})
    )
    return tmp_path


def _run(project, *argv):
    return main(["--config", str(project), *argv])


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_version(capsys):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--version"])

    assert __version__ in capsys.readouterr().out


def test_serve_always_uses_stdio():
    assert build_parser().parse_args(["serve"]).command == "serve"

    with pytest.raises(SystemExit):
        build_parser().parse_args(["serve", "--transport", "http"])


def test_extensions():
    assert EXTENSIONS[".mjs"] is Language.JAVASCRIPT
    assert EXTENSIONS[".py"] is Language.PYTHON


class TestRun:
    def test_json_outcome(self, project, capsys):
        script = project / "hello.py"
        script.write_text('name = input()\nprint(f"Hello, {name}!")')

        code = _run(project, "run", str(script), "--input", "Alice", "--json")

        outcome = json.loads(capsys.readouterr().out)
        assert code == 0
        assert outcome["success"] is True
        assert outcome["output"] == "Hello, Alice!"

    def test_variables(self, project, capsys):
        script = project / "vars.py"
        script.write_text("print(greeting)")

        code = _run(project, "run", str(script), "--variables", '{"greeting": "hi"}', "--json")

        assert code == 0
        assert json.loads(capsys.readouterr().out)["output"] == "hi"

    def test_failure_exit_code(self, project, capsys):
        script = project / "bad.py"
        script.write_text("import subprocess")

        code = _run(project, "run", str(script))

        assert code == 1
        assert "security_error" in capsys.readouterr().out

    def test_unknown_extension(self, project, capsys):
        script = project / "notes.txt"
        script.write_text("print(1)")

        assert _run(project, "run", str(script)) == 2
        assert "Cannot infer the language" in capsys.readouterr().err

    def test_missing_file(self, project):
        assert _run(project, "run", str(project / "missing.py")) == 2


class TestValidate:
    def test_rejected_file(self, project, capsys):
        script = project / "snippet.js"
        script.write_text("const fs = require('fs');")

        code = _run(project, "validate", str(script))

        out = capsys.readouterr().out
        assert code == 1
        assert "require() is not allowed" in out
        assert "rejected" in out

    def test_json_review(self, project, capsys):
        script = project / "ok.py"
        script.write_text("total = sum(range(10))")

        code = _run(project, "validate", str(script), "--json")

        review = json.loads(capsys.readouterr().out)
        assert code == 0
        assert review["valid"] is True
        assert review["languageValidation"]["violations"] == []


def test_capabilities_json(project, capsys):
    assert _run(project, "capabilities", "--json") == 0

    capabilities = json.loads(capsys.readouterr().out)
    assert capabilities["limits"]["maxExecutionTime"] == 60_000


def test_capabilities_table(project, capsys):
    assert _run(project, "capabilities") == 0

    assert "maxCodeLength" in capsys.readouterr().out


def test_doctor(project, capsys):
    code = _run(project, "doctor")

    out = capsys.readouterr().out
    assert "python_interpreter" in out
    assert "isolation" in out
    assert code in (0, 1)


def test_invalid_configuration(tmp_path, capsys):
    (tmp_path / "code_runner.yaml").write_text("execution: [unclosed")

    assert main(["--config", str(tmp_path), "doctor"]) == 2
    assert "Failed to load configuration" in capsys.readouterr().err
