"""
Command-line interface for code-runner.

Starts the MCP server, runs a single file through the sandbox, checks a
file against the security rules, and reports runtime health. Results are
rendered to the terminal using Rich.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from . import __version__
from .core.config import ConfigManager, RunnerConfig
from .core.exceptions import CodeRunnerError, format_error_message
from .core.logging import setup_logging
from .execution.dispatcher import ExecutionDispatcher
from .execution.models import ExecutionOutcome, Language
from .sandbox.runtimes import run_runtime_doctor

COLORS = {
    "primary": "#7AA2F7",
    "success": "#9ECE6A",
    "warning": "#E0AF68",
    "error": "#F7768E",
    "text": "#A9B1D6",
    "muted": "#565F89",
    "border": "#3B4261",
}

EXTENSIONS = {
    ".js": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".py": Language.PYTHON,
}

STATUS_STYLES = {"pass": "success", "warn": "warning", "fail": "error"}


def _detect_language(path: Path, explicit: str | None) -> Language:
    if explicit:
        return Language.parse(explicit)
    try:
        return EXTENSIONS[path.suffix.lower()]
    except KeyError:
        raise ValueError(
            f"Cannot infer the language of {path.name}; pass --language javascript|python"
        )


def _read_source(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    return path.read_text(encoding="utf-8")


def render_outcome(console: Console, outcome: ExecutionOutcome) -> None:
    """Render an execution outcome as a panel."""
    body = Text()
    if outcome.stdout:
        body.append(outcome.stdout + "\n", style=Style(color=COLORS["text"]))
    if outcome.stderr:
        body.append(outcome.stderr + "\n", style=Style(color=COLORS["warning"]))
    if outcome.succeeded and outcome.return_value is not None:
        body.append("\n=> ", style=Style(color=COLORS["muted"]))
        body.append(
            json.dumps(outcome.return_value, ensure_ascii=False),
            style=Style(color=COLORS["primary"]),
        )
    if not outcome.succeeded:
        body.append(
            f"\n{outcome.failure_kind.value}: {outcome.failure_message}",
            style=Style(color=COLORS["error"], bold=True),
        )
        if outcome.line is not None:
            body.append(f" (line {outcome.line})", style=Style(color=COLORS["error"]))
        if outcome.failure_detail:
            body.append(f"\n{outcome.failure_detail}", style=Style(color=COLORS["muted"]))
    for warning in outcome.warnings:
        body.append(f"\n! {warning}", style=Style(color=COLORS["warning"]))

    title = Text()
    title.append(outcome.language.value if outcome.language else "unknown", style="bold")
    title.append(
        f" ━ {outcome.elapsed_ms:.1f}ms",
        style=Style(color=COLORS["muted"]),
    )
    console.print(
        Panel(
            body,
            title=title,
            title_align="left",
            border_style=COLORS["success"] if outcome.succeeded else COLORS["error"],
            padding=(1, 2),
        )
    )


def _cmd_serve(args, config: RunnerConfig, console: Console) -> int:
    from .mcp.server import create_runner_server

    server = create_runner_server(runner_config=config)
    asyncio.run(server.run())
    return 0


def _cmd_run(args, config: RunnerConfig, console: Console) -> int:
    path = Path(args.file)
    language = _detect_language(path, args.language)
    code = _read_source(path)
    dispatcher = ExecutionDispatcher(config)

    if args.variables:
        outcome = asyncio.run(
            dispatcher.dispatch_with_variables(
                language,
                code,
                variables=args.variables,
                stdin=args.input,
                timeout_ms=args.timeout,
                memory_limit_mb=args.memory_limit,
                networking_enabled=args.enable_networking or None,
            )
        )
    else:
        outcome = asyncio.run(
            dispatcher.dispatch(
                language,
                code,
                stdin=args.input,
                timeout_ms=args.timeout,
                memory_limit_mb=args.memory_limit,
                networking_enabled=args.enable_networking or None,
            )
        )

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
    else:
        render_outcome(console, outcome)
    return 0 if outcome.succeeded else 1


def _cmd_validate(args, config: RunnerConfig, console: Console) -> int:
    path = Path(args.file)
    language = _detect_language(path, args.language)
    review = ExecutionDispatcher(config).review_code(language, _read_source(path))

    if args.json:
        print(json.dumps(review, indent=2, ensure_ascii=False))
        return 0 if review["valid"] else 1

    table = Table(title=f"{path.name} ({language.value})", border_style=COLORS["border"])
    table.add_column("Severity")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    checks = review["inputValidation"]
    for message in checks["errors"]:
        table.add_row(Text("error", style=COLORS["error"]), "", message)
    for message in checks["warnings"]:
        table.add_row(Text("warning", style=COLORS["warning"]), "", message)
    language_check = review["languageValidation"] or {}
    for issue in language_check.get("violations", []):
        table.add_row(
            Text("error", style=COLORS["error"]),
            str(issue["line"] or ""),
            issue["message"],
        )
    for message in language_check.get("warnings", []):
        table.add_row(Text("warning", style=COLORS["warning"]), "", message)
    console.print(table)

    for recommendation in review["recommendations"]:
        console.print(f"[{COLORS['muted']}]* {recommendation}[/]")
    verdict = "[bold green]valid[/]" if review["valid"] else "[bold red]rejected[/]"
    console.print(f"Result: {verdict}")
    return 0 if review["valid"] else 1


def _cmd_capabilities(args, config: RunnerConfig, console: Console) -> int:
    capabilities = ExecutionDispatcher(config).describe_capabilities()
    if args.json:
        print(json.dumps(capabilities, indent=2, ensure_ascii=False))
        return 0

    for name, info in capabilities["languages"].items():
        text = Text()
        text.append(f"{info['engine']}\n\n", style=Style(color=COLORS["muted"]))
        for feature in info["features"]:
            text.append(f"+ {feature}\n", style=Style(color=COLORS["success"]))
        for restriction in info["restrictions"]:
            text.append(f"- {restriction}\n", style=Style(color=COLORS["error"]))
        console.print(Panel(text, title=name, title_align="left", border_style=COLORS["border"]))

    limits = Table(title="Limits", border_style=COLORS["border"])
    limits.add_column("Limit")
    limits.add_column("Value", justify="right")
    for key, value in capabilities["limits"].items():
        limits.add_row(key, str(value))
    console.print(limits)
    return 0


def _cmd_doctor(args, config: RunnerConfig, console: Console) -> int:
    checks = run_runtime_doctor(config)
    table = Table(title="code-runner doctor", border_style=COLORS["border"])
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")
    table.add_column("Recommendation")
    for check in checks:
        table.add_row(
            check.name,
            Text(check.status, style=COLORS[STATUS_STYLES[check.status]]),
            check.detail,
            check.recommendation or "",
        )
    console.print(table)
    return 1 if any(check.status == "fail" for check in checks) else 0


COMMANDS = {
    "serve": _cmd_serve,
    "run": _cmd_run,
    "validate": _cmd_validate,
    "capabilities": _cmd_capabilities,
    "doctor": _cmd_doctor,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="code-runner",
        description="code-runner: sandboxed JavaScript and Python execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the MCP server on stdio
  code-runner serve

  # Run a file and print the outcome
  code-runner run script.py --input "42"

  # Check a file without running it
  code-runner validate snippet.js
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=str,
        help="Directory holding code_runner.yaml (default: current directory)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Start the MCP server")

    run = sub.add_parser("run", help="Execute a file in the sandbox")
    run.add_argument("file", help="Source file, or - for stdin")
    run.add_argument("--language", "-l", choices=sorted(lang.value for lang in Language))
    run.add_argument("--input", "-i", type=str, help="Text fed to the program's stdin")
    run.add_argument("--timeout", "-t", type=int, help="Timeout in milliseconds")
    run.add_argument("--memory-limit", "-m", type=int, help="Advisory memory limit in MB")
    run.add_argument("--variables", type=str, help="JSON object of variables to declare")
    run.add_argument("--enable-networking", action="store_true", help="Allow network modules")
    run.add_argument("--json", action="store_true", help="Print the raw outcome as JSON")

    validate = sub.add_parser("validate", help="Check a file against the security rules")
    validate.add_argument("file", help="Source file, or - for stdin")
    validate.add_argument("--language", "-l", choices=sorted(lang.value for lang in Language))
    validate.add_argument("--json", action="store_true", help="Print the review as JSON")

    capabilities = sub.add_parser("capabilities", help="Describe languages and limits")
    capabilities.add_argument("--json", action="store_true", help="Print as JSON")

    sub.add_parser("doctor", help="Check sandbox health")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    console = Console()

    try:
        project_root = Path(args.config) if args.config else None
        config = ConfigManager(project_root).config
    except CodeRunnerError as e:
        Console(stderr=True).print(f"[red]{escape(format_error_message(e))}[/]")
        return 2

    if args.debug:
        config.debug = True
    setup_logging(debug=config.debug)

    try:
        return COMMANDS[args.command](args, config, console)
    except (OSError, ValueError) as e:
        Console(stderr=True).print(f"[red]Error:[/] {escape(str(e))}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
