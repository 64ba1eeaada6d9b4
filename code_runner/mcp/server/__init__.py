"""
MCP Server for code-runner.

Exposes sandboxed execution as MCP tools for external clients
like Claude Desktop, VS Code extensions, and other MCP-compatible tools.

Tools provided:
- execute_code: Run JavaScript or Python code
- execute_code_with_variables: Run code with injected variables
- get_capabilities: Describe languages and limits
- validate_code: Check code without running it

Usage:
    # Start MCP server
    python -m code_runner.mcp.server

    # Or via CLI
    code-runner serve
"""

from .runner_server import RunnerServer, ServerConfig, ToolCallResult, create_runner_server
from .tools import RunnerTools

__all__ = [
    "RunnerServer",
    "RunnerTools",
    "ServerConfig",
    "ToolCallResult",
    "create_runner_server",
]
