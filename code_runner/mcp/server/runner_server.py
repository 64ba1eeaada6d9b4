"""
Code-runner MCP Server implementation.

Exposes sandboxed code execution via the Model Context Protocol,
enabling integration with Claude Desktop, VS Code, and other MCP clients.
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from typing import Any, Callable

from ... import __version__
from ...core.config import ConfigManager, RunnerConfig
from ...core.logging import get_logger, setup_logging
from ...execution.dispatcher import ExecutionDispatcher
from .tools import RunnerTools

logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"


@dataclass
class ServerConfig:
    """Configuration for the code-runner MCP Server."""

    name: str = "code-runner"
    version: str = __version__


@dataclass
class ToolCallResult:
    """Result of a tool call."""

    success: bool
    content: Any
    error: str | None = None

    def to_mcp_response(self) -> dict[str, Any]:
        """Convert to MCP response format."""
        if self.success:
            return {
                "content": [
                    {
                        "type": "text",
                        "text": json.dumps(self.content, indent=2, ensure_ascii=False)
                        if isinstance(self.content, (dict, list))
                        else str(self.content),
                    }
                ],
            }
        text = (
            json.dumps(self.content, indent=2, ensure_ascii=False)
            if isinstance(self.content, (dict, list))
            else self.error or "Unknown error"
        )
        return {
            "isError": True,
            "content": [
                {
                    "type": "text",
                    "text": text,
                }
            ],
        }


class RunnerServer:
    """
    MCP Server for code-runner.

    Handles MCP protocol messages and dispatches tool calls
    to the ExecutionDispatcher.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        runner_config: RunnerConfig | None = None,
        dispatcher: ExecutionDispatcher | None = None,
    ):
        self.config = config or ServerConfig()
        self.runner_config = runner_config or RunnerConfig()
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> ExecutionDispatcher:
        """Lazily initialize the dispatcher."""
        if self._dispatcher is None:
            self._dispatcher = ExecutionDispatcher(self.runner_config)
        return self._dispatcher

    async def handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle MCP initialize request."""
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {
                "tools": {},
            },
            "serverInfo": {
                "name": self.config.name,
                "version": self.config.version,
            },
        }

    async def handle_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle ping request."""
        return {}

    async def handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle tools/list request."""
        return {
            "tools": RunnerTools.to_mcp_tools(),
        }

    async def handle_tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle tools/call request."""
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}

        handler = self._get_tool_handler(tool_name)
        if handler is None:
            return ToolCallResult(
                success=False,
                content=None,
                error=f"Unknown tool: {tool_name}",
            ).to_mcp_response()

        try:
            result = await handler(arguments)
            return result.to_mcp_response()
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}")
            return ToolCallResult(
                success=False,
                content=None,
                error=str(e),
            ).to_mcp_response()

    def _get_tool_handler(self, tool_name: str) -> Callable | None:
        """Get the handler function for a tool."""
        handlers = {
            "execute_code": self._handle_execute_code,
            "execute_code_with_variables": self._handle_execute_code_with_variables,
            "get_capabilities": self._handle_get_capabilities,
            "validate_code": self._handle_validate_code,
        }
        return handlers.get(tool_name)

    async def _handle_execute_code(self, args: dict[str, Any]) -> ToolCallResult:
        """Handle execute_code tool call."""
        outcome = await self.dispatcher.dispatch(
            args.get("language"),
            args.get("code"),
            stdin=args.get("input"),
            timeout_ms=args.get("timeout"),
            memory_limit_mb=args.get("memoryLimit"),
            networking_enabled=args.get("enableNetworking"),
        )
        return ToolCallResult(success=outcome.succeeded, content=outcome.to_dict())

    async def _handle_execute_code_with_variables(self, args: dict[str, Any]) -> ToolCallResult:
        """Handle execute_code_with_variables tool call."""
        outcome = await self.dispatcher.dispatch_with_variables(
            args.get("language"),
            args.get("code"),
            variables=args.get("variables"),
            stdin=args.get("input"),
            timeout_ms=args.get("timeout"),
            memory_limit_mb=args.get("memoryLimit"),
            networking_enabled=args.get("enableNetworking"),
        )
        return ToolCallResult(success=outcome.succeeded, content=outcome.to_dict())

    async def _handle_get_capabilities(self, args: dict[str, Any]) -> ToolCallResult:
        """Handle get_capabilities tool call."""
        return ToolCallResult(success=True, content=self.dispatcher.describe_capabilities())

    async def _handle_validate_code(self, args: dict[str, Any]) -> ToolCallResult:
        """Handle validate_code tool call."""
        language = args.get("language")
        code = args.get("code")
        if not language or code is None:
            return ToolCallResult(
                success=False, content=None, error="Both language and code are required"
            )
        return ToolCallResult(success=True, content=self.dispatcher.review_code(language, code))

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Handle an incoming MCP message."""
        method = message.get("method", "")
        params = message.get("params") or {}
        msg_id = message.get("id")

        handlers = {
            "initialize": self.handle_initialize,
            "ping": self.handle_ping,
            "tools/list": self.handle_tools_list,
            "tools/call": self.handle_tools_call,
        }

        handler = handlers.get(method)
        if handler is None:
            if msg_id is not None:
                return {
                    "jsonrpc": "2.0",
                    "id": msg_id,
                    "error": {
                        "code": -32601,
                        "message": f"Method not found: {method}",
                    },
                }
            return None

        try:
            result = await handler(params)
            if msg_id is not None:
                return {
                    "jsonrpc": "2.0",
                    "id": msg_id,
                    "result": result,
                }
            return None
        except Exception as e:
            logger.error(f"Handler for {method} failed: {e}")
            if msg_id is not None:
                return {
                    "jsonrpc": "2.0",
                    "id": msg_id,
                    "error": {
                        "code": -32603,
                        "message": str(e),
                    },
                }
            return None

    async def run_stdio(self) -> None:
        """Run the server using stdio transport. Each message is handled in its own task."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=2**24)
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, reader, loop)
        write_lock = asyncio.Lock()
        pending: set[asyncio.Task] = set()

        async def respond(message: dict[str, Any]) -> None:
            response = await self.handle_message(message)
            if response is not None:
                async with write_lock:
                    writer.write((json.dumps(response) + "\n").encode("utf-8"))
                    await writer.drain()

        while True:
            line = await reader.readline()
            if not line:
                break
            try:
                message = json.loads(line.decode("utf-8"))
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed JSON-RPC message")
                continue
            if not isinstance(message, dict):
                continue

            task = asyncio.create_task(respond(message))
            pending.add(task)
            task.add_done_callback(pending.discard)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def run(self) -> None:
        """Run the MCP server over stdio."""
        await self.run_stdio()


def create_runner_server(
    config: ServerConfig | None = None,
    runner_config: RunnerConfig | None = None,
) -> RunnerServer:
    """Create a code-runner MCP Server instance."""
    return RunnerServer(config, runner_config)


async def main() -> None:
    """Main entry point for the MCP server."""
    runner_config = ConfigManager().config
    setup_logging(debug=runner_config.debug)
    server = create_runner_server(runner_config=runner_config)
    await server.run()


if __name__ == "__main__":
    asyncio.run(main())
