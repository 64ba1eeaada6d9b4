"""
MCP Tool definitions for the code-runner server.

Defines the tools exposed by the code-runner MCP Server.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ...core.config import MAX_MEMORY_MB, MAX_TIMEOUT_MS, MIN_TIMEOUT_MS

LANGUAGES = ["javascript", "python"]


@dataclass
class ToolParameter:
    """Parameter definition for an MCP tool."""

    name: str
    description: str
    type: str = "string"
    required: bool = False
    enum: list[str] | None = None
    default: Any = None
    minimum: int | None = None
    maximum: int | None = None


@dataclass
class ToolDefinition:
    """Definition of an MCP tool."""

    name: str
    description: str
    parameters: list[ToolParameter]

    def to_mcp_schema(self) -> dict[str, Any]:
        """Convert to MCP tool schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop = {
                "type": param.type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default
            if param.minimum is not None:
                prop["minimum"] = param.minimum
            if param.maximum is not None:
                prop["maximum"] = param.maximum

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }


def _execution_parameters() -> list[ToolParameter]:
    return [
        ToolParameter(
            name="language",
            description="Programming language of the code",
            required=True,
            enum=LANGUAGES,
        ),
        ToolParameter(
            name="code",
            description="The code to execute",
            required=True,
        ),
        ToolParameter(
            name="input",
            description="Optional input passed to the program's stdin",
        ),
        ToolParameter(
            name="timeout",
            description="Execution timeout in milliseconds",
            type="integer",
            default=10_000,
            minimum=MIN_TIMEOUT_MS,
            maximum=MAX_TIMEOUT_MS,
        ),
        ToolParameter(
            name="memoryLimit",
            description="Advisory memory limit in MB",
            type="integer",
            default=128,
            minimum=0,
            maximum=MAX_MEMORY_MB,
        ),
        ToolParameter(
            name="enableNetworking",
            description="Allow network modules (Python only)",
            type="boolean",
        ),
    ]


class RunnerTools:
    """
    Collection of code-runner tools exposed via MCP.

    These tools let external clients run and check untrusted snippets.
    """

    @staticmethod
    def execute_code() -> ToolDefinition:
        """Tool for executing code in a sandbox."""
        return ToolDefinition(
            name="execute_code",
            description=(
                "Execute JavaScript or Python code in a sandbox and return its output, "
                "errors, return value, execution time and estimated memory use."
            ),
            parameters=_execution_parameters(),
        )

    @staticmethod
    def execute_code_with_variables() -> ToolDefinition:
        """Tool for executing code with injected variables."""
        return ToolDefinition(
            name="execute_code_with_variables",
            description=(
                "Execute code after declaring the given variables. Variables are a JSON "
                "object whose keys must be valid identifiers."
            ),
            parameters=[
                *_execution_parameters(),
                ToolParameter(
                    name="variables",
                    description="JSON object of variable names to values",
                    type="object",
                ),
            ],
        )

    @staticmethod
    def get_capabilities() -> ToolDefinition:
        """Tool describing supported languages and limits."""
        return ToolDefinition(
            name="get_capabilities",
            description="Describe supported languages, restrictions and limits.",
            parameters=[],
        )

    @staticmethod
    def validate_code() -> ToolDefinition:
        """Tool for checking code without running it."""
        return ToolDefinition(
            name="validate_code",
            description="Check code against the security rules without executing it.",
            parameters=[
                ToolParameter(
                    name="language",
                    description="Programming language of the code",
                    required=True,
                    enum=LANGUAGES,
                ),
                ToolParameter(
                    name="code",
                    description="The code to validate",
                    required=True,
                ),
            ],
        )

    @classmethod
    def all_tools(cls) -> list[ToolDefinition]:
        """Get all available tools."""
        return [
            cls.execute_code(),
            cls.execute_code_with_variables(),
            cls.get_capabilities(),
            cls.validate_code(),
        ]

    @classmethod
    def to_mcp_tools(cls) -> list[dict[str, Any]]:
        """Get all tools in MCP format."""
        return [tool.to_mcp_schema() for tool in cls.all_tools()]
