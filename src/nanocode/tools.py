"""
Tool System - the only way the model affects the world.

A tool is a named, schema-described operation. The model asks for one by
emitting an invocation; the registry looks the tool up and runs its
handler with the invocation's flat argument map. Handlers report failure
by raising ToolError, and Tool.execute turns that (or anything else a
handler raises) into an `error: ` prefixed result. Nothing escapes the
tool boundary, so every invocation gets exactly one result.

The registry is closed: it is built once from a fixed sequence of tools
and offers no way to add or replace one afterwards.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from nanocode.types import InvocationSegment, ToolResult

logger = logging.getLogger(__name__)

ToolArgs = Mapping[str, Any]
ToolHandler = Callable[[ToolArgs], str | Awaitable[str]]

OPTIONAL_SUFFIX = "?"
# Declared type -> JSON schema type. Numbers are always exposed as integers.
SCHEMA_TYPES = {"string": "string", "number": "integer", "integer": "integer", "boolean": "boolean"}


class ToolError(Exception):
    """A tool failed in a way the model should be told about."""
    pass


def require(args: ToolArgs, name: str) -> Any:
    """Return a required argument or raise ToolError if it is missing."""
    value = args.get(name)
    if value is None or value == "":
        raise ToolError(f"{name} parameter is required")
    return value


def get_path(args: ToolArgs) -> str:
    """The target path of a file tool; accepts `path` or `file_path`."""
    path = args.get("path") or args.get("file_path")
    if not path:
        raise ToolError("path parameter is required")
    return str(path)


def format_error(error: BaseException | str) -> str:
    return f"error: {error}"


@dataclass(frozen=True)
class Tool:
    """
    Definition of a tool that the model can use.

    A tool has:
    - name: Unique identifier
    - description: What the tool does (shown to the model)
    - params: Parameter name -> declared type; a trailing `?` marks it optional
    - handler: Function of the argument map that returns the result text

    The handler is the only code that has side effects. It may be a plain
    function or a coroutine function.
    """
    name: str
    description: str
    params: Mapping[str, str]
    handler: ToolHandler

    @property
    def required_params(self) -> list[str]:
        return [p for p, t in self.params.items() if not t.endswith(OPTIONAL_SUFFIX)]

    def to_schema(self) -> dict[str, Any]:
        """Convert to the messages API tool format."""
        properties = {}
        for param, declared in self.params.items():
            base = declared.rstrip(OPTIONAL_SUFFIX)
            properties[param] = {"type": SCHEMA_TYPES.get(base, base)}

        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": properties,
                "required": self.required_params,
            },
        }

    async def execute(self, arguments: ToolArgs) -> ToolResult:
        """
        Execute the tool with the given arguments.

        The returned result carries an empty invocation_id; the registry
        fills it in.
        """
        try:
            result = self.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
            return ToolResult(invocation_id="", content=str(result), success=True)
        except ToolError as e:
            logger.info(f"Tool {self.name} reported: {e}")
            return ToolResult(invocation_id="", content=format_error(e), success=False, error=str(e))
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}")
            return ToolResult(invocation_id="", content=format_error(e), success=False, error=str(e))


class ToolRegistry:
    """
    Immutable registry of the available tools.

    The registry is the controlled interface through which the model can
    affect the world. Only tools given at construction can be called.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        registered: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in registered:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            registered[tool.name] = tool
        self._tools: Mapping[str, Tool] = registered
        logger.debug(f"Tool registry built with {len(registered)} tools")

    def describe(self) -> list[Tool]:
        """All tool descriptors, in registration order."""
        return list(self._tools.values())

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_schemas(self) -> list[dict[str, Any]]:
        """Get API schemas for all registered tools."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, invocation: InvocationSegment) -> ToolResult:
        """
        Execute one invocation.

        This is the controlled entry point for all side effects. An unknown
        name yields an error result rather than an exception.
        """
        tool = self._tools.get(invocation.name)
        if tool is None:
            message = f"unknown tool {invocation.name}"
            return ToolResult(
                invocation_id=invocation.id,
                content=format_error(message),
                success=False,
                error=message,
            )

        logger.info(f"Executing tool: {invocation.name}")
        result = await tool.execute(invocation.arguments)
        result.invocation_id = invocation.id
        return result

    async def dispatch(self, name: str, arguments: ToolArgs) -> str:
        """Run a tool by name and return only its result text."""
        result = await self.execute(InvocationSegment(id="", name=name, arguments=dict(arguments)))
        return result.content

    @property
    def tool_names(self) -> list[str]:
        """List of registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
