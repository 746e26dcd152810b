"""
nanocode - a minimal interactive coding agent shell.

The shell sits between a remote model and a fixed set of local tools:

1. The user types one request
2. The model answers with text and/or tool invocations
3. Each invocation runs locally (file tools, or a shell command)
4. Results go back to the model, and the loop repeats
5. The request ends when the model answers without invoking a tool

Only the shell command tool runs concurrently: it drains stdout and
stderr at the same time under a clamped timeout.
"""

__version__ = "0.1.0"

from nanocode.agent_loop import AgentLoop, AgentObserver, LoopResult, StepResult
from nanocode.cancellation import CancellationToken
from nanocode.config import AgentConfig, LLMConfig, ToolConfig
from nanocode.llm import ChatResponse, LLMClient, LLMError
from nanocode.session import Session
from nanocode.shell import ExecutionState, clamp_timeout, run_command
from nanocode.tools import Tool, ToolError, ToolRegistry
from nanocode.toolset import create_default_tools
from nanocode.types import (
    InvocationSegment,
    ResultSegment,
    Role,
    TextSegment,
    ToolResult,
    Turn,
    Usage,
)

__all__ = [
    "AgentConfig",
    "AgentLoop",
    "AgentObserver",
    "CancellationToken",
    "ChatResponse",
    "ExecutionState",
    "InvocationSegment",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LoopResult",
    "ResultSegment",
    "Role",
    "Session",
    "StepResult",
    "TextSegment",
    "Tool",
    "ToolConfig",
    "ToolError",
    "ToolRegistry",
    "ToolResult",
    "Turn",
    "Usage",
    "clamp_timeout",
    "create_default_tools",
    "run_command",
]
