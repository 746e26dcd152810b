"""
The closed set of tools the shell offers to the model.

create_default_tools is called once at startup; the registry it returns
is never changed afterwards. Adding a tool means adding an entry here.
"""

from nanocode.config import ToolConfig
from nanocode.file_tools import FileTools
from nanocode.shell import LineCallback, run_command
from nanocode.tools import Tool, ToolArgs, ToolRegistry, require


def create_default_tools(
    config: ToolConfig | None = None,
    on_line: LineCallback | None = None,
) -> ToolRegistry:
    """
    Build the registry of built-in tools.

    Args:
        config: Limits for the file tools
        on_line: Live echo for each line of exec output
    """
    files = FileTools(config)

    async def exec_command(args: ToolArgs) -> str:
        return await run_command(str(require(args, "command")), args.get("timeout"), on_line)

    return ToolRegistry([
        Tool(
            name="read",
            description="Read file with line numbers",
            params={"path": "string", "offset": "number?", "limit": "number?"},
            handler=files.read,
        ),
        Tool(
            name="write",
            description="Write content to file",
            params={"path": "string", "content": "string"},
            handler=files.write,
        ),
        Tool(
            name="edit",
            description="Replace old with new in file",
            params={"path": "string", "old": "string", "new": "string", "all": "boolean?"},
            handler=files.edit,
        ),
        Tool(
            name="glob",
            description="Find files by pattern",
            params={"pattern": "string", "path": "string?"},
            handler=files.glob,
        ),
        Tool(
            name="grep",
            description="Search files for regex",
            params={"pattern": "string", "path": "string?"},
            handler=files.grep,
        ),
        Tool(
            name="exec",
            description="Execute shell command with live output and timeout",
            params={"command": "string", "timeout": "number"},
            handler=exec_command,
        ),
        Tool(
            name="list",
            description="List directory",
            params={"path": "string", "recursive": "boolean?"},
            handler=files.list_dir,
        ),
        Tool(
            name="delete",
            description="Delete file/directory",
            params={"path": "string", "recursive": "boolean?"},
            handler=files.delete,
        ),
        Tool(
            name="move",
            description="Move or rename",
            params={"from": "string", "to": "string"},
            handler=files.move,
        ),
        Tool(
            name="copy",
            description="Copy file/directory",
            params={"from": "string", "to": "string", "recursive": "boolean?"},
            handler=files.copy,
        ),
    ])
