"""
System prompt assembly.

The prompt is short on purpose: it names the assistant and tells the
model where it is running (OS, time and working directory), which is all
the tools need to make sense of relative paths and shell syntax.
"""

import os
import platform
from datetime import UTC, datetime
from pathlib import Path

IDENTITY = "NANOCODE: Concise coding assistant."


def build_system_prompt(
    cwd: str | Path | None = None,
    now: datetime | None = None,
) -> str:
    """
    Build the system instruction sent with every request.

    Args:
        cwd: Working directory to report (defaults to the process cwd)
        now: Timestamp to report (defaults to the current UTC time)
    """
    os_info = f"{platform.system().lower()} {platform.machine()}"
    timestamp = (now or datetime.now(UTC)).isoformat()
    return f"{IDENTITY} OS: {os_info}. Time: {timestamp}. CWD: {cwd or os.getcwd()}"
