"""
Terminal rendering helpers for the REPL.

Plain ANSI escape codes, no TUI library. Keeping rendering here lets the
agent loop stay free of any display concerns.
"""

import re
import shutil

RESET = "\x1b[0m"
BOLD = "\x1b[1m"
DIM = "\x1b[2m"
BLUE = "\x1b[34m"
CYAN = "\x1b[36m"
GREEN = "\x1b[32m"
RED = "\x1b[31m"
YELLOW = "\x1b[33m"

PREVIEW_WIDTH = 60

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_CODE_RE = re.compile(r"`([^`]+)`")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)


def separator(width: int | None = None) -> str:
    """A dim horizontal rule, at most 80 columns wide."""
    columns = width or shutil.get_terminal_size((80, 24)).columns
    return f"{DIM}{'─' * min(columns, 80)}{RESET}"


def render_markdown(text: str) -> str:
    """Highlight **bold**, `code` and # headings; everything else is left as is."""
    text = _BOLD_RE.sub(f"{BOLD}\\1{RESET}", text)
    text = _CODE_RE.sub(f"{GREEN}\\1{RESET}", text)
    return _HEADING_RE.sub(f"{BOLD}{CYAN}\\2{RESET}", text)


def preview(result: str, width: int = PREVIEW_WIDTH) -> str:
    """
    One-line summary of a tool result.

    The first line cut to `width` characters, then either a count of the
    remaining lines or an ellipsis if the first line was cut.
    """
    lines = result.split("\n")
    first = lines[0]
    if len(lines) > 1:
        return f"{first[:width]} ... +{len(lines) - 1} lines"
    if len(first) > width:
        return f"{first[:width]}..."
    return first


def prompt() -> str:
    return f"{BOLD}{BLUE}|>{RESET} "
