"""
Tests for terminal rendering and the system prompt.
"""

from datetime import UTC, datetime

from nanocode.prompts import IDENTITY, build_system_prompt
from nanocode.render import BOLD, GREEN, RESET, preview, render_markdown, separator


class TestPreview:
    """Test the one-line tool result summary."""

    def test_single_short_line(self) -> None:
        assert preview("ok") == "ok"

    def test_multiple_lines(self) -> None:
        assert preview("a\nb\nc") == "a ... +2 lines"

    def test_long_first_line_is_cut(self) -> None:
        assert preview("x" * 100) == "x" * 60 + "..."

    def test_long_first_line_with_more_lines(self) -> None:
        assert preview("y" * 100 + "\nz") == "y" * 60 + " ... +1 lines"


class TestMarkdown:
    """Test inline highlighting."""

    def test_bold_and_code(self) -> None:
        assert render_markdown("**hi** `x`") == f"{BOLD}hi{RESET} {GREEN}x{RESET}"

    def test_plain_text_untouched(self) -> None:
        assert render_markdown("nothing special") == "nothing special"

    def test_separator_width_capped(self) -> None:
        assert separator(200).count("─") == 80
        assert separator(10).count("─") == 10


class TestSystemPrompt:
    """Test system prompt assembly."""

    def test_prompt_reports_environment(self) -> None:
        now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)

        prompt = build_system_prompt(cwd="/work", now=now)

        assert prompt.startswith(f"{IDENTITY} OS: ")
        assert prompt.endswith("Time: 2025-01-02T03:04:05+00:00. CWD: /work")
