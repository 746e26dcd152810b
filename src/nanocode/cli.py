"""
nanocode REPL - the interactive front end.

Reads one line at a time and hands it to the agent loop. Two commands are
handled here and never reach the model: `/q` (or `exit`) quits and `/c`
clears the conversation and token counters.

Ctrl-C asks the running request to stop after its current round of tool
calls; SIGTERM exits immediately.
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from typing import TextIO

from nanocode import __version__
from nanocode.agent_loop import AgentLoop, AgentObserver
from nanocode.cancellation import CancellationToken, install_signal_handlers
from nanocode.config import AgentConfig
from nanocode.llm import ChatResponse
from nanocode.render import (
    BOLD,
    CYAN,
    DIM,
    GREEN,
    RED,
    RESET,
    YELLOW,
    preview,
    prompt,
    render_markdown,
    separator,
)
from nanocode.types import InvocationSegment, ToolResult

logger = logging.getLogger(__name__)

QUIT_COMMANDS = ("/q", "exit")
CLEAR_COMMAND = "/c"

LineReader = Callable[[str], Awaitable[str | None]]


class ConsoleObserver(AgentObserver):
    """Prints the loop's progress to the terminal."""

    def __init__(self, out: TextIO | None = None) -> None:
        self.out = out or sys.stdout

    def _print(self, text: str = "") -> None:
        print(text, file=self.out, flush=True)

    def on_thinking(self) -> None:
        self.out.write(f"{DIM}⏳ Thinking...{RESET}")
        self.out.flush()

    def on_response(self, response: ChatResponse) -> None:
        self.out.write(f"\r{' ' * 20}\r")
        self.out.flush()

    def on_text(self, text: str) -> None:
        self._print(f"\n{CYAN}⏺{RESET} {render_markdown(text)}")

    def on_tool_call(self, invocation: InvocationSegment) -> None:
        self._print(f"\n{GREEN}⏺ {invocation.name}{RESET}({DIM}{json.dumps(invocation.arguments)}{RESET})")

    def on_tool_result(self, invocation: InvocationSegment, result: ToolResult) -> None:
        self._print(f"  {DIM}|> {preview(result.content)}{RESET}")

    def on_error(self, message: str) -> None:
        self.out.write(f"\r{' ' * 20}\r")
        self._print(f"{RED}⏺ Error: {message}{RESET}")

    def echo_line(self, line: str) -> None:
        """Live echo of one line of exec output."""
        self._print(f"  {DIM}{line}{RESET}")


async def read_stdin(prompt_text: str) -> str | None:
    """Read one line without blocking the event loop; None at EOF."""
    try:
        return await asyncio.to_thread(input, prompt_text)
    except EOFError:
        return None


async def repl(
    agent: AgentLoop,
    cancel: CancellationToken,
    read_line: LineReader = read_stdin,
    out: TextIO | None = None,
) -> None:
    """Run the read-eval-print loop until quit or end of input."""
    out = out or sys.stdout

    def emit(text: str = "") -> None:
        print(text, file=out, flush=True)

    emit(separator())
    while True:
        line = await read_line(prompt())
        if line is None:
            emit(f"\n{DIM}Bye!{RESET}")
            return

        user_input = line.strip()
        emit(separator())

        if user_input in QUIT_COMMANDS:
            emit(f"{DIM}Bye!{RESET}")
            return
        if user_input == CLEAR_COMMAND:
            agent.reset()
            emit(f"{GREEN}⏺ Cleared{RESET}")
            emit(separator())
            continue
        if not user_input:
            emit(separator())
            continue

        result = await agent.run(user_input, cancel)
        if result.stopped_reason == "cancelled":
            emit(f"\n{YELLOW}⏺ Stopped{RESET}")
        elif result.stopped_reason == "max_steps_exceeded":
            emit(f"\n{YELLOW}⏺ Stopped after {result.steps_taken} steps{RESET}")

        usage = agent.usage
        if usage.total:
            emit(
                f"\n{DIM}📊 Tokens: {usage.input_tokens} in, {usage.output_tokens} out, "
                f"{usage.total} total{RESET}"
            )
        emit()
        emit(separator())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nanocode", description="Minimal coding agent shell")
    parser.add_argument("--model", help="Model identifier (overrides MODEL)")
    parser.add_argument("--api-url", help="Messages endpoint (overrides API_URL)")
    parser.add_argument("--log-level", help="Logging level (overrides NANOCODE_LOG_LEVEL)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> AgentConfig:
    """Environment configuration with command-line overrides applied."""
    config = AgentConfig.from_env()
    llm = config.llm
    if args.model:
        llm = dataclasses.replace(llm, model=args.model)
    if args.api_url:
        llm = dataclasses.replace(llm, api_url=args.api_url)
    config = dataclasses.replace(config, llm=llm)
    if args.log_level:
        config = dataclasses.replace(config, log_level=args.log_level.upper())
    return config


async def run_shell(config: AgentConfig) -> None:
    observer = ConsoleObserver()
    agent = AgentLoop.create(config, observer=observer, on_line=observer.echo_line)
    cancel = CancellationToken()
    install_signal_handlers(cancel, on_exit=lambda: print(f"\n{DIM}Bye!{RESET}"))

    print(f"{BOLD}nanocode{RESET} | {DIM}{config.llm.model} | {os.getcwd()}{RESET}\n")
    try:
        await repl(agent, cancel)
    finally:
        await agent.aclose()


def main(argv: list[str] | None = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    config = load_config(args)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug(f"Starting nanocode against {config.llm.api_url} with model {config.llm.model}")

    asyncio.run(run_shell(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
