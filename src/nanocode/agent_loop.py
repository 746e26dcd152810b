"""
AgentLoop - turns one user utterance into rounds of tool calls.

The loop is:
1. Append the user's turn to the session
2. Send the conversation and tool schemas to the model
3. Show any text, run every requested tool in order through the registry
4. Append the response as one assistant turn and the results as one user turn
5. Repeat until a response requests no tools (or cancellation is requested)

Tool calls from one response are run strictly one after another, so a
later call can rely on an earlier one having finished. Results are always
appended before the next request, so the model never sees an invocation
without its result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from nanocode.cancellation import CancellationToken
from nanocode.config import AgentConfig
from nanocode.events import EventLog, EventType
from nanocode.llm import ChatResponse, LLMClient, LLMError
from nanocode.prompts import build_system_prompt
from nanocode.session import Session
from nanocode.shell import LineCallback
from nanocode.tools import ToolRegistry, format_error
from nanocode.toolset import create_default_tools
from nanocode.types import InvocationSegment, LoopState, TextSegment, ToolResult, Turn, Usage

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """What the loop needs from a model client."""

    async def chat(
        self,
        turns: list[Turn],
        system: str = "",
        tools: list[dict[str, Any]] | None = None,
    ) -> ChatResponse: ...


class AgentObserver:
    """
    Display hooks for the loop. The base class ignores everything.

    The REPL subclasses this to print; tests subclass it to record.
    """

    def on_thinking(self) -> None:
        pass

    def on_response(self, response: ChatResponse) -> None:
        pass

    def on_text(self, text: str) -> None:
        pass

    def on_tool_call(self, invocation: InvocationSegment) -> None:
        pass

    def on_tool_result(self, invocation: InvocationSegment, result: ToolResult) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


@dataclass
class StepResult:
    """Result of a single model round."""
    step_number: int
    action: str
    content: str | None = None
    tool_calls_made: int = 0
    usage: Usage = field(default_factory=Usage)


@dataclass
class LoopResult:
    """Final result of running the loop for one user utterance."""
    success: bool
    response: str | None
    steps_taken: int
    step_results: list[StepResult] = field(default_factory=list)
    error: str | None = None
    stopped_reason: str = "completed"


class AgentLoop:
    """
    The orchestrator.

    It owns the session (conversation and usage) and is the only thing
    that mutates it, all on one asyncio task, so nothing needs a lock.
    """

    def __init__(
        self,
        session: Session,
        llm: ChatTransport,
        tools: ToolRegistry,
        system_prompt: str = "",
        max_steps: int = 0,
        observer: AgentObserver | None = None,
        event_log: EventLog | None = None,
    ) -> None:
        self.session = session
        self.llm = llm
        self.tools = tools
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.observer = observer or AgentObserver()
        self.event_log = event_log or EventLog()
        self.state = LoopState()

    async def run(self, user_input: str, cancel: CancellationToken | None = None) -> LoopResult:
        """
        Run the loop for a single user utterance.

        Args:
            user_input: What the user typed
            cancel: Token checked after each model round; cleared on entry

        Returns:
            LoopResult with the final text, or the error that stopped the loop
        """
        text = user_input.strip()
        if not text:
            return LoopResult(success=True, response=None, steps_taken=0, stopped_reason="empty_input")

        if cancel is None:
            cancel = CancellationToken()
        cancel.clear()
        self.session.add_user_message(text)
        self.event_log.log_event(EventType.USER_INPUT, content=text)

        self.state = LoopState()
        step_results: list[StepResult] = []

        while not self.state.finished:
            if self.max_steps and self.state.step >= self.max_steps:
                logger.warning(f"Agent loop hit max_steps limit ({self.max_steps})")
                return LoopResult(
                    success=False,
                    response=self.state.final_response,
                    steps_taken=self.state.step,
                    step_results=step_results,
                    error="Max steps exceeded",
                    stopped_reason="max_steps_exceeded",
                )

            self.state.step += 1
            logger.info(f"Agent loop step {self.state.step}")

            try:
                step_result = await self._execute_step()
            except LLMError as e:
                return self._abort(step_results, str(e), "llm_error")
            except Exception as e:
                return self._abort(step_results, str(e), "unexpected_error")

            step_results.append(step_result)

            if step_result.action == "final_response":
                self.state.finished = True
                self.state.final_response = step_result.content
            elif cancel.requested:
                logger.info(f"Stopping after step {self.state.step}: cancellation requested")
                self.event_log.log_event(EventType.CANCELLED, self.state.step)
                self.state.finished = True
                return LoopResult(
                    success=True,
                    response=step_result.content,
                    steps_taken=self.state.step,
                    step_results=step_results,
                    stopped_reason="cancelled",
                )

        return LoopResult(
            success=True,
            response=self.state.final_response,
            steps_taken=self.state.step,
            step_results=step_results,
            stopped_reason="completed",
        )

    def _abort(self, step_results: list[StepResult], message: str, reason: str) -> LoopResult:
        logger.error(f"Model request failed at step {self.state.step}: {message}")
        self.event_log.log_event(EventType.ERROR, self.state.step, error=message, reason=reason)
        self.observer.on_error(message)
        self.state.finished = True
        return LoopResult(
            success=False,
            response=None,
            steps_taken=self.state.step,
            step_results=step_results,
            error=message,
            stopped_reason=reason,
        )

    async def _execute_step(self) -> StepResult:
        """One model round: request, show text, run tools, record turns."""
        step = self.state.step
        turns = self.session.get_turns()

        self.event_log.log_event(EventType.LLM_REQUEST, step, turn_count=len(turns))
        self.observer.on_thinking()
        response = await self.llm.chat(turns, system=self.system_prompt, tools=self.tools.get_schemas())
        self.observer.on_response(response)

        self.session.add_usage(response.usage)
        self.event_log.log_event(
            EventType.LLM_RESPONSE,
            step,
            invocation_count=len(response.invocations),
            stop_reason=response.stop_reason,
            usage=response.usage.to_dict(),
        )

        results: list[ToolResult] = []
        for segment in response.segments:
            if isinstance(segment, TextSegment):
                if segment.text:
                    self.observer.on_text(segment.text)
                continue
            if isinstance(segment, InvocationSegment):
                self.observer.on_tool_call(segment)
                self.event_log.log_event(
                    EventType.TOOL_DISPATCH, step,
                    invocation_id=segment.id, tool_name=segment.name, arguments=segment.arguments,
                )
                result = await self._dispatch(segment)
                self.event_log.log_event(
                    EventType.TOOL_RESULT, step,
                    invocation_id=result.invocation_id, success=result.success,
                )
                self.observer.on_tool_result(segment, result)
                results.append(result)

        self.session.add_assistant_turn(response.segments)

        if not results:
            return StepResult(
                step_number=step,
                action="final_response",
                content=response.content,
                usage=response.usage,
            )

        self.session.add_tool_results(results)
        return StepResult(
            step_number=step,
            action="tool_calls",
            content=response.content or None,
            tool_calls_made=len(results),
            usage=response.usage,
        )

    async def _dispatch(self, invocation: InvocationSegment) -> ToolResult:
        """Run one invocation; whatever happens, it yields exactly one result."""
        try:
            return await self.tools.execute(invocation)
        except Exception as e:
            logger.error(f"Dispatch of {invocation.name} failed: {e}")
            return ToolResult(
                invocation_id=invocation.id,
                content=format_error(e),
                success=False,
                error=str(e),
            )

    def reset(self) -> None:
        """Forget the conversation, the event log and the usage counters."""
        self.session.clear()
        self.event_log.clear()
        self.state = LoopState()

    @property
    def usage(self) -> Usage:
        return self.session.usage

    async def aclose(self) -> None:
        close = getattr(self.llm, "aclose", None)
        if close is not None:
            await close()

    @classmethod
    def create(
        cls,
        config: AgentConfig | None = None,
        observer: AgentObserver | None = None,
        on_line: LineCallback | None = None,
        system_prompt: str | None = None,
    ) -> "AgentLoop":
        """
        Factory method to create an AgentLoop with all dependencies.

        This is the recommended way to create an AgentLoop for typical use.
        """
        config = config or AgentConfig.from_env()
        return cls(
            session=Session(),
            llm=LLMClient(config.llm),
            tools=create_default_tools(config.tools, on_line=on_line),
            system_prompt=build_system_prompt() if system_prompt is None else system_prompt,
            max_steps=config.max_steps,
            observer=observer,
        )
