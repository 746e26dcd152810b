"""
Tests for the AgentLoop and related components.
"""

import signal
from pathlib import Path

import pytest

from nanocode.agent_loop import AgentLoop, AgentObserver, LoopResult
from nanocode.cancellation import CancellationToken, install_signal_handlers
from nanocode.config import AgentConfig, ToolConfig
from nanocode.events import EventType
from nanocode.llm import ChatResponse, LLMClient, LLMError
from nanocode.session import Session
from nanocode.tools import ToolRegistry
from nanocode.toolset import create_default_tools
from nanocode.types import InvocationSegment, ResultSegment, Role, TextSegment, Turn, Usage


def reply(*segments, input_tokens: int = 10, output_tokens: int = 5) -> ChatResponse:
    return ChatResponse(
        segments=list(segments),
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def call(id: str, name: str, **arguments) -> InvocationSegment:
    return InvocationSegment(id=id, name=name, arguments=arguments)


class MockLLMClient:
    """Mock LLM client for testing. Scripted items may be exceptions."""

    def __init__(self, responses: list | None = None):
        self._responses = list(responses or [])
        self.calls: list[dict] = []

    async def chat(self, turns: list[Turn], system: str = "", tools: list[dict] | None = None) -> ChatResponse:
        self.calls.append({"turns": list(turns), "system": system, "tools": tools})
        if not self._responses:
            return reply(TextSegment("Default response"))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingObserver(AgentObserver):
    """Records every hook call."""

    def __init__(self, on_call=None):
        self.events: list[tuple] = []
        self._on_call = on_call

    def on_text(self, text: str) -> None:
        self.events.append(("text", text))

    def on_tool_call(self, invocation: InvocationSegment) -> None:
        self.events.append(("call", invocation.name))
        if self._on_call:
            self._on_call(invocation)

    def on_tool_result(self, invocation, result) -> None:
        self.events.append(("result", result.content))

    def on_error(self, message: str) -> None:
        self.events.append(("error", message))


def make_loop(responses, observer=None, max_steps: int = 0) -> tuple[AgentLoop, MockLLMClient]:
    llm = MockLLMClient(responses)
    loop = AgentLoop(
        session=Session(),
        llm=llm,
        tools=create_default_tools(ToolConfig()),
        system_prompt="SYS",
        max_steps=max_steps,
        observer=observer,
    )
    return loop, llm


class TestAgentLoopRun:
    """Tests for running one user request."""

    @pytest.mark.asyncio
    async def test_list_files_scenario(self, tmp_path: Path, monkeypatch) -> None:
        (tmp_path / "a.txt").write_text("")
        (tmp_path / "sub").mkdir()
        monkeypatch.chdir(tmp_path)
        loop, llm = make_loop([
            reply(TextSegment("Let me look."), call("tu_1", "list", path=".")),
            reply(TextSegment("Found a.txt and sub/."), input_tokens=20, output_tokens=7),
        ])

        result = await loop.run("list files")

        assert result.success
        assert result.stopped_reason == "completed"
        assert result.response == "Found a.txt and sub/."
        assert result.steps_taken == 2

        turns = loop.session.get_turns()
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert turns[0].content == "list files"
        assert turns[1].invocations == [call("tu_1", "list", path=".")]
        assert turns[2].results == [ResultSegment(invocation_id="tu_1", content="a.txt\nsub/")]

        second_request = llm.calls[1]["turns"]
        assert second_request[-1].results[0].content == "a.txt\nsub/"
        assert loop.usage.input_tokens == 30
        assert loop.usage.output_tokens == 12

    @pytest.mark.asyncio
    async def test_sends_system_prompt_and_schemas(self) -> None:
        loop, llm = make_loop([reply(TextSegment("hi"))])

        await loop.run("hello")

        assert llm.calls[0]["system"] == "SYS"
        assert [t["name"] for t in llm.calls[0]["tools"]] == loop.tools.tool_names

    @pytest.mark.asyncio
    async def test_tools_run_in_order_and_pair_with_results(self, tmp_path: Path) -> None:
        target = tmp_path / "notes.txt"
        loop, _ = make_loop([
            reply(
                call("w", "write", path=str(target), content="first"),
                call("r", "read", path=str(target)),
                call("x", "nosuch"),
            ),
            reply(TextSegment("done")),
        ])

        await loop.run("write then read")

        results = loop.session.get_turns()[2].results
        assert [r.invocation_id for r in results] == ["w", "r", "x"]
        assert results[0].content == "ok"
        assert results[1].content == "   1| first"
        assert results[2].content == "error: unknown tool nosuch"
        assert loop.session.unmatched_invocations() == []

    @pytest.mark.asyncio
    async def test_text_and_tool_calls_reach_observer_in_order(self) -> None:
        observer = RecordingObserver()
        loop, _ = make_loop(
            [
                reply(TextSegment("checking"), call("t1", "exec", command="echo hi", timeout=2000)),
                reply(TextSegment("all good")),
            ],
            observer=observer,
        )

        await loop.run("go")

        assert observer.events == [
            ("text", "checking"),
            ("call", "exec"),
            ("result", "[stdout] hi\n[exit: 0]"),
            ("text", "all good"),
        ]

    @pytest.mark.asyncio
    async def test_events_are_ordered(self) -> None:
        loop, _ = make_loop([
            reply(call("a", "list", path="."), call("b", "list", path=".")),
            reply(TextSegment("ok")),
        ])

        await loop.run("go")

        kinds = [e.event_type for e in loop.event_log.events]
        assert kinds == [
            EventType.USER_INPUT,
            EventType.LLM_REQUEST,
            EventType.LLM_RESPONSE,
            EventType.TOOL_DISPATCH,
            EventType.TOOL_RESULT,
            EventType.TOOL_DISPATCH,
            EventType.TOOL_RESULT,
            EventType.LLM_REQUEST,
            EventType.LLM_RESPONSE,
        ]

    @pytest.mark.asyncio
    async def test_empty_input_is_ignored(self) -> None:
        loop, llm = make_loop([])

        result = await loop.run("   ")

        assert result.stopped_reason == "empty_input"
        assert llm.calls == []
        assert len(loop.session) == 0


class TestAgentLoopFailures:
    """Tests for transport errors and limits."""

    @pytest.mark.asyncio
    async def test_transport_error_keeps_history(self) -> None:
        observer = RecordingObserver()
        loop, _ = make_loop(
            [
                reply(call("t1", "list", path=".")),
                LLMError("API error (500): Internal Server Error"),
            ],
            observer=observer,
        )

        result = await loop.run("go")

        assert not result.success
        assert result.stopped_reason == "llm_error"
        assert result.error == "API error (500): Internal Server Error"
        assert ("error", "API error (500): Internal Server Error") in observer.events
        assert len(loop.session) == 3
        assert loop.session.unmatched_invocations() == []
        assert loop.usage.total == 15

    @pytest.mark.asyncio
    async def test_first_request_failure_leaves_user_turn(self) -> None:
        loop, _ = make_loop([LLMError("Request failed after 1 attempts: refused")])

        result = await loop.run("hello")

        assert result.stopped_reason == "llm_error"
        assert [t.content for t in loop.session.get_turns()] == ["hello"]
        assert loop.usage.total == 0

    @pytest.mark.asyncio
    async def test_session_usable_after_error(self) -> None:
        loop, llm = make_loop([LLMError("down"), reply(TextSegment("back"))])

        await loop.run("first")
        result = await loop.run("second")

        assert result.response == "back"
        assert [t.content for t in llm.calls[1]["turns"]] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_max_steps(self) -> None:
        loop, llm = make_loop(
            [reply(call(f"t{i}", "list", path=".")) for i in range(5)],
            max_steps=2,
        )

        result = await loop.run("loop forever")

        assert result.stopped_reason == "max_steps_exceeded"
        assert result.steps_taken == 2
        assert len(llm.calls) == 2
        assert loop.session.unmatched_invocations() == []


class FaultyRegistry(ToolRegistry):
    """A registry whose dispatch itself blows up."""

    async def execute(self, invocation: InvocationSegment):
        raise RuntimeError(f"registry broke on {invocation.name}")


class TestDispatchFailure:
    """A fault outside the tool boundary still yields one result per invocation."""

    @pytest.mark.asyncio
    async def test_registry_exception_becomes_error_result(self) -> None:
        llm = MockLLMClient([
            reply(call("t1", "read", path="a"), call("t2", "grep", pattern="x")),
            reply(TextSegment("recovered")),
        ])
        loop = AgentLoop(session=Session(), llm=llm, tools=FaultyRegistry(create_default_tools().describe()))

        result = await loop.run("go")

        assert result.stopped_reason == "completed"
        assert result.response == "recovered"
        results = loop.session.get_turns()[2].results
        assert results == [
            ResultSegment(invocation_id="t1", content="error: registry broke on read"),
            ResultSegment(invocation_id="t2", content="error: registry broke on grep"),
        ]
        assert loop.session.unmatched_invocations() == []


class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_stops_after_current_batch(self) -> None:
        token = CancellationToken()
        observer = RecordingObserver(on_call=lambda invocation: token.request())
        loop, llm = make_loop(
            [
                reply(call("t1", "list", path="."), call("t2", "list", path=".")),
                reply(TextSegment("never sent")),
            ],
            observer=observer,
        )

        result = await loop.run("go", token)

        assert result.stopped_reason == "cancelled"
        assert len(llm.calls) == 1
        assert [e for e in observer.events if e[0] == "call"] == [("call", "list"), ("call", "list")]
        assert [r.invocation_id for r in loop.session.get_turns()[-1].results] == ["t1", "t2"]
        assert loop.session.unmatched_invocations() == []
        assert loop.event_log.of_type(EventType.CANCELLED)

    @pytest.mark.asyncio
    async def test_interrupt_reaches_callers_token(self) -> None:
        """An interrupt during a batch sets the token the caller passed in."""
        token = CancellationToken()
        previous_int = signal.getsignal(signal.SIGINT)
        previous_term = signal.getsignal(signal.SIGTERM)
        install_signal_handlers(token)
        interrupt = signal.getsignal(signal.SIGINT)
        observer = RecordingObserver(on_call=lambda invocation: interrupt(signal.SIGINT, None))
        loop, llm = make_loop(
            [reply(call("t1", "list", path=".")), reply(TextSegment("never sent"))],
            observer=observer,
        )

        try:
            result = await loop.run("go", token)
        finally:
            signal.signal(signal.SIGINT, previous_int)
            signal.signal(signal.SIGTERM, previous_term)

        assert token.requested
        assert result.stopped_reason == "cancelled"
        assert len(llm.calls) == 1
        assert loop.session.unmatched_invocations() == []

    @pytest.mark.asyncio
    async def test_token_cleared_when_request_starts(self) -> None:
        token = CancellationToken()
        token.request()
        loop, _ = make_loop([reply(call("t1", "list", path=".")), reply(TextSegment("done"))])

        result = await loop.run("go", token)

        assert result.stopped_reason == "completed"
        assert not token.requested

    @pytest.mark.asyncio
    async def test_cancel_during_final_response_completes(self) -> None:
        token = CancellationToken()
        observer = RecordingObserver()
        observer.on_text = lambda text: token.request()
        loop, _ = make_loop([reply(TextSegment("answer"))], observer=observer)

        result = await loop.run("go", token)

        assert result.stopped_reason == "completed"
        assert result.response == "answer"


class TestReset:
    """Tests for clearing the conversation."""

    @pytest.mark.asyncio
    async def test_reset_clears_turns_and_usage(self) -> None:
        loop, llm = make_loop([reply(TextSegment("one")), reply(TextSegment("two"))])
        await loop.run("first")
        assert len(loop.event_log) > 0

        loop.reset()

        assert len(loop.session) == 0
        assert loop.usage.total == 0
        assert len(loop.event_log) == 0

        await loop.run("second")
        assert [t.content for t in llm.calls[1]["turns"]] == ["second"]


class TestCreate:
    """Tests for the factory."""

    @pytest.mark.asyncio
    async def test_create_wires_real_client(self) -> None:
        loop = AgentLoop.create(AgentConfig(max_steps=3), system_prompt="custom")

        assert isinstance(loop.llm, LLMClient)
        assert loop.system_prompt == "custom"
        assert loop.max_steps == 3
        assert len(loop.tools) == 10
        await loop.aclose()

    @pytest.mark.asyncio
    async def test_default_system_prompt_names_cwd(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        loop = AgentLoop.create(AgentConfig())

        assert loop.system_prompt.startswith("NANOCODE: Concise coding assistant.")
        assert str(tmp_path) in loop.system_prompt
        await loop.aclose()


def test_loop_result_defaults() -> None:
    result = LoopResult(success=True, response="x", steps_taken=1)
    assert result.stopped_reason == "completed"
    assert result.step_results == []
