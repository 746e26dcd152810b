"""
Session - the conversation and its token counters.

A session owns all conversation state for the lifetime of the shell
process. Turns are only ever appended; the one way to shrink the history
is clear(), which drops every turn and zeroes the usage counters at once.
Nothing is persisted: when the process exits, the session is gone.
"""

from dataclasses import dataclass, field

from nanocode.types import (
    InvocationSegment,
    Role,
    Segment,
    ToolResult,
    Turn,
    Usage,
)


@dataclass
class Session:
    """
    A single interactive session.

    The session owns:
    - The conversation history (turns)
    - The accumulated token usage

    It is mutated only by the agent loop, so it needs no locking.
    """

    turns: list[Turn] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    def add_user_message(self, content: str) -> Turn:
        """Add a plain-text user turn."""
        turn = Turn(role=Role.USER, content=content)
        self.turns.append(turn)
        return turn

    def add_assistant_turn(self, segments: list[Segment]) -> Turn:
        """Add the full model response as one assistant turn."""
        turn = Turn(role=Role.ASSISTANT, content=tuple(segments))
        self.turns.append(turn)
        return turn

    def add_tool_results(self, results: list[ToolResult]) -> Turn:
        """Add the results of one tool batch as a single user turn."""
        turn = Turn(role=Role.USER, content=tuple(r.to_segment() for r in results))
        self.turns.append(turn)
        return turn

    def add_usage(self, usage: Usage) -> None:
        self.usage.add(usage)

    def get_turns(self) -> list[Turn]:
        """Get a copy of the conversation."""
        return list(self.turns)

    def unmatched_invocations(self) -> list[InvocationSegment]:
        """
        Invocations that have no result with the same id.

        The agent loop keeps this empty between requests, including
        cancelled ones, so the next transport call never sees a dangling
        invocation.
        """
        answered = {r.invocation_id for t in self.turns for r in t.results}
        return [
            inv for t in self.turns for inv in t.invocations
            if inv.id not in answered
        ]

    def clear(self) -> None:
        """Drop every turn and reset usage to zero."""
        self.turns.clear()
        self.usage = Usage()

    def __len__(self) -> int:
        return len(self.turns)
