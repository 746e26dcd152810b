"""
Core types for the agent shell.

These types are the data that flows through the agent loop: turns of a
conversation, the segments inside them, and the token usage reported by
the model. They map one-to-one onto the wire format of the messages API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Roles a turn can have in the conversation."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextSegment:
    """Display text produced by the model."""
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class InvocationSegment:
    """
    A request from the model to run a tool.

    This is the only way the model affects the world: it cannot touch
    files or run commands except by emitting an invocation that the
    shell executes on its behalf. Arguments are a flat map of primitives.
    """
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.arguments}


@dataclass(frozen=True)
class ResultSegment:
    """The text result of one invocation, keyed by the invocation id."""
    invocation_id: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_result", "tool_use_id": self.invocation_id, "content": self.content}


@dataclass(frozen=True)
class RawSegment:
    """A block type the shell does not interpret, echoed back verbatim."""
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)


Segment = TextSegment | InvocationSegment | ResultSegment | RawSegment


def segment_from_dict(data: dict[str, Any]) -> Segment:
    """Parse one content block of an API response into a segment."""
    block_type = data.get("type")
    if block_type == "text":
        return TextSegment(text=data.get("text") or "")
    if block_type == "tool_use" and data.get("id") and data.get("name"):
        return InvocationSegment(
            id=data["id"],
            name=data["name"],
            arguments=dict(data.get("input") or {}),
        )
    if block_type == "tool_result":
        return ResultSegment(
            invocation_id=data.get("tool_use_id", ""),
            content=str(data.get("content", "")),
        )
    return RawSegment(data=dict(data))


@dataclass(frozen=True)
class Turn:
    """
    One role-tagged contribution to the conversation.

    Content is either raw text (what the user typed) or an ordered list of
    segments (model output, or the tool results sent back).
    """
    role: Role
    content: str | tuple[Segment, ...]

    @property
    def segments(self) -> tuple[Segment, ...]:
        if isinstance(self.content, str):
            return ()
        return self.content

    @property
    def invocations(self) -> list[InvocationSegment]:
        return [s for s in self.segments if isinstance(s, InvocationSegment)]

    @property
    def results(self) -> list[ResultSegment]:
        return [s for s in self.segments if isinstance(s, ResultSegment)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to messages API format."""
        if isinstance(self.content, str):
            return {"role": self.role.value, "content": self.content}
        return {"role": self.role.value, "content": [s.to_dict() for s in self.content]}


@dataclass
class Usage:
    """Token counters, either for one response or accumulated for a session."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Usage":
        if not data:
            return cls()
        return cls(
            input_tokens=int(data.get("input_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or 0),
        )


@dataclass
class ToolResult:
    """
    The result of executing a tool.

    content is always the text handed back to the model. On failure it
    carries the `error: ` prefixed diagnostic and success is False.
    """
    invocation_id: str
    content: str
    success: bool = True
    error: str | None = None

    def to_segment(self) -> ResultSegment:
        return ResultSegment(invocation_id=self.invocation_id, content=self.content)


@dataclass
class LoopState:
    """Where the agent loop is within the current user request."""
    step: int = 0
    finished: bool = False
    final_response: str | None = None
