"""
Event log for the agent loop.

Every model request, response, tool dispatch and result is appended here
in order, which makes a request's history inspectable after the fact
(the tests lean on it to check ordering guarantees). The log lives as long
as the conversation: clearing the session clears it too.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class EventType(Enum):
    """Types of events in the agent event log."""
    USER_INPUT = "user_input"
    LLM_REQUEST = "llm_request"
    LLM_RESPONSE = "llm_response"
    TOOL_DISPATCH = "tool_dispatch"
    TOOL_RESULT = "tool_result"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class AgentEvent:
    """A single event in the log."""
    timestamp: datetime
    event_type: EventType
    step: int
    data: dict[str, Any]


@dataclass
class EventLog:
    """Append-only event log."""
    events: list[AgentEvent] = field(default_factory=list)

    def log_event(self, event_type: EventType, step: int = 0, **data: Any) -> AgentEvent:
        event = AgentEvent(
            timestamp=datetime.now(UTC),
            event_type=event_type,
            step=step,
            data=data,
        )
        self.events.append(event)
        return event

    def of_type(self, event_type: EventType) -> list[AgentEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)
