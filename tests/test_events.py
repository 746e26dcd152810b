"""
Tests for the event log and the cancellation token.
"""

import signal

from nanocode.cancellation import CancellationToken, install_signal_handlers
from nanocode.events import EventLog, EventType


class TestEventLog:
    """Test the append-only event log."""

    def test_log_and_filter(self) -> None:
        log = EventLog()
        log.log_event(EventType.USER_INPUT, content="hi")
        log.log_event(EventType.TOOL_DISPATCH, 1, tool_name="read")
        log.log_event(EventType.TOOL_DISPATCH, 1, tool_name="grep")

        dispatches = log.of_type(EventType.TOOL_DISPATCH)
        assert [e.data["tool_name"] for e in dispatches] == ["read", "grep"]
        assert dispatches[0].step == 1

    def test_clear(self) -> None:
        log = EventLog()
        log.log_event(EventType.ERROR, error="x")
        log.clear()
        assert log.events == []
        assert len(log) == 0


class TestCancellationToken:
    """Test the cooperative stop flag."""

    def test_request_and_clear(self) -> None:
        token = CancellationToken()
        assert not token.requested
        token.request()
        token.request()
        assert token.requested
        token.clear()
        assert not token.requested

    def test_sigint_sets_token(self) -> None:
        previous_int = signal.getsignal(signal.SIGINT)
        previous_term = signal.getsignal(signal.SIGTERM)
        token = CancellationToken()
        try:
            install_signal_handlers(token)
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
            assert token.requested
        finally:
            signal.signal(signal.SIGINT, previous_int)
            signal.signal(signal.SIGTERM, previous_term)
