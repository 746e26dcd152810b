"""
Cooperative cancellation for the agent loop.

An interrupt (Ctrl-C) does not abort anything in flight. It sets a token
that the agent loop checks after each model response: the current round
of tool calls finishes, its results are recorded, and the loop returns
instead of calling the model again. A terminate signal is the hard stop
and ends the process at once.
"""

import logging
import os
import signal
import sys
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """A flag passed explicitly down the agent loop's call chain."""

    def __init__(self) -> None:
        self._requested = False

    def request(self) -> None:
        """Ask the loop to stop at its next check."""
        if not self._requested:
            logger.info("Cancellation requested")
        self._requested = True

    def clear(self) -> None:
        self._requested = False

    @property
    def requested(self) -> bool:
        return self._requested


def install_signal_handlers(
    token: CancellationToken,
    on_exit: Callable[[], None] | None = None,
) -> None:
    """
    Route SIGINT to the token and SIGTERM to an immediate exit.

    on_exit runs right before the process exits on SIGTERM (the REPL uses
    it to print a goodbye).
    """

    def _interrupt(signum: int, frame: object) -> None:
        token.request()

    def _terminate(signum: int, frame: object) -> None:
        if on_exit is not None:
            on_exit()
        sys.stdout.flush()
        os._exit(0)

    signal.signal(signal.SIGINT, _interrupt)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _terminate)
