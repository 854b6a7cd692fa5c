"""Cooperative interruption of a test batch."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class CancellationToken:
    """Sticky, thread-safe interrupt flag.

    Shared by reference between the signal handler and the runner, which
    polls it between repetitions and on every progress notification.
    Once set it stays set for the rest of the batch.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def install_sigint_handler(token: CancellationToken) -> Callable[..., Any] | int | None:
    """Route SIGINT to ``token`` instead of raising KeyboardInterrupt.

    Returns the previous handler so callers can restore it.
    """

    def _handler(signum: int, frame: object) -> None:
        if not token.cancelled:
            logger.warning("Interrupted, finishing current query and writing report")
        token.cancel()

    return signal.signal(signal.SIGINT, _handler)
