"""Single-shot deadline for awaiting an asynchronous result."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimeoutGuard:
    """
    One pending deadline at a time.

    Every arm() issues a new token. When the deadline passes, the expiry
    callback receives that token; the owner later calls claim(token) to
    learn whether the expiry still counts, i.e. nothing disarmed or
    re-armed the guard in between.
    """

    def __init__(self, on_expire: Callable[[int], None]):
        """
        Args:
            on_expire: Called from the event loop with the token of the
                deadline that passed
        """
        self._on_expire = on_expire
        self._handle: Optional[asyncio.TimerHandle] = None
        self._token = 0
        self._pending: Optional[int] = None

    @property
    def armed(self) -> bool:
        """True while a deadline is counting down."""
        return self._handle is not None

    def arm(self, deadline: float) -> int:
        """
        Start the deadline, replacing any pending one.

        Args:
            deadline: Seconds from now

        Returns:
            Token identifying this deadline
        """
        self._cancel_handle()
        self._token += 1
        token = self._token
        self._pending = token
        self._handle = asyncio.get_running_loop().call_later(deadline, self._fire, token)
        logger.debug("Timeout armed (token=%d, deadline=%.1fs)", token, deadline)
        return token

    def disarm(self) -> None:
        """Cancel the pending deadline. Does nothing if none is pending."""
        if self._pending is None:
            return
        self._cancel_handle()
        logger.debug("Timeout disarmed (token=%d)", self._pending)
        self._pending = None

    def claim(self, token: int) -> bool:
        """
        Consume an expiry.

        Returns:
            True if token belongs to the deadline still pending; the guard
            is then cleared. False for a stale expiry.
        """
        if self._pending != token or self._handle is not None:
            return False
        self._pending = None
        return True

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, token: int) -> None:
        self._handle = None
        logger.debug("Timeout expired (token=%d)", token)
        self._on_expire(token)
