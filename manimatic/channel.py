"""Event channel: the producer side of the push connection."""

import asyncio
import contextlib
import logging
from enum import Enum
from typing import NamedTuple, Optional

from .errors import TransportError
from .events import EventDecodeError, decode_event
from .timeout_guard import TimeoutGuard
from .utils.api_client import ApiClient

logger = logging.getLogger(__name__)


class TimeoutExpired(NamedTuple):
    """Queued when the timeout guard's deadline passes."""
    token: int


class ChannelFailed(NamedTuple):
    """Queued once when the push connection fails; nothing follows it."""
    error: TransportError


class ChannelStatus(str, Enum):
    NEW = "new"
    OPEN = "open"
    FAILED = "failed"
    DISPOSED = "disposed"


class EventChannel:
    """
    Reads the backend's event stream and puts decoded events on a queue.

    The channel lives as long as the session: it is opened once, never
    reconnected, and a transport failure ends it for good.
    """

    def __init__(self, client: ApiClient, queue: asyncio.Queue, guard: Optional[TimeoutGuard] = None):
        """
        Args:
            client: API client whose HTTP connection carries the stream
            queue: Where decoded events and the failure notice go
            guard: Timeout guard to disarm when the channel is disposed
        """
        self._client = client
        self._queue = queue
        self._guard = guard
        self._task: Optional[asyncio.Task] = None
        self.status = ChannelStatus.NEW
        self.events_received = 0

    @property
    def is_open(self) -> bool:
        return self.status == ChannelStatus.OPEN

    async def connect(self) -> None:
        """
        Probe the backend, then start reading the event stream.

        Raises:
            TransportError: If the probe fails; the stream is never opened
        """
        if self.status != ChannelStatus.NEW:
            raise RuntimeError(f"channel cannot connect from status {self.status.value}")
        try:
            await self._client.probe()
        except TransportError:
            self.status = ChannelStatus.FAILED
            raise
        self.status = ChannelStatus.OPEN
        self._task = asyncio.create_task(self._run(), name="manimatic-event-channel")

    async def _run(self) -> None:
        try:
            async for payload in self._client.stream_events():
                logger.debug("Event payload: %s", payload)
                try:
                    event = decode_event(payload)
                except EventDecodeError as e:
                    logger.warning("Skipping malformed event: %s", e)
                    continue
                if event is None:
                    continue
                self.events_received += 1
                self._queue.put_nowait(event)
        except TransportError as e:
            if self.status != ChannelStatus.OPEN:
                return
            logger.error("Event channel failed: %s", e)
            self.status = ChannelStatus.FAILED
            self._queue.put_nowait(ChannelFailed(e))

    async def dispose(self) -> None:
        """Close the connection and disarm the timeout guard. Safe to call repeatedly."""
        if self._guard is not None:
            self._guard.disarm()
        if self.status == ChannelStatus.DISPOSED:
            return
        self.status = ChannelStatus.DISPOSED
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.debug("Event channel disposed")
