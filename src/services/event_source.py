"""
Merges transport input and application input into a single ordered stream.
"""

import asyncio
import logging
from typing import Optional

from src.core.events import InputEvent, RemoteInput
from src.services.transport import ITransport

logger = logging.getLogger(__name__)


class EventSource:
    """
    Single stream of input events for the dispatcher.
    Events are returned in the order they were enqueued.
    """

    def __init__(self, transport: ITransport) -> None:
        self.transport = transport
        self._queue: "asyncio.Queue[InputEvent]" = asyncio.Queue()
        self._reader_task: Optional["asyncio.Task[None]"] = None

    def submit(self, event: InputEvent) -> None:
        """Enqueues an event coming from the local application."""
        self._queue.put_nowait(event)

    async def next(self) -> InputEvent:
        """Waits for the next event."""
        return await self._queue.get()

    def start(self) -> None:
        """Starts pumping transport lines into the stream."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._pump_transport())

    async def stop(self) -> None:
        """Stops the transport reader."""
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

    async def _pump_transport(self) -> None:
        try:
            while True:
                line = await self.transport.read_line()
                if line is None:
                    logger.info("Transport input closed.")
                    return
                if line.strip():
                    self._queue.put_nowait(RemoteInput(raw_line=line))
        # pylint: disable=broad-exception-caught
        except Exception as e:
            logger.error("Transport reader error: %s", e)
