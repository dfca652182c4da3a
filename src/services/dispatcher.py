"""
Protocol state machine of the node.

Consumes input events one at a time, keeps the vector clock and the
seen ids up to date, relays envelopes over the transport and hands the
ones meant for this node to the local application.
"""

import asyncio
import logging

from src.core.errors import DecodeError, EncodeError, TransportWriteError
from src.core.events import (
    ClockSnapshot,
    Delivered,
    InputEvent,
    Notice,
    OutputEvent,
    QueryClock,
    RemoteInput,
    SendPrivate,
    SendPublic,
    Shutdown,
)
from src.core.message import MessageEnvelope, Payload, PrivatePayload, PublicPayload
from src.core.node_state import NodeState
from src.services.event_source import EventSource
from src.services.transport import ITransport

logger = logging.getLogger(__name__)

DEFAULT_DEPARTURE_TEXT = "left the chat"
UNHEARD_NOTICE = "No one can hear you"


class Dispatcher:
    """Single event loop driving a node."""

    def __init__(
        self,
        state: NodeState,
        events: EventSource,
        transport: ITransport,
        app_queue: "asyncio.Queue[OutputEvent]",
        departure_text: str = DEFAULT_DEPARTURE_TEXT,
    ):
        self.state = state
        self.events = events
        self.transport = transport
        self.app_queue = app_queue
        self.departure_text = departure_text
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Processes events until a Shutdown event has been handled."""
        self._running = True
        logger.info("[%s] Dispatcher started.", self.state.node_id)

        try:
            while self._running:
                event = await self.events.next()
                self._running = await self.handle(event)
        finally:
            self._running = False
            logger.info("[%s] Dispatcher terminated.", self.state.node_id)

    async def handle(self, event: InputEvent) -> bool:
        """
        Performs the transition for a single event.
        Returns False once the node must stop.
        """
        match event:
            case RemoteInput(raw_line=raw_line):
                await self._on_remote_input(raw_line)
            case SendPublic(text=text):
                await self._originate(PublicPayload(text=text))
            case SendPrivate(target=target, text=text):
                await self._originate(PrivatePayload(target=target, text=text))
            case QueryClock():
                self._emit(ClockSnapshot(clock=self.state.get_clock()))
            case Shutdown():
                await self._originate(PublicPayload(text=self.departure_text))
                return False
            case _:
                raise TypeError(f"Unknown event: {event!r}")
        return True

    async def _on_remote_input(self, raw_line: str) -> None:
        try:
            envelope = MessageEnvelope.from_line(raw_line)
        except DecodeError as e:
            logger.error("Could not decode `%s` as a message: %s", raw_line, e)
            return

        relayed = self.state.accept(envelope)
        if relayed is None:
            # Already seen, the flood stops here
            return

        logger.info(
            "received, local date: %d, message: %s", self.state.local_time(), relayed.payload
        )
        # Relay before delivery, the flood must go on whatever we do locally
        await self.relay(relayed)

        if relayed.is_for(self.state.node_id):
            self._emit(Delivered(envelope=relayed))

    async def _originate(self, payload: Payload) -> None:
        envelope = self.state.originate(payload)
        await self.relay(envelope)

    async def relay(self, envelope: MessageEnvelope) -> None:
        """
        Sends an envelope to the neighbours.
        Failures are logged and reported, never raised.
        """
        try:
            line = envelope.to_line()
        except EncodeError as e:
            logger.error("Could not serialize `%r`: %s", envelope, e)
            return

        try:
            await self.transport.write_line(line)
        except TransportWriteError as e:
            self._emit(Notice(text=UNHEARD_NOTICE))
            logger.error("Failed to write to transport: %s", e)
            return

        logger.info("sent, local date: %d, message: %s", self.state.local_time(), envelope.payload)

    def _emit(self, event: OutputEvent) -> None:
        self.app_queue.put_nowait(event)
