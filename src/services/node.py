"""
Node controllers, allows to centralize the node's services in
a structured and coherent object.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, List, Optional

from src.config.settings import settings
from src.core.errors import StartupFailure
from src.core.events import (
    ClockSnapshot,
    Delivered,
    InputEvent,
    Notice,
    OutputEvent,
    QueryClock,
    SendPrivate,
    SendPublic,
    Shutdown,
)
from src.core.message import MessageEnvelope
from src.core.node_state import NodeState
from src.core.vector_clock import ClockEntries, PeerId
from src.services.dispatcher import Dispatcher
from src.services.event_source import EventSource
from src.services.transport import FileTransport, ITransport

logger = logging.getLogger(__name__)


class INodeService(ABC):
    """
    Abstract Interface for node's management service.
    Defines the contract for the node's initialization,
    messaging and shutdown.
    """

    @property
    @abstractmethod
    def state(self) -> Optional[NodeState]:
        """Returns the current node's state (if set)"""
        pass

    @abstractmethod
    def is_initialized(self) -> bool:
        """Checks if node is active and ready"""
        pass

    @abstractmethod
    async def initialize(self, node_id: str) -> None:
        """
        Start node's services for the specified peer id.
        Opens the transport and starts the dispatcher.
        """
        pass

    @abstractmethod
    def send_public(self, text: str) -> None:
        """Queues a message for every peer."""
        pass

    @abstractmethod
    def send_private(self, target: PeerId, text: str) -> None:
        """Queues a message for a single peer."""
        pass

    @abstractmethod
    async def get_clock(self) -> ClockEntries:
        """Asks the dispatcher for the current vector clock."""
        pass

    @abstractmethod
    def get_messages(self, limit: int = 50, offset: int = 0) -> List[MessageEnvelope]:
        """Returns messages delivered to this node, oldest first."""
        pass

    @abstractmethod
    def get_notices(self) -> List[str]:
        """Returns operational notices, oldest first."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """
        Announces departure to the overlay and stops the node.
        """
        pass


class LocalNodeService(INodeService):
    """
    Node running in this process, connected to its neighbours
    through a line transport (FIFOs by default).
    """

    def __init__(self) -> None:
        self._state: Optional[NodeState] = None
        self._transport: Optional[ITransport] = None
        self._events: Optional[EventSource] = None
        self._dispatcher: Optional[Dispatcher] = None
        self._dispatcher_task: Optional[asyncio.Task[None]] = None
        self._consumer_task: Optional[asyncio.Task[None]] = None
        self._app_queue: "asyncio.Queue[OutputEvent]" = asyncio.Queue()
        self._inbox: List[MessageEnvelope] = []
        self._notices: List[str] = []
        self._pending_clocks: Deque["asyncio.Future[ClockEntries]"] = deque()

    @property
    def state(self) -> Optional[NodeState]:
        return self._state

    def is_initialized(self) -> bool:
        return self._state is not None

    def _build_transport(self) -> ITransport:
        if not settings.input_path or not settings.output_path:
            raise StartupFailure("Both input_path and output_path must be configured")
        return FileTransport(settings.input_path, settings.output_path)

    async def initialize(self, node_id: str) -> None:
        if self.is_initialized():
            if self._state and self._state.node_id != node_id:
                raise ValueError(f"Node is already initialized as {self._state.node_id}")
            return

        logger.info("Initializing node: %s", node_id)

        # Built first so bad settings never leave an opened channel behind
        state = NodeState.create(node_id, dedup_capacity=settings.dedup_capacity)
        transport = self._build_transport()
        # Fatal: nothing runs if the channel can't be opened
        await transport.open()

        self._transport = transport
        self._state = state
        self._app_queue = asyncio.Queue()
        self._events = EventSource(transport)
        self._dispatcher = Dispatcher(
            state=self._state,
            events=self._events,
            transport=transport,
            app_queue=self._app_queue,
            departure_text=settings.departure_text,
        )

        self._events.start()
        self._dispatcher_task = asyncio.create_task(self._dispatcher.run())
        self._dispatcher_task.add_done_callback(self._on_dispatcher_done)
        self._consumer_task = asyncio.create_task(self._consume_output())

    def _submit(self, event: InputEvent) -> None:
        if not self._events:
            raise RuntimeError("Node is not initialized")
        if self._dispatcher_task is not None and self._dispatcher_task.done():
            raise RuntimeError("Dispatcher stopped")
        self._events.submit(event)

    def _on_dispatcher_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.critical("Dispatcher crashed: %r", error)
        # Nobody is left to answer the queries still waiting
        while self._pending_clocks:
            future = self._pending_clocks.popleft()
            if not future.done():
                future.set_exception(RuntimeError("Dispatcher stopped"))

    def send_public(self, text: str) -> None:
        self._submit(SendPublic(text=text))

    def send_private(self, target: PeerId, text: str) -> None:
        self._submit(SendPrivate(target=target, text=text))

    async def get_clock(self) -> ClockEntries:
        future: "asyncio.Future[ClockEntries]" = asyncio.get_running_loop().create_future()
        self._submit(QueryClock())
        self._pending_clocks.append(future)
        return await future

    def get_messages(self, limit: int = 50, offset: int = 0) -> List[MessageEnvelope]:
        return self._inbox[offset : offset + limit]

    def get_notices(self) -> List[str]:
        return list(self._notices)

    async def _consume_output(self) -> None:
        """Application side of the dispatcher output."""
        while True:
            match await self._app_queue.get():
                case Delivered(envelope=envelope):
                    self._inbox.append(envelope)
                case Notice(text=text):
                    logger.warning("Notice: %s", text)
                    self._notices.append(text)
                case ClockSnapshot(clock=clock):
                    # Queries are answered in the order they were submitted
                    if self._pending_clocks:
                        future = self._pending_clocks.popleft()
                        if not future.done():
                            future.set_result(clock)

    async def shutdown(self) -> None:
        """Graceful shutdown with departure notice."""
        logger.info("Shutting down services...")

        try:
            # 1. Let the dispatcher broadcast the departure and exit.
            # A crashed dispatcher re-raises here, after cleanup.
            if self._dispatcher_task and self._events:
                if not self._dispatcher_task.done():
                    self._events.submit(Shutdown())
                await self._dispatcher_task
        finally:
            await self._release()
        logger.info("Node shutdown complete.")

    async def _release(self) -> None:
        # 2. Stop reading from the neighbours
        if self._events:
            await self._events.stop()

        # 3. Drain what the dispatcher emitted last, then stop the consumer
        if self._consumer_task:
            while not self._app_queue.empty() and not self._consumer_task.done():
                await asyncio.sleep(0)
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass

        for future in self._pending_clocks:
            future.cancel()
        self._pending_clocks.clear()

        try:
            if self._transport:
                await self._transport.close()
        finally:
            self._state = None
            self._transport = None
            self._events = None
            self._dispatcher = None
            self._dispatcher_task = None
            self._consumer_task = None


node_service: INodeService = LocalNodeService()
