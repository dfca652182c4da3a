"""In memory node state (vector clock, seen ids)"""

from dataclasses import dataclass, field
from typing import Optional

from src.core.dedup import DedupStore
from src.core.message import IdSource, MessageEnvelope, Payload, new_message_id
from src.core.vector_clock import ClockEntries, LogicalTime, PeerId, VectorClock


@dataclass
class NodeState:
    """
    Keeps the in-memory state of the node.
    Owned by the dispatcher, nothing else should mutate it.
    """

    node_id: PeerId
    clock: VectorClock = field(init=False)
    seen: DedupStore = field(default_factory=DedupStore)
    id_source: IdSource = new_message_id

    def __post_init__(self) -> None:
        self.clock = VectorClock.new(self.node_id)

    @classmethod
    def create(
        cls, node_id: PeerId, dedup_capacity: Optional[int] = None, id_source: IdSource = new_message_id
    ) -> "NodeState":
        """Builds a fresh state for `node_id`."""
        return cls(node_id=node_id, seen=DedupStore(dedup_capacity), id_source=id_source)

    def local_time(self) -> LogicalTime:
        """Returns the local counter of the node's clock."""
        return self.clock.local_time(self.node_id)

    def get_clock(self) -> ClockEntries:
        """Returns a snapshot of the vector clock."""
        return self.clock.snapshot()

    def increment_clock(self) -> ClockEntries:
        """Increments the local counter and returns the new clock"""
        self.clock.advance(self.node_id)
        return self.get_clock()

    def update_clock(self, remote_clock: ClockEntries) -> ClockEntries:
        """Merges the local and the remote vector clock to ensure consistency"""
        self.clock.merge(remote_clock)
        return self.get_clock()

    def accept(self, envelope: MessageEnvelope) -> Optional[MessageEnvelope]:
        """
        Admits a received envelope.

        Returns None for an already seen id. Otherwise ticks the clock,
        merges the remote one and returns the envelope stamped with the
        result, ready to relay.
        """
        if not self.seen.mark_seen(envelope.id):
            return None

        self.increment_clock()
        merged = self.update_clock(envelope.clock)
        return envelope.with_clock(merged)

    def originate(self, payload: Payload) -> MessageEnvelope:
        """Creates an envelope sent by this node."""
        message_id = self.id_source()
        self.seen.mark_seen(message_id)
        clock = self.increment_clock()
        return MessageEnvelope(id=message_id, sender=self.node_id, payload=payload, clock=clock)
