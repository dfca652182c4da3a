"""
Module for vector clock operations

Provides a mutable per-node vector clock with increment and merge,
used to track causal relationships in distributed systems.
"""

from typing import Dict, Iterator, Mapping

from src.core.errors import InvariantViolation

PeerId = str
LogicalTime = int

# Plain (PeerId: Counter) mapping, used on the wire and in snapshots
ClockEntries = Dict[PeerId, LogicalTime]


class VectorClock:
    """
    Logical clock of a single node.

    Methods:
        local_time: Returns the counter of the local node.
        advance: Increments the counter of the local node.
        merge: Takes the max value per node from another clock.
        snapshot: Returns an independent copy of the entries.
    """

    def __init__(self, local: PeerId) -> None:
        self._entries: ClockEntries = {local: 0}

    @classmethod
    def new(cls, local: PeerId) -> "VectorClock":
        """Returns a clock holding only `local -> 0`."""
        return cls(local)

    @classmethod
    def from_entries(cls, local: PeerId, entries: Mapping[PeerId, LogicalTime]) -> "VectorClock":
        """Builds the clock of `local` and merges `entries` into it."""
        clock = cls(local)
        clock.merge(entries)
        return clock

    def local_time(self, local: PeerId) -> LogicalTime:
        """
        Returns the counter of the local node.

        Raises:
            InvariantViolation: if the clock has no entry for `local`.
        """
        try:
            return self._entries[local]
        except KeyError as e:
            raise InvariantViolation(f"missing local peer '{local}' in vector clock") from e

    def advance(self, local: PeerId) -> None:
        """Increments the counter of `local`, starting from 0 when absent."""
        self._entries[local] = self._entries.get(local, 0) + 1

    def merge(self, other: "VectorClock | Mapping[PeerId, LogicalTime]") -> None:
        """
        Merge another clock into this one by taking the maximum value for each node.

        Entries of this clock never decrease.
        """
        entries = other.snapshot() if isinstance(other, VectorClock) else other

        for peer, time in entries.items():
            # Do not update if we already know a more recent date
            if self._entries.get(peer, -1) < time:
                self._entries[peer] = time

    def snapshot(self) -> ClockEntries:
        """Returns a copy of the clock that later updates won't touch."""
        return dict(self._entries)

    def __getitem__(self, peer: PeerId) -> LogicalTime:
        return self._entries.get(peer, 0)

    def __iter__(self) -> Iterator[PeerId]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, VectorClock):
            return self._entries == other._entries
        if isinstance(other, Mapping):
            return self._entries == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"VectorClock({self._entries!r})"
