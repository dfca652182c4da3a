"""Record of message ids already processed by a node."""

from collections import OrderedDict
from typing import Optional

from src.core.message import MessageId


class DedupStore:
    """
    Set of seen message ids.

    Unbounded unless `capacity` is given, in which case the oldest ids are
    forgotten first. A forgotten id that arrives again is treated as new.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        if capacity is not None and capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._seen: "OrderedDict[MessageId, None]" = OrderedDict()

    def mark_seen(self, message_id: MessageId) -> bool:
        """
        Inserts `message_id`.
        Returns True only the first time a given id is marked.
        """
        if message_id in self._seen:
            return False

        self._seen[message_id] = None
        if self.capacity is not None and len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)
