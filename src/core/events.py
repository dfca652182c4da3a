"""
Events flowing in and out of the dispatcher.

Inputs come from the transport or the local application,
outputs go to the local application only.
"""

from dataclasses import dataclass
from typing import Union

from src.core.message import MessageEnvelope
from src.core.vector_clock import ClockEntries, PeerId

# === Inputs ===


@dataclass(frozen=True)
class RemoteInput:
    """One undecoded line read from the transport."""

    raw_line: str


@dataclass(frozen=True)
class SendPublic:
    text: str


@dataclass(frozen=True)
class SendPrivate:
    target: PeerId
    text: str


@dataclass(frozen=True)
class QueryClock:
    pass


@dataclass(frozen=True)
class Shutdown:
    pass


InputEvent = Union[RemoteInput, SendPublic, SendPrivate, QueryClock, Shutdown]

# === Outputs ===


@dataclass(frozen=True)
class Notice:
    """Operational message for the user (e.g. nobody is listening)."""

    text: str


@dataclass(frozen=True)
class Delivered:
    envelope: MessageEnvelope


@dataclass(frozen=True)
class ClockSnapshot:
    clock: ClockEntries


OutputEvent = Union[Notice, Delivered, ClockSnapshot]
