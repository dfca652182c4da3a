"""
Define the envelope exchanged between peers, one per transport line.
"""

import uuid
from typing import Annotated, Callable, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError
from pydantic_core import PydanticSerializationError

from src.core.errors import DecodeError, EncodeError
from src.core.vector_clock import ClockEntries, PeerId

MessageId = str

# Zero-argument source of fresh message ids
IdSource = Callable[[], MessageId]


def new_message_id() -> MessageId:
    """Default id source."""
    return str(uuid.uuid4())


class PublicPayload(BaseModel):
    """Text addressed to every peer."""

    model_config = ConfigDict(frozen=True, extra="allow")

    kind: Literal["public"] = "public"
    text: str


class PrivatePayload(BaseModel):
    """Text addressed to a single peer. Still flooded to everybody."""

    model_config = ConfigDict(frozen=True, extra="allow")

    kind: Literal["private"] = "private"
    target: PeerId
    text: str


Payload = Annotated[Union[PublicPayload, PrivatePayload], Field(discriminator="kind")]


class MessageEnvelope(BaseModel):
    """
    Message structure on the wire.
    Fields this node does not know are kept and relayed untouched.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: MessageId
    sender: PeerId
    payload: Payload
    clock: Dict[PeerId, NonNegativeInt] = Field(default_factory=dict)

    def with_clock(self, clock: ClockEntries) -> "MessageEnvelope":
        """Returns a copy carrying `clock`, used when relaying a received envelope."""
        return self.model_copy(update={"clock": dict(clock)})

    def is_for(self, peer: PeerId) -> bool:
        """True if `peer` should see this message in its application."""
        match self.payload:
            case PrivatePayload(target=target):
                return target == peer
            case _:
                return True

    def to_line(self) -> str:
        """Serialize to a single line of JSON."""
        try:
            return self.model_dump_json()
        except PydanticSerializationError as e:
            raise EncodeError(str(e)) from e

    @classmethod
    def from_line(cls, line: str) -> "MessageEnvelope":
        """Parse a single line of JSON."""
        try:
            return cls.model_validate_json(line)
        except ValidationError as e:
            raise DecodeError(str(e)) from e
