"""Exceptions raised by the relay core."""


class RelayError(Exception):
    """Base class for relay errors."""


class DecodeError(RelayError):
    """A remote line could not be decoded as an envelope."""


class EncodeError(RelayError):
    """An envelope could not be serialized before sending."""


class TransportWriteError(RelayError):
    """Writing to the outbound channel failed."""


class StartupFailure(RelayError):
    """The transport could not be opened."""


class InvariantViolation(RelayError):
    """
    Internal state is inconsistent (e.g. the local peer is missing from the clock).
    Never recovered from.
    """
