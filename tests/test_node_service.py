"""
Unit tests for the NodeService.
Tests lifecycle management and the application side of the dispatcher.
"""

# pylint: disable=redefined-outer-name
# pylint: disable=unused-argument

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.errors import InvariantViolation, StartupFailure, TransportWriteError
from src.core.message import MessageEnvelope, PrivatePayload, PublicPayload
from src.services.node import LocalNodeService


# Fixture to provide a fresh instance of the service for each test
@pytest.fixture
def node_service():
    """Fixture that provides a fresh LocalNodeService instance."""
    return LocalNodeService()


@pytest.fixture
def inbound() -> asyncio.Queue:
    """Lines the mocked transport will hand to the node."""
    return asyncio.Queue()


@pytest.fixture
def mock_transport(inbound):
    """
    Fixture that mocks FileTransport and settings.
    read_line blocks on the `inbound` queue.
    """
    with (
        patch("src.services.node.FileTransport") as mock_transport_cls,
        patch("src.services.node.settings") as mock_settings,
    ):
        mock_settings.input_path = "/tmp/in"
        mock_settings.output_path = "/tmp/out"
        mock_settings.dedup_capacity = None
        mock_settings.departure_text = "left the chat"

        transport = AsyncMock()
        transport.read_line.side_effect = inbound.get
        mock_transport_cls.return_value = transport

        yield transport


def sent(transport) -> list:
    return [MessageEnvelope.from_line(c.args[0]) for c in transport.write_line.await_args_list]


async def settle() -> None:
    """Lets the dispatcher and the consumer catch up."""
    for _ in range(20):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_initialize_success(node_service, mock_transport):
    """Test successful initialization flow."""
    await node_service.initialize("alice")

    assert node_service.is_initialized()
    assert node_service.state.node_id == "alice"
    mock_transport.open.assert_awaited_once()

    await node_service.shutdown()


@pytest.mark.asyncio
async def test_initialize_idempotency_and_conflict(node_service, mock_transport):
    """Test initialization guards (Idempotency and Conflict)."""
    await node_service.initialize("alice")

    # Same node -> Should just return (no error)
    await node_service.initialize("alice")
    mock_transport.open.assert_awaited_once()

    # Different node -> Should Raise Error
    with pytest.raises(ValueError, match="Node is already initialized"):
        await node_service.initialize("bob")

    await node_service.shutdown()


@pytest.mark.asyncio
async def test_startup_failure_leaves_node_uninitialized(node_service, mock_transport):
    mock_transport.open.side_effect = StartupFailure("no pipe")

    with pytest.raises(StartupFailure):
        await node_service.initialize("alice")

    assert not node_service.is_initialized()


@pytest.mark.asyncio
async def test_invalid_dedup_capacity_never_opens_transport(node_service, mock_transport):
    with patch("src.services.node.settings.dedup_capacity", 0):
        with pytest.raises(ValueError):
            await node_service.initialize("alice")

    mock_transport.open.assert_not_awaited()
    assert not node_service.is_initialized()


@pytest.mark.asyncio
async def test_missing_paths_is_startup_failure(node_service):
    with patch("src.services.node.settings") as mock_settings:
        mock_settings.input_path = None
        mock_settings.output_path = "/tmp/out"

        with pytest.raises(StartupFailure):
            await node_service.initialize("alice")


@pytest.mark.asyncio
async def test_send_and_receive(node_service, mock_transport, inbound):
    await node_service.initialize("alice")

    node_service.send_public("hello")
    node_service.send_private("carol", "secret")
    inbound.put_nowait(
        MessageEnvelope(id="b-1", sender="bob", payload=PublicPayload(text="hi"), clock={"bob": 3}).to_line()
    )
    inbound.put_nowait(
        MessageEnvelope(
            id="b-2", sender="bob", payload=PrivatePayload(target="carol", text="not for alice"), clock={"bob": 4}
        ).to_line()
    )
    await settle()

    envelopes = sent(mock_transport)
    assert [e.sender for e in envelopes] == ["alice", "alice", "bob", "bob"]
    assert envelopes[1].payload == PrivatePayload(target="carol", text="secret")

    inbox = node_service.get_messages()
    assert [m.id for m in inbox] == ["b-1"]

    assert await node_service.get_clock() == {"alice": 4, "bob": 4}

    await node_service.shutdown()


@pytest.mark.asyncio
async def test_write_failure_becomes_notice(node_service, mock_transport):
    await node_service.initialize("alice")
    mock_transport.write_line.side_effect = TransportWriteError("broken pipe")

    node_service.send_public("anyone?")
    await settle()

    assert node_service.get_notices() == ["No one can hear you"]

    mock_transport.write_line.side_effect = None
    await node_service.shutdown()


@pytest.mark.asyncio
async def test_shutdown_lifecycle(node_service, mock_transport):
    """Test graceful shutdown broadcasts the departure exactly once."""
    await node_service.initialize("alice")
    node_service.send_public("bye soon")
    await settle()

    await node_service.shutdown()

    assert not node_service.is_initialized()
    assert node_service.state is None

    envelopes = sent(mock_transport)
    assert len(envelopes) == 2
    assert envelopes[-1].payload == PublicPayload(text="left the chat")
    mock_transport.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_when_not_initialized(node_service):
    await node_service.shutdown()
    assert not node_service.is_initialized()


def test_send_before_initialize_fails(node_service):
    with pytest.raises(RuntimeError):
        node_service.send_public("too early")


@pytest.mark.asyncio
async def test_crashed_dispatcher_fails_fast_and_shutdown_cleans_up(node_service, mock_transport):
    """A fatal error in the dispatcher must not leave callers hanging."""
    await node_service.initialize("alice")
    node_service.state.clock = MagicMock()
    node_service.state.clock.snapshot.return_value = {"alice": 1}
    node_service.state.clock.local_time.side_effect = InvariantViolation("missing local peer")

    node_service.send_public("boom")
    with pytest.raises(RuntimeError):
        await asyncio.wait_for(node_service.get_clock(), timeout=1)

    await settle()
    with pytest.raises(RuntimeError):
        node_service.send_public("anyone?")

    with pytest.raises(InvariantViolation):
        await node_service.shutdown()

    assert not node_service.is_initialized()
    mock_transport.close.assert_awaited_once()
