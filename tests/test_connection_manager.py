"""
Tests for the subscriber connection manager.

This module tests registration, removal and broadcasting, including
subscribers failing in the middle of a broadcast and concurrent use.
"""

import asyncio
from unittest.mock import patch

import pytest
from starlette.websockets import WebSocketDisconnect, WebSocketState

from relay.managers.connection_manager import (
    ConnectionManager,
    ConnectionState,
    Subscriber,
)
from tests.mocks.websocket_mocks import create_mock_websocket


def make_subscriber(send_error: Exception | None = None) -> Subscriber:
    return Subscriber(create_mock_websocket(send_error=send_error))


async def _yield_to_loop(*args, **kwargs):
    await asyncio.sleep(0)


class TestSubscriber:
    """Tests for the Subscriber wrapper."""

    def test_init(self):
        """Test a new subscriber is connecting with a unique id."""
        first = make_subscriber()
        second = make_subscriber()

        assert first.state is ConnectionState.CONNECTING
        assert first.connection_id != second.connection_id

    @pytest.mark.asyncio
    async def test_send_writes_text_frame(self):
        """Test send decodes bytes and writes a text frame."""
        subscriber = make_subscriber()

        await subscriber.send(b'{"from":"1@s.whatsapp.net"}')

        subscriber.websocket.send_text.assert_awaited_once_with(
            '{"from":"1@s.whatsapp.net"}'
        )

    @pytest.mark.asyncio
    async def test_close_only_once(self):
        """Test closing twice closes the channel once."""
        subscriber = make_subscriber()

        await subscriber.close()
        await subscriber.close()

        subscriber.websocket.close.assert_awaited_once()
        assert subscriber.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_skips_socket_closed_by_peer(self):
        """Test a socket the peer already closed is not written to."""
        subscriber = make_subscriber()
        subscriber.websocket.client_state = WebSocketState.DISCONNECTED

        await subscriber.close()

        subscriber.websocket.close.assert_not_awaited()
        assert subscriber.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_tolerates_broken_channel(self):
        """Test errors while closing a broken channel are swallowed."""
        subscriber = make_subscriber()
        subscriber.websocket.close.side_effect = RuntimeError("already closed")

        await subscriber.close()

        assert subscriber.state is ConnectionState.CLOSED


class TestConnectionManager:
    """Tests for ConnectionManager class."""

    def test_init(self):
        """Test ConnectionManager initialization."""
        manager = ConnectionManager()

        assert manager.connections == {}
        assert manager.count == 0
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_connect(self):
        """Test registering a subscriber marks it active."""
        manager = ConnectionManager()
        subscriber = make_subscriber()

        await manager.connect(subscriber)

        assert manager.connections == {subscriber.connection_id: subscriber}
        assert subscriber.state is ConnectionState.ACTIVE

    @pytest.mark.asyncio
    async def test_connect_multiple(self):
        """Test registering multiple subscribers."""
        manager = ConnectionManager()
        subscribers = [make_subscriber() for _ in range(3)]

        for subscriber in subscribers:
            await manager.connect(subscriber)

        assert manager.count == 3

    @pytest.mark.asyncio
    async def test_disconnect(self):
        """Test removing a subscriber closes its channel."""
        manager = ConnectionManager()
        subscriber = make_subscriber()
        await manager.connect(subscriber)

        removed = await manager.disconnect(subscriber)

        assert removed is True
        assert manager.count == 0
        assert subscriber.state is ConnectionState.CLOSED
        subscriber.websocket.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_noop(self):
        """Test the second removal of a subscriber does nothing."""
        manager = ConnectionManager()
        subscriber = make_subscriber()
        await manager.connect(subscriber)

        first = await manager.disconnect(subscriber)
        second = await manager.disconnect(subscriber)

        assert first is True
        assert second is False
        subscriber.websocket.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnect_nonexistent(self):
        """Test removing a subscriber that was never registered."""
        manager = ConnectionManager()
        registered = make_subscriber()
        stranger = make_subscriber()
        await manager.connect(registered)

        removed = await manager.disconnect(stranger)

        assert removed is False
        assert manager.count == 1
        stranger.websocket.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_no_connections(self):
        """Test broadcast with no subscribers delivers nothing."""
        manager = ConnectionManager()

        delivered = await manager.broadcast(b"{}")

        assert delivered == 0

    @pytest.mark.asyncio
    async def test_broadcast_multiple_connections(self):
        """Test every subscriber receives the same bytes."""
        manager = ConnectionManager()
        subscribers = [make_subscriber() for _ in range(4)]
        for subscriber in subscribers:
            await manager.connect(subscriber)

        delivered = await manager.broadcast(b'{"from":"1@s.whatsapp.net"}')

        assert delivered == 4
        for subscriber in subscribers:
            subscriber.websocket.send_text.assert_awaited_once_with(
                '{"from":"1@s.whatsapp.net"}'
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            WebSocketDisconnect(code=1006),
            ConnectionResetError("reset by peer"),
            RuntimeError("Cannot call send once a close message has been sent"),
            Exception("unexpected"),
        ],
    )
    async def test_broadcast_removes_failed_subscriber(self, error):
        """Test a failed write drops that subscriber only."""
        manager = ConnectionManager()
        before = [make_subscriber(), make_subscriber()]
        failing = make_subscriber(send_error=error)
        after = [make_subscriber(), make_subscriber()]
        for subscriber in [*before, failing, *after]:
            await manager.connect(subscriber)

        delivered = await manager.broadcast(b"payload")

        assert delivered == 4
        assert failing.connection_id not in manager.connections
        assert failing.state is ConnectionState.CLOSED
        failing.websocket.close.assert_awaited_once()
        for subscriber in [*before, *after]:
            subscriber.websocket.send_text.assert_awaited_once_with("payload")
            assert subscriber.connection_id in manager.connections

    @pytest.mark.asyncio
    async def test_broadcast_logs_channel_failure_as_warning(self):
        """Test a broken channel is logged without a traceback."""
        manager = ConnectionManager()
        await manager.connect(make_subscriber(send_error=ConnectionResetError()))

        with patch("relay.managers.connection_manager.logger") as mock_logger:
            await manager.broadcast(b"payload")

        mock_logger.warning.assert_called_once()
        mock_logger.exception.assert_not_called()

    @pytest.mark.asyncio
    async def test_broadcast_logs_unexpected_failure_with_traceback(self):
        """Test an unexpected send error is logged with its traceback."""
        manager = ConnectionManager()
        failing = make_subscriber(send_error=ValueError("bad frame"))
        await manager.connect(failing)

        with patch("relay.managers.connection_manager.logger") as mock_logger:
            delivered = await manager.broadcast(b"payload")

        assert delivered == 0
        assert manager.count == 0
        mock_logger.exception.assert_called_once()
        mock_logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_subscriber_removed_before_next_write(self):
        """Test removal happens before the broadcast moves on."""
        manager = ConnectionManager()
        failing = make_subscriber(send_error=ConnectionResetError())
        next_subscriber = make_subscriber()
        await manager.connect(failing)
        await manager.connect(next_subscriber)

        seen_registry: list[set[str]] = []

        async def record_registry(text):
            seen_registry.append(set(manager.connections))

        next_subscriber.websocket.send_text.side_effect = record_registry

        await manager.broadcast(b"payload")

        assert seen_registry == [{next_subscriber.connection_id}]

    @pytest.mark.asyncio
    async def test_failed_subscriber_not_written_again(self):
        """Test a dropped subscriber is skipped by later broadcasts."""
        manager = ConnectionManager()
        failing = make_subscriber(send_error=ConnectionResetError())
        await manager.connect(failing)

        await manager.broadcast(b"first")
        await manager.broadcast(b"second")

        assert failing.websocket.send_text.await_count == 1

    @pytest.mark.asyncio
    async def test_read_loop_disconnect_after_broadcast_failure(self):
        """Test the read loop's removal is a no-op after a failed write."""
        manager = ConnectionManager()
        failing = make_subscriber(send_error=ConnectionResetError())
        await manager.connect(failing)
        await manager.broadcast(b"payload")

        removed = await manager.disconnect(failing)

        assert removed is False
        failing.websocket.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_all(self):
        """Test shutdown closes and removes every subscriber."""
        manager = ConnectionManager()
        subscribers = [make_subscriber() for _ in range(3)]
        for subscriber in subscribers:
            await manager.connect(subscriber)

        await manager.close_all()

        assert manager.count == 0
        for subscriber in subscribers:
            subscriber.websocket.close.assert_awaited_once()


class TestConnectionManagerConcurrency:
    """Tests for concurrent registration, removal and broadcast."""

    @pytest.mark.asyncio
    async def test_concurrent_connect_disconnect_broadcast(self):
        """Test registry size equals registrations minus removals."""
        manager = ConnectionManager()
        existing = [make_subscriber() for _ in range(30)]
        for subscriber in existing:
            subscriber.websocket.send_text.side_effect = _yield_to_loop
            await manager.connect(subscriber)

        newcomers = [make_subscriber() for _ in range(20)]
        for subscriber in newcomers:
            subscriber.websocket.send_text.side_effect = _yield_to_loop
        leaving = existing[::3]

        await asyncio.gather(
            *(manager.broadcast(b"tick") for _ in range(5)),
            *(manager.connect(subscriber) for subscriber in newcomers),
            *(manager.disconnect(subscriber) for subscriber in leaving),
            *(manager.broadcast(b"tock") for _ in range(5)),
        )

        assert manager.count == len(existing) + len(newcomers) - len(leaving)
        for subscriber in leaving:
            assert subscriber.connection_id not in manager.connections

    @pytest.mark.asyncio
    async def test_racing_disconnects_close_once(self):
        """Test concurrent removals of one subscriber close it once."""
        manager = ConnectionManager()
        subscriber = make_subscriber()
        await manager.connect(subscriber)

        results = await asyncio.gather(
            *(manager.disconnect(subscriber) for _ in range(10))
        )

        assert results.count(True) == 1
        assert manager.count == 0
        subscriber.websocket.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_broadcast_sees_consistent_snapshot(self):
        """Test a subscriber registered during a broadcast is not written."""
        manager = ConnectionManager()
        slow = make_subscriber()
        await manager.connect(slow)
        latecomer = make_subscriber()

        async def register_latecomer(text):
            # Blocks on the lock held by the running broadcast
            task = asyncio.ensure_future(manager.connect(latecomer))
            await asyncio.sleep(0)
            assert not task.done()
            slow_tasks.append(task)

        slow_tasks: list[asyncio.Future] = []
        slow.websocket.send_text.side_effect = register_latecomer

        delivered = await manager.broadcast(b"payload")
        await asyncio.gather(*slow_tasks)

        assert delivered == 1
        latecomer.websocket.send_text.assert_not_awaited()
        assert manager.count == 2
