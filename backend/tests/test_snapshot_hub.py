"""Tests for the snapshot hub."""

import asyncio
from unittest.mock import AsyncMock

from services.snapshot_hub import SnapshotHub, snapshot_payload


def _socket(fail: bool = False) -> AsyncMock:
    ws = AsyncMock()
    if fail:
        ws.send_json.side_effect = RuntimeError("socket closed")
    return ws


class TestSnapshotHub:
    """Test cases for SnapshotHub."""

    def test_publish_reaches_namespace_subscribers_only(self):
        """Test events go to the namespace's subscribers and nobody else."""
        hub = SnapshotHub()
        a1, a2, b1 = _socket(), _socket(), _socket()

        async def scenario():
            await hub.connect("a", a1)
            await hub.connect("a", a2)
            await hub.connect("b", b1)
            return await hub.publish("a", "snapshot", snapshot_payload("a", []))

        delivered = asyncio.run(scenario())

        assert delivered == 2
        expected = {"event": "snapshot", "data": {"namespace": "a", "requests": []}}
        a1.send_json.assert_awaited_once_with(expected)
        a2.send_json.assert_awaited_once_with(expected)
        b1.send_json.assert_not_awaited()

    def test_failed_subscriber_is_dropped(self):
        """Test a broken socket is removed and others still receive."""
        hub = SnapshotHub()
        good, bad = _socket(), _socket(fail=True)

        async def scenario():
            await hub.connect("a", good)
            await hub.connect("a", bad)
            return await hub.publish("a", "snapshot", {})

        delivered = asyncio.run(scenario())

        assert delivered == 1
        assert hub.subscriber_count("a") == 1

    def test_disconnect_removes_empty_namespace(self):
        """Test the last disconnect forgets the namespace."""
        hub = SnapshotHub()
        ws = _socket()

        async def scenario():
            await hub.connect("a", ws)
            await hub.disconnect("a", ws)
            await hub.disconnect("a", ws)

        asyncio.run(scenario())

        assert hub.subscriber_count("a") == 0

    def test_publish_without_subscribers(self):
        """Test publishing to an unknown namespace is a no-op."""
        hub = SnapshotHub()
        assert asyncio.run(hub.publish("nobody", "snapshot", {})) == 0
