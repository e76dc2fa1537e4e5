"""Unit tests for the inbound message channel."""

import asyncio

import pytest

from src.connection.channel import MessageChannel


class TestSubscribe:
    """Tests for handler subscriptions."""

    def test_handlers_called_in_order(self) -> None:
        """Test that every handler sees every event in subscription order."""
        channel = MessageChannel()
        seen: list[tuple[str, object]] = []
        channel.subscribe(lambda e: seen.append(("a", e)))
        channel.subscribe(lambda e: seen.append(("b", e)))

        channel.publish(1)
        channel.publish(2)

        assert seen == [("a", 1), ("b", 1), ("a", 2), ("b", 2)]

    def test_unsubscribe(self) -> None:
        """Test that an unsubscribed handler stops receiving events."""
        channel = MessageChannel()
        seen: list[object] = []
        unsubscribe = channel.subscribe(seen.append)

        channel.publish("first")
        unsubscribe()
        unsubscribe()
        channel.publish("second")

        assert seen == ["first"]

    def test_failing_handler_isolated(self) -> None:
        """Test that one failing handler does not block the others."""
        channel = MessageChannel()
        seen: list[object] = []

        def broken(_: object) -> None:
            raise RuntimeError("handler bug")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        channel.publish("event")

        assert seen == ["event"]

    def test_publish_after_close_dropped(self) -> None:
        """Test that a closed channel delivers nothing."""
        channel = MessageChannel()
        seen: list[object] = []
        channel.subscribe(seen.append)

        channel.close()
        channel.publish("late")

        assert channel.closed
        assert seen == []


class TestStream:
    """Tests for async iteration."""

    @pytest.mark.asyncio
    async def test_stream_until_close(self) -> None:
        """Test that a stream yields events in order and ends on close."""
        channel = MessageChannel()

        async def consume() -> list[object]:
            return [event async for event in channel.stream()]

        consumer = asyncio.ensure_future(consume())
        await asyncio.sleep(0)
        channel.publish("a")
        channel.publish("b")
        channel.close()

        assert await asyncio.wait_for(consumer, timeout=1.0) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_each_stream_gets_every_event(self) -> None:
        """Test fan-out to concurrent streams."""
        channel = MessageChannel()

        async def take_two() -> list[object]:
            events = []
            async for event in channel.stream():
                events.append(event)
                if len(events) == 2:
                    break
            return events

        first = asyncio.ensure_future(take_two())
        second = asyncio.ensure_future(take_two())
        await asyncio.sleep(0)
        channel.publish(1)
        channel.publish(2)

        assert await first == [1, 2]
        assert await second == [1, 2]
