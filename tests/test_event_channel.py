"""Tests for ordered event delivery."""

from typing import List

import pytest

from agent_engine.domain.streaming.event_channel import EventChannel
from agent_engine.domain.streaming.events import (
    EventType, RetryEvent, StartEvent, UpdateEvent
)


def _start() -> StartEvent:
    return StartEvent(run_id="run-1", prompt="task")


class TestEventChannel:

    @pytest.mark.asyncio
    async def test_observers_called_in_registration_order(self):
        calls: List[str] = []
        channel = EventChannel()
        channel.subscribe(lambda e: calls.append("first"))
        channel.subscribe(lambda e: calls.append("second"))

        await channel.emit(_start())

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_async_observer_awaited_before_emit_returns(self):
        seen: List[EventType] = []

        async def observer(event):
            seen.append(event.type)

        channel = EventChannel([observer])
        await channel.emit(_start())

        assert seen == [EventType.START]

    @pytest.mark.asyncio
    async def test_typed_handler_receives_only_its_events(self):
        retries: List[RetryEvent] = []
        channel = EventChannel()
        channel.on(EventType.RETRY, retries.append)

        await channel.emit(_start())
        await channel.emit(RetryEvent(run_id="run-1", step_retry_count=1, total_retry_count=1))
        await channel.emit(UpdateEvent(run_id="run-1", key="tool_call", value={}))

        assert len(retries) == 1
        assert retries[0].total_retry_count == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        calls: List[str] = []

        def observer(event):
            calls.append("called")

        channel = EventChannel([observer])
        channel.unsubscribe(observer)
        await channel.emit(_start())

        assert calls == []
        assert len(channel) == 0

    @pytest.mark.asyncio
    async def test_observer_exception_propagates(self):
        calls: List[str] = []

        def broken(event):
            raise RuntimeError("observer defect")

        channel = EventChannel([broken, lambda e: calls.append("late")])

        with pytest.raises(RuntimeError, match="observer defect"):
            await channel.emit(_start())
        assert calls == []

    def test_events_are_immutable(self):
        event = _start()

        with pytest.raises(Exception):
            event.prompt = "other"
