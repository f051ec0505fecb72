"""Shared fixtures for agent engine tests.

Provides:
- ScriptedBackend: deterministic model backend replaying decisions or errors
- EventRecorder: observer that keeps every emitted event
- A registry with an `add` and a `fail` capability
"""

from typing import Any, Dict, List, Sequence, Union

import pytest

from agent_engine.domain.models.agent_state import FinalAnswer, Message, ModelDecision, ToolCall
from agent_engine.domain.orchestration.backend.base_backend import ModelBackend
from agent_engine.domain.streaming.events import BaseEvent, EventType
from agent_engine.domain.tool.capability import FunctionCapability
from agent_engine.domain.tool.tool_registry import CapabilityRegistry


ADD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "a": {"type": "integer"},
        "b": {"type": "integer"},
    },
    "required": ["a", "b"],
    "additionalProperties": False,
}


class ScriptedBackend(ModelBackend):
    """Replays a fixed script; the last entry repeats once the script runs out."""

    def __init__(self, script: Sequence[Union[ModelDecision, BaseException]]):
        self.script = list(script)
        self.calls: List[Sequence[Message]] = []

    async def decide(self, messages: Sequence[Message]) -> ModelDecision:
        self.calls.append(messages)
        index = min(len(self.calls) - 1, len(self.script) - 1)
        step = self.script[index]
        if isinstance(step, BaseException):
            raise step
        return step


class EventRecorder:
    """Observer that records events in delivery order."""

    def __init__(self):
        self.events: List[BaseEvent] = []

    def __call__(self, event: BaseEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[EventType]:
        return [event.type for event in self.events]

    def of_type(self, event_type: EventType) -> List[BaseEvent]:
        return [event for event in self.events if event.type == event_type]


async def add(a: int, b: int) -> int:
    """Add two integers."""
    return a + b


def fail(**kwargs: Any) -> None:
    raise RuntimeError("boom")


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry([
        FunctionCapability(add, input_schema=ADD_SCHEMA),
        FunctionCapability(fail, description="Always fails"),
    ])


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


def tool_call(name: str = "add", **arguments: Any) -> ToolCall:
    return ToolCall(capability_name=name, arguments=arguments)


def final(text: str = "done") -> FinalAnswer:
    return FinalAnswer(text=text)
