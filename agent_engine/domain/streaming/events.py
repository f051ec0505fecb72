from typing import Any, Literal, Union, Annotated
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum


class EventType(str, Enum):
    """Agent lifecycle event types"""
    START = "start"
    UPDATE = "update"
    RETRY = "retry"
    ERROR = "error"
    TOOL_SUCCESS = "tool_success"
    TOOL_ERROR = "tool_error"
    SUCCESS = "success"


class BaseEvent(BaseModel):
    """Base event model for all lifecycle notifications"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: EventType
    run_id: str
    iteration: int = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StartEvent(BaseEvent):
    """Run has started"""
    type: Literal[EventType.START] = EventType.START
    prompt: str


class UpdateEvent(BaseEvent):
    """Progress update, e.g. the model's decision for this iteration"""
    type: Literal[EventType.UPDATE] = EventType.UPDATE
    key: str
    value: Any = None


class RetryEvent(BaseEvent):
    """A failed step is being retried; counters are post-increment"""
    type: Literal[EventType.RETRY] = EventType.RETRY
    step_retry_count: int
    total_retry_count: int


class ErrorEvent(BaseEvent):
    """A failure occurred; terminal errors end the run"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    error: BaseException
    terminal: bool = False


class ToolSuccessEvent(BaseEvent):
    """A capability returned successfully"""
    type: Literal[EventType.TOOL_SUCCESS] = EventType.TOOL_SUCCESS
    tool_name: str
    value: Any = None


class ToolErrorEvent(BaseEvent):
    """A capability could not be resolved, validated or invoked"""
    type: Literal[EventType.TOOL_ERROR] = EventType.TOOL_ERROR
    tool_name: str
    error: BaseException


class SuccessEvent(BaseEvent):
    """Run finished with a final answer"""
    type: Literal[EventType.SUCCESS] = EventType.SUCCESS
    text: str


AgentEvent = Annotated[
    Union[StartEvent, UpdateEvent, RetryEvent, ErrorEvent, ToolSuccessEvent, ToolErrorEvent, SuccessEvent],
    Field(discriminator="type")
]
