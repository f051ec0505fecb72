from typing import Dict, Any, Optional, Tuple, Union, Literal, Annotated
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum


class MessageRole(str, Enum):
    """Conversation message roles"""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    """A single exchanged message in the conversation"""
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = Field(default="", description="Message text or serialized tool output")
    tool_name: Optional[str] = Field(None, description="Capability requested or answered by this message")
    tool_call_id: Optional[str] = Field(None, description="Links a tool result to its request")
    tool_arguments: Optional[Dict[str, Any]] = Field(None, description="Arguments of a requested tool call")
    is_error: bool = Field(default=False, description="Tool message records a failed step")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)

    @classmethod
    def tool_request(cls, call: "ToolCall") -> "Message":
        return cls(
            role=MessageRole.ASSISTANT,
            tool_name=call.capability_name,
            tool_call_id=call.call_id,
            tool_arguments=dict(call.arguments),
        )

    @classmethod
    def tool_result(cls, call: "ToolCall", content: str, is_error: bool = False) -> "Message":
        return cls(
            role=MessageRole.TOOL,
            content=content,
            tool_name=call.capability_name,
            tool_call_id=call.call_id,
            is_error=is_error,
        )

    @property
    def is_tool_request(self) -> bool:
        return self.role == MessageRole.ASSISTANT and self.tool_name is not None


class ExecutionConfig(BaseModel):
    """Hard ceilings for a single run"""
    model_config = ConfigDict(frozen=True)

    max_retries_per_step: int = Field(default=5, ge=0, description="Retries allowed for one step")
    total_max_retries: int = Field(default=5, ge=0, description="Retries allowed across the whole run")
    max_iterations: int = Field(default=5, ge=1, description="Successful tool dispatches before giving up")


class IterationState(BaseModel):
    """Loop bookkeeping owned by one run"""
    model_config = ConfigDict(frozen=True)

    iteration_index: int = 0
    step_retry_count: int = 0
    total_retry_count: int = 0


class FinalAnswer(BaseModel):
    """Model decided to stop and answer"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["final_answer"] = "final_answer"
    text: str


class ToolCall(BaseModel):
    """Model decided to invoke a capability"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_call"] = "tool_call"
    capability_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    call_id: Optional[str] = None


ModelDecision = Annotated[Union[FinalAnswer, ToolCall], Field(discriminator="kind")]


class RunOutput(BaseModel):
    """Result of a successful run"""
    model_config = ConfigDict(frozen=True)

    run_id: str
    result: str
    iterations: int
    total_retries: int
    messages: Tuple[Message, ...] = ()
