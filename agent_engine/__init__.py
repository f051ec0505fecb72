from agent_engine.domain.context.memory.runtime_memory import ConversationMemory, WindowedConversationMemory
from agent_engine.domain.errors import (
    AgentEngineError,
    BackendError,
    CapabilityError,
    DuplicateCapabilityError,
    InvalidArgumentsError,
    MaxIterationsExceededError,
    OrchestrationError,
    RegistryFrozenError,
    RetriesExhaustedError,
    UnknownCapabilityError,
    UnrecoverableBackendError,
)
from agent_engine.domain.models.agent_state import (
    ExecutionConfig,
    FinalAnswer,
    IterationState,
    Message,
    MessageRole,
    RunOutput,
    ToolCall,
)
from agent_engine.domain.orchestration.backend.base_backend import ModelBackend
from agent_engine.domain.orchestration.core.main_agent import AgentOrchestrator
from agent_engine.domain.orchestration.core.retry_policy import RetryPolicy
from agent_engine.domain.streaming.event_channel import EventChannel
from agent_engine.domain.streaming.events import EventType
from agent_engine.domain.tool.capability import Capability, FunctionCapability, capability
from agent_engine.domain.tool.tool_registry import CapabilityRegistry

__all__ = [
    "AgentEngineError",
    "AgentOrchestrator",
    "BackendError",
    "Capability",
    "CapabilityError",
    "CapabilityRegistry",
    "ConversationMemory",
    "DuplicateCapabilityError",
    "EventChannel",
    "EventType",
    "ExecutionConfig",
    "FinalAnswer",
    "FunctionCapability",
    "InvalidArgumentsError",
    "IterationState",
    "MaxIterationsExceededError",
    "Message",
    "MessageRole",
    "ModelBackend",
    "OrchestrationError",
    "RegistryFrozenError",
    "RetriesExhaustedError",
    "RetryPolicy",
    "RunOutput",
    "ToolCall",
    "UnknownCapabilityError",
    "UnrecoverableBackendError",
    "WindowedConversationMemory",
    "capability",
]
