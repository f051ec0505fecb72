from abc import ABC, abstractmethod
from typing import Sequence

from agent_engine.domain.models.agent_state import Message, ModelDecision


class ModelBackend(ABC):
    """Base class for model backends that choose the agent's next action"""

    @abstractmethod
    async def decide(self, messages: Sequence[Message]) -> ModelDecision:
        """Return a FinalAnswer or ToolCall for the given conversation

        Must not mutate the conversation. Raise BackendError for retriable
        failures and UnrecoverableBackendError to end the run immediately.
        """
        pass
