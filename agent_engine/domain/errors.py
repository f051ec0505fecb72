"""
Agent engine error taxonomy

Step-level errors (unknown capability, invalid arguments, capability failure,
retriable backend failure) are absorbed by the retry policy. Errors deriving
from OrchestrationError end a run and are raised from AgentOrchestrator.run.
"""

from typing import Any, Dict, List, Optional


class AgentEngineError(Exception):
    """Base class for all agent engine errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context or {}

    def dump(self) -> str:
        """Render the error together with its cause chain"""

        lines: List[str] = []
        error: Optional[BaseException] = self
        seen = set()
        depth = 0
        while error is not None and id(error) not in seen:
            seen.add(id(error))
            prefix = "  " * depth
            lines.append(f"{prefix}{type(error).__name__}: {error}")
            context = getattr(error, "context", None)
            if context:
                for key, value in context.items():
                    lines.append(f"{prefix}  {key}={value!r}")
            error = error.__cause__ or error.__context__
            depth += 1
        return "\n".join(lines)

    @classmethod
    def ensure(cls, error: BaseException) -> "AgentEngineError":
        """Wrap an arbitrary exception so it can be dumped"""

        if isinstance(error, AgentEngineError):
            return error
        wrapped = cls(str(error) or type(error).__name__)
        wrapped.__cause__ = error
        return wrapped


# Registry errors

class DuplicateCapabilityError(AgentEngineError):
    """Raised when a capability name is registered twice"""

    def __init__(self, name: str):
        super().__init__(f"Capability '{name}' is already registered", {"capability": name})
        self.name = name


class RegistryFrozenError(AgentEngineError):
    """Raised when registering into a registry that is in use by an agent"""

    def __init__(self, name: str):
        super().__init__(
            f"Cannot register capability '{name}': registry is frozen",
            {"capability": name}
        )
        self.name = name


# Step-level errors

class StepError(AgentEngineError):
    """A failed step that consumes a retry"""


class UnknownCapabilityError(StepError):
    """Raised when a capability name cannot be resolved"""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        available = available or []
        super().__init__(
            f"Capability '{name}' does not exist",
            {"capability": name, "available": available}
        )
        self.name = name
        self.available = available


class InvalidArgumentsError(StepError):
    """Raised when tool arguments do not satisfy the capability's input schema"""

    def __init__(self, name: str, errors: List[str]):
        super().__init__(
            f"Invalid arguments for capability '{name}': {'; '.join(errors)}",
            {"capability": name}
        )
        self.name = name
        self.errors = errors


class CapabilityError(StepError):
    """Raised when a capability fails while being invoked"""

    def __init__(self, name: str, message: str):
        super().__init__(f"Capability '{name}' failed: {message}", {"capability": name})
        self.name = name


class BackendError(StepError):
    """Retriable model backend failure"""


# Terminal errors

class OrchestrationError(AgentEngineError):
    """Terminal run failure surfaced to the caller"""


class RetriesExhaustedError(OrchestrationError):
    """Raised when the per-step or total retry budget is used up"""

    def __init__(self, step_retries: int, total_retries: int, last_error: Optional[BaseException] = None):
        super().__init__(
            "Maximum number of retries has been reached",
            {"step_retries": step_retries, "total_retries": total_retries}
        )
        self.step_retries = step_retries
        self.total_retries = total_retries
        self.last_error = last_error


class MaxIterationsExceededError(OrchestrationError):
    """Raised when the agent hits max_iterations without a final answer"""

    def __init__(self, max_iterations: int):
        super().__init__(
            f"Agent was not able to produce a final answer within {max_iterations} iterations",
            {"max_iterations": max_iterations}
        )
        self.max_iterations = max_iterations


class UnrecoverableBackendError(OrchestrationError):
    """Backend failure explicitly marked as non-retriable"""
