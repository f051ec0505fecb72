# Resolution, validation and invocation of requested capabilities
from typing import Dict, Any, Optional
import asyncio
import time

from pydantic import BaseModel, ConfigDict
import structlog

from agent_engine.domain.errors import CapabilityError, StepError
from agent_engine.domain.tool.tool_registry import CapabilityRegistry
from agent_engine.domain.tool.tool_validator import ToolParameterValidator
from agent_engine.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class ToolResult(BaseModel):
    """Outcome of a single capability dispatch"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    tool_name: str
    success: bool
    data: Any = None
    error: Optional[StepError] = None
    execution_time: float = 0.0


class ToolExecutor:
    def __init__(self, registry: CapabilityRegistry, timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout

    async def execute_tool(self, name: str, parameters: Any, run_id: str = "") -> ToolResult:
        started = time.perf_counter()

        try:
            capability = self.registry.resolve(name)
            arguments = ToolParameterValidator.validate_tool_call(capability, parameters)
            data = await self._invoke(capability, arguments)
        except StepError as e:
            result = ToolResult(tool_name=name, success=False, error=e)
        else:
            result = ToolResult(tool_name=name, success=True, data=data)

        result.execution_time = time.perf_counter() - started
        agent_logger.log_tool_execution(
            tool_name=name,
            run_id=run_id,
            input_data=parameters if isinstance(parameters, dict) else {"value": parameters},
            output_data=result.data,
            duration_ms=result.execution_time * 1000,
            success=result.success,
            error=str(result.error) if result.error else None
        )
        return result

    async def _invoke(self, capability, arguments: Dict[str, Any]) -> Any:
        try:
            if self.timeout is None:
                return await capability.invoke(arguments)
            try:
                return await asyncio.wait_for(capability.invoke(arguments), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise CapabilityError(capability.name, f"timed out after {self.timeout}s") from None
        except CapabilityError:
            raise
        except Exception as e:
            logger.warning("Capability raised", capability=capability.name, error=str(e))
            raise CapabilityError(capability.name, str(e) or type(e).__name__) from e
