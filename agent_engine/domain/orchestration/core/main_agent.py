from typing import TypedDict, List, Dict, Any, Optional, Literal, Callable, Iterable, Union
from langgraph.graph import StateGraph, END
import structlog
import json
import uuid

from agent_engine.domain.errors import (
    BackendError, OrchestrationError, RetriesExhaustedError,
    MaxIterationsExceededError, UnrecoverableBackendError
)
from agent_engine.domain.models.agent_state import (
    ExecutionConfig, IterationState, FinalAnswer, ToolCall, Message, RunOutput
)
from agent_engine.domain.context.memory.runtime_memory import ConversationMemory
from agent_engine.domain.orchestration.backend.base_backend import ModelBackend
from agent_engine.domain.orchestration.core.retry_policy import RetryPolicy
from agent_engine.domain.streaming.event_channel import EventChannel, Observer
from agent_engine.domain.streaming.events import (
    StartEvent, UpdateEvent, RetryEvent, ErrorEvent,
    ToolSuccessEvent, ToolErrorEvent, SuccessEvent
)
from agent_engine.domain.tool.capability import Capability
from agent_engine.domain.tool.tool_executor import ToolExecutor
from agent_engine.domain.tool.tool_registry import CapabilityRegistry
from agent_engine.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

NextAction = Literal["decide", "dispatch", "finish"]


class RunState(TypedDict):
    """State for the run graph"""
    run_id: str
    prompt: str
    execution_config: ExecutionConfig
    memory: ConversationMemory
    channel: EventChannel
    iteration: IterationState
    pending_call: Optional[ToolCall]
    next_action: Optional[NextAction]
    result: Optional[str]
    error: Optional[OrchestrationError]


class AgentOrchestrator:
    """Single-agent control loop using LangGraph"""

    def __init__(
        self,
        backend: ModelBackend,
        capabilities: Union[CapabilityRegistry, Iterable[Capability], None] = None,
        memory_factory: Callable[[], ConversationMemory] = ConversationMemory,
        observers: Optional[List[Observer]] = None,
        tool_timeout: Optional[float] = None
    ):
        if isinstance(capabilities, CapabilityRegistry):
            self.registry = capabilities
        else:
            self.registry = CapabilityRegistry(capabilities)
        # registration happens once; a running agent only reads the registry
        self.registry.freeze()

        self.backend = backend
        self.memory_factory = memory_factory
        self.observers: List[Observer] = list(observers or [])
        self.tool_executor = ToolExecutor(self.registry, timeout=tool_timeout)
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the decide/dispatch graph"""

        workflow = StateGraph(RunState)

        workflow.add_node("start", self.start_node)
        workflow.add_node("decide", self.decision_node)
        workflow.add_node("dispatch", self.dispatch_node)

        workflow.set_entry_point("start")
        workflow.add_edge("start", "decide")

        workflow.add_conditional_edges(
            "decide",
            self.route_after_decision,
            {
                "dispatch": "dispatch",
                "decide": "decide",
                "finish": END
            }
        )
        workflow.add_conditional_edges(
            "dispatch",
            self.route_after_dispatch,
            {
                "decide": "decide",
                "finish": END
            }
        )

        return workflow.compile()

    async def run(
        self,
        prompt: str,
        config: Optional[ExecutionConfig] = None,
        observers: Optional[List[Observer]] = None,
        run_id: Optional[str] = None
    ) -> RunOutput:
        """Run the agent until it produces a final answer or a ceiling is hit

        Raises RetriesExhaustedError, MaxIterationsExceededError or
        UnrecoverableBackendError when the run fails. Exceptions raised by
        observers propagate unchanged.
        """

        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")

        config = config or ExecutionConfig()
        run_id = run_id or uuid.uuid4().hex

        initial_state: RunState = {
            "run_id": run_id,
            "prompt": prompt,
            "execution_config": config,
            "memory": self.memory_factory(),
            "channel": EventChannel(self.observers + list(observers or [])),
            "iteration": IterationState(),
            "pending_call": None,
            "next_action": None,
            "result": None,
            "error": None
        }

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            logger.info(
                "Starting run",
                max_iterations=config.max_iterations,
                max_retries_per_step=config.max_retries_per_step,
                total_max_retries=config.total_max_retries
            )
            final_state = await self.workflow.ainvoke(
                initial_state,
                config={"recursion_limit": self._recursion_limit(config)}
            )

        if final_state.get("error") is not None:
            raise final_state["error"]

        iteration: IterationState = final_state["iteration"]
        return RunOutput(
            run_id=run_id,
            result=final_state["result"],
            iterations=iteration.iteration_index,
            total_retries=iteration.total_retry_count,
            messages=tuple(final_state["memory"])
        )

    @staticmethod
    def _recursion_limit(config: ExecutionConfig) -> int:
        # every iteration and every retry costs at most two graph steps
        return 2 * (config.max_iterations + config.total_max_retries) + 10

    async def start_node(self, state: RunState) -> Dict[str, Any]:
        """Record the prompt and announce the run"""

        agent_logger.log_agent_event(
            "run_started", state["run_id"], data=state["execution_config"].model_dump()
        )
        await state["channel"].emit(StartEvent(run_id=state["run_id"], prompt=state["prompt"]))
        state["memory"].append(Message.user(state["prompt"]))
        return {"next_action": "decide"}

    async def decision_node(self, state: RunState) -> Dict[str, Any]:
        """Ask the model backend for the next action"""

        iteration = state["iteration"]
        run_id = state["run_id"]
        channel = state["channel"]

        try:
            decision = await self.backend.decide(state["memory"].snapshot())
        except UnrecoverableBackendError as e:
            return await self._terminate(state, e)
        except Exception as e:
            error = e if isinstance(e, BackendError) else BackendError(str(e) or type(e).__name__)
            if error is not e:
                error.__cause__ = e
            return await self._handle_step_failure(state, error, emit_error=True)

        if not isinstance(decision, (FinalAnswer, ToolCall)):
            error = BackendError(f"Backend returned an unsupported decision: {type(decision).__name__}")
            return await self._handle_step_failure(state, error, emit_error=True)

        iteration = RetryPolicy.record_success(iteration)

        if isinstance(decision, FinalAnswer):
            await channel.emit(UpdateEvent(
                run_id=run_id, iteration=iteration.iteration_index,
                key="final_answer", value=decision.text
            ))
            state["memory"].append(Message.assistant(decision.text))
            await channel.emit(SuccessEvent(
                run_id=run_id, iteration=iteration.iteration_index, text=decision.text
            ))
            agent_logger.log_agent_event(
                "run_completed", run_id,
                iterations=iteration.iteration_index, retries=iteration.total_retry_count
            )
            return {"iteration": iteration, "result": decision.text, "next_action": "finish"}

        if decision.call_id is None:
            decision = decision.model_copy(update={
                "call_id": f"call_{iteration.iteration_index}_{iteration.total_retry_count}"
            })

        await channel.emit(UpdateEvent(
            run_id=run_id, iteration=iteration.iteration_index,
            key="tool_call",
            value={"tool_name": decision.capability_name, "arguments": decision.arguments}
        ))
        return {"iteration": iteration, "pending_call": decision, "next_action": "dispatch"}

    async def dispatch_node(self, state: RunState) -> Dict[str, Any]:
        """Resolve, validate and invoke the requested capability"""

        call = state["pending_call"]
        run_id = state["run_id"]
        memory = state["memory"]
        iteration = state["iteration"]

        memory.append(Message.tool_request(call))
        result = await self.tool_executor.execute_tool(call.capability_name, call.arguments, run_id=run_id)

        if not result.success:
            memory.append(Message.tool_result(call, f"Error: {result.error}", is_error=True))
            await state["channel"].emit(ToolErrorEvent(
                run_id=run_id, iteration=iteration.iteration_index,
                tool_name=call.capability_name, error=result.error
            ))
            return await self._handle_step_failure(state, result.error, emit_error=False)

        memory.append(Message.tool_result(call, self._serialize_output(result.data)))
        await state["channel"].emit(ToolSuccessEvent(
            run_id=run_id, iteration=iteration.iteration_index,
            tool_name=call.capability_name, value=result.data
        ))

        iteration = RetryPolicy.advance_iteration(RetryPolicy.record_success(iteration))
        if RetryPolicy.iterations_exhausted(iteration, state["execution_config"]):
            return await self._terminate(
                state, MaxIterationsExceededError(state["execution_config"].max_iterations), iteration
            )

        return {"iteration": iteration, "pending_call": None, "next_action": "decide"}

    async def _handle_step_failure(self, state: RunState, error: Exception, emit_error: bool) -> Dict[str, Any]:
        """Consume a retry for a failed step or end the run when budgets are spent"""

        iteration = state["iteration"]
        config = state["execution_config"]
        channel = state["channel"]

        logger.warning("Step failed", error=str(error), error_type=type(error).__name__)

        if emit_error:
            await channel.emit(ErrorEvent(
                run_id=state["run_id"], iteration=iteration.iteration_index, error=error
            ))

        if not RetryPolicy.can_retry(iteration, config):
            exhausted = RetriesExhaustedError(
                iteration.step_retry_count, iteration.total_retry_count, last_error=error
            )
            exhausted.__cause__ = error
            return await self._terminate(state, exhausted)

        iteration = RetryPolicy.record_retry(iteration)
        await channel.emit(RetryEvent(
            run_id=state["run_id"],
            iteration=iteration.iteration_index,
            step_retry_count=iteration.step_retry_count,
            total_retry_count=iteration.total_retry_count
        ))
        return {"iteration": iteration, "pending_call": None, "next_action": "decide"}

    async def _terminate(
        self, state: RunState, error: OrchestrationError, iteration: Optional[IterationState] = None
    ) -> Dict[str, Any]:
        iteration = iteration or state["iteration"]
        logger.error("Run failed", error=str(error), error_type=type(error).__name__)
        agent_logger.log_agent_event(
            "run_failed", state["run_id"],
            data={"error_type": type(error).__name__, "error": str(error)},
            iterations=iteration.iteration_index, retries=iteration.total_retry_count
        )
        await state["channel"].emit(ErrorEvent(
            run_id=state["run_id"],
            iteration=iteration.iteration_index,
            error=error,
            terminal=True
        ))
        return {"error": error, "iteration": iteration, "pending_call": None, "next_action": "finish"}

    def route_after_decision(self, state: RunState) -> Literal["dispatch", "decide", "finish"]:
        """Route on the outcome of the decision node"""

        next_action = state.get("next_action") or "finish"
        agent_logger.log_workflow_transition(
            run_id=state["run_id"], from_node="decide", to_node=next_action,
            state_summary=state["iteration"].model_dump()
        )
        return next_action

    def route_after_dispatch(self, state: RunState) -> Literal["decide", "finish"]:
        """Route on the outcome of the dispatch node"""

        next_action = "decide" if state.get("next_action") == "decide" else "finish"
        agent_logger.log_workflow_transition(
            run_id=state["run_id"], from_node="dispatch", to_node=next_action,
            state_summary=state["iteration"].model_dump()
        )
        return next_action

    @staticmethod
    def _serialize_output(data: Any) -> str:
        if isinstance(data, str):
            return data
        if hasattr(data, "model_dump_json"):
            return data.model_dump_json()
        try:
            return json.dumps(data, default=str)
        except (TypeError, ValueError):
            return str(data)
