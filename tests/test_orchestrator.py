"""Tests for the agent orchestration loop.

Covers:
- Event order for a tool call followed by a final answer
- Retry budgets (per step and total) for backend and tool failures
- Iteration ceiling
- Unrecoverable backend failures
- Observer failures propagating out of run()
- Deterministic replays
"""

from typing import Any, List, Tuple

import pytest

from agent_engine.domain.errors import (
    BackendError,
    CapabilityError,
    InvalidArgumentsError,
    MaxIterationsExceededError,
    RegistryFrozenError,
    RetriesExhaustedError,
    UnknownCapabilityError,
    UnrecoverableBackendError,
)
from agent_engine.domain.models.agent_state import ExecutionConfig, MessageRole
from agent_engine.domain.orchestration.core import main_agent
from agent_engine.domain.orchestration.core.main_agent import AgentOrchestrator
from agent_engine.domain.streaming.events import EventType
from agent_engine.domain.tool.capability import FunctionCapability
from agent_engine.domain.tool.tool_registry import CapabilityRegistry

from conftest import EventRecorder, ScriptedBackend, final, tool_call


def _orchestrator(script, registry, **kwargs) -> Tuple[AgentOrchestrator, ScriptedBackend]:
    backend = ScriptedBackend(script)
    return AgentOrchestrator(backend=backend, capabilities=registry, **kwargs), backend


def _projection(events) -> List[Tuple[Any, ...]]:
    return [
        (
            e.type,
            e.iteration,
            getattr(e, "key", None),
            getattr(e, "value", None),
            getattr(e, "tool_name", None),
            str(getattr(e, "error", "")),
        )
        for e in events
    ]


class TestSuccessfulRuns:

    @pytest.mark.asyncio
    async def test_tool_call_then_final_answer_event_order(self, registry, recorder):
        orchestrator, _ = _orchestrator([tool_call(a=1, b=2), final("3")], registry)

        output = await orchestrator.run("add 1 and 2", ExecutionConfig(), observers=[recorder])

        assert output.result == "3"
        assert recorder.types == [
            EventType.START,
            EventType.UPDATE,
            EventType.TOOL_SUCCESS,
            EventType.UPDATE,
            EventType.SUCCESS,
        ]
        updates = recorder.of_type(EventType.UPDATE)
        assert updates[0].key == "tool_call"
        assert updates[0].value == {"tool_name": "add", "arguments": {"a": 1, "b": 2}}
        assert updates[1].key == "final_answer"
        assert recorder.of_type(EventType.TOOL_SUCCESS)[0].value == 3

    @pytest.mark.asyncio
    async def test_memory_records_the_whole_exchange(self, registry):
        orchestrator, backend = _orchestrator([tool_call(a=1, b=2), final("3")], registry)

        output = await orchestrator.run("add 1 and 2")

        roles = [m.role for m in output.messages]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.TOOL, MessageRole.ASSISTANT]
        request, result = output.messages[1], output.messages[2]
        assert request.tool_name == "add"
        assert request.tool_arguments == {"a": 1, "b": 2}
        assert request.tool_call_id == result.tool_call_id == "call_0_0"
        assert result.content == "3"
        # the second decision saw the tool result
        assert backend.calls[1][-1].content == "3"
        assert output.iterations == 1
        assert output.total_retries == 0

    @pytest.mark.asyncio
    async def test_immediate_final_answer(self, registry, recorder):
        orchestrator, _ = _orchestrator([final("hello")], registry)

        output = await orchestrator.run("say hello", observers=[recorder])

        assert output.result == "hello"
        assert output.iterations == 0
        assert recorder.types == [EventType.START, EventType.UPDATE, EventType.SUCCESS]

    @pytest.mark.asyncio
    async def test_backend_fails_twice_then_answers(self, registry, recorder):
        config = ExecutionConfig(max_retries_per_step=2, total_max_retries=2, max_iterations=3)
        orchestrator, _ = _orchestrator(
            [BackendError("503"), BackendError("503"), final("done")], registry
        )

        output = await orchestrator.run("task", config, observers=[recorder])

        assert output.result == "done"
        assert output.total_retries == 2
        assert len(recorder.of_type(EventType.RETRY)) == 2
        assert recorder.types[-1] == EventType.SUCCESS

    @pytest.mark.asyncio
    async def test_failed_backend_attempt_appends_no_message(self, registry):
        orchestrator, backend = _orchestrator([BackendError("flaky"), final("ok")], registry)

        await orchestrator.run("task")

        assert backend.calls[0] == backend.calls[1]
        assert len(backend.calls[1]) == 1

    @pytest.mark.asyncio
    async def test_step_counter_resets_after_success(self, registry):
        config = ExecutionConfig(max_retries_per_step=1, total_max_retries=5, max_iterations=3)
        orchestrator, _ = _orchestrator(
            [BackendError("a"), tool_call(a=1, b=1), BackendError("b"), final("2")], registry
        )

        output = await orchestrator.run("task", config)

        assert output.result == "2"
        assert output.total_retries == 2

    @pytest.mark.asyncio
    async def test_invalid_arguments_reported_to_model(self, registry, recorder):
        orchestrator, backend = _orchestrator(
            [tool_call(a=1), tool_call(a=1, b=2), final("3")], registry
        )

        output = await orchestrator.run("task", observers=[recorder])

        assert output.result == "3"
        tool_errors = recorder.of_type(EventType.TOOL_ERROR)
        assert len(tool_errors) == 1
        assert isinstance(tool_errors[0].error, InvalidArgumentsError)
        feedback = backend.calls[1][-1]
        assert feedback.role == MessageRole.TOOL
        assert feedback.is_error
        assert output.iterations == 1

    @pytest.mark.asyncio
    async def test_generic_backend_exception_is_retried(self, registry, recorder):
        orchestrator, _ = _orchestrator([TimeoutError("slow model"), final("ok")], registry)

        output = await orchestrator.run("task", observers=[recorder])

        assert output.result == "ok"
        errors = recorder.of_type(EventType.ERROR)
        assert isinstance(errors[0].error, BackendError)
        assert not errors[0].terminal

    @pytest.mark.asyncio
    async def test_unsupported_decision_is_retried(self, registry):
        orchestrator, _ = _orchestrator([None, final("ok")], registry)

        output = await orchestrator.run("task")

        assert output.total_retries == 1


class TestTerminalOutcomes:

    @pytest.mark.asyncio
    async def test_unknown_capability_exhausts_total_retries(self, registry, recorder):
        config = ExecutionConfig(max_retries_per_step=5, total_max_retries=3, max_iterations=5)
        orchestrator, backend = _orchestrator([tool_call("subtract", a=1, b=1)], registry)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await orchestrator.run("task", config, observers=[recorder])

        assert exc_info.value.total_retries == 3
        assert isinstance(exc_info.value.last_error, UnknownCapabilityError)
        assert len(recorder.of_type(EventType.RETRY)) == 3
        assert len(backend.calls) == 4
        last = recorder.events[-1]
        assert last.type == EventType.ERROR
        assert last.terminal

    @pytest.mark.asyncio
    async def test_per_step_budget_exhausted(self, registry):
        config = ExecutionConfig(max_retries_per_step=1, total_max_retries=5, max_iterations=5)
        orchestrator, backend = _orchestrator([BackendError("down")], registry)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await orchestrator.run("task", config)

        assert exc_info.value.step_retries == 1
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_capability_failure_consumes_retries(self, registry, recorder):
        config = ExecutionConfig(max_retries_per_step=2, total_max_retries=2, max_iterations=5)
        orchestrator, _ = _orchestrator([tool_call("fail")], registry)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await orchestrator.run("task", config, observers=[recorder])

        assert isinstance(exc_info.value.last_error, CapabilityError)
        assert len(recorder.of_type(EventType.TOOL_ERROR)) == 3

    @pytest.mark.asyncio
    async def test_max_iterations_exceeded(self, registry, recorder):
        config = ExecutionConfig(max_retries_per_step=1, total_max_retries=1, max_iterations=3)
        orchestrator, backend = _orchestrator([tool_call(a=1, b=1)], registry)

        with pytest.raises(MaxIterationsExceededError) as exc_info:
            await orchestrator.run("task", config, observers=[recorder])

        assert exc_info.value.max_iterations == 3
        assert len(backend.calls) == 3
        assert len(recorder.of_type(EventType.TOOL_SUCCESS)) == 3
        assert recorder.events[-1].type == EventType.ERROR

    @pytest.mark.asyncio
    async def test_unrecoverable_backend_error_stops_immediately(self, registry, recorder):
        orchestrator, backend = _orchestrator(
            [UnrecoverableBackendError("invalid api key"), final("never")], registry
        )

        with pytest.raises(UnrecoverableBackendError):
            await orchestrator.run("task", observers=[recorder])

        assert len(backend.calls) == 1
        assert recorder.types == [EventType.START, EventType.ERROR]
        assert recorder.of_type(EventType.RETRY) == []

    @pytest.mark.parametrize("per_step,total", [(0, 0), (1, 3), (3, 1), (2, 2)])
    @pytest.mark.asyncio
    async def test_retries_never_exceed_budgets(self, registry, per_step, total):
        config = ExecutionConfig(max_retries_per_step=per_step, total_max_retries=total, max_iterations=4)
        recorder = EventRecorder()
        orchestrator, _ = _orchestrator([BackendError("x"), tool_call("missing")], registry)

        with pytest.raises(RetriesExhaustedError):
            await orchestrator.run("task", config, observers=[recorder])

        retries = recorder.of_type(EventType.RETRY)
        assert len(retries) <= total
        assert all(r.step_retry_count <= per_step for r in retries)
        assert all(r.total_retry_count <= total for r in retries)


class TestObserversAndDeterminism:

    @pytest.mark.asyncio
    async def test_observer_failure_propagates(self, registry):
        orchestrator, _ = _orchestrator([tool_call(a=1, b=2), final("3")], registry)

        def broken(event):
            if event.type == EventType.TOOL_SUCCESS:
                raise RuntimeError("observer defect")

        with pytest.raises(RuntimeError, match="observer defect"):
            await orchestrator.run("task", observers=[broken])

    @pytest.mark.asyncio
    async def test_constructor_observers_run_before_call_observers(self, registry):
        order: List[str] = []
        orchestrator, _ = _orchestrator(
            [final("x")], registry, observers=[lambda e: order.append("agent")]
        )

        await orchestrator.run("task", observers=[lambda e: order.append("run")])

        assert order[:2] == ["agent", "run"]
        assert len(order) == 6

    @pytest.mark.asyncio
    async def test_identical_runs_replay_identically(self, registry):
        script = [BackendError("flaky"), tool_call(a=2, b=2), tool_call("missing"), final("4")]
        first, second = EventRecorder(), EventRecorder()

        orchestrator, _ = _orchestrator(script, registry)
        out_1 = await orchestrator.run("task", observers=[first], run_id="fixed")
        orchestrator, _ = _orchestrator(script, registry)
        out_2 = await orchestrator.run("task", observers=[second], run_id="fixed")

        assert out_1.result == out_2.result == "4"
        assert _projection(first.events) == _projection(second.events)

    def test_registry_is_frozen_once_agent_is_built(self, registry):
        _orchestrator([final("x")], registry)

        with pytest.raises(RegistryFrozenError):
            registry.register(FunctionCapability(lambda: None, name="late"))

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected(self, registry):
        orchestrator, _ = _orchestrator([final("x")], registry)

        with pytest.raises(ValueError):
            await orchestrator.run("   ")

    @pytest.mark.asyncio
    async def test_capability_list_accepted(self):
        async def echo(text: str) -> str:
            return text

        orchestrator = AgentOrchestrator(
            backend=ScriptedBackend([tool_call("echo", text="hi"), final("hi")]),
            capabilities=[FunctionCapability(echo)]
        )

        output = await orchestrator.run("echo hi")

        assert output.messages[2].content == "hi"


class TestRunLifecycle:

    @pytest.fixture
    def lifecycle(self, monkeypatch) -> List[Tuple[str, dict]]:
        logged: List[Tuple[str, dict]] = []

        def record(event_type, run_id, data=None, **kwargs):
            logged.append((event_type, dict(data or {}, **kwargs)))

        monkeypatch.setattr(main_agent.agent_logger, "log_agent_event", record)
        return logged

    @pytest.mark.asyncio
    async def test_successful_run_logs_start_and_completion(self, registry, lifecycle):
        orchestrator, _ = _orchestrator([tool_call(a=1, b=2), final("3")], registry)

        await orchestrator.run("task")

        assert [name for name, _ in lifecycle] == ["run_started", "run_completed"]
        assert lifecycle[0][1]["max_iterations"] == 5
        assert lifecycle[1][1]["iterations"] == 1

    @pytest.mark.asyncio
    async def test_failed_run_logs_failure(self, registry, lifecycle):
        orchestrator, _ = _orchestrator([UnrecoverableBackendError("invalid api key")], registry)

        with pytest.raises(UnrecoverableBackendError):
            await orchestrator.run("task")

        assert [name for name, _ in lifecycle] == ["run_started", "run_failed"]
        assert lifecycle[1][1]["error_type"] == "UnrecoverableBackendError"

    @pytest.mark.asyncio
    async def test_terminal_event_carries_final_iteration(self, registry, recorder):
        config = ExecutionConfig(max_iterations=2)
        orchestrator, _ = _orchestrator([tool_call(a=1, b=1)], registry)

        with pytest.raises(MaxIterationsExceededError):
            await orchestrator.run("task", config, observers=[recorder])

        terminal = recorder.events[-1]
        assert terminal.terminal
        assert terminal.iteration == 2

    @pytest.mark.asyncio
    async def test_unresolvable_schema_reference_is_retried_not_raised(self, recorder):
        look = FunctionCapability(lambda x: x, name="look", input_schema={"$ref": "#/$defs/Missing"})
        orchestrator, _ = _orchestrator(
            [tool_call("look", x=1), final("ok")], CapabilityRegistry([look])
        )

        output = await orchestrator.run("task", observers=[recorder])

        assert output.result == "ok"
        assert isinstance(recorder.of_type(EventType.TOOL_ERROR)[0].error, InvalidArgumentsError)
