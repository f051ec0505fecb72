"""
Retry and iteration bookkeeping

Pure functions over IterationState and ExecutionConfig. States are frozen, so
every transition returns a new IterationState.
"""

from agent_engine.domain.models.agent_state import ExecutionConfig, IterationState


class RetryPolicy:
    """Per-step and total retry budgets plus the iteration ceiling"""

    @staticmethod
    def can_retry_step(state: IterationState, config: ExecutionConfig) -> bool:
        return state.step_retry_count < config.max_retries_per_step

    @staticmethod
    def can_retry_total(state: IterationState, config: ExecutionConfig) -> bool:
        return state.total_retry_count < config.total_max_retries

    @classmethod
    def can_retry(cls, state: IterationState, config: ExecutionConfig) -> bool:
        return cls.can_retry_step(state, config) and cls.can_retry_total(state, config)

    @staticmethod
    def record_retry(state: IterationState) -> IterationState:
        return state.model_copy(update={
            "step_retry_count": state.step_retry_count + 1,
            "total_retry_count": state.total_retry_count + 1,
        })

    @staticmethod
    def record_success(state: IterationState) -> IterationState:
        """Reset the per-step counter after a successful step"""
        if state.step_retry_count == 0:
            return state
        return state.model_copy(update={"step_retry_count": 0})

    @staticmethod
    def advance_iteration(state: IterationState) -> IterationState:
        return state.model_copy(update={"iteration_index": state.iteration_index + 1})

    @staticmethod
    def iterations_exhausted(state: IterationState, config: ExecutionConfig) -> bool:
        return state.iteration_index >= config.max_iterations
