from typing import Optional, TextIO
import structlog

from agent_engine.domain.errors import AgentEngineError
from agent_engine.domain.streaming.events import (
    BaseEvent, EventType, ErrorEvent, RetryEvent, StartEvent,
    SuccessEvent, ToolErrorEvent, ToolSuccessEvent, UpdateEvent
)

logger = structlog.get_logger(__name__)


class StreamingHandler:
    """Observer that reports agent events to the log and, optionally, a text stream"""

    def __init__(self, stream: Optional[TextIO] = None, prefix: str = "Agent 🤖"):
        self.stream = stream
        self.prefix = prefix

    def __call__(self, event: BaseEvent) -> None:
        """Handle a single lifecycle event"""

        if event.type == EventType.START:
            self._handle_start(event)
        elif event.type == EventType.UPDATE:
            self._handle_update(event)
        elif event.type == EventType.RETRY:
            self._handle_retry(event)
        elif event.type == EventType.ERROR:
            self._handle_error(event)
        elif event.type == EventType.TOOL_SUCCESS:
            self._handle_tool_success(event)
        elif event.type == EventType.TOOL_ERROR:
            self._handle_tool_error(event)
        elif event.type == EventType.SUCCESS:
            self._handle_success(event)

    def _handle_start(self, event: StartEvent):
        logger.info("Run started", run_id=event.run_id, prompt_length=len(event.prompt))
        self.write("starting new run")

    def _handle_update(self, event: UpdateEvent):
        logger.info("Agent update", run_id=event.run_id, iteration=event.iteration, key=event.key)
        self.write(event.value, key=event.key)

    def _handle_retry(self, event: RetryEvent):
        logger.info(
            "Retrying",
            run_id=event.run_id,
            step_retry_count=event.step_retry_count,
            total_retry_count=event.total_retry_count
        )
        self.write("retrying the action...")

    def _handle_error(self, event: ErrorEvent):
        log = logger.error if event.terminal else logger.warning
        log("Agent error", run_id=event.run_id, error=str(event.error), terminal=event.terminal)
        self.write(AgentEngineError.ensure(event.error).dump())

    def _handle_tool_success(self, event: ToolSuccessEvent):
        logger.info("Tool succeeded", run_id=event.run_id, tool_name=event.tool_name)
        self.write(event.value, key=event.tool_name)

    def _handle_tool_error(self, event: ToolErrorEvent):
        logger.warning("Tool failed", run_id=event.run_id, tool_name=event.tool_name, error=str(event.error))
        self.write(str(event.error), key=event.tool_name)

    def _handle_success(self, event: SuccessEvent):
        logger.info("Run succeeded", run_id=event.run_id, iteration=event.iteration)

    def write(self, value, key: Optional[str] = None) -> None:
        """Write a line in the console transcript format"""

        if self.stream is None:
            return
        label = f"{self.prefix} ({key})" if key else self.prefix
        self.stream.write(f"{label} : {value}\n")
        self.stream.flush()
