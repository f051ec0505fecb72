from typing import Any, Dict, List, Optional, Sequence, Tuple, Type
import structlog

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from agent_engine.domain.errors import BackendError, UnrecoverableBackendError
from agent_engine.domain.models.agent_state import (
    FinalAnswer, Message, MessageRole, ModelDecision, ToolCall
)
from agent_engine.domain.orchestration.backend.base_backend import ModelBackend
from agent_engine.domain.tool.tool_registry import CapabilityRegistry

logger = structlog.get_logger(__name__)

# HTTP statuses that retrying cannot fix
UNRECOVERABLE_STATUS_CODES = frozenset({401, 403, 404})


def to_langchain_messages(messages: Sequence[Message], system_prompt: Optional[str] = None) -> List[BaseMessage]:
    """Convert conversation memory into LangChain chat messages"""

    converted: List[BaseMessage] = []
    if system_prompt:
        converted.append(SystemMessage(content=system_prompt))

    for message in messages:
        if message.role == MessageRole.USER:
            converted.append(HumanMessage(content=message.content))
        elif message.is_tool_request:
            converted.append(AIMessage(
                content=message.content,
                tool_calls=[{
                    "name": message.tool_name,
                    "args": message.tool_arguments or {},
                    "id": message.tool_call_id,
                    "type": "tool_call",
                }]
            ))
        elif message.role == MessageRole.ASSISTANT:
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(ToolMessage(
                content=message.content,
                tool_call_id=message.tool_call_id or "",
                name=message.tool_name,
                status="error" if message.is_error else "success"
            ))

    return converted


def _response_text(response: AIMessage) -> str:
    content = response.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class ChatModelBackend(ModelBackend):
    """Model backend driven by a LangChain chat model with tool calling"""

    def __init__(
        self,
        chat_model: BaseChatModel,
        registry: CapabilityRegistry,
        system_prompt: Optional[str] = None,
        unrecoverable_errors: Tuple[Type[BaseException], ...] = ()
    ):
        self.chat_model = chat_model
        self.system_prompt = system_prompt
        self.unrecoverable_errors = unrecoverable_errors

        tools = [self._tool_definition(c.name, c.description, c.input_schema) for c in registry.get_capabilities()]
        self.runnable = chat_model.bind_tools(tools) if tools else chat_model

    @staticmethod
    def _tool_definition(name: str, description: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": parameters
            }
        }

    async def decide(self, messages: Sequence[Message]) -> ModelDecision:
        lc_messages = to_langchain_messages(messages, self.system_prompt)
        logger.debug("LLM input", message_count=len(lc_messages))

        try:
            response = await self.runnable.ainvoke(lc_messages)
        except (BackendError, UnrecoverableBackendError):
            raise
        except Exception as e:
            raise self._classify(e) from e

        if not isinstance(response, AIMessage):
            raise BackendError(f"Unexpected model response type: {type(response).__name__}")

        if response.tool_calls:
            call = response.tool_calls[0]
            if len(response.tool_calls) > 1:
                logger.warning(
                    "Model requested parallel tool calls; dispatching the first only",
                    requested=[c["name"] for c in response.tool_calls]
                )
            logger.debug("LLM output", tool_call=call["name"])
            return ToolCall(capability_name=call["name"], arguments=call.get("args") or {}, call_id=call.get("id"))

        if response.invalid_tool_calls:
            invalid = response.invalid_tool_calls[0]
            raise BackendError(
                f"Model produced an unparseable tool call: {invalid.get('error') or invalid.get('name')}"
            )

        text = _response_text(response).strip()
        if not text:
            raise BackendError("Model returned an empty response")

        logger.debug("LLM output", final_answer_length=len(text))
        return FinalAnswer(text=text)

    def _classify(self, error: Exception) -> Exception:
        message = str(error) or type(error).__name__
        if isinstance(error, self.unrecoverable_errors):
            return UnrecoverableBackendError(message)
        if getattr(error, "status_code", None) in UNRECOVERABLE_STATUS_CODES:
            return UnrecoverableBackendError(message)
        return BackendError(message)
