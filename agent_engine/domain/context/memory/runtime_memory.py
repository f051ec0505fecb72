from typing import Iterator, List, Optional, Tuple

from agent_engine.domain.models.agent_state import Message, MessageRole


class ConversationMemory:
    """Append-only ordered log of the messages exchanged in one run"""

    def __init__(self):
        self._messages: List[Message] = []

    def append(self, message: Message) -> None:
        """Add a message to the conversation"""
        self._messages.append(message)

    def snapshot(self) -> Tuple[Message, ...]:
        """Get an immutable view of the conversation"""
        return tuple(self._messages)

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))


class WindowedConversationMemory(ConversationMemory):
    """Conversation memory that only exposes a capped window to the backend

    The full log is still recorded. snapshot() returns the first user message
    followed by the most recent messages, dropping a leading tool result whose
    assistant request fell outside the window so request/result pairs stay
    intact.
    """

    def __init__(self, max_messages: int = 100):
        if max_messages < 2:
            raise ValueError("max_messages must be at least 2")
        super().__init__()
        self.max_messages = max_messages

    def snapshot(self) -> Tuple[Message, ...]:
        messages = self._messages
        if len(messages) <= self.max_messages:
            return tuple(messages)

        head = messages[:1] if messages[0].role == MessageRole.USER else []
        tail = messages[-(self.max_messages - len(head)):]

        while tail and tail[0].role == MessageRole.TOOL:
            tail = tail[1:]

        return tuple(head + tail)
