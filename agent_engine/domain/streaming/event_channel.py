from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union
import inspect
import structlog

from agent_engine.domain.streaming.events import BaseEvent, EventType

logger = structlog.get_logger(__name__)

Observer = Callable[[BaseEvent], Union[None, Awaitable[None]]]


class EventChannel:
    """Ordered, synchronous delivery of lifecycle events to observers

    Observers are called in registration order and awaited before emit()
    returns. An observer that raises aborts the run; the exception is not
    caught here.
    """

    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers: List[Tuple[Optional[EventType], Observer]] = []
        for observer in observers or ():
            self.subscribe(observer)

    def subscribe(self, observer: Observer) -> Observer:
        """Register an observer for every event"""
        self._observers.append((None, observer))
        return observer

    def on(self, event_type: EventType, handler: Observer) -> Observer:
        """Register a handler for a single event type"""
        self._observers.append((EventType(event_type), handler))
        return handler

    def unsubscribe(self, observer: Observer) -> None:
        self._observers = [(t, o) for t, o in self._observers if o is not observer]

    async def emit(self, event: BaseEvent) -> None:
        """Deliver an event to every matching observer in order"""

        logger.debug("Emitting event", event_type=event.type.value, iteration=event.iteration)

        # copy so observers may unsubscribe while handling
        for event_type, observer in list(self._observers):
            if event_type is not None and event_type != event.type:
                continue
            result: Any = observer(event)
            if inspect.isawaitable(result):
                await result

    def __len__(self) -> int:
        return len(self._observers)
