"""
Message Bus

Routes domain events to their subscribers. Apps subscribe their handlers in
AppConfig.ready(); publishers never import subscribers directly, which keeps
the booking domain unaware of the waitlist domain.
"""

from typing import Callable, Dict, List, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class MessageBus:
    """
    In-process event bus

    Events: multiple handlers per event type (1:N), called in registration
    order. A failing handler is logged and does not stop the others.
    """

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}

    def register_event_handler(self, event_type: Type[DomainEvent], handler: EventHandler):
        handlers = self._event_handlers.setdefault(event_type, [])
        if handler in handlers:
            return
        handlers.append(handler)
        logger.debug(f"Registered {handler.__name__} for {event_type.__name__}")

    def subscribe(self, event_type: Type[DomainEvent]):
        """Decorator form of register_event_handler"""

        def decorator(handler: EventHandler) -> EventHandler:
            self.register_event_handler(event_type, handler)
            return handler

        return decorator

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._event_handlers.get(event_type, []))

    def publish_events(self, events: List[DomainEvent]):
        for event in events:
            handlers = self.handlers_for(type(event))

            if not handlers:
                logger.warning(f"No handlers registered for event {event.name}")
                continue

            logger.info(f"Publishing event: {event.name} (ID: {event.event_id})")

            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {handler.__name__} "
                        f"for event {event.name}: {e}",
                        exc_info=True
                    )

    def publish(self, event: DomainEvent):
        self.publish_events([event])


# Process-wide bus; subscriptions are made once per process in AppConfig.ready()
message_bus = MessageBus()
