"""
Unit of Work Pattern

Wraps a database transaction and makes sure domain events are handed to
the message bus only after the transaction has committed.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""

    @abstractmethod
    def add_event(self, event: DomainEvent):
        """Record an event to publish after commit"""


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            updated = WaitlistOffer.objects.filter(pk=pk, status=PENDING).update(...)
            if updated:
                uow.add_event(OfferClosed(...))
        # OfferClosed is published once the outer transaction commits

    Nested units of work share the outermost transaction: their events are
    published when that one commits, and dropped if it rolls back.
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def add_event(self, event: DomainEvent):
        self._events.append(event)
        logger.debug(f"Recorded event {event.name} (ID: {event.event_id})")

    @property
    def events(self) -> List[DomainEvent]:
        return self._events.copy()

    def commit(self):
        """
        Schedule event publishing

        Events go out through transaction.on_commit() so a rollback of an
        enclosing transaction discards them as well.
        """
        events = self._events.copy()
        self._events.clear()

        if events:
            logger.debug(f"Scheduling {len(events)} events for publishing after commit")
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        if self._events:
            logger.warning(f"Rolling back unit of work, discarding {len(self._events)} events")
        self._events.clear()

    def _publish_events(self, events: List[DomainEvent]):
        from shared.application.message_bus import message_bus

        logger.info(f"Publishing {len(events)} domain events after commit")
        message_bus.publish_events(events)
