"""
Booking Domain Events

Published through the message bus once the surrounding transaction commits.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class BookingCreated(DomainEvent):
    """
    Event: A booking now occupies an employee's slot

    Triggers:
    - Send confirmation to the customer
    - Withdraw pending waitlist offers for the same slot
    """
    booking_id: int
    salon_id: int
    employee_id: int
    service_id: int
    slot_start: datetime
    slot_end: datetime
    source: str


@dataclass(kw_only=True)
class SlotFreed(DomainEvent):
    """
    Event: A previously blocking booking no longer occupies its slot

    Triggers:
    - Offer the slot to the best waiting customer
    """
    salon_id: int
    employee_id: int
    service_id: int
    slot_start: datetime
    slot_end: datetime
    booking_id: Optional[int] = None
