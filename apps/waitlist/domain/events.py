"""
Waitlist Domain Events
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class OfferClosed(DomainEvent):
    """
    Event: A pending offer left `pending` without being accepted

    reason is one of declined, expired, cancelled, entry_cancelled.

    Triggers:
    - Re-offer the same slot to the next eligible candidate
    """
    offer_id: int
    entry_id: int
    salon_id: int
    service_id: int
    employee_id: int
    slot_date: date
    slot_start: datetime
    slot_end: Optional[datetime]
    reason: str
