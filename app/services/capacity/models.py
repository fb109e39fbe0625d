"""Availability and reservation request models."""
from typing import Optional

from pydantic import BaseModel


class AvailabilityQuery(BaseModel):
    """A seating question, with the date already resolved against the caller's words."""

    date: str
    time: str
    party_size: int


class ReservationRequest(AvailabilityQuery):
    """A booking built from tool-call arguments."""

    name: Optional[str] = None
    phone: Optional[str] = None


class AvailabilityResult(BaseModel):
    """Outcome relayed back to the language model as a tool result."""

    date: str
    time: str
    party_size: int
    available: bool
    remaining: int = 0
    peak_occupancy: int = 0
    is_closed_day: bool = False
    is_past_date: bool = False
    error: Optional[str] = None
