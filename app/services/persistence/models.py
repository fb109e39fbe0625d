"""Value objects returned by the persistence services."""
from typing import Any, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict

from app.db.models import Restaurant
from app.services.capacity.engine import normalize_closed_days


class StoreResult(BaseModel):
    """Outcome of a datastore call. Failures are reported here, never raised."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, data: Any = None) -> "StoreResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str) -> "StoreResult":
        return cls(ok=False, error=error)


class TenantSettings(BaseModel):
    """Restaurant settings as the voice agent needs them. Immutable within a call."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    max_capacity: int = 0
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    closed_days: FrozenSet[int] = frozenset()
    subscription_status: str = "active"
    calls_limit: Optional[int] = None
    handoff_numbers: List[str] = []

    @classmethod
    def from_row(cls, row: Restaurant) -> "TenantSettings":
        numbers = [
            number.strip()
            for number in (row.handoff_phone_number, row.phone_number)
            if number and number.strip()
        ]
        return cls(
            id=row.id,
            name=row.name,
            max_capacity=row.max_capacity or 0,
            opening_time=row.opening_time,
            closing_time=row.closing_time,
            closed_days=normalize_closed_days(row.closed_days),
            subscription_status=row.subscription_status or "active",
            calls_limit=row.calls_limit,
            handoff_numbers=list(dict.fromkeys(numbers)),
        )

    @property
    def is_expired(self) -> bool:
        return self.subscription_status.strip().lower() == "expired"


class AccessDecision(BaseModel):
    """Whether a call for a tenant may enter the dialogue loop."""

    allowed: bool
    reason: Optional[str] = None  # not_found, expired, limit_exceeded, limit_check_failed
    settings: Optional[TenantSettings] = None
    calls_count: Optional[int] = None
