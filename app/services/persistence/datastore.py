"""Datastore facade used by call sessions.

Every operation opens its own short-lived database session, so background
workers and the per-call dialogue loop never share one.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.cache import KeyValueCache
from app.services.persistence.calls import CallLogRepository
from app.services.persistence.models import AccessDecision, StoreResult
from app.services.persistence.reservations import ReservationRepository
from app.services.persistence.tenants import TenantRepository

logger = logging.getLogger(__name__)


class Datastore:
    """Small query interface over tenants, call logs and reservations."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], tenant_cache: KeyValueCache):
        self.session_factory = session_factory
        self.tenant_cache = tenant_cache

    async def check_access(self, tenant_id: Optional[str], now: Optional[datetime] = None) -> AccessDecision:
        async with self.session_factory() as db:
            return await TenantRepository(db, self.tenant_cache).check_access(tenant_id, now=now)

    async def create_call_log(
        self,
        tenant_id: str,
        stream_sid: Optional[str],
        call_sid: Optional[str] = None,
        caller_phone: Optional[str] = None,
    ) -> StoreResult:
        async with self.session_factory() as db:
            return await CallLogRepository(db).create_call_log(tenant_id, stream_sid, call_sid, caller_phone)

    async def finalize_call_log(self, call_log_id: Optional[int], duration_seconds: int) -> StoreResult:
        async with self.session_factory() as db:
            return await CallLogRepository(db).finalize_call_log(call_log_id, duration_seconds)

    async def add_transcript_entry(self, call_log_id: Optional[int], role: str, content: str) -> StoreResult:
        async with self.session_factory() as db:
            return await CallLogRepository(db).add_transcript_entry(call_log_id, role, content)

    async def list_confirmed_reservations(self, tenant_id: str, day: date) -> StoreResult:
        async with self.session_factory() as db:
            return await ReservationRepository(db).list_confirmed(tenant_id, day)

    async def create_reservation(
        self,
        tenant_id: str,
        day: date,
        time: str,
        party_size: int,
        customer_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> StoreResult:
        async with self.session_factory() as db:
            return await ReservationRepository(db).create_reservation(
                tenant_id, day, time, party_size, customer_name, phone_number
            )
