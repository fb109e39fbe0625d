"""Reservation persistence service."""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Reservation
from app.services.persistence.models import StoreResult

logger = logging.getLogger(__name__)


class ReservationRepository:
    """Service for reading and writing reservations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_confirmed(self, tenant_id: str, day: date) -> StoreResult:
        """Confirmed reservations of one day. Data is a list of (time, party_size)."""
        try:
            result = await self.db.execute(
                select(Reservation.time, Reservation.party_size).where(
                    Reservation.restaurant_id == tenant_id,
                    Reservation.date == day,
                    Reservation.status == "confirmed",
                )
            )
            rows = [(row.time, row.party_size) for row in result.all()]
        except SQLAlchemyError as e:
            logger.error(f"[RESERVATIONS] Read failed: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")
        return StoreResult.success(rows)

    async def create_reservation(
        self,
        tenant_id: str,
        day: date,
        time: str,
        party_size: int,
        customer_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> StoreResult:
        """Insert a confirmed reservation. Data is the new id."""
        reservation = Reservation(
            restaurant_id=tenant_id,
            date=day,
            time=time,
            party_size=party_size,
            customer_name=customer_name,
            phone_number=phone_number,
            status="confirmed",
        )
        try:
            self.db.add(reservation)
            await self.db.commit()
            await self.db.refresh(reservation)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[RESERVATIONS] Insert failed: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")
        logger.info(f"[RESERVATIONS] Created #{reservation.id}: {customer_name}, {day} {time}, {party_size} guests")
        return StoreResult.success(reservation.id)
