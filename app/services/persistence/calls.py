"""Call log persistence service."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import CallLog, CallTranscript
from app.services.persistence.models import StoreResult

logger = logging.getLogger(__name__)


class CallLogRepository:
    """Service for persisting call logs and transcript lines."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call_log(
        self,
        tenant_id: str,
        stream_sid: Optional[str],
        call_sid: Optional[str] = None,
        caller_phone: Optional[str] = None,
    ) -> StoreResult:
        """Create a call log when the media stream starts. Data is the new id."""
        if not tenant_id:
            return StoreResult.failure("Missing tenant id")
        call_log = CallLog(
            restaurant_id=tenant_id,
            stream_sid=stream_sid,
            call_sid=call_sid,
            caller_phone=caller_phone,
            status="started",
            started_at=datetime.utcnow(),
        )
        try:
            self.db.add(call_log)
            await self.db.commit()
            await self.db.refresh(call_log)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f"[CALL LOG] Create failed: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")
        return StoreResult.success(call_log.id)

    async def get_call_log(self, call_log_id: int) -> Optional[CallLog]:
        result = await self.db.execute(select(CallLog).where(CallLog.id == call_log_id))
        return result.scalar_one_or_none()

    async def finalize_call_log(self, call_log_id: Optional[int], duration_seconds: int) -> StoreResult:
        """Mark a call log completed with its duration."""
        if not call_log_id:
            return StoreResult.failure("Missing call log id")
        try:
            call_log = await self.get_call_log(call_log_id)
            if call_log is None:
                return StoreResult.failure("Call log not found")
            call_log.status = "completed"
            call_log.duration_seconds = duration_seconds
            call_log.ended_at = datetime.utcnow()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f"[CALL LOG] Finalize failed: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")
        return StoreResult.success(call_log_id)

    async def add_transcript_entry(self, call_log_id: Optional[int], role: str, content: str) -> StoreResult:
        """Append one transcript line to a call log."""
        if not call_log_id or not role or not content:
            return StoreResult.failure("Missing transcript data")
        try:
            self.db.add(CallTranscript(call_log_id=call_log_id, role=role, content=content))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f"[CALL LOG] Transcript insert failed: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")
        return StoreResult.success()
