"""Tenant settings persistence service."""
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import KeyValueCache
from app.db.models import CallLog, Restaurant
from app.services.persistence.models import AccessDecision, StoreResult, TenantSettings

logger = logging.getLogger(__name__)


def utc_month_range(now: datetime) -> Tuple[datetime, datetime]:
    """Start of the month containing `now` and start of the next month (naive UTC)."""
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


class TenantRepository:
    """Reads restaurant settings and call quotas."""

    def __init__(self, db: AsyncSession, cache: KeyValueCache):
        self.db = db
        self.cache = cache

    async def get_settings(self, tenant_id: Optional[str], bypass_cache: bool = False) -> StoreResult:
        """Get tenant settings, from the process-wide cache unless bypassed.

        A bypassed read still refreshes the cache.
        """
        if not tenant_id:
            return StoreResult.failure("Missing tenant id")

        if not bypass_cache:
            cached = self.cache.get(tenant_id)
            if cached is not None:
                return StoreResult.success(cached)

        try:
            result = await self.db.execute(select(Restaurant).where(Restaurant.id == tenant_id))
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"[TENANTS] Settings read failed for {tenant_id}: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")

        if row is None:
            return StoreResult.failure("Tenant not found")

        tenant = TenantSettings.from_row(row)
        self.cache.set(tenant_id, tenant)
        return StoreResult.success(tenant)

    async def get_monthly_call_count(self, tenant_id: str, now: Optional[datetime] = None) -> StoreResult:
        """Number of calls logged for the tenant in the current UTC month."""
        start, end = utc_month_range(now or datetime.utcnow())
        try:
            result = await self.db.execute(
                select(func.count(CallLog.id)).where(
                    CallLog.restaurant_id == tenant_id,
                    CallLog.started_at >= start,
                    CallLog.started_at < end,
                )
            )
            return StoreResult.success(result.scalar() or 0)
        except SQLAlchemyError as e:
            logger.warning(f"[TENANTS] Call count failed for {tenant_id}: {type(e).__name__}: {e}")
            return StoreResult.failure("Database error")

    async def check_access(self, tenant_id: Optional[str], now: Optional[datetime] = None) -> AccessDecision:
        """Subscription and quota check. Always reads fresh settings."""
        lookup = await self.get_settings(tenant_id, bypass_cache=True)
        if not lookup.ok:
            return AccessDecision(allowed=False, reason="not_found")

        tenant: TenantSettings = lookup.data
        if tenant.is_expired:
            return AccessDecision(allowed=False, reason="expired", settings=tenant)

        if tenant.calls_limit and tenant.calls_limit > 0:
            count = await self.get_monthly_call_count(tenant.id, now=now)
            if not count.ok:
                return AccessDecision(allowed=False, reason="limit_check_failed", settings=tenant)
            if count.data >= tenant.calls_limit:
                return AccessDecision(
                    allowed=False,
                    reason="limit_exceeded",
                    settings=tenant,
                    calls_count=count.data,
                )

        return AccessDecision(allowed=True, settings=tenant)
