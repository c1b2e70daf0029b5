"""Tenant timezone lookup."""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasksearch.models.task import Tenant

logger = structlog.get_logger()


class TenantTimezoneService:
    """Resolve a tenant's IANA timezone for display purposes.

    Never raises: a missing tenant row, an unknown zone name or a database
    error all resolve to the default timezone.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default: str = "UTC"):
        self.session_factory = session_factory
        self.default = default

    async def __call__(self, tenant_id: str) -> str:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Tenant.timezone).where(Tenant.id == tenant_id).limit(1)
                )
                timezone = result.scalar_one_or_none()
        except Exception as e:
            logger.warning("tenant_timezone_lookup_failed", tenant_id=tenant_id, error=str(e))
            return self.default

        if not timezone:
            return self.default
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("tenant_timezone_invalid", tenant_id=tenant_id, timezone=timezone)
            return self.default
        return timezone
