"""
Metric fetch log repository.
"""
import uuid
from typing import Optional, List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.models.audit import MetricFetchLog
from campaign_pool.repositories.base import BaseRepository


class AuditRepository(BaseRepository[MetricFetchLog]):
    """Repository for MetricFetchLog operations."""

    def __init__(self, session: AsyncSession, autocommit: bool = True):
        super().__init__(MetricFetchLog, session, autocommit)

    async def log(
        self,
        campaign_id: uuid.UUID,
        source: str,
        status: str,
        metrics_snapshot: Optional[dict] = None,
        error_message: Optional[str] = None
    ) -> MetricFetchLog:
        """Create an audit log entry."""
        return await self.create({
            "campaign_id": campaign_id,
            "source": source,
            "status": status,
            "metrics_snapshot": metrics_snapshot or {},
            "error_message": error_message,
        })

    async def get_recent(self, campaign_id: uuid.UUID, limit: int = 10) -> List[MetricFetchLog]:
        """Most recent entries for a campaign."""
        query = select(MetricFetchLog).where(
            MetricFetchLog.campaign_id == campaign_id
        ).order_by(MetricFetchLog.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return result.all()
