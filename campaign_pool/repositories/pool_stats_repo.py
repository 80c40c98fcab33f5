"""
Campaign pool stats repository.
"""
import uuid
from typing import Optional
from datetime import datetime

from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.models.pool_stats import CampaignPoolStats
from campaign_pool.repositories.base import BaseRepository
from campaign_pool.schemas.distribution import PoolTotals


class PoolStatsRepository(BaseRepository[CampaignPoolStats]):
    """Repository for the cached per-campaign aggregate."""

    def __init__(self, session: AsyncSession, autocommit: bool = True):
        super().__init__(CampaignPoolStats, session, autocommit)

    async def get_by_campaign(self, campaign_id: uuid.UUID) -> Optional[CampaignPoolStats]:
        return await self.get_by_field("campaign_id", campaign_id)

    async def upsert(self, campaign_id: uuid.UUID, totals: PoolTotals) -> CampaignPoolStats:
        """Create or overwrite the aggregate row for a campaign."""
        stats = await self.get_by_campaign(campaign_id)
        if not stats:
            stats = CampaignPoolStats(campaign_id=campaign_id)

        stats.total_campaign_points = totals.total_campaign_points
        stats.total_submissions = totals.total_submissions
        stats.average_points = totals.average_points
        stats.updated_at = datetime.utcnow()
        return await self._save(stats)

    async def create_empty(self, campaign_id: uuid.UUID) -> CampaignPoolStats:
        return await self.upsert(
            campaign_id,
            PoolTotals(total_campaign_points=0.0, total_submissions=0, average_points=0.0, total_views=0),
        )

    async def mark_batch(
        self,
        stats: CampaignPoolStats,
        total_points: float,
        batch_at: Optional[datetime] = None
    ) -> CampaignPoolStats:
        """Record when Robin Hood last ran and over which total."""
        now = batch_at or datetime.utcnow()
        stats.last_batch_at = now
        stats.last_batch_total_points = total_points
        stats.updated_at = now
        return await self._save(stats)
