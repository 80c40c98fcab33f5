"""
Campaign repository.
"""
import uuid
from typing import Optional, List
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.models.campaign import Campaign, CampaignStatus, PayoutStatus
from campaign_pool.repositories.base import BaseRepository


class CampaignRepository(BaseRepository[Campaign]):
    """Repository for Campaign operations."""

    def __init__(self, session: AsyncSession, autocommit: bool = True):
        super().__init__(Campaign, session, autocommit)

    async def get_for_update(self, campaign_id: uuid.UUID) -> Optional[Campaign]:
        """
        Load a campaign with a row lock (SELECT ... FOR UPDATE).
        Only meaningful inside a transaction; the row is re-read even if cached.
        """
        query = (
            select(Campaign)
            .where(Campaign.id == campaign_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.exec(query)
        return result.first()

    async def set_net_multiplier(self, campaign: Campaign, net_multiplier: float) -> Campaign:
        campaign.net_multiplier = net_multiplier
        campaign.updated_at = datetime.utcnow()
        return await self._save(campaign)

    async def set_total_points(self, campaign: Campaign, total_points: float) -> Campaign:
        """Update the cached campaign total."""
        campaign.total_campaign_points = total_points
        campaign.updated_at = datetime.utcnow()
        return await self._save(campaign)

    async def mark_completed(
        self,
        campaign: Campaign,
        insurance_triggered: bool = False,
        completed_at: Optional[datetime] = None
    ) -> Campaign:
        """Close the campaign and its payout in one write."""
        now = completed_at or datetime.utcnow()
        campaign.status = CampaignStatus.COMPLETED
        campaign.payout_status = PayoutStatus.COMPLETED
        campaign.insurance_triggered = insurance_triggered
        campaign.completed_at = now
        campaign.updated_at = now
        return await self._save(campaign)

    async def list_ended(self, now: Optional[datetime] = None) -> List[Campaign]:
        """Active campaigns past their end date that have not been paid out."""
        now = now or datetime.utcnow()
        query = select(Campaign).where(
            Campaign.status == CampaignStatus.ACTIVE,
            Campaign.payout_status == PayoutStatus.PENDING,
            Campaign.end_date.is_not(None),
            Campaign.end_date <= now
        ).order_by(Campaign.end_date)
        result = await self.session.exec(query)
        return result.all()
