"""
Submission hooks - keep points and live estimates current as submissions change.
"""
import logging
import uuid

from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.core.exceptions import NotFoundError
from campaign_pool.repositories.submission_repo import SubmissionRepository
from campaign_pool.schemas.calculation import NetBudget
from campaign_pool.schemas.distribution import PoolTotals
from campaign_pool.services.distribution_service import DistributionService

logger = logging.getLogger(__name__)


class SubmissionService:
    """Triggers recalculation when submission data changes."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.submission_repo = SubmissionRepository(session)
        self.distribution = DistributionService(session)

    async def _campaign_id_of(self, submission_id: uuid.UUID) -> uuid.UUID:
        submission = await self.submission_repo.get(submission_id)
        if not submission:
            raise NotFoundError("Submission", str(submission_id))
        return submission.campaign_id

    async def _refresh_campaign(self, campaign_id: uuid.UUID) -> PoolTotals:
        """Re-aggregate totals, then re-run Robin Hood with the new total."""
        totals = await self.distribution.update_campaign_total_points(campaign_id)
        await self.distribution.recalculate_campaign_submissions(campaign_id)
        return totals

    async def on_stats_update(self, submission_id: uuid.UUID) -> PoolTotals:
        """Call after a submission's view, like or share counters change."""
        await self.distribution.update_submission_calculations(submission_id)
        campaign_id = await self._campaign_id_of(submission_id)
        return await self._refresh_campaign(campaign_id)

    async def on_approved(self, submission_id: uuid.UUID) -> PoolTotals:
        await self.distribution.update_submission_calculations(submission_id)
        campaign_id = await self._campaign_id_of(submission_id)
        logger.info(f"Submission {submission_id} approved, recalculating campaign {campaign_id}")
        return await self._refresh_campaign(campaign_id)

    async def on_rejected(self, submission_id: uuid.UUID) -> PoolTotals:
        """Recalculate the campaign without the rejected submission."""
        submission = await self.submission_repo.get(submission_id)
        if not submission:
            raise NotFoundError("Submission", str(submission_id))
        campaign_id = submission.campaign_id
        await self.submission_repo.zero_out(submission)
        logger.info(f"Submission {submission_id} rejected, recalculating campaign {campaign_id}")
        return await self._refresh_campaign(campaign_id)

    async def on_campaign_created(self, campaign_id: uuid.UUID) -> NetBudget:
        return await self.distribution.initialize_campaign(campaign_id)
