"""
Submission repository.
"""
import uuid
from decimal import Decimal
from typing import List, Optional
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func

from campaign_pool.models.submission import Submission, SubmissionStatus
from campaign_pool.repositories.base import BaseRepository
from campaign_pool.schemas.calculation import PointsBreakdown
from campaign_pool.schemas.distribution import EngagementMetrics, PoolTotals


class SubmissionRepository(BaseRepository[Submission]):
    """Repository for Submission operations."""

    def __init__(self, session: AsyncSession, autocommit: bool = True):
        super().__init__(Submission, session, autocommit)

    async def list_approved(self, campaign_id: uuid.UUID) -> List[Submission]:
        """Approved submissions of a campaign, oldest first."""
        query = select(Submission).where(
            Submission.campaign_id == campaign_id,
            Submission.status == SubmissionStatus.APPROVED
        ).order_by(Submission.created_at, Submission.id)
        result = await self.session.exec(query)
        return result.all()

    async def aggregate_approved(self, campaign_id: uuid.UUID) -> PoolTotals:
        """Fresh totals over approved submissions, computed in the database."""
        query = select(
            func.coalesce(func.sum(Submission.total_points), 0.0),
            func.count(Submission.id),
            func.coalesce(func.sum(Submission.last_view_count), 0)
        ).where(
            Submission.campaign_id == campaign_id,
            Submission.status == SubmissionStatus.APPROVED
        )
        result = await self.session.exec(query)
        total_points, total_submissions, total_views = result.one()

        total_points = float(total_points or 0)
        total_submissions = int(total_submissions or 0)

        return PoolTotals(
            total_campaign_points=total_points,
            total_submissions=total_submissions,
            average_points=total_points / total_submissions if total_submissions else 0.0,
            total_views=int(total_views or 0),
        )

    async def update_points(
        self,
        submission: Submission,
        breakdown: PointsBreakdown,
        metrics: Optional[EngagementMetrics] = None,
        checked_at: Optional[datetime] = None
    ) -> Submission:
        """Store derived points, and the raw counters they came from when given."""
        now = datetime.utcnow()
        if metrics is not None:
            submission.last_view_count = metrics.views
            submission.last_like_count = metrics.likes
            submission.last_share_count = metrics.shares
            submission.last_comment_count = metrics.comments
            submission.last_checked_at = checked_at or now

        submission.view_points = breakdown.view_points
        submission.like_points = breakdown.like_points
        submission.share_points = breakdown.share_points
        submission.total_points = breakdown.total_points
        submission.updated_at = now
        return await self._save(submission)

    async def apply_allocation(
        self,
        submission: Submission,
        share_percent: float,
        earnings: Decimal,
        final: bool = False
    ) -> Submission:
        """
        Write a Robin Hood result. `total_earnings` is only written for the
        final distribution; live recalculation touches the estimate alone.
        """
        submission.share_percent = share_percent
        submission.estimated_earnings = earnings
        if final:
            submission.total_earnings = earnings
        submission.updated_at = datetime.utcnow()
        return await self._save(submission)

    async def zero_out(self, submission: Submission, final: bool = False) -> Submission:
        """Explicitly clear the allocation of an excluded submission."""
        return await self.apply_allocation(submission, 0.0, Decimal("0.00"), final=final)
