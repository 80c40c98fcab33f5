"""
Distribution service - live pool estimates and the final payout transaction.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import OperationalError
from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.config import settings
from campaign_pool.core.exceptions import (
    AlreadyDistributedError,
    CampaignPoolException,
    InvalidCampaignStateError,
    NotFoundError,
    TransactionConflictError,
    TransactionTimeoutError,
)
from campaign_pool.database import atomic
from campaign_pool.models.audit import FetchSources, FetchStatuses
from campaign_pool.models.campaign import Campaign, CampaignStatus, PayoutStatus
from campaign_pool.models.transaction import TransactionType
from campaign_pool.repositories.audit_repo import AuditRepository
from campaign_pool.repositories.campaign_repo import CampaignRepository
from campaign_pool.repositories.ledger_repo import LedgerRepository
from campaign_pool.repositories.pool_stats_repo import PoolStatsRepository
from campaign_pool.repositories.submission_repo import SubmissionRepository
from campaign_pool.schemas.calculation import ApproximateEarnings, InsurancePreview, NetBudget, PointsBreakdown
from campaign_pool.schemas.distribution import (
    CampaignSweepError,
    CampaignSweepItem,
    Distributed,
    DistributionResult,
    EndedCampaignsReport,
    InsuranceRefund,
    InsuranceRefundNoEligible,
    Payout,
    PoolTotals,
)
from campaign_pool.services import calculation_service as calc
from campaign_pool.services.integrations.base import MetricsProvider

logger = logging.getLogger(__name__)


class Repositories:
    """The repositories one unit of work needs, all in the same commit mode."""

    def __init__(self, session: AsyncSession, autocommit: bool = True):
        self.campaigns = CampaignRepository(session, autocommit)
        self.submissions = SubmissionRepository(session, autocommit)
        self.pool_stats = PoolStatsRepository(session, autocommit)
        self.ledger = LedgerRepository(session, autocommit)
        self.audit = AuditRepository(session, autocommit)


class DistributionService:
    """Service for campaign pool calculations and final distribution."""

    def __init__(self, session: AsyncSession, timeout_seconds: Optional[float] = None):
        self.session = session
        self.timeout_seconds = timeout_seconds or settings.DISTRIBUTION_TIMEOUT_SECONDS
        self.repos = Repositories(session)

    # =========================================================================
    # LIVE CALCULATIONS (direct mode, each write commits)
    # =========================================================================

    async def _get_campaign(self, campaign_id: uuid.UUID) -> Campaign:
        campaign = await self.repos.campaigns.get(campaign_id)
        if not campaign:
            raise NotFoundError("Campaign", str(campaign_id))
        return campaign

    async def initialize_campaign(self, campaign_id: uuid.UUID) -> NetBudget:
        """Cache the net multiplier and create empty pool stats for a new campaign."""
        campaign = await self._get_campaign(campaign_id)
        net = calc.calculate_net_budget(campaign.total_budget, campaign.commission_percent)

        campaign.total_campaign_points = 0.0
        await self.repos.campaigns.set_net_multiplier(campaign, net.net_multiplier)
        await self.repos.pool_stats.create_empty(campaign.id)

        return net

    async def update_submission_calculations(self, submission_id: uuid.UUID) -> PointsBreakdown:
        """Recompute one submission's points from its last known counters."""
        submission = await self.repos.submissions.get(submission_id)
        if not submission:
            raise NotFoundError("Submission", str(submission_id))

        breakdown = calc.calculate_points(
            submission.last_view_count or 0,
            submission.last_like_count or 0,
            submission.last_share_count or 0,
        )
        await self.repos.submissions.update_points(submission, breakdown)
        return breakdown

    async def update_campaign_total_points(self, campaign_id: uuid.UUID) -> PoolTotals:
        """Re-aggregate approved submissions into pool stats and the campaign cache."""
        campaign = await self._get_campaign(campaign_id)
        return await self._refresh_pool_totals(campaign, self.repos)

    async def recalculate_campaign_submissions(self, campaign_id: uuid.UUID) -> int:
        """
        Run Robin Hood over all approved submissions to refresh live estimates.
        Never writes total_earnings and never touches the ledger.
        Returns the number of submissions recalculated.
        """
        campaign = await self.repos.campaigns.get(campaign_id)
        if not campaign:
            return 0

        submissions = await self.repos.submissions.list_approved(campaign_id)
        if not submissions:
            return 0

        stats = await self.repos.pool_stats.get_by_campaign(campaign_id)
        if not stats or not stats.total_campaign_points:
            return 0

        participating_total = sum(s.total_points or 0 for s in submissions)
        if not participating_total:
            return 0

        net = calc.calculate_net_budget(campaign.total_budget, campaign.commission_percent)
        allocation = calc.allocate_robin_hood(submissions, participating_total, net.net_budget)

        by_id = {s.id: s for s in submissions}
        for share in allocation.allocations:
            await self.repos.submissions.apply_allocation(by_id[share.id], share.share_percent, share.earnings)

        await self.repos.pool_stats.mark_batch(stats, stats.total_campaign_points)
        return len(allocation.allocations)

    async def get_approximate_earnings(self, submission_id: uuid.UUID) -> ApproximateEarnings:
        """Read-time uncapped estimate for one submission. Nothing is written."""
        submission = await self.repos.submissions.get(submission_id)
        if not submission:
            raise NotFoundError("Submission", str(submission_id))

        campaign = await self._get_campaign(submission.campaign_id)
        stats = await self.repos.pool_stats.get_by_campaign(campaign.id)
        return calc.calculate_approximate_earnings(submission, stats, campaign)

    async def preview_insurance(self, campaign_id: uuid.UUID) -> InsurancePreview:
        """Evaluate the insurance gate against current approved totals, without side effects."""
        campaign = await self._get_campaign(campaign_id)
        totals = await self.repos.submissions.aggregate_approved(campaign_id)
        check = calc.check_insurance_thresholds(
            campaign.total_budget,
            totals.total_submissions,
            totals.total_campaign_points,
            totals.total_views,
        )

        return InsurancePreview(
            campaign_id=campaign.id,
            thresholds=calc.get_insurance_thresholds(campaign.total_budget),
            total_submissions=totals.total_submissions,
            total_points=totals.total_campaign_points,
            total_views=totals.total_views,
            passed=check.passed,
            failed_checks=check.failed_checks,
        )

    # =========================================================================
    # FINAL DISTRIBUTION (one transaction)
    # =========================================================================

    async def process_final_distribution(self, campaign_id: uuid.UUID) -> DistributionResult:
        """
        Close a campaign and pay it out, or refund it, exactly once.

        Insurance check -> eligibility filter -> Robin Hood -> ledger writes,
        all inside one transaction bounded by `timeout_seconds`. Any failure
        rolls everything back.
        """
        try:
            return await asyncio.wait_for(self._distribute(campaign_id), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Distribution for campaign {campaign_id} timed out after {self.timeout_seconds}s")
            raise TransactionTimeoutError(str(campaign_id), self.timeout_seconds)
        except OperationalError as e:
            logger.error(f"Distribution for campaign {campaign_id} rolled back: {e}")
            raise TransactionConflictError(str(campaign_id), str(e.orig))

    def _guard_distributable(self, campaign: Campaign) -> None:
        if campaign.status == CampaignStatus.COMPLETED or campaign.payout_status == PayoutStatus.COMPLETED:
            raise AlreadyDistributedError(str(campaign.id))
        if campaign.status != CampaignStatus.ACTIVE:
            raise InvalidCampaignStateError(str(campaign.id), campaign.status.value)

    async def _distribute(self, campaign_id: uuid.UUID) -> DistributionResult:
        async with atomic(self.session):
            repos = Repositories(self.session, autocommit=False)

            campaign = await repos.campaigns.get_for_update(campaign_id)
            if not campaign:
                raise NotFoundError("Campaign", str(campaign_id))
            self._guard_distributable(campaign)

            # 1. Final point aggregation
            totals = await self._refresh_pool_totals(campaign, repos)
            net = calc.calculate_net_budget(campaign.total_budget, campaign.commission_percent)

            # 2. Insurance check
            insurance = calc.check_insurance_thresholds(
                campaign.total_budget,
                totals.total_submissions,
                totals.total_campaign_points,
                totals.total_views,
            )
            if not insurance.passed:
                return await self._process_insurance_refund(
                    campaign, net.net_budget, insurance.failed_checks, totals, repos
                )

            # 3. Eligibility filter
            submissions = await repos.submissions.list_approved(campaign.id)
            eligible = calc.filter_eligible_submissions(submissions, totals.total_campaign_points)
            if not eligible:
                return await self._process_insurance_refund(
                    campaign, net.net_budget, [calc.NO_ELIGIBLE_CHECK], totals, repos, no_eligible=True
                )

            # 4. Robin Hood over the eligible set only
            eligible_total = sum(s.total_points for s in eligible)
            allocation = calc.allocate_robin_hood(eligible, eligible_total, net.net_budget)
            shares = {a.id: a for a in allocation.allocations}

            # 5. Write results and pay out
            payouts: List[Payout] = []
            for submission in submissions:
                share = shares.get(submission.id)
                if share is None:
                    await repos.submissions.zero_out(submission, final=True)
                    continue

                await repos.submissions.apply_allocation(
                    submission, share.share_percent, share.earnings, final=True
                )
                if share.earnings <= 0:
                    continue

                await repos.ledger.increment_balance(submission.creator_id, share.earnings)
                await repos.ledger.record_transaction(
                    user_id=submission.creator_id,
                    type=TransactionType.EARNING,
                    amount=share.earnings,
                    description=f"Campaign earnings: {campaign.title}",
                    reference=str(submission.id),
                )
                payouts.append(Payout(
                    submission_id=submission.id,
                    creator_id=submission.creator_id,
                    earnings=share.earnings,
                ))

            stats = await repos.pool_stats.get_by_campaign(campaign.id)
            await repos.pool_stats.mark_batch(stats, totals.total_campaign_points)

            # 6. Mark campaign complete
            await repos.campaigns.mark_completed(campaign)
            await repos.audit.log(
                campaign_id=campaign.id,
                source=FetchSources.FINAL,
                status=FetchStatuses.SUCCESS,
                metrics_snapshot={
                    "total_submissions": totals.total_submissions,
                    "eligible_submissions": len(eligible),
                    "total_points": totals.total_campaign_points,
                    "total_views": totals.total_views,
                    "net_budget": str(net.net_budget),
                    "payouts_count": len(payouts),
                    "converged": allocation.converged,
                },
            )

            if not allocation.converged:
                logger.warning(
                    f"Campaign {campaign.id}: {allocation.unallocated_share:.4f} of the pool "
                    f"could not be allocated under the share cap and is retained"
                )
            logger.info(
                f"Campaign {campaign.id} distributed: {len(payouts)} payouts "
                f"from net budget {net.net_budget}"
            )

            return Distributed(
                campaign_id=campaign.id,
                net_budget=net.net_budget,
                total_payouts=len(payouts),
                payouts=payouts,
            )

    async def _refresh_pool_totals(self, campaign: Campaign, repos: Repositories) -> PoolTotals:
        totals = await repos.submissions.aggregate_approved(campaign.id)
        await repos.pool_stats.upsert(campaign.id, totals)
        await repos.campaigns.set_total_points(campaign, totals.total_campaign_points)
        return totals

    async def _process_insurance_refund(
        self,
        campaign: Campaign,
        net_budget: Decimal,
        failed_checks: List[str],
        totals: PoolTotals,
        repos: Repositories,
        no_eligible: bool = False
    ) -> InsuranceRefund:
        """Refund the net budget to the artist. Commission is kept by the platform."""
        refund_amount = calc.round_money(net_budget)

        await repos.ledger.increment_balance(campaign.artist_id, refund_amount)
        await repos.ledger.record_transaction(
            user_id=campaign.artist_id,
            type=TransactionType.DEPOSIT,
            amount=refund_amount,
            description=f"Insurance refund: {campaign.title} ({', '.join(failed_checks)})",
        )

        await repos.campaigns.mark_completed(campaign, insurance_triggered=True)
        await repos.audit.log(
            campaign_id=campaign.id,
            source=FetchSources.FINAL,
            status=FetchStatuses.INSURANCE_TRIGGERED,
            metrics_snapshot={
                "total_submissions": totals.total_submissions,
                "total_points": totals.total_campaign_points,
                "total_views": totals.total_views,
                "failed_checks": failed_checks,
            },
        )

        logger.info(
            f"Campaign {campaign.id} insurance triggered, refunded {refund_amount}: {', '.join(failed_checks)}"
        )

        result_cls = InsuranceRefundNoEligible if no_eligible else InsuranceRefund
        return result_cls(
            campaign_id=campaign.id,
            refund_amount=refund_amount,
            failed_checks=failed_checks,
        )

    # =========================================================================
    # ENDED CAMPAIGN SWEEP
    # =========================================================================

    async def process_ended_campaigns(
        self,
        provider: Optional[MetricsProvider] = None,
        now: Optional[datetime] = None
    ) -> EndedCampaignsReport:
        """
        Distribute every active campaign past its end date.
        With a provider, metrics are refreshed first, outside the payout
        transaction. One campaign failing does not stop the others.
        """
        from campaign_pool.services.metrics_service import MetricsRefreshService

        now = now or datetime.utcnow()
        ended = await self.repos.campaigns.list_ended(now)
        campaign_ids = [c.id for c in ended]
        report = EndedCampaignsReport(timestamp=now)

        logger.info(f"Found {len(campaign_ids)} ended campaigns to distribute")

        for campaign_id in campaign_ids:
            try:
                refresh = None
                if provider is not None:
                    refresh = await MetricsRefreshService(self.session, provider).refresh_campaign_metrics(campaign_id)

                result = await self.process_final_distribution(campaign_id)
                report.results.append(CampaignSweepItem(result=result, metrics_refresh=refresh))
                report.processed += 1
            except CampaignPoolException as e:
                logger.error(f"Failed to distribute campaign {campaign_id}: {e.message}")
                report.errors.append(CampaignSweepError(campaign_id=campaign_id, kind=e.kind, error=e.message))
                report.failed += 1
            except Exception as e:
                logger.exception(f"Unexpected error distributing campaign {campaign_id}")
                if self.session.in_transaction():
                    await self.session.rollback()
                report.errors.append(CampaignSweepError(campaign_id=campaign_id, error=str(e)))
                report.failed += 1

        logger.info(f"Distribution sweep done: {report.processed} processed, {report.failed} failed")
        return report
