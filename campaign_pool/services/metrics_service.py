"""
Metrics refresh service - pulls fresh engagement counters from the provider.
Runs outside any distribution transaction.
"""
import asyncio
import logging
import uuid
from typing import Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.config import settings
from campaign_pool.core.exceptions import ExternalFetchError, NotFoundError
from campaign_pool.models.audit import FetchSources, FetchStatuses
from campaign_pool.repositories.audit_repo import AuditRepository
from campaign_pool.repositories.campaign_repo import CampaignRepository
from campaign_pool.repositories.submission_repo import SubmissionRepository
from campaign_pool.schemas.distribution import EngagementMetrics, FetchFailure, MetricsRefreshResult
from campaign_pool.services import calculation_service as calc
from campaign_pool.services.distribution_service import DistributionService
from campaign_pool.services.integrations.base import MetricsProvider

logger = logging.getLogger(__name__)

FetchOutcome = Tuple[uuid.UUID, Optional[EngagementMetrics], Optional[str]]


class MetricsRefreshService:
    """
    Refreshes approved submissions of a campaign.
    Provider calls run concurrently up to `concurrency`; database writes are
    applied one at a time on the session. A failed fetch keeps the last
    known counters for that submission.
    """

    def __init__(
        self,
        session: AsyncSession,
        provider: MetricsProvider,
        concurrency: Optional[int] = None,
        max_errors: Optional[int] = None
    ):
        self.session = session
        self.provider = provider
        self.concurrency = concurrency or settings.METRICS_CONCURRENCY
        self.max_errors = max_errors if max_errors is not None else settings.METRICS_MAX_ERRORS
        self.campaign_repo = CampaignRepository(session)
        self.submission_repo = SubmissionRepository(session)
        self.audit_repo = AuditRepository(session)

    async def refresh_campaign_metrics(
        self,
        campaign_id: uuid.UUID,
        source: str = FetchSources.CRON
    ) -> MetricsRefreshResult:
        campaign = await self.campaign_repo.get(campaign_id)
        if not campaign:
            raise NotFoundError("Campaign", str(campaign_id))

        submissions = await self.submission_repo.list_approved(campaign_id)
        result = MetricsRefreshResult(campaign_id=campaign_id, total=len(submissions))

        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch(submission_id: uuid.UUID, content_url: str) -> FetchOutcome:
            async with semaphore:
                try:
                    return submission_id, await self.provider.fetch_metrics(content_url), None
                except ExternalFetchError as e:
                    return submission_id, None, e.message
                except Exception as e:
                    logger.exception(f"Unexpected error fetching metrics for submission {submission_id}")
                    return submission_id, None, f"Unexpected provider error: {e}"

        outcomes = await asyncio.gather(*(fetch(s.id, s.content_url) for s in submissions))

        by_id = {s.id: s for s in submissions}
        for submission_id, metrics, error in outcomes:
            if metrics is None:
                logger.warning(f"Failed to refresh metrics for submission {submission_id}: {error}")
                result.failed += 1
                if len(result.errors) < self.max_errors:
                    result.errors.append(FetchFailure(submission_id=submission_id, message=error))
                continue

            breakdown = calc.calculate_points(metrics.views, metrics.likes, metrics.shares)
            await self.submission_repo.update_points(by_id[submission_id], breakdown, metrics)
            result.updated += 1

        if result.updated:
            distribution = DistributionService(self.session)
            await distribution.update_campaign_total_points(campaign_id)
            await distribution.recalculate_campaign_submissions(campaign_id)

        await self._log_run(result, source)

        logger.info(
            f"Metrics refresh for campaign {campaign_id}: "
            f"{result.updated}/{result.total} updated, {result.failed} failed"
        )
        return result

    async def _log_run(self, result: MetricsRefreshResult, source: str) -> None:
        if not result.failed:
            status = FetchStatuses.SUCCESS
        elif not result.updated:
            status = FetchStatuses.FAILED
        else:
            status = FetchStatuses.PARTIAL

        await self.audit_repo.log(
            campaign_id=result.campaign_id,
            source=source,
            status=status,
            metrics_snapshot={
                "total": result.total,
                "updated": result.updated,
                "failed": result.failed,
            },
            error_message="; ".join(e.message for e in result.errors) or None,
        )
