"""
Distribution API routes - cron and admin triggers for the payout engine.
"""
import uuid

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.api.deps import get_metrics_provider, verify_cron_secret
from campaign_pool.config import settings
from campaign_pool.database import get_session
from campaign_pool.models.audit import FetchSources
from campaign_pool.schemas.calculation import InsurancePreview
from campaign_pool.schemas.distribution import DistributionResult, EndedCampaignsReport, MetricsRefreshResult
from campaign_pool.services.distribution_service import DistributionService
from campaign_pool.services.integrations.base import MetricsProvider
from campaign_pool.services.metrics_service import MetricsRefreshService

cron_router = APIRouter(
    prefix=f"{settings.API_PREFIX}/cron",
    tags=["cron"],
    dependencies=[Depends(verify_cron_secret)]
)
admin_router = APIRouter(
    prefix=f"{settings.API_PREFIX}/admin",
    tags=["admin"],
    dependencies=[Depends(verify_cron_secret)]
)
router = APIRouter(prefix=f"{settings.API_PREFIX}/campaigns", tags=["campaigns"])


@cron_router.api_route("/distribute", methods=["GET", "POST"], response_model=EndedCampaignsReport)
async def distribute_ended_campaigns(
    refresh_metrics: bool = Query(False),
    provider: MetricsProvider = Depends(get_metrics_provider),
    session: AsyncSession = Depends(get_session)
):
    """Distribute every active campaign whose end date has passed."""
    service = DistributionService(session)
    return await service.process_ended_campaigns(provider=provider if refresh_metrics else None)


@cron_router.post("/campaigns/{campaign_id}/refresh-metrics", response_model=MetricsRefreshResult)
async def refresh_campaign_metrics(
    campaign_id: uuid.UUID,
    provider: MetricsProvider = Depends(get_metrics_provider),
    session: AsyncSession = Depends(get_session)
):
    """Pull fresh engagement counters for one campaign."""
    service = MetricsRefreshService(session, provider)
    return await service.refresh_campaign_metrics(campaign_id)


@admin_router.post("/campaigns/{campaign_id}/finish", response_model=DistributionResult)
async def finish_campaign(
    campaign_id: uuid.UUID,
    refresh_metrics: bool = Query(False),
    provider: MetricsProvider = Depends(get_metrics_provider),
    session: AsyncSession = Depends(get_session)
):
    """Run the final distribution for one campaign now."""
    if refresh_metrics:
        await MetricsRefreshService(session, provider).refresh_campaign_metrics(
            campaign_id, source=FetchSources.ON_DEMAND
        )

    service = DistributionService(session)
    return await service.process_final_distribution(campaign_id)


@router.get("/{campaign_id}/insurance", response_model=InsurancePreview)
async def get_insurance_status(
    campaign_id: uuid.UUID,
    session: AsyncSession = Depends(get_session)
):
    """Insurance thresholds and whether the campaign currently meets them."""
    service = DistributionService(session)
    return await service.preview_insurance(campaign_id)
