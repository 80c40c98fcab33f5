"""
Submissions API routes.
"""
import uuid

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.config import settings
from campaign_pool.database import get_session
from campaign_pool.schemas.calculation import ApproximateEarnings
from campaign_pool.services.distribution_service import DistributionService

router = APIRouter(prefix=f"{settings.API_PREFIX}/submissions", tags=["submissions"])


@router.get("/{submission_id}/earnings", response_model=ApproximateEarnings)
async def get_submission_earnings(
    submission_id: uuid.UUID,
    session: AsyncSession = Depends(get_session)
):
    """Approximate earnings for a submission while its campaign is running."""
    service = DistributionService(session)
    return await service.get_approximate_earnings(submission_id)
