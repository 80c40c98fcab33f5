"""
API dependencies - shared across all routes.
"""
from typing import AsyncIterator, Optional

from fastapi import Header, HTTPException, status

from campaign_pool.config import settings
from campaign_pool.services.integrations.base import MetricsProvider
from campaign_pool.services.integrations.tiktok import TikTokMetricsProvider


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>` when a secret is configured."""
    if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )


async def get_metrics_provider() -> AsyncIterator[MetricsProvider]:
    """Metrics provider for the duration of one request."""
    provider = TikTokMetricsProvider()
    try:
        yield provider
    finally:
        await provider.close()
