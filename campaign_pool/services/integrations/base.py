"""
Base interfaces for integration providers.
"""
from abc import ABC, abstractmethod

from campaign_pool.schemas.distribution import EngagementMetrics


class MetricsProvider(ABC):
    """Base interface for engagement metrics providers (TikTok, etc.)"""

    @abstractmethod
    async def fetch_metrics(self, content_url: str) -> EngagementMetrics:
        """
        Fetch current engagement counters for a piece of content.

        Raises ExternalFetchError when the provider cannot be reached or
        returns unusable data.
        """
        pass

    async def close(self) -> None:
        """Release any underlying connections."""
        pass
