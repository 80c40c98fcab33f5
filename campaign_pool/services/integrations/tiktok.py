"""
TikTok metrics integration.
Reads video engagement counters through a RapidAPI TikTok endpoint.
"""
import logging
import re
from typing import Any, Dict, Optional

import httpx

from campaign_pool.config import settings
from campaign_pool.core.exceptions import ExternalFetchError
from campaign_pool.schemas.distribution import EngagementMetrics
from campaign_pool.services.integrations.base import MetricsProvider

logger = logging.getLogger(__name__)

SERVICE_NAME = "TikTok metrics"

VIDEO_ID_PATTERN = re.compile(r"/video/(\d+)", re.IGNORECASE)
SHORT_LINK_PATTERN = re.compile(r"(v[mt]\.tiktok\.com/[A-Za-z0-9]+)", re.IGNORECASE)


def extract_video_id(content_url: str) -> Optional[str]:
    """
    Video id from a TikTok URL.
    Full URLs yield the numeric id; vm/vt short links are returned as-is
    since the API resolves them.
    """
    if not content_url:
        return None

    match = VIDEO_ID_PATTERN.search(content_url)
    if match:
        return match.group(1)

    match = SHORT_LINK_PATTERN.search(content_url)
    if match:
        return match.group(1)

    return None


class TikTokMetricsProvider(MetricsProvider):
    """
    RapidAPI TikTok client.
    Endpoint: GET /api/post/detail?videoId={id}
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.api_key = api_key or settings.METRICS_API_KEY
        self.base_url = (base_url or settings.METRICS_API_BASE_URL).rstrip("/")
        self.host = host or settings.METRICS_API_HOST
        self.client = client or httpx.AsyncClient(
            timeout=timeout or settings.METRICS_REQUEST_TIMEOUT_SECONDS
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "x-rapidapi-host": self.host,
            "x-rapidapi-key": self.api_key or "",
        }

    async def fetch_metrics(self, content_url: str) -> EngagementMetrics:
        video_id = extract_video_id(content_url)
        if not video_id:
            raise ExternalFetchError(SERVICE_NAME, f"Could not extract video id from '{content_url}'")

        try:
            response = await self.client.get(
                f"{self.base_url}/api/post/detail",
                params={"videoId": video_id},
                headers=self.headers,
            )
        except httpx.TimeoutException:
            raise ExternalFetchError(SERVICE_NAME, f"Request for video {video_id} timed out")
        except httpx.HTTPError as e:
            raise ExternalFetchError(SERVICE_NAME, f"Request for video {video_id} failed: {e}")

        if response.status_code != 200:
            raise ExternalFetchError(
                SERVICE_NAME, f"Video fetch failed ({response.status_code}): {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError:
            raise ExternalFetchError(SERVICE_NAME, f"Invalid JSON for video {video_id}")

        return self._parse_stats(video_id, data)

    def _parse_stats(self, video_id: str, data: Any) -> EngagementMetrics:
        try:
            status_code = data.get("statusCode", 0)
            item = (data.get("itemInfo") or {}).get("itemStruct")
        except AttributeError:
            raise ExternalFetchError(SERVICE_NAME, f"Unexpected response shape for video {video_id}")

        if status_code != 0:
            raise ExternalFetchError(
                SERVICE_NAME, f"TikTok returned error for video {video_id} (statusCode: {status_code})"
            )
        if not item:
            raise ExternalFetchError(SERVICE_NAME, f"No video data for video {video_id}")

        try:
            stats = item.get("stats") or {}
            return EngagementMetrics(
                views=int(stats.get("playCount") or 0),
                likes=int(stats.get("diggCount") or 0),
                comments=int(stats.get("commentCount") or 0),
                shares=int(stats.get("shareCount") or 0),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ExternalFetchError(SERVICE_NAME, f"Unreadable stats for video {video_id}: {e}")

    async def close(self) -> None:
        await self.client.aclose()
