import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CRON_SECRET", "")

import asyncio
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional, Union

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import campaign_pool.models  # noqa: F401
from campaign_pool.core.exceptions import ExternalFetchError
from campaign_pool.models import (
    Campaign,
    CampaignStatus,
    Submission,
    SubmissionStatus,
    User,
    UserRole,
)
from campaign_pool.schemas.distribution import EngagementMetrics
from campaign_pool.services.calculation_service import calculate_points
from campaign_pool.services.integrations.base import MetricsProvider


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def create_user(session):
    async def _create(role: UserRole = UserRole.CREATOR, balance: Decimal = Decimal("0.00")) -> User:
        user = User(email=f"{uuid.uuid4().hex[:10]}@example.com", role=role, balance=balance)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user
    return _create


@pytest.fixture
def create_campaign(session, create_user):
    async def _create(
        total_budget: Union[str, Decimal] = "50000",
        commission_percent: int = 20,
        status: CampaignStatus = CampaignStatus.ACTIVE,
        end_date: Optional[datetime] = None,
        artist: Optional[User] = None,
        artist_id: Optional[uuid.UUID] = None,
        title: str = "Summer Single",
    ) -> Campaign:
        if artist_id is None:
            artist = artist or await create_user(role=UserRole.ARTIST)
            artist_id = artist.id
        campaign = Campaign(
            artist_id=artist_id,
            title=title,
            total_budget=Decimal(str(total_budget)),
            commission_percent=commission_percent,
            status=status,
            end_date=end_date or datetime.utcnow() - timedelta(hours=1),
        )
        session.add(campaign)
        await session.commit()
        await session.refresh(campaign)
        return campaign
    return _create


@pytest.fixture
def create_submission(session, create_user):
    async def _create(
        campaign: Campaign,
        views: int = 0,
        likes: int = 0,
        shares: int = 0,
        status: SubmissionStatus = SubmissionStatus.APPROVED,
        creator: Optional[User] = None,
        content_url: Optional[str] = None,
        scored: bool = True,
    ) -> Submission:
        creator = creator or await create_user()
        submission = Submission(
            campaign_id=campaign.id,
            creator_id=creator.id,
            content_url=content_url or f"https://www.tiktok.com/@creator/video/{uuid.uuid4().int % 10**19}",
            status=status,
            last_view_count=views,
            last_like_count=likes,
            last_share_count=shares,
        )
        if scored:
            points = calculate_points(views, likes, shares)
            submission.view_points = points.view_points
            submission.like_points = points.like_points
            submission.share_points = points.share_points
            submission.total_points = points.total_points
        session.add(submission)
        await session.commit()
        await session.refresh(submission)
        return submission
    return _create


class FakeMetricsProvider(MetricsProvider):
    """Serves canned metrics by content URL; unknown URLs fail."""

    def __init__(self, metrics: Optional[Dict[str, EngagementMetrics]] = None, delay: float = 0.0):
        self.metrics = metrics or {}
        self.delay = delay
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_metrics(self, content_url: str) -> EngagementMetrics:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if content_url not in self.metrics:
                raise ExternalFetchError("Fake provider", f"no data for {content_url}")
            return self.metrics[content_url]
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_provider():
    return FakeMetricsProvider()
