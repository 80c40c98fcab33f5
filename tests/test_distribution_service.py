"""
Distribution Service Tests
==========================

Final distribution against an in-memory database:
payout path, both refund paths, idempotency, rollback on timeout,
live recalculation and the ended-campaign sweep.
"""
import asyncio
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from campaign_pool.core.exceptions import (
    AlreadyDistributedError,
    ErrorKind,
    InvalidCampaignStateError,
    NotFoundError,
    TransactionTimeoutError,
)
from campaign_pool.models import (
    CampaignStatus,
    FetchStatuses,
    PayoutStatus,
    SubmissionStatus,
    TransactionType,
    UserRole,
)
from campaign_pool.repositories.audit_repo import AuditRepository
from campaign_pool.repositories.ledger_repo import LedgerRepository
from campaign_pool.repositories.pool_stats_repo import PoolStatsRepository
from campaign_pool.schemas.distribution import (
    Distributed,
    DistributionType,
    EngagementMetrics,
    InsuranceRefund,
    InsuranceRefundNoEligible,
)
from campaign_pool.services.calculation_service import NO_ELIGIBLE_CHECK
from campaign_pool.services.distribution_service import DistributionService

NINE_CREATOR_VIEWS = [850000, 320000, 280000, 95000, 45000, 8000, 2000, 500, 50]


async def seed_nine_creators(create_campaign, create_submission, **campaign_kwargs):
    campaign = await create_campaign(total_budget="50000", commission_percent=20, **campaign_kwargs)
    submissions = [await create_submission(campaign, views=v) for v in NINE_CREATOR_VIEWS]
    return campaign, submissions


async def count_transactions(session, type_: TransactionType) -> int:
    ledger = LedgerRepository(session)
    return await ledger.count(filters={"type": type_})


# =============================================================================
# PAYOUT PATH
# =============================================================================

class TestDistributed:

    async def test_nine_creator_campaign(self, session, create_campaign, create_submission):
        campaign, submissions = await seed_nine_creators(create_campaign, create_submission)

        result = await DistributionService(session).process_final_distribution(campaign.id)

        assert isinstance(result, Distributed)
        assert result.type == DistributionType.DISTRIBUTED
        assert result.net_budget == Decimal("40000.00")
        assert result.total_payouts == 6

        total = sum(p.earnings for p in result.payouts)
        assert abs(total - Decimal("40000")) <= Decimal("0.06")

        paid_ids = {p.submission_id for p in result.payouts}
        assert paid_ids == {s.id for s in submissions[:6]}

        for submission in submissions:
            await session.refresh(submission)
        assert all(s.share_percent <= 0.40 + 1e-4 for s in submissions)
        assert submissions[0].share_percent == 0.40
        assert submissions[0].total_earnings == Decimal("16000.00")
        for excluded in submissions[6:]:
            assert excluded.share_percent == 0.0
            assert excluded.estimated_earnings == Decimal("0.00")
            assert excluded.total_earnings == Decimal("0.00")

        await session.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.payout_status == PayoutStatus.COMPLETED
        assert campaign.insurance_triggered is False
        assert campaign.completed_at is not None
        assert campaign.total_campaign_points == pytest.approx(16005.5)

    async def test_creator_balances_and_ledger(self, session, create_campaign, create_submission, create_user):
        campaign = await create_campaign(total_budget="10000", commission_percent=20)
        creators = [await create_user() for _ in range(3)]
        for creator, views in zip(creators, [40000, 30000, 30000]):
            await create_submission(campaign, views=views, creator=creator)

        result = await DistributionService(session).process_final_distribution(campaign.id)

        assert isinstance(result, Distributed)
        expected = {p.creator_id: p.earnings for p in result.payouts}
        assert sum(expected.values()) == Decimal("8000.00")
        for creator in creators:
            await session.refresh(creator)
            assert creator.balance == expected[creator.id]

        earnings = await LedgerRepository(session).list(filters={"type": TransactionType.EARNING})
        assert len(earnings) == 3
        assert {t.reference for t in earnings} == {str(p.submission_id) for p in result.payouts}
        assert all(t.description == f"Campaign earnings: {campaign.title}" for t in earnings)

    async def test_audit_snapshot(self, session, create_campaign, create_submission):
        campaign, _ = await seed_nine_creators(create_campaign, create_submission)

        await DistributionService(session).process_final_distribution(campaign.id)

        logs = await AuditRepository(session).get_recent(campaign.id)
        assert len(logs) == 1
        assert logs[0].status == FetchStatuses.SUCCESS
        assert logs[0].metrics_snapshot["total_submissions"] == 9
        assert logs[0].metrics_snapshot["eligible_submissions"] == 6
        assert logs[0].metrics_snapshot["payouts_count"] == 6
        assert logs[0].metrics_snapshot["net_budget"] == "40000.00"

    async def test_pending_and_rejected_submissions_ignored(self, session, create_campaign, create_submission):
        campaign = await create_campaign(total_budget="1000", commission_percent=0)
        for views in [20000, 20000, 20000]:
            await create_submission(campaign, views=views)
        pending = await create_submission(campaign, views=900000, status=SubmissionStatus.PENDING)
        rejected = await create_submission(campaign, views=900000, status=SubmissionStatus.REJECTED)

        result = await DistributionService(session).process_final_distribution(campaign.id)

        assert result.total_payouts == 3
        assert pending.id not in {p.submission_id for p in result.payouts}
        assert rejected.id not in {p.submission_id for p in result.payouts}


# =============================================================================
# REFUND PATHS
# =============================================================================

class TestInsuranceRefund:

    async def test_failed_thresholds_refund_net_budget(self, session, create_campaign, create_submission, create_user):
        artist = await create_user(role=UserRole.ARTIST)
        campaign = await create_campaign(total_budget="50000", commission_percent=20, artist=artist)
        await create_submission(campaign, views=1000)
        await create_submission(campaign, views=2000)

        result = await DistributionService(session).process_final_distribution(campaign.id)

        assert isinstance(result, InsuranceRefund)
        assert result.type == DistributionType.INSURANCE_REFUND
        assert result.refund_amount == Decimal("40000.00")
        assert result.refund_amount < Decimal("50000")
        assert result.reason_kind == ErrorKind.INSUFFICIENT_DATA
        assert "Submissions: 2/5" in result.failed_checks

        await session.refresh(artist)
        assert artist.balance == Decimal("40000.00")

        deposits = await LedgerRepository(session).list_for_user(artist.id)
        assert len(deposits) == 1
        assert deposits[0].type == TransactionType.DEPOSIT
        assert deposits[0].description.startswith(f"Insurance refund: {campaign.title} (")

        await session.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.payout_status == PayoutStatus.COMPLETED
        assert campaign.insurance_triggered is True

        assert await count_transactions(session, TransactionType.EARNING) == 0

        logs = await AuditRepository(session).get_recent(campaign.id)
        assert logs[0].status == FetchStatuses.INSURANCE_TRIGGERED
        assert logs[0].metrics_snapshot["failed_checks"] == result.failed_checks

    async def test_no_eligible_submissions(self, session, create_campaign, create_submission, create_user):
        artist = await create_user(role=UserRole.ARTIST)
        campaign = await create_campaign(total_budget="1000", commission_percent=20, artist=artist)
        # 11 x 49 points passes the smallest bracket, but nobody reaches 50 points
        for _ in range(11):
            await create_submission(campaign, views=4900)

        result = await DistributionService(session).process_final_distribution(campaign.id)

        assert isinstance(result, InsuranceRefundNoEligible)
        assert result.type == DistributionType.INSURANCE_REFUND_NO_ELIGIBLE
        assert result.failed_checks == [NO_ELIGIBLE_CHECK]
        assert result.refund_amount == Decimal("800.00")

        await session.refresh(artist)
        assert artist.balance == Decimal("800.00")
        assert await count_transactions(session, TransactionType.EARNING) == 0

    async def test_no_submissions_at_all(self, session, create_campaign):
        campaign = await create_campaign(total_budget="500", commission_percent=10)

        result = await DistributionService(session).process_final_distribution(campaign.id)

        assert isinstance(result, InsuranceRefund)
        assert result.refund_amount == Decimal("450.00")
        assert result.failed_checks == ["Submissions: 0/3", "Points: 0/500", "Views: 0/50,000"]


# =============================================================================
# GUARDS AND ROLLBACK
# =============================================================================

class TestGuards:

    async def test_second_run_is_rejected(self, session, create_campaign, create_submission):
        campaign, submissions = await seed_nine_creators(create_campaign, create_submission)
        service = DistributionService(session)
        await service.process_final_distribution(campaign.id)

        with pytest.raises(AlreadyDistributedError) as exc_info:
            await service.process_final_distribution(campaign.id)

        assert exc_info.value.kind == ErrorKind.CONFLICT
        assert await count_transactions(session, TransactionType.EARNING) == 6
        await session.refresh(submissions[0])
        assert submissions[0].total_earnings == Decimal("16000.00")

    async def test_unknown_campaign(self, session):
        with pytest.raises(NotFoundError) as exc_info:
            await DistributionService(session).process_final_distribution(uuid.uuid4())
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    async def test_campaign_not_active(self, session, create_campaign):
        campaign = await create_campaign(status=CampaignStatus.PENDING_APPROVAL)
        with pytest.raises(InvalidCampaignStateError):
            await DistributionService(session).process_final_distribution(campaign.id)

    async def test_timeout_rolls_back(self, session, create_campaign, create_submission, monkeypatch):
        campaign, submissions = await seed_nine_creators(create_campaign, create_submission)
        service = DistributionService(session, timeout_seconds=0.5)

        async def slow_mark_batch(self, stats, total_points, batch_at=None):
            await asyncio.sleep(10)

        monkeypatch.setattr(PoolStatsRepository, "mark_batch", slow_mark_batch)

        with pytest.raises(TransactionTimeoutError) as exc_info:
            await service.process_final_distribution(campaign.id)

        assert exc_info.value.kind == ErrorKind.TRANSACTION_TIMEOUT

        await session.refresh(campaign)
        assert campaign.status == CampaignStatus.ACTIVE
        assert campaign.payout_status == PayoutStatus.PENDING
        assert await count_transactions(session, TransactionType.EARNING) == 0
        for submission in submissions:
            await session.refresh(submission)
            assert submission.total_earnings == Decimal("0.00")


# =============================================================================
# LIVE CALCULATIONS
# =============================================================================

class TestLiveCalculations:

    async def test_initialize_campaign(self, session, create_campaign):
        campaign = await create_campaign(total_budget="10000", commission_percent=25)

        net = await DistributionService(session).initialize_campaign(campaign.id)

        assert net.net_budget == Decimal("7500.00")
        await session.refresh(campaign)
        assert campaign.net_multiplier == pytest.approx(0.75)
        stats = await PoolStatsRepository(session).get_by_campaign(campaign.id)
        assert stats.total_campaign_points == 0.0
        assert stats.total_submissions == 0

    async def test_recalculate_writes_estimates_only(self, session, create_campaign, create_submission):
        campaign = await create_campaign(total_budget="10000", commission_percent=20)
        subs = [await create_submission(campaign, views=v) for v in [600000, 300000, 50000, 50000]]
        service = DistributionService(session)

        totals = await service.update_campaign_total_points(campaign.id)
        recalculated = await service.recalculate_campaign_submissions(campaign.id)

        assert totals.total_campaign_points == pytest.approx(10000)
        assert totals.total_submissions == 4
        assert totals.average_points == pytest.approx(2500)
        assert totals.total_views == 1_000_000
        assert recalculated == 4

        for sub in subs:
            await session.refresh(sub)
        assert [s.estimated_earnings for s in subs] == [
            Decimal("3200.00"), Decimal("3200.00"), Decimal("800.00"), Decimal("800.00")
        ]
        assert all(s.total_earnings == Decimal("0.00") for s in subs)
        assert await count_transactions(session, TransactionType.EARNING) == 0

        stats = await PoolStatsRepository(session).get_by_campaign(campaign.id)
        assert stats.last_batch_at is not None
        assert stats.last_batch_total_points == pytest.approx(10000)

    async def test_recalculate_without_stats_is_noop(self, session, create_campaign, create_submission):
        campaign = await create_campaign()
        await create_submission(campaign, views=1000)
        assert await DistributionService(session).recalculate_campaign_submissions(campaign.id) == 0

    async def test_update_submission_calculations(self, session, create_campaign, create_submission):
        campaign = await create_campaign()
        submission = await create_submission(campaign, views=1000, likes=10, shares=3, scored=False)

        points = await DistributionService(session).update_submission_calculations(submission.id)

        assert points.total_points == pytest.approx(18.0)
        await session.refresh(submission)
        assert submission.total_points == pytest.approx(18.0)
        assert submission.like_points == pytest.approx(5.0)

    async def test_approximate_earnings(self, session, create_campaign, create_submission):
        campaign = await create_campaign(total_budget="10000", commission_percent=20)
        big = await create_submission(campaign, views=750000)
        await create_submission(campaign, views=250000)
        service = DistributionService(session)
        await service.update_campaign_total_points(campaign.id)
        await service.recalculate_campaign_submissions(campaign.id)

        estimate = await service.get_approximate_earnings(big.id)

        assert estimate.approximate_earnings == Decimal("6000.00")
        assert estimate.approximate_share_percent == 75.0
        assert estimate.confirmed_earnings == Decimal("3200.00")
        assert estimate.is_approximate is True

    async def test_approximate_earnings_unknown_submission(self, session):
        with pytest.raises(NotFoundError):
            await DistributionService(session).get_approximate_earnings(uuid.uuid4())

    async def test_preview_insurance_has_no_side_effects(self, session, create_campaign, create_submission):
        campaign = await create_campaign(total_budget="45000")
        await create_submission(campaign, views=8000)

        preview = await DistributionService(session).preview_insurance(campaign.id)

        assert preview.passed is False
        assert preview.thresholds.min_submissions == 5
        assert preview.total_views == 8000
        assert "Views: 8000/200,000" in preview.failed_checks
        await session.refresh(campaign)
        assert campaign.status == CampaignStatus.ACTIVE
        assert await AuditRepository(session).count(filters={"campaign_id": campaign.id}) == 0


# =============================================================================
# ENDED CAMPAIGN SWEEP
# =============================================================================

class TestEndedCampaignSweep:

    async def test_failures_are_isolated(self, session, create_campaign, create_submission):
        now = datetime.utcnow()
        good, _ = await seed_nine_creators(
            create_campaign, create_submission, end_date=now - timedelta(days=2)
        )
        # Insurance fails and the refund target does not exist
        orphan = await create_campaign(artist_id=uuid.uuid4(), end_date=now - timedelta(days=1))
        future = await create_campaign(end_date=now + timedelta(days=3))
        good_id, orphan_id = good.id, orphan.id

        report = await DistributionService(session).process_ended_campaigns(now=now)

        assert report.processed == 1
        assert report.failed == 1
        assert report.results[0].result.campaign_id == good_id
        assert report.results[0].metrics_refresh is None
        assert report.errors[0].campaign_id == orphan_id
        assert report.errors[0].kind == ErrorKind.NOT_FOUND

        await session.refresh(orphan)
        assert orphan.status == CampaignStatus.ACTIVE
        await session.refresh(future)
        assert future.status == CampaignStatus.ACTIVE
        assert future.payout_status == PayoutStatus.PENDING

    async def test_refreshes_metrics_first(self, session, create_campaign, create_submission, fake_provider):
        campaign = await create_campaign(total_budget="1000", commission_percent=20)
        subs = [await create_submission(campaign, views=100) for _ in range(3)]
        for sub in subs:
            fake_provider.metrics[sub.content_url] = EngagementMetrics(views=40000, likes=10, shares=5)

        report = await DistributionService(session).process_ended_campaigns(provider=fake_provider)

        assert report.processed == 1
        item = report.results[0]
        assert item.metrics_refresh.updated == 3
        assert isinstance(item.result, Distributed)
        assert item.result.total_payouts == 3

    async def test_nothing_to_do(self, session, create_campaign):
        await create_campaign(status=CampaignStatus.COMPLETED)

        report = await DistributionService(session).process_ended_campaigns()

        assert report.processed == 0
        assert report.failed == 0
        assert report.results == []
