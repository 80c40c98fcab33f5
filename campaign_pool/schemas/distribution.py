"""
Distribution schemas.
Results of final distribution, metrics refresh and the ended-campaign sweep.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from campaign_pool.core.exceptions import ErrorKind


class DistributionType(str, Enum):
    DISTRIBUTED = "DISTRIBUTED"
    INSURANCE_REFUND = "INSURANCE_REFUND"
    INSURANCE_REFUND_NO_ELIGIBLE = "INSURANCE_REFUND_NO_ELIGIBLE"


class Payout(BaseModel):
    submission_id: uuid.UUID
    creator_id: uuid.UUID
    earnings: Decimal


class Distributed(BaseModel):
    """Pool paid out to eligible creators."""
    type: Literal[DistributionType.DISTRIBUTED] = DistributionType.DISTRIBUTED
    campaign_id: uuid.UUID
    net_budget: Decimal
    total_payouts: int
    payouts: List[Payout] = []


class InsuranceRefund(BaseModel):
    """Insurance gate failed; the net budget went back to the artist."""
    type: Literal[DistributionType.INSURANCE_REFUND] = DistributionType.INSURANCE_REFUND
    campaign_id: uuid.UUID
    refund_amount: Decimal
    failed_checks: List[str] = []
    reason_kind: ErrorKind = ErrorKind.INSUFFICIENT_DATA


class InsuranceRefundNoEligible(InsuranceRefund):
    """Insurance passed but no submission met the eligibility thresholds."""
    type: Literal[DistributionType.INSURANCE_REFUND_NO_ELIGIBLE] = DistributionType.INSURANCE_REFUND_NO_ELIGIBLE


DistributionResult = Annotated[
    Union[Distributed, InsuranceRefund, InsuranceRefundNoEligible],
    Field(discriminator="type"),
]


class PoolTotals(BaseModel):
    """Fresh aggregate over approved submissions."""
    total_campaign_points: float
    total_submissions: int
    average_points: float
    total_views: int


class EngagementMetrics(BaseModel):
    """Counters returned by the metrics provider."""
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0


class FetchFailure(BaseModel):
    submission_id: uuid.UUID
    kind: ErrorKind = ErrorKind.EXTERNAL_FETCH_FAILURE
    message: str


class MetricsRefreshResult(BaseModel):
    campaign_id: uuid.UUID
    total: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[FetchFailure] = []  # Capped; `failed` has the full count


class CampaignSweepError(BaseModel):
    campaign_id: uuid.UUID
    kind: Optional[ErrorKind] = None
    error: str


class CampaignSweepItem(BaseModel):
    result: DistributionResult
    metrics_refresh: Optional[MetricsRefreshResult] = None


class EndedCampaignsReport(BaseModel):
    processed: int = 0
    failed: int = 0
    results: List[CampaignSweepItem] = []
    errors: List[CampaignSweepError] = []
    timestamp: datetime = Field(default_factory=datetime.utcnow)
