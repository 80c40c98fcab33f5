"""
Calculation schemas.
Value objects returned by the pure calculation functions.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel

EntryId = Union[uuid.UUID, str]


class PointsBreakdown(BaseModel):
    """Weighted engagement score for one submission."""
    view_points: float
    like_points: float
    share_points: float
    total_points: float

    class Config:
        frozen = True


class NetBudget(BaseModel):
    """Pool left for creators after platform commission."""
    net_budget: Decimal
    net_multiplier: float

    class Config:
        frozen = True


class InsuranceThresholds(BaseModel):
    """Minimums a campaign must reach for normal distribution."""
    min_submissions: int
    min_points: float
    min_views: int

    class Config:
        frozen = True


class InsuranceCheckResult(BaseModel):
    passed: bool
    failed_checks: List[str] = []

    class Config:
        frozen = True


class InsurancePreview(BaseModel):
    """Insurance gate evaluated against current approved totals."""
    campaign_id: uuid.UUID
    thresholds: InsuranceThresholds
    total_submissions: int
    total_points: float
    total_views: int
    passed: bool
    failed_checks: List[str] = []


class ScoredEntry(BaseModel):
    """Minimal scored item accepted by the eligibility filter and allocator."""
    id: EntryId
    total_points: float

    class Config:
        frozen = True


class ShareEntry(BaseModel):
    """Working state of one participant inside a Robin Hood round."""
    id: EntryId
    points: float
    share_percent: float
    is_capped: bool = False
    cap_ceiling: float = 0.0  # Share the entry was capped to; 0 while uncapped

    class Config:
        frozen = True


class ShareAllocation(BaseModel):
    """Final share and earnings for one participant."""
    id: EntryId
    share_percent: float
    earnings: Decimal

    class Config:
        frozen = True


class RobinHoodResult(BaseModel):
    allocations: List[ShareAllocation] = []
    converged: bool = True
    rounds: int = 0
    unallocated_share: float = 0.0  # Pool fraction nobody could absorb under the cap

    class Config:
        frozen = True


class ApproximateEarnings(BaseModel):
    """
    Uncapped read-time estimate shown before a campaign closes.
    `approximate_share_percent` is in percent units (12.5 == 12.5%);
    `confirmed_share_percent` is the stored fraction (0.125).
    """
    approximate_earnings: Decimal
    approximate_share_percent: float
    confirmed_earnings: Decimal
    confirmed_share_percent: float
    last_updated_at: Optional[datetime] = None
    is_approximate: bool
