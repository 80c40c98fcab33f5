"""
Submission model - one creator video entered into a campaign.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Submission(SQLModel, table=True):
    """
    Submission entity.
    Raw counters are refreshed from the metrics provider; points and shares
    are derived from them. `total_earnings` is written once, at distribution.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: uuid.UUID = Field(foreign_key="campaign.id", index=True)
    creator_id: uuid.UUID = Field(foreign_key="user.id", index=True)

    content_url: str
    status: SubmissionStatus = Field(default=SubmissionStatus.PENDING, index=True)

    # Raw engagement counters (last known values)
    last_view_count: int = Field(default=0)
    last_like_count: int = Field(default=0)
    last_share_count: int = Field(default=0)
    last_comment_count: int = Field(default=0)
    last_checked_at: Optional[datetime] = None

    # Derived points
    view_points: float = Field(default=0.0)
    like_points: float = Field(default=0.0)
    share_points: float = Field(default=0.0)
    total_points: float = Field(default=0.0, index=True)

    # Derived share of the pool (0.0 - 1.0) and money
    share_percent: float = Field(default=0.0)
    estimated_earnings: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    total_earnings: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
