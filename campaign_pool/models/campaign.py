"""
Campaign model - a fixed budget shared among creators by engagement.
Carries the lifecycle and payout state used by the distribution engine.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class CampaignStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class Campaign(SQLModel, table=True):
    """
    Campaign entity - an artist's budget for promoting a song.
    `commission_percent` is fixed at creation and never touched by distribution.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    artist_id: uuid.UUID = Field(foreign_key="user.id", index=True)

    # Basic info
    title: str = Field(index=True)

    # Budget
    total_budget: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    commission_percent: int = Field(default=20, ge=0, le=100)
    net_multiplier: float = Field(default=1.0)

    # Lifecycle
    status: CampaignStatus = Field(default=CampaignStatus.PENDING_APPROVAL, index=True)
    payout_status: PayoutStatus = Field(default=PayoutStatus.PENDING, index=True)
    insurance_triggered: bool = Field(default=False)

    # Cached aggregate (CampaignPoolStats is the detailed copy)
    total_campaign_points: float = Field(default=0.0)

    # Scheduling
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = Field(default=None, index=True)
    locked_at: Optional[datetime] = None  # No new submissions after this
    completed_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
