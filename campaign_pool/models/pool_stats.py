"""
Campaign pool stats - denormalized aggregate over approved submissions.
Recomputed from submission rows; never the source of truth.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class CampaignPoolStats(SQLModel, table=True):
    __tablename__ = "campaign_pool_stats"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: uuid.UUID = Field(foreign_key="campaign.id", unique=True, index=True)

    total_campaign_points: float = Field(default=0.0)
    total_submissions: int = Field(default=0)
    average_points: float = Field(default=0.0)

    # Last Robin Hood batch
    last_batch_at: Optional[datetime] = None
    last_batch_total_points: float = Field(default=0.0)

    updated_at: datetime = Field(default_factory=datetime.utcnow)
