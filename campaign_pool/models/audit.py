"""
Metric fetch log model - audit trail for metric refreshes and distributions.
Stores the snapshot each final distribution was computed from.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from sqlalchemy.dialects.postgresql import JSONB


class MetricFetchLog(SQLModel, table=True):
    """
    One row per refresh run or distribution attempt.
    """
    __tablename__ = "metric_fetch_log"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: uuid.UUID = Field(foreign_key="campaign.id", index=True)

    source: str = Field(index=True)  # see FetchSources
    status: str = Field(index=True)  # see FetchStatuses
    error_message: Optional[str] = None

    metrics_snapshot: Dict[str, Any] = Field(
        default={}, sa_column=Column(JSON().with_variant(JSONB(), "postgresql"))
    )
    # Example: {"totalSubmissions": 9, "eligibleSubmissions": 6, "payoutsCount": 6}

    created_at: datetime = Field(default_factory=datetime.utcnow)


# Source/status constants for consistency
class FetchSources:
    FINAL = "FINAL"
    CRON = "CRON"
    ON_DEMAND = "ON_DEMAND"


class FetchStatuses:
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    INSURANCE_TRIGGERED = "INSURANCE_TRIGGERED"
