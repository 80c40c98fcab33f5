"""
Ledger transaction model - append-only record of balance movements.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class TransactionType(str, Enum):
    EARNING = "EARNING"
    DEPOSIT = "DEPOSIT"  # Also used for insurance refunds
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class Transaction(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)

    type: TransactionType = Field(index=True)
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)

    description: Optional[str] = None
    reference: Optional[str] = Field(default=None, index=True)  # submission id for earnings

    created_at: datetime = Field(default_factory=datetime.utcnow)
