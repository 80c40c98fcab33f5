"""
User model - artists fund campaigns, creators receive earnings.
Only the ledger balance matters to the engine.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class UserRole(str, Enum):
    ARTIST = "ARTIST"
    CREATOR = "CREATOR"
    ADMIN = "ADMIN"


class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    email: str = Field(unique=True, index=True)
    full_name: Optional[str] = None
    role: UserRole = Field(default=UserRole.CREATOR, index=True)

    # Wallet
    balance: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
