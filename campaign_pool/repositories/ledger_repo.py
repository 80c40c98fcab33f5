"""
Ledger repository - user balances and the append-only transaction log.
"""
import uuid
from decimal import Decimal
from typing import Optional
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from campaign_pool.core.exceptions import NotFoundError
from campaign_pool.models.transaction import Transaction, TransactionStatus, TransactionType
from campaign_pool.models.user import User
from campaign_pool.repositories.base import BaseRepository


class LedgerRepository(BaseRepository[Transaction]):
    """Repository for balance movements."""

    def __init__(self, session: AsyncSession, autocommit: bool = True):
        super().__init__(Transaction, session, autocommit)

    async def increment_balance(self, user_id: uuid.UUID, amount: Decimal) -> User:
        """Add `amount` to a user's balance under a row lock."""
        query = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.exec(query)
        user = result.first()
        if not user:
            raise NotFoundError("User", str(user_id))

        user.balance = (user.balance or Decimal("0.00")) + amount
        user.updated_at = datetime.utcnow()
        return await self._save(user)

    async def record_transaction(
        self,
        user_id: uuid.UUID,
        type: TransactionType,
        amount: Decimal,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        status: TransactionStatus = TransactionStatus.COMPLETED
    ) -> Transaction:
        """Append a ledger entry."""
        return await self.create({
            "user_id": user_id,
            "type": type,
            "amount": amount,
            "status": status,
            "description": description,
            "reference": reference,
        })

    async def list_for_user(self, user_id: uuid.UUID) -> list:
        return await self.list(filters={"user_id": user_id}, order_desc=False)
