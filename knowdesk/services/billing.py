"""
Usage metering ledger.

The tenant balance is only changed here, always together with an appended
UsageTransaction row in the same transaction. A debit is one conditional
UPDATE, so concurrent debits can never overdraw a balance.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowdesk.errors import InsufficientBalance, KnowdeskError
from knowdesk.models.tenant import Tenant
from knowdesk.models.usage import TransactionType, UsageTransaction
from knowdesk.services.pricing import calculate_token_cost
from knowdesk.utils.logging_config import logger


@dataclass(frozen=True)
class DebitResult:
    success: bool
    tokens_charged: int
    new_balance: int


class UsageLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def debit(
        self,
        tenant_id: uuid.UUID,
        model: str,
        input_tokens: int,
        output_tokens: int,
        agent_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
    ) -> DebitResult:
        """
        Charges a model call against the tenant balance.

        Raises:
            InsufficientBalance: if the balance does not cover the cost. The
                balance is left unchanged.
        """
        cost = calculate_token_cost(model, input_tokens, output_tokens)
        stmt = (
            update(Tenant)
            .where(Tenant.id == tenant_id, Tenant.token_balance >= cost)
            .values(token_balance=Tenant.token_balance - cost)
            .returning(Tenant.token_balance)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory.begin() as session:
            new_balance = (await session.execute(stmt)).scalar_one_or_none()
            if new_balance is None:
                balance = await self._balance(session, tenant_id)
                logger.warning(
                    f"Insufficient balance for tenant {tenant_id}: "
                    f"cost {cost}, balance {balance}"
                )
                raise InsufficientBalance(str(tenant_id), cost, balance)
            session.add(
                UsageTransaction(
                    tenant_id=tenant_id,
                    type=TransactionType.USAGE,
                    amount=-cost,
                    balance=new_balance,
                    model=model,
                    agent_id=agent_id,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    description=description or f"AI response using {model}",
                )
            )
        logger.info(f"Charged tenant {tenant_id} {cost} units for {model}; balance {new_balance}")
        return DebitResult(success=True, tokens_charged=cost, new_balance=new_balance)

    async def _credit(
        self,
        tenant_id: uuid.UUID,
        amount: int,
        tx_type: TransactionType,
        description: str,
    ) -> int:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        stmt = (
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(token_balance=Tenant.token_balance + amount)
            .returning(Tenant.token_balance)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory.begin() as session:
            new_balance = (await session.execute(stmt)).scalar_one_or_none()
            if new_balance is None:
                raise KnowdeskError(f"Tenant {tenant_id} not found")
            session.add(
                UsageTransaction(
                    tenant_id=tenant_id,
                    type=tx_type,
                    amount=amount,
                    balance=new_balance,
                    description=description,
                )
            )
        logger.info(
            f"Credited tenant {tenant_id} {amount} units ({tx_type.value}); balance {new_balance}"
        )
        return new_balance

    async def add_bonus(self, tenant_id: uuid.UUID, amount: int, reason: str) -> int:
        return await self._credit(tenant_id, amount, TransactionType.BONUS, reason)

    async def credit_purchase(
        self, tenant_id: uuid.UUID, amount: int, reference: str
    ) -> int:
        return await self._credit(
            tenant_id, amount, TransactionType.PURCHASE, f"Purchase {reference}"
        )

    async def _balance(self, session: AsyncSession, tenant_id: uuid.UUID) -> int:
        balance = await session.scalar(
            select(Tenant.token_balance).where(Tenant.id == tenant_id)
        )
        if balance is None:
            raise KnowdeskError(f"Tenant {tenant_id} not found")
        return balance

    async def get_balance(self, tenant_id: uuid.UUID) -> int:
        async with self.session_factory() as session:
            return await self._balance(session, tenant_id)

    async def check_balance(self, tenant_id: uuid.UUID, estimated_units: int) -> bool:
        """Pre-flight check; a later debit can still fail."""
        return await self.get_balance(tenant_id) >= estimated_units

    async def list_transactions(
        self, tenant_id: uuid.UUID, limit: int = 50
    ) -> list[UsageTransaction]:
        async with self.session_factory() as session:
            result = await session.scalars(
                select(UsageTransaction)
                .where(UsageTransaction.tenant_id == tenant_id)
                .order_by(UsageTransaction.created_at.desc())
                .limit(limit)
            )
            return list(result.all())
