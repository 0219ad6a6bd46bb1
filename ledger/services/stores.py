"""SQLAlchemy-backed stores used by the recurrence engine.

All three share the caller's session, so one generation run is one database
transaction that the caller commits or rolls back.
"""
import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.exceptions import DatabaseError, InsertFailure
from ledger.models.account import Account, Transaction
from ledger.models.recurring import RecurringRule

logger = logging.getLogger(__name__)


class SqlAccountStore:
    def __init__(self, db: AsyncSession):
        self._db = db

    async def list_account_ids(self, workspace_id: uuid.UUID) -> list[uuid.UUID]:
        try:
            result = await self._db.execute(
                select(Account.id).where(Account.workspace_id == workspace_id)
            )
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Database error: {exc}") from exc
        return list(result.scalars().all())


class SqlRuleStore:
    def __init__(self, db: AsyncSession):
        self._db = db

    async def list_due(
        self, account_ids: list[uuid.UUID], up_to_date: date
    ) -> list[RecurringRule]:
        # Row lease: a concurrent run skips rules this one is processing (no-op on SQLite)
        stmt = (
            select(RecurringRule)
            .where(
                RecurringRule.account_id.in_(account_ids),
                RecurringRule.is_active == True,  # noqa: E712
                RecurringRule.next_date <= up_to_date,
            )
            .order_by(RecurringRule.next_date, RecurringRule.id)
            .with_for_update(skip_locked=True)
        )
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Database error: {exc}") from exc
        return list(result.scalars().all())

    async def update_next_date(self, rule_id: uuid.UUID, expected: date, new: date) -> bool:
        """Compare-and-swap the cursor. Returns False if it no longer equals ``expected``."""
        result = await self._db.execute(
            update(RecurringRule)
            .where(RecurringRule.id == rule_id, RecurringRule.next_date == expected)
            .values(next_date=new)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1


class SqlTransactionStore:
    def __init__(self, db: AsyncSession):
        self._db = db

    async def insert(
        self,
        *,
        account_id: uuid.UUID,
        category_id: uuid.UUID | None,
        amount: Decimal,
        date: date,
        description: str,
        recurring_rule_id: uuid.UUID,
    ) -> uuid.UUID:
        txn = Transaction(
            account_id=account_id,
            category_id=category_id,
            amount=amount,
            date=date,
            description=description,
            recurring_rule_id=recurring_rule_id,
        )
        # Savepoint so one failed insert leaves the outer transaction usable
        try:
            async with self._db.begin_nested():
                self._db.add(txn)
                await self._db.flush()
        except SQLAlchemyError as exc:
            raise InsertFailure(f"Failed to insert transaction: {exc}") from exc
        return txn.id
