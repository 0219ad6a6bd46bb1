"""
Workspace-scoped management of recurring rules.

Every public function checks workspace membership first, then works inside the
caller's session. Nothing here commits; the router owns the transaction.
"""
import logging
import uuid
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledger.core.exceptions import ConcurrentAdvance, DatabaseError, NotFound, ValidationFailed
from ledger.models.account import Account, Category
from ledger.models.recurring import RecurringRule
from ledger.services.access import require_workspace_access
from ledger.services.recurrence import Frequency, GenerationResult, RecurrenceEngine, advance_date
from ledger.services.stores import SqlAccountStore, SqlRuleStore, SqlTransactionStore

logger = logging.getLogger(__name__)

# Fields a PATCH may clear
_NULLABLE = {"category_id", "end_date"}


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _with_relations(stmt):
    return stmt.options(
        selectinload(RecurringRule.account),
        selectinload(RecurringRule.category),
    )


async def _get_rule_in_workspace(
    db: AsyncSession, workspace_id: uuid.UUID, rule_id: uuid.UUID
) -> RecurringRule:
    result = await db.execute(
        _with_relations(select(RecurringRule))
        .where(RecurringRule.id == rule_id)
        .execution_options(populate_existing=True)
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFound("Recurring rule not found")
    if rule.account.workspace_id != workspace_id:
        raise NotFound("Recurring rule not found in this workspace")
    return rule


async def _check_account(db: AsyncSession, workspace_id: uuid.UUID, account_id: uuid.UUID) -> None:
    result = await db.execute(
        select(Account.id).where(Account.id == account_id, Account.workspace_id == workspace_id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Account not found in this workspace")


async def _check_category(db: AsyncSession, workspace_id: uuid.UUID, category_id: uuid.UUID) -> None:
    result = await db.execute(
        select(Category.id).where(Category.id == category_id, Category.workspace_id == workspace_id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Category not found in this workspace")


# ─── Queries ──────────────────────────────────────────────────────────────────

async def list_rules(
    db: AsyncSession,
    user_id: uuid.UUID,
    workspace_id: uuid.UUID,
    is_active: bool | None = None,
) -> list[RecurringRule]:
    await require_workspace_access(db, user_id, workspace_id)

    account_ids = await SqlAccountStore(db).list_account_ids(workspace_id)
    if not account_ids:
        return []

    stmt = (
        _with_relations(select(RecurringRule))
        .where(RecurringRule.account_id.in_(account_ids))
        .order_by(RecurringRule.next_date, RecurringRule.created_at)
    )
    if is_active is not None:
        stmt = stmt.where(RecurringRule.is_active == is_active)

    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Database error: {exc}") from exc
    return list(result.scalars().all())


async def get_rule(
    db: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID, rule_id: uuid.UUID
) -> RecurringRule:
    await require_workspace_access(db, user_id, workspace_id)
    return await _get_rule_in_workspace(db, workspace_id, rule_id)


# ─── Mutations ────────────────────────────────────────────────────────────────

async def create_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    workspace_id: uuid.UUID,
    fields: dict[str, Any],
) -> RecurringRule:
    await require_workspace_access(db, user_id, workspace_id)

    await _check_account(db, workspace_id, fields["account_id"])
    if fields.get("category_id") is not None:
        await _check_category(db, workspace_id, fields["category_id"])

    rule = RecurringRule(
        account_id=fields["account_id"],
        amount=fields["amount"],
        description=fields["description"],
        frequency=Frequency(fields["frequency"]).value,
        next_date=fields["next_date"],
        category_id=fields.get("category_id"),
        end_date=fields.get("end_date"),
        is_active=True,
    )
    db.add(rule)
    await db.flush()
    logger.info("Created recurring rule %s (%s) in workspace %s", rule.id, rule.frequency, workspace_id)
    return await _get_rule_in_workspace(db, workspace_id, rule.id)


async def update_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    workspace_id: uuid.UUID,
    rule_id: uuid.UUID,
    fields: dict[str, Any],
) -> RecurringRule:
    await require_workspace_access(db, user_id, workspace_id)
    rule = await _get_rule_in_workspace(db, workspace_id, rule_id)

    if not fields:
        raise ValidationFailed("No fields to update")
    cleared = [name for name, value in fields.items() if value is None and name not in _NULLABLE]
    if cleared:
        raise ValidationFailed(f"Fields cannot be null: {', '.join(sorted(cleared))}")
    if fields.get("category_id") is not None:
        await _check_category(db, workspace_id, fields["category_id"])
    if fields.get("frequency") is not None:
        fields["frequency"] = Frequency(fields["frequency"]).value

    for name, value in fields.items():
        setattr(rule, name, value)

    await db.flush()
    return await _get_rule_in_workspace(db, workspace_id, rule.id)


async def delete_rule(
    db: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID, rule_id: uuid.UUID
) -> uuid.UUID:
    await require_workspace_access(db, user_id, workspace_id)
    rule = await _get_rule_in_workspace(db, workspace_id, rule_id)
    await db.delete(rule)
    await db.flush()
    logger.info("Deleted recurring rule %s from workspace %s", rule_id, workspace_id)
    return rule_id


async def skip_next(
    db: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID, rule_id: uuid.UUID
) -> tuple[date, date, RecurringRule]:
    """Move the cursor one period forward without creating a transaction.

    Returns (skipped_date, new_next_date, rule).
    """
    await require_workspace_access(db, user_id, workspace_id)
    rule = await _get_rule_in_workspace(db, workspace_id, rule_id)

    skipped = rule.next_date
    try:
        new_next = advance_date(skipped, rule.frequency)
    except ValueError:
        raise ValidationFailed(f"Recurring rule has unknown frequency {rule.frequency!r}")
    except OverflowError:
        raise ValidationFailed(f"Recurring rule has no occurrence after {skipped}")

    if not await SqlRuleStore(db).update_next_date(rule.id, skipped, new_next):
        raise ConcurrentAdvance("Recurring rule was advanced concurrently; retry the skip")

    return skipped, new_next, await _get_rule_in_workspace(db, workspace_id, rule.id)


# ─── Generation ───────────────────────────────────────────────────────────────

def build_engine(db: AsyncSession) -> RecurrenceEngine:
    return RecurrenceEngine(
        accounts=SqlAccountStore(db),
        rules=SqlRuleStore(db),
        transactions=SqlTransactionStore(db),
    )


async def generate_transactions(
    db: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID, up_to_date: date
) -> GenerationResult:
    await require_workspace_access(db, user_id, workspace_id)
    return await build_engine(db).generate_transactions(workspace_id, up_to_date)
