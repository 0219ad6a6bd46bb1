"""SQL stores and the engine wired to them, on in-memory SQLite."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger.core.exceptions import InsertFailure
from ledger.models import RecurringRule, Transaction
from ledger.services.recurring_rules import build_engine
from ledger.services.stores import SqlAccountStore, SqlRuleStore, SqlTransactionStore


async def _cursor(db, rule_id) -> date:
    return (
        await db.execute(select(RecurringRule.next_date).where(RecurringRule.id == rule_id))
    ).scalar_one()


class TestSqlAccountStore:
    async def test_lists_only_workspace_accounts(self, db, seeded):
        ids = await SqlAccountStore(db).list_account_ids(seeded.workspace.id)
        assert set(ids) == {seeded.checking.id, seeded.savings.id}


class TestSqlRuleStore:
    async def test_list_due_filters(self, db, seeded, make_rule):
        due = await make_rule(seeded.checking, next_date=date(2024, 1, 1))
        on_cutoff = await make_rule(seeded.savings, next_date=date(2024, 1, 31))
        await make_rule(seeded.checking, next_date=date(2024, 2, 1))
        await make_rule(seeded.checking, next_date=date(2024, 1, 1), is_active=False)
        await make_rule(seeded.foreign_account, next_date=date(2024, 1, 1))

        rules = await SqlRuleStore(db).list_due(
            [seeded.checking.id, seeded.savings.id], date(2024, 1, 31)
        )

        assert [r.id for r in rules] == [due.id, on_cutoff.id]

    async def test_update_next_date_matches_expected(self, db, seeded, make_rule):
        rule = await make_rule(seeded.checking, next_date=date(2024, 1, 15))

        assert await SqlRuleStore(db).update_next_date(rule.id, date(2024, 1, 15), date(2024, 2, 15))
        await db.commit()

        assert await _cursor(db, rule.id) == date(2024, 2, 15)

    async def test_update_next_date_rejects_stale_expected(self, db, seeded, make_rule):
        rule = await make_rule(seeded.checking, next_date=date(2024, 2, 15))

        moved = await SqlRuleStore(db).update_next_date(rule.id, date(2024, 1, 15), date(2024, 2, 15))

        assert moved is False
        assert await _cursor(db, rule.id) == date(2024, 2, 15)


class TestSqlTransactionStore:
    async def test_insert_returns_persisted_id(self, db, seeded, make_rule):
        rule = await make_rule(seeded.checking)

        tx_id = await SqlTransactionStore(db).insert(
            account_id=seeded.checking.id,
            category_id=seeded.rent.id,
            amount=Decimal("-1200.00"),
            date=date(2024, 1, 15),
            description="Rent",
            recurring_rule_id=rule.id,
        )
        await db.commit()

        txn = (await db.execute(select(Transaction).where(Transaction.id == tx_id))).scalar_one()
        assert txn.recurring_rule_id == rule.id
        assert txn.category_id == seeded.rent.id
        assert txn.date == date(2024, 1, 15)
        assert txn.amount == Decimal("-1200.00")

    async def test_failed_insert_raises_insert_failure_and_keeps_session(self, db, seeded, make_rule):
        rule = await make_rule(seeded.checking)
        store = SqlTransactionStore(db)

        with pytest.raises(InsertFailure):
            await store.insert(
                account_id=seeded.checking.id,
                category_id=None,
                amount=Decimal("-1.00"),
                date=date(2024, 1, 15),
                description=None,  # NOT NULL
                recurring_rule_id=rule.id,
            )

        # The savepoint rolled back; the outer transaction still works
        tx_id = await store.insert(
            account_id=seeded.checking.id,
            category_id=None,
            amount=Decimal("-1.00"),
            date=date(2024, 1, 16),
            description="Coffee",
            recurring_rule_id=rule.id,
        )
        await db.commit()
        rows = (await db.execute(select(Transaction.id))).scalars().all()
        assert rows == [tx_id]


class TestEngineOnSql:
    async def test_scenario_monthly_with_end_date(self, db, seeded, make_rule):
        rule = await make_rule(
            seeded.checking,
            frequency="monthly",
            next_date=date(2024, 1, 15),
            end_date=date(2024, 3, 10),
            category_id=seeded.rent.id,
        )

        result = await build_engine(db).generate_transactions(seeded.workspace.id, date(2024, 4, 1))
        await db.commit()

        assert [g.date for g in result.generated] == [date(2024, 1, 15), date(2024, 2, 15)]
        assert await _cursor(db, rule.id) == date(2024, 3, 15)

        stored = (
            await db.execute(
                select(Transaction).where(Transaction.recurring_rule_id == rule.id).order_by(Transaction.date)
            )
        ).scalars().all()
        assert [t.id for t in stored] == [g.transaction_id for g in result.generated]
        assert all(t.category_id == seeded.rent.id for t in stored)

    async def test_second_run_generates_nothing(self, db, seeded, make_rule):
        await make_rule(seeded.checking, frequency="weekly", next_date=date(2024, 3, 1))
        engine = build_engine(db)

        first = await engine.generate_transactions(seeded.workspace.id, date(2024, 3, 31))
        await db.commit()
        second = await engine.generate_transactions(seeded.workspace.id, date(2024, 3, 31))
        await db.commit()

        assert first.count == 5
        assert second.count == 0
        assert len((await db.execute(select(Transaction.id))).scalars().all()) == 5

    async def test_other_workspace_rules_untouched(self, db, seeded, make_rule):
        foreign = await make_rule(seeded.foreign_account, frequency="daily", next_date=date(2024, 1, 1))

        result = await build_engine(db).generate_transactions(seeded.workspace.id, date(2024, 1, 10))
        await db.commit()

        assert result.count == 0
        assert await _cursor(db, foreign.id) == date(2024, 1, 1)
