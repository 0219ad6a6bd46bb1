"""
Shared fixtures: an in-memory SQLite database per test and a small seeded
workspace.

Run with:
    pip install -e ".[test]" && python -m pytest -v
"""
import os

# Settings are read at import time; point them at SQLite before ledger loads
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("API_SECRET_KEY", "test-signing-key-0123456789abcdefghijklmnop")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import ledger.models  # noqa: F401
from ledger.core.database import Base
from ledger.models import Account, Category, RecurringRule, User, Workspace, WorkspaceMember


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # pysqlite's own BEGIN handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(db):
    """Two workspaces, each with one member and one account."""
    acme = Workspace(name="Acme")
    other = Workspace(name="Other Co")
    owner = User(email="owner@acme.test", full_name="Acme Owner")
    outsider = User(email="someone@other.test", full_name="Other Owner")
    db.add_all([acme, other, owner, outsider])
    await db.flush()

    checking = Account(workspace_id=acme.id, name="Checking")
    savings = Account(workspace_id=acme.id, name="Savings")
    foreign = Account(workspace_id=other.id, name="Other Checking")
    rent = Category(workspace_id=acme.id, name="Rent")
    foreign_category = Category(workspace_id=other.id, name="Payroll", is_income=True)
    db.add_all([
        WorkspaceMember(workspace_id=acme.id, user_id=owner.id, role="owner"),
        WorkspaceMember(workspace_id=other.id, user_id=outsider.id, role="owner"),
        checking, savings, foreign, rent, foreign_category,
    ])
    await db.commit()

    return SimpleNamespace(
        workspace=acme,
        other_workspace=other,
        owner=owner,
        outsider=outsider,
        checking=checking,
        savings=savings,
        foreign_account=foreign,
        rent=rent,
        foreign_category=foreign_category,
    )


@pytest.fixture
def make_rule(db):
    """Insert a rule directly, bypassing the service layer."""
    async def _make(account, **overrides) -> RecurringRule:
        fields = dict(
            account_id=account.id,
            amount=Decimal("-1200.00"),
            description="Rent",
            frequency="monthly",
            next_date=date(2024, 1, 15),
            is_active=True,
        )
        fields.update(overrides)
        rule = RecurringRule(**fields)
        db.add(rule)
        await db.commit()
        return rule

    return _make
