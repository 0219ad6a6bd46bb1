"""
Scheduled recurring-transaction generation.

Celery beat runs ``generate_all_workspaces`` once a day. Each workspace is
processed in its own session and committed on its own; a failing
workspace is logged and counted while the others still run.
"""
import asyncio
import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ledger.core.config import settings
from ledger.models.workspace import Workspace
from ledger.services.recurring_rules import build_engine
from ledger.worker import GENERATE_TASK, celery_app

logger = logging.getLogger(__name__)


async def run_for_all_workspaces(
    session_factory: async_sessionmaker[AsyncSession], up_to_date: date
) -> dict:
    """Run the engine for every workspace. Returns a summary dict."""
    async with session_factory() as db:
        workspace_ids: list[uuid.UUID] = list(
            (await db.execute(select(Workspace.id))).scalars().all()
        )

    generated = 0
    errors = 0
    for workspace_id in workspace_ids:
        async with session_factory() as db:
            try:
                result = await build_engine(db).generate_transactions(workspace_id, up_to_date)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                errors += 1
                logger.error("Recurring generation failed for workspace %s: %s", workspace_id, exc)
                continue
        generated += result.count
        if result.failed:
            logger.warning(
                "Workspace %s: %d occurrences could not be stored", workspace_id, len(result.failed)
            )

    logger.info(
        "Recurring generation up to %s: %d workspaces, %d transactions, %d errors",
        up_to_date, len(workspace_ids), generated, errors,
    )
    return {"workspaces": len(workspace_ids), "generated": generated, "errors": errors}


async def _run(up_to_date: date) -> dict:
    # Fresh engine per task: the worker's event loop differs per asyncio.run call
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    try:
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        return await run_for_all_workspaces(factory, up_to_date)
    finally:
        await engine.dispose()


@celery_app.task(name=GENERATE_TASK)
def generate_all_workspaces(up_to_date: str | None = None):
    """05:00 UTC daily: discharge every due occurrence up to today."""
    if not settings.recurring_generation_enabled:
        logger.info("Recurring generation disabled, skipping")
        return {"workspaces": 0, "generated": 0, "errors": 0}

    target = (
        date.fromisoformat(up_to_date)
        if up_to_date
        else datetime.now(timezone.utc).date()
    )
    return asyncio.run(_run(target))
