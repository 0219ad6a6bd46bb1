import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.exceptions import AccessDenied
from ledger.models.workspace import WorkspaceMember


async def validate_workspace_access(
    db: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID
) -> WorkspaceMember | None:
    """Return the caller's membership in the workspace, or None."""
    result = await db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def require_workspace_access(
    db: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID
) -> WorkspaceMember:
    member = await validate_workspace_access(db, user_id, workspace_id)
    if member is None:
        raise AccessDenied("Access denied to workspace")
    return member
