import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import get_db
from ledger.core.deps import get_current_user
from ledger.models.workspace import User
from ledger.schemas.recurring import (
    FailedOccurrence,
    GeneratedTransaction,
    GenerateRequest,
    GenerateResponse,
    RecurringRuleCreate,
    RecurringRuleDeleted,
    RecurringRuleList,
    RecurringRuleMutation,
    RecurringRuleResponse,
    RecurringRuleUpdate,
    SkipNextResponse,
)
from ledger.services import recurring_rules

router = APIRouter(
    prefix="/workspaces/{workspace_id}/recurring-rules", tags=["recurring-rules"]
)


@router.get("/", response_model=RecurringRuleList)
async def list_recurring_rules(
    workspace_id: uuid.UUID,
    is_active: bool | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List all recurring income/expense rules in the workspace, soonest first."""
    rules = await recurring_rules.list_rules(db, user.id, workspace_id, is_active)
    return RecurringRuleList(
        recurring_rules=[RecurringRuleResponse.model_validate(r) for r in rules],
        count=len(rules),
    )


@router.post("/", response_model=RecurringRuleMutation, status_code=201)
async def create_recurring_rule(
    workspace_id: uuid.UUID,
    payload: RecurringRuleCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rule = await recurring_rules.create_rule(db, user.id, workspace_id, payload.model_dump())
    await db.commit()
    return RecurringRuleMutation(
        message="Recurring rule created successfully",
        recurring_rule=RecurringRuleResponse.model_validate(rule),
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate_recurring_transactions(
    workspace_id: uuid.UUID,
    payload: GenerateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Materialize every due occurrence up to ``up_to_date`` and move each rule's
    cursor past it. Best-effort: occurrences that fail to insert are listed in
    ``failed`` and are not retried.
    """
    result = await recurring_rules.generate_transactions(
        db, user.id, workspace_id, payload.up_to_date
    )
    await db.commit()
    return GenerateResponse(
        message=result.message,
        generated=[
            GeneratedTransaction(
                rule_id=g.rule_id,
                transaction_id=g.transaction_id,
                date=g.date,
                amount=g.amount,
                description=g.description,
            )
            for g in result.generated
        ],
        count=result.count,
        up_to_date=result.up_to_date,
        failed=[FailedOccurrence(rule_id=f.rule_id, date=f.date, reason=f.reason) for f in result.failed],
    )


@router.get("/{rule_id}", response_model=RecurringRuleResponse)
async def get_recurring_rule(
    workspace_id: uuid.UUID,
    rule_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await recurring_rules.get_rule(db, user.id, workspace_id, rule_id)


@router.patch("/{rule_id}", response_model=RecurringRuleMutation)
async def update_recurring_rule(
    workspace_id: uuid.UUID,
    rule_id: uuid.UUID,
    payload: RecurringRuleUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rule = await recurring_rules.update_rule(
        db, user.id, workspace_id, rule_id, payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return RecurringRuleMutation(
        message="Recurring rule updated successfully",
        recurring_rule=RecurringRuleResponse.model_validate(rule),
    )


@router.delete("/{rule_id}", response_model=RecurringRuleDeleted)
async def delete_recurring_rule(
    workspace_id: uuid.UUID,
    rule_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    deleted_id = await recurring_rules.delete_rule(db, user.id, workspace_id, rule_id)
    await db.commit()
    return RecurringRuleDeleted(message="Recurring rule deleted successfully", rule_id=deleted_id)


@router.post("/{rule_id}/skip-next", response_model=SkipNextResponse)
async def skip_next_occurrence(
    workspace_id: uuid.UUID,
    rule_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Skip the next occurrence without creating a transaction."""
    skipped, new_next, rule = await recurring_rules.skip_next(db, user.id, workspace_id, rule_id)
    await db.commit()
    return SkipNextResponse(
        message="Next occurrence skipped successfully",
        skipped_date=skipped,
        new_next_date=new_next,
        recurring_rule=RecurringRuleResponse.model_validate(rule),
    )
