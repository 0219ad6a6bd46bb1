import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ledger.services.recurrence import Frequency


class AccountSummary(BaseModel):
    id: uuid.UUID
    name: str

    model_config = {"from_attributes": True}


class CategorySummary(BaseModel):
    id: uuid.UUID
    name: str
    is_income: bool

    model_config = {"from_attributes": True}


class RecurringRuleCreate(BaseModel):
    account_id: uuid.UUID
    amount: Decimal                 # negative for expense, positive for income
    description: str = Field(min_length=1)
    frequency: Frequency
    next_date: date                 # first occurrence
    category_id: uuid.UUID | None = None
    end_date: date | None = None


class RecurringRuleUpdate(BaseModel):
    amount: Decimal | None = None
    description: str | None = Field(default=None, min_length=1)
    frequency: Frequency | None = None
    next_date: date | None = None
    category_id: uuid.UUID | None = None
    end_date: date | None = None
    is_active: bool | None = None


class RecurringRuleResponse(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    category_id: uuid.UUID | None
    amount: Decimal
    description: str
    frequency: str
    next_date: date
    end_date: date | None
    is_active: bool
    created_at: datetime | None
    account: AccountSummary | None = None
    category: CategorySummary | None = None

    model_config = {"from_attributes": True}


class RecurringRuleList(BaseModel):
    recurring_rules: list[RecurringRuleResponse]
    count: int


class RecurringRuleMutation(BaseModel):
    message: str
    recurring_rule: RecurringRuleResponse


class RecurringRuleDeleted(BaseModel):
    message: str
    rule_id: uuid.UUID


class SkipNextResponse(BaseModel):
    message: str
    skipped_date: date
    new_next_date: date
    recurring_rule: RecurringRuleResponse


class GenerateRequest(BaseModel):
    up_to_date: date


class GeneratedTransaction(BaseModel):
    rule_id: uuid.UUID
    transaction_id: uuid.UUID
    date: date
    amount: Decimal
    description: str


class FailedOccurrence(BaseModel):
    rule_id: uuid.UUID
    date: date
    reason: str


class GenerateResponse(BaseModel):
    message: str
    generated: list[GeneratedTransaction]
    count: int
    up_to_date: date
    failed: list[FailedOccurrence] = []
