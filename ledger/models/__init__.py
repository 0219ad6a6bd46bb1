from ledger.models.account import Account, Category, Transaction
from ledger.models.recurring import RecurringRule
from ledger.models.workspace import User, Workspace, WorkspaceMember

__all__ = [
    "Account",
    "Category",
    "RecurringRule",
    "Transaction",
    "User",
    "Workspace",
    "WorkspaceMember",
]
