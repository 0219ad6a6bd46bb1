"""
Recurring rule engine.

Walks each due rule's cursor (``next_date``) forward one period at a time,
materializing one transaction per occurrence up to a target date, and then
persists the new cursor:

    next_date ──► occurrence ──► advance_date ──► occurrence ──► ... ──► stop
                                                  (past up_to_date or end_date)

The engine only talks to three small stores so it can run against the SQL
implementations in ``ledger.services.stores`` or against in-memory fakes.
"""
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from dateutil.relativedelta import relativedelta

from ledger.core.exceptions import ConcurrentAdvance, InsertFailure

logger = logging.getLogger(__name__)


# ─── Frequencies ──────────────────────────────────────────────────────────────

class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


# relativedelta clamps to the last day of shorter months (Jan 31 + 1 month = Feb 28/29)
FREQUENCY_STEPS: dict[Frequency, relativedelta] = {
    Frequency.DAILY:     relativedelta(days=1),
    Frequency.WEEKLY:    relativedelta(days=7),
    Frequency.BIWEEKLY:  relativedelta(days=14),
    Frequency.MONTHLY:   relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.YEARLY:    relativedelta(years=1),
}


def advance_date(current: date, frequency: Frequency | str) -> date:
    """Return the occurrence one period after ``current``.

    Raises ValueError for a frequency outside ``Frequency`` and OverflowError
    when the next occurrence would fall after ``date.max``.
    """
    step = FREQUENCY_STEPS[Frequency(frequency)]
    try:
        return current + step
    except ValueError as exc:
        # relativedelta rejects year 10000 with ValueError, timedelta with OverflowError
        raise OverflowError(f"No date one period after {current}") from exc


# ─── Store interfaces ─────────────────────────────────────────────────────────

class RuleLike(Protocol):
    id: uuid.UUID
    account_id: uuid.UUID
    category_id: uuid.UUID | None
    amount: Decimal
    description: str
    frequency: str
    next_date: date
    end_date: date | None


class AccountStore(Protocol):
    async def list_account_ids(self, workspace_id: uuid.UUID) -> list[uuid.UUID]: ...


class RuleStore(Protocol):
    async def list_due(
        self, account_ids: list[uuid.UUID], up_to_date: date
    ) -> list[RuleLike]: ...

    async def update_next_date(
        self, rule_id: uuid.UUID, expected: date, new: date
    ) -> bool: ...


class TransactionStore(Protocol):
    async def insert(
        self,
        *,
        account_id: uuid.UUID,
        category_id: uuid.UUID | None,
        amount: Decimal,
        date: date,
        description: str,
        recurring_rule_id: uuid.UUID,
    ) -> uuid.UUID: ...


# ─── Results ──────────────────────────────────────────────────────────────────

@dataclass
class GeneratedTransaction:
    rule_id: uuid.UUID
    transaction_id: uuid.UUID
    date: date
    amount: Decimal
    description: str


@dataclass
class FailedOccurrence:
    rule_id: uuid.UUID
    date: date
    reason: str


@dataclass
class GenerationResult:
    up_to_date: date
    generated: list[GeneratedTransaction] = field(default_factory=list)
    failed: list[FailedOccurrence] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.generated)

    @property
    def message(self) -> str:
        return f"Generated {self.count} transactions from recurring rules"


# ─── Engine ───────────────────────────────────────────────────────────────────

class RecurrenceEngine:
    def __init__(
        self,
        accounts: AccountStore,
        rules: RuleStore,
        transactions: TransactionStore,
    ):
        self._accounts = accounts
        self._rules = rules
        self._transactions = transactions

    async def generate_transactions(
        self, workspace_id: uuid.UUID, up_to_date: date
    ) -> GenerationResult:
        """Discharge every due occurrence of the workspace's active rules.

        Insert failures are recorded and skipped; the cursor still moves past
        them. Store errors while loading accounts or rules propagate before any
        rule is touched. Raises ConcurrentAdvance when a cursor was moved by
        someone else between load and write.
        """
        result = GenerationResult(up_to_date=up_to_date)

        account_ids = await self._accounts.list_account_ids(workspace_id)
        if not account_ids:
            return result

        rules = await self._rules.list_due(account_ids, up_to_date)
        for rule in rules:
            await self._discharge(rule, up_to_date, result)

        logger.info(
            "Workspace %s: %d rules due, %d transactions generated, %d failed (up to %s)",
            workspace_id, len(rules), result.count, len(result.failed), up_to_date,
        )
        return result

    async def _discharge(
        self, rule: RuleLike, up_to_date: date, result: GenerationResult
    ) -> None:
        try:
            frequency = Frequency(rule.frequency)
        except ValueError:
            logger.error(
                "Rule %s has unknown frequency %r; leaving it untouched",
                rule.id, rule.frequency,
            )
            return

        expected = rule.next_date
        current = rule.next_date
        while True:
            if rule.end_date is not None and current > rule.end_date:
                break
            if current > up_to_date:
                break

            # The cursor must always be able to move past an occurrence it generates
            try:
                following = advance_date(current, frequency)
            except OverflowError:
                logger.warning(
                    "Rule %s has no occurrence after %s; schedule exhausted", rule.id, current
                )
                break

            try:
                tx_id = await self._transactions.insert(
                    account_id=rule.account_id,
                    category_id=rule.category_id,
                    amount=rule.amount,
                    date=current,
                    description=rule.description,
                    recurring_rule_id=rule.id,
                )
            except InsertFailure as exc:
                logger.warning(
                    "Skipping occurrence %s of rule %s: %s", current, rule.id, exc.message
                )
                result.failed.append(
                    FailedOccurrence(rule_id=rule.id, date=current, reason=exc.message)
                )
            else:
                logger.debug("Rule %s: created transaction %s for %s", rule.id, tx_id, current)
                result.generated.append(
                    GeneratedTransaction(
                        rule_id=rule.id,
                        transaction_id=tx_id,
                        date=current,
                        amount=rule.amount,
                        description=rule.description,
                    )
                )

            current = following

        # Written even when nothing was generated
        if not await self._rules.update_next_date(rule.id, expected, current):
            logger.error(
                "Rule %s cursor moved concurrently (expected %s); aborting run",
                rule.id, expected,
            )
            raise ConcurrentAdvance(
                f"Recurring rule {rule.id} was advanced by another run; retry the generation"
            )
