"""
Lawyer Reimbursement Calculator (Domain Logic).

Reconciles cash the firm advanced to a lawyer against what the lawyer spent.
Figures are derived for display and never persisted.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.money import from_minor_units
from backend.app.models.advance import Advance
from backend.app.models.expense import Expense
from backend.app.models.ledger_enums import EntryKind
from backend.app.services.expenses import sum_lawyer_paid_expenses


@dataclass
class LawyerBalance:
    """
    A lawyer's position in one currency (minor units).

    Ledger deductions and lawyer-paid expenses can disagree, e.g. an expense
    paid before any deduction was recorded. The larger spend estimate wins so
    the balance never overstates what the lawyer still holds.
    """
    lawyer_id: int
    currency: str
    total_advanced_minor: int
    balance_from_advances_minor: int
    expenses_paid_minor: int

    @property
    def total_spent_minor(self) -> int:
        return max(self.total_advanced_minor - self.balance_from_advances_minor, self.expenses_paid_minor)

    @property
    def net_balance_minor(self) -> int:
        return self.total_advanced_minor - self.total_spent_minor

    @property
    def position(self) -> str:
        if self.net_balance_minor < 0:
            return "firm_owes_lawyer"
        if self.net_balance_minor > 0:
            return "lawyer_holds_funds"
        return "settled"

    def as_dict(self) -> dict:
        return {
            "lawyer_id": self.lawyer_id,
            "currency": self.currency,
            "total_advanced": from_minor_units(self.total_advanced_minor, self.currency),
            "balance_from_advances": from_minor_units(self.balance_from_advances_minor, self.currency),
            "expenses_paid": from_minor_units(self.expenses_paid_minor, self.currency),
            "total_spent": from_minor_units(self.total_spent_minor, self.currency),
            "net_balance": from_minor_units(self.net_balance_minor, self.currency),
            "position": self.position,
        }


class LawyerReimbursementCalculator:

    @staticmethod
    async def compute_lawyer_balance(
        db: AsyncSession,
        lawyer_id: int,
        currency: Optional[str] = None
    ) -> LawyerBalance:
        """
        Compute advanced, remaining, paid and net figures for a lawyer.

        Covers every non-deleted lawyer advance of the lawyer in `currency`
        (default currency when omitted).
        """
        currency = (currency or settings.default_currency).upper()

        result = await db.execute(
            select(
                func.coalesce(func.sum(Advance.amount_minor), 0),
                func.coalesce(func.sum(Advance.balance_remaining_minor), 0),
            ).where(
                Advance.kind == EntryKind.LAWYER_ADVANCE,
                Advance.lawyer_id == lawyer_id,
                Advance.currency == currency,
                Advance.deleted_at.is_(None),
            )
        )
        total_advanced_minor, balance_minor = result.one()

        expenses_paid_minor = await sum_lawyer_paid_expenses(db, lawyer_id, currency)

        return LawyerBalance(
            lawyer_id=lawyer_id,
            currency=currency,
            total_advanced_minor=int(total_advanced_minor),
            balance_from_advances_minor=int(balance_minor),
            expenses_paid_minor=expenses_paid_minor,
        )

    @staticmethod
    async def compute_all_lawyer_balances(
        db: AsyncSession,
        currency: Optional[str] = None
    ) -> List[LawyerBalance]:
        """
        Balances of every lawyer with advances or personally paid expenses.

        Lawyers with nothing advanced and nothing spent are left out.
        """
        currency = (currency or settings.default_currency).upper()

        advance_lawyers = await db.execute(
            select(Advance.lawyer_id).where(
                Advance.kind == EntryKind.LAWYER_ADVANCE,
                Advance.currency == currency,
                Advance.deleted_at.is_(None),
            ).distinct()
        )
        expense_lawyers = await db.execute(
            select(Expense.paid_by_lawyer_id).where(
                Expense.paid_by_lawyer_id.is_not(None),
                Expense.currency == currency,
                Expense.deleted_at.is_(None),
            ).distinct()
        )
        lawyer_ids = sorted(
            {row[0] for row in advance_lawyers.all()} | {row[0] for row in expense_lawyers.all()}
        )

        balances = []
        for lawyer_id in lawyer_ids:
            balance = await LawyerReimbursementCalculator.compute_lawyer_balance(db, lawyer_id, currency)
            if balance.total_advanced_minor > 0 or balance.total_spent_minor > 0:
                balances.append(balance)
        return balances
