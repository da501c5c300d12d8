"""
Expense-Advance Bridge (Domain Logic).

Records an expense together with the advance deductions it consumes.
Both writes share one transaction: either the expense and every deduction
are committed, or nothing is.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import AppException, AtomicityFailureError, LedgerValidationError
from backend.app.domain.ledger.deduction_engine import DeductionEngine, DeductionResult
from backend.app.models.expense import Expense
from backend.app.models.ledger_enums import EntryKind, AllocationSource
from backend.app.schemas.expense import ExpenseWithDeductionCreate
from backend.app.services.expenses import create_expense

logger = logging.getLogger("ledger")


@dataclass
class ExpenseDeductionResult:
    expense: Expense
    deductions: List[DeductionResult] = field(default_factory=list)


class ExpenseAdvanceBridge:

    @staticmethod
    async def _deduct_for_expense(
        db: AsyncSession,
        expense: Expense,
        kind: EntryKind,
        actor: Optional[str],
        client_id: Optional[int] = None,
        matter_id: Optional[int] = None,
        lawyer_id: Optional[int] = None
    ) -> DeductionResult:
        entry = await DeductionEngine.resolve_for_deduction(
            db,
            kind,
            expense.amount,
            client_id=client_id,
            matter_id=matter_id,
            lawyer_id=lawyer_id,
            currency=expense.currency
        )
        return await DeductionEngine.deduct(
            db,
            entry.id,
            expense.amount,
            currency=expense.currency,
            source=AllocationSource.EXPENSE,
            expense_id=expense.id,
            actor=actor
        )

    @staticmethod
    async def record_expense_with_deduction(
        db: AsyncSession,
        data: ExpenseWithDeductionCreate,
        actor: Optional[str] = None
    ) -> ExpenseDeductionResult:
        """
        Persist an expense and deduct it from the matching advances.

        Flow:
        1. Insert the expense (flush, to link allocations to it)
        2. Deduct from the paying lawyer's advance, if requested
        3. Deduct from the client's expense advance, if requested
        4. Commit once

        The session must not hold other uncommitted work: this method
        commits on success and rolls back on any failure.

        Raises:
            LedgerValidationError: no deduction requested, or currency mismatch
            EntryNotFoundError: no matching advance
            InsufficientFundsError: the advance cannot cover the expense, or every matching advance is depleted
            InsufficientFundsError / InvalidStateTransitionError: from the deduction
            AtomicityFailureError: storage failed mid-way; everything rolled back
        """
        wants_lawyer = data.paid_by_lawyer_id is not None and data.deduct_lawyer_advance
        wants_client = data.client_id is not None and data.deduct_client_advance
        if not (wants_lawyer or wants_client):
            raise LedgerValidationError(
                "Nothing to deduct: set client_id or paid_by_lawyer_id with its deduct flag",
                details={"client_id": data.client_id, "paid_by_lawyer_id": data.paid_by_lawyer_id}
            )

        try:
            expense = await create_expense(db, data, actor=actor)
            result = ExpenseDeductionResult(expense=expense)

            if wants_lawyer:
                result.deductions.append(await ExpenseAdvanceBridge._deduct_for_expense(
                    db, expense, EntryKind.LAWYER_ADVANCE, actor, lawyer_id=data.paid_by_lawyer_id
                ))

            if wants_client:
                client_deduction = await ExpenseAdvanceBridge._deduct_for_expense(
                    db, expense, EntryKind.CLIENT_EXPENSE_ADVANCE, actor,
                    client_id=data.client_id, matter_id=data.matter_id
                )
                result.deductions.append(client_deduction)
                expense.advance_id = client_deduction.entry.id
                await db.flush()
                await db.refresh(expense)

            await db.commit()
        except AppException as exc:
            await db.rollback()
            logger.warning(
                "Expense with deduction rejected",
                extra={"error_code": exc.error_code, "client_id": data.client_id, "lawyer_id": data.paid_by_lawyer_id}
            )
            raise
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Expense with deduction failed, rolled back",
                extra={"exception": type(exc).__name__, "client_id": data.client_id, "lawyer_id": data.paid_by_lawyer_id}
            )
            raise AtomicityFailureError(details={"reason": type(exc).__name__}) from exc

        logger.info(
            "Expense with deduction recorded",
            extra={"expense_id": expense.id, "deductions": len(result.deductions)}
        )
        return result
