"""
Expense service.

Expenses belong to the wider practice system; the ledger only needs to
record them and read back what lawyers paid personally.
"""

from typing import Optional, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backend.app.core.money import to_minor_units
from backend.app.models.expense import Expense
from backend.app.models.ledger_enums import ExpenseStatus
from backend.app.schemas.expense import ExpenseCreate
from backend.app.services.audit import log_event, AuditAction


async def create_expense(
    db: AsyncSession,
    data: ExpenseCreate,
    advance_id: Optional[int] = None,
    actor: Optional[str] = None
) -> Expense:
    """
    Add an expense to the current transaction.

    Args:
        db: Database session (flushed, not committed)
        data: Expense details
        advance_id: Client expense advance the expense is charged against
        actor: Who recorded it

    Returns:
        The flushed Expense
    """
    expense = Expense(
        client_id=data.client_id,
        matter_id=data.matter_id,
        paid_by_lawyer_id=data.paid_by_lawyer_id,
        paid_by_firm=data.paid_by_lawyer_id is None,
        category_id=data.category_id,
        amount_minor=to_minor_units(data.amount, data.currency),
        currency=data.currency,
        description=data.description,
        date=data.date,
        billable=data.billable,
        markup_percent=data.markup_percent,
        advance_id=advance_id,
        status=ExpenseStatus.PENDING,
        notes=data.notes,
    )

    db.add(expense)
    await db.flush()
    await db.refresh(expense)

    await log_event(
        db,
        action=AuditAction.EXPENSE_RECORDED,
        entity_type="expense",
        entity_id=expense.id,
        actor=actor,
        metadata={
            "amount_minor": expense.amount_minor,
            "currency": expense.currency,
            "paid_by_lawyer_id": expense.paid_by_lawyer_id,
            "advance_id": advance_id,
        }
    )
    return expense


async def list_expenses(
    db: AsyncSession,
    client_id: Optional[int] = None,
    matter_id: Optional[int] = None,
    paid_by_lawyer_id: Optional[int] = None,
    page: int = 1,
    page_size: int = 50
) -> Tuple[List[Expense], int]:
    """
    List non-deleted expenses, newest first.

    Returns:
        (page of expenses, total matching)
    """
    conditions = [Expense.deleted_at.is_(None)]
    if client_id is not None:
        conditions.append(Expense.client_id == client_id)
    if matter_id is not None:
        conditions.append(Expense.matter_id == matter_id)
    if paid_by_lawyer_id is not None:
        conditions.append(Expense.paid_by_lawyer_id == paid_by_lawyer_id)

    total_result = await db.execute(select(func.count(Expense.id)).where(*conditions))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Expense).where(*conditions).order_by(Expense.date.desc(), Expense.id.desc()).offset(offset).limit(page_size)
    )
    return result.scalars().all(), total


async def sum_lawyer_paid_expenses(db: AsyncSession, lawyer_id: int, currency: str) -> int:
    """
    Total minor units a lawyer paid personally in one currency.
    """
    result = await db.execute(
        select(func.coalesce(func.sum(Expense.amount_minor), 0)).where(
            Expense.paid_by_lawyer_id == lawyer_id,
            Expense.currency == currency,
            Expense.deleted_at.is_(None)
        )
    )
    return int(result.scalar())
