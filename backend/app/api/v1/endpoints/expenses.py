"""
Expenses API Endpoints.

Plain expense records. Use /advances/expense-with-deduction to charge an
expense against advances in the same transaction.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_actor
from backend.app.db.session import get_db
from backend.app.schemas.expense import ExpenseCreate, ExpenseResponse, ExpenseListResponse
from backend.app.services.expenses import create_expense, list_expenses

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def add_expense(
    expense_data: ExpenseCreate,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Record an expense without touching any advance.
    """
    expense = await create_expense(db, expense_data, actor=actor)
    response = ExpenseResponse.model_validate(expense)
    await db.commit()
    return response


@router.get("", response_model=ExpenseListResponse)
async def get_expenses(
    client_id: Optional[int] = Query(None, gt=0),
    matter_id: Optional[int] = Query(None, gt=0),
    paid_by_lawyer_id: Optional[int] = Query(None, gt=0),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db)
):
    expenses, total = await list_expenses(
        db,
        client_id=client_id,
        matter_id=matter_id,
        paid_by_lawyer_id=paid_by_lawyer_id,
        page=page,
        page_size=page_size
    )

    return ExpenseListResponse(
        expenses=[ExpenseResponse.model_validate(expense) for expense in expenses],
        total=total,
        page=page,
        page_size=page_size
    )
