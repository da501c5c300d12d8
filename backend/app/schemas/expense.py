"""
Expense Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.core.config import settings
from backend.app.models.ledger_enums import ExpenseStatus
from backend.app.schemas.advance import CURRENCY_PATTERN, DeductionResponse


class ExpenseCreate(BaseModel):
    """Schema for recording an expense."""
    client_id: Optional[int] = Field(None, gt=0)
    matter_id: Optional[int] = Field(None, gt=0)
    paid_by_lawyer_id: Optional[int] = Field(None, gt=0, description="Lawyer who paid out of pocket")
    category_id: Optional[int] = None
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default_factory=lambda: settings.default_currency, pattern=CURRENCY_PATTERN)
    description: str = Field(..., min_length=1, max_length=500)
    date: date_type
    billable: bool = True
    markup_percent: Decimal = Field(Decimal("0"), ge=0, le=1000, decimal_places=2)
    notes: Optional[str] = None


class ExpenseWithDeductionCreate(ExpenseCreate):
    """Expense recorded together with the advance deductions it consumes."""
    deduct_client_advance: bool = Field(True, description="Charge the client's expense advance")
    deduct_lawyer_advance: bool = Field(True, description="Charge the paying lawyer's advance")


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    client_id: Optional[int]
    matter_id: Optional[int]
    paid_by_lawyer_id: Optional[int]
    paid_by_firm: bool
    category_id: Optional[int]
    amount: Decimal
    currency: str
    description: str
    date: date_type
    billable: bool
    markup_percent: Decimal
    advance_id: Optional[int]
    status: ExpenseStatus
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total: int
    page: int
    page_size: int


class ExpenseWithDeductionResponse(BaseModel):
    """The persisted expense and every deduction applied for it."""
    expense: ExpenseResponse
    deductions: List[DeductionResponse]
