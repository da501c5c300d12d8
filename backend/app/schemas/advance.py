"""
Advance Pydantic schemas.

Defines request and response models for the advance & retainer ledger.
Money is exchanged as a currency code plus a Decimal amount.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.core.config import settings
from backend.app.core.money import from_minor_units
from backend.app.models.ledger_enums import EntryKind, EntryStatus, AllocationSource

CURRENCY_PATTERN = r"^[A-Z]{3}$"


class AdvanceCreate(BaseModel):
    """Schema for receiving funds (retainer, expense advance, lawyer advance, fee payment)."""
    kind: EntryKind = Field(..., description="Kind of funds received")
    client_id: Optional[int] = Field(None, gt=0)
    matter_id: Optional[int] = Field(None, gt=0)
    lawyer_id: Optional[int] = Field(None, gt=0)
    amount: Decimal = Field(..., gt=0, description="Amount received")
    currency: str = Field(default_factory=lambda: settings.default_currency, pattern=CURRENCY_PATTERN)
    date_received: date
    payment_method: Optional[str] = Field("bank_transfer", max_length=50)
    reference_number: Optional[str] = Field(None, max_length=100)
    fee_description: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    minimum_balance_alert: Optional[Decimal] = Field(None, ge=0, description="Warn when balance drops below")


class AdvanceUpdate(BaseModel):
    """
    Schema for updating an advance.

    Financial and scoping fields may be re-sent with their current value
    (full-object PUT) but any change to them is rejected.
    """
    kind: Optional[EntryKind] = None
    client_id: Optional[int] = None
    matter_id: Optional[int] = None
    lawyer_id: Optional[int] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    balance_remaining: Optional[Decimal] = None
    status: Optional[EntryStatus] = None
    date_received: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    reference_number: Optional[str] = Field(None, max_length=100)
    fee_description: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    minimum_balance_alert: Optional[Decimal] = Field(None, ge=0)


class AdvanceResponse(BaseModel):
    """Schema for advance response."""
    id: int
    kind: EntryKind
    client_id: Optional[int]
    matter_id: Optional[int]
    lawyer_id: Optional[int]
    amount: Decimal
    currency: str
    balance_remaining: Decimal
    status: EntryStatus
    date_received: date
    payment_method: Optional[str]
    reference_number: Optional[str]
    fee_description: Optional[str]
    notes: Optional[str]
    minimum_balance_alert: Optional[Decimal]
    below_minimum: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime]

    class Config:
        from_attributes = True


class AdvanceListResponse(BaseModel):
    """Schema for paginated advance list."""
    advances: List[AdvanceResponse]
    total: int
    page: int
    page_size: int


class DeductRequest(BaseModel):
    """Deduct an amount from one advance by id."""
    advance_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN, description="Must match the advance currency if given")


class DeductRetainerRequest(BaseModel):
    """Deduct from the oldest active advance of a kind for a client/matter."""
    client_id: int = Field(..., gt=0)
    matter_id: Optional[int] = Field(None, gt=0)
    advance_type: EntryKind = EntryKind.CLIENT_RETAINER
    amount: Decimal = Field(..., gt=0)


class AllocationResponse(BaseModel):
    """One deduction recorded against an advance."""
    id: int
    advance_id: int
    expense_id: Optional[int]
    amount: Decimal
    source: AllocationSource
    created_at: datetime

    @classmethod
    def from_allocation(cls, allocation, currency: str) -> "AllocationResponse":
        return cls(
            id=allocation.id,
            advance_id=allocation.advance_id,
            expense_id=allocation.expense_id,
            amount=from_minor_units(allocation.amount_minor, currency),
            source=allocation.source,
            created_at=allocation.created_at,
        )


class AuditEntryResponse(BaseModel):
    """One audit row recorded for an advance."""
    id: int
    action: str
    actor: Optional[str]
    metadata: Optional[dict]
    timestamp: datetime

    @classmethod
    def from_audit_log(cls, audit_log) -> "AuditEntryResponse":
        return cls(
            id=audit_log.id,
            action=audit_log.action,
            actor=audit_log.actor,
            metadata=audit_log.meta_data,
            timestamp=audit_log.timestamp,
        )


class DeductionResponse(BaseModel):
    """Result of a deduction: the amount taken and the updated advance."""
    advance_id: int
    kind: EntryKind
    amount: Decimal
    new_balance: Decimal
    status: EntryStatus
    allocation_id: int
    advance: AdvanceResponse

    @classmethod
    def from_result(cls, result) -> "DeductionResponse":
        entry = result.entry
        return cls(
            advance_id=entry.id,
            kind=entry.kind,
            amount=from_minor_units(result.allocation.amount_minor, entry.currency),
            new_balance=entry.balance_remaining,
            status=entry.status,
            allocation_id=result.allocation.id,
            advance=AdvanceResponse.model_validate(entry),
        )


class CurrencyAmount(BaseModel):
    """An amount in one currency."""
    currency: str
    amount: Decimal


class BalanceResponse(BaseModel):
    """Available balance for a selector, grouped by currency."""
    kind: Optional[EntryKind] = None
    client_id: Optional[int] = None
    matter_id: Optional[int] = None
    lawyer_id: Optional[int] = None
    balances: List[CurrencyAmount]
    entry_count: int

    @classmethod
    def from_summary(cls, summary) -> "BalanceResponse":
        selector = summary.selector
        return cls(
            kind=selector.kind,
            client_id=selector.client_id,
            matter_id=selector.matter_id,
            lawyer_id=selector.lawyer_id,
            balances=[
                CurrencyAmount(currency=currency, amount=from_minor_units(amount_minor, currency))
                for currency, amount_minor in summary.balances_minor.items()
            ],
            entry_count=summary.entry_count,
        )


class LedgerTotals(BaseModel):
    """Original amounts received per kind group, one currency."""
    currency: str
    retainers: Decimal
    fee_payments: Decimal
    all_fees: Decimal
    expense_advances: Decimal
    lawyer_advances: Decimal


class LedgerTotalsResponse(BaseModel):
    totals: List[LedgerTotals]

    @classmethod
    def from_totals(cls, totals: dict) -> "LedgerTotalsResponse":
        return cls(totals=[
            LedgerTotals(
                currency=currency,
                **{name: from_minor_units(value, currency) for name, value in bucket.items()}
            )
            for currency, bucket in sorted(totals.items())
        ])


class LawyerBalanceResponse(BaseModel):
    """Reconciled position of a lawyer against firm advances."""
    lawyer_id: int
    currency: str
    total_advanced: Decimal
    balance_from_advances: Decimal
    expenses_paid: Decimal
    total_spent: Decimal
    net_balance: Decimal
    position: str


class LawyerBalanceListResponse(BaseModel):
    balances: List[LawyerBalanceResponse]
