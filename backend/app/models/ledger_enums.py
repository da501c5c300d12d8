"""
Ledger enumerations.
"""

import enum


class EntryKind(str, enum.Enum):
    """Kind of funds a ledger entry records."""
    CLIENT_RETAINER = "client_retainer"  # Client prepaid fund against future fees
    CLIENT_EXPENSE_ADVANCE = "client_expense_advance"  # Client prepaid fund for reimbursable expenses
    LAWYER_ADVANCE = "lawyer_advance"  # Firm cash handed to a lawyer
    FEE_PAYMENT_FIXED = "fee_payment_fixed"
    FEE_PAYMENT_CONSULTATION = "fee_payment_consultation"
    FEE_PAYMENT_SUCCESS = "fee_payment_success"
    FEE_PAYMENT_MILESTONE = "fee_payment_milestone"
    FEE_PAYMENT_OTHER = "fee_payment_other"

    @property
    def is_fee_payment(self) -> bool:
        return self.value.startswith("fee_payment")

    @property
    def is_balance_tracked(self) -> bool:
        return not self.is_fee_payment

    @property
    def is_client_scoped(self) -> bool:
        return self is not EntryKind.LAWYER_ADVANCE


BALANCE_TRACKED_KINDS = [kind for kind in EntryKind if kind.is_balance_tracked]
FEE_PAYMENT_KINDS = [kind for kind in EntryKind if kind.is_fee_payment]


class EntryStatus(str, enum.Enum):
    """Ledger entry status enumeration."""
    ACTIVE = "active"  # Funds available (or payment received)
    DEPLETED = "depleted"  # Balance reached zero through deductions
    REFUNDED = "refunded"  # Funds returned to payer, terminal


class AllocationSource(str, enum.Enum):
    """What consumed the funds of an allocation."""
    MANUAL = "manual"  # Direct deduction against an entry id
    RETAINER = "retainer"  # Deduction resolved by client/matter selector
    EXPENSE = "expense"  # Deduction paired with an expense record


class ExpenseStatus(str, enum.Enum):
    """Expense status enumeration."""
    PENDING = "pending"
    BILLED = "billed"
    REIMBURSED = "reimbursed"
