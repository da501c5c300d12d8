"""
Expense database model.

Minimal expense record needed to pair expenses with advance deductions
and to reconcile lawyer-paid expenses.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, Date, DateTime, Enum, Boolean, Numeric, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.core.money import from_minor_units
from backend.app.models.ledger_enums import ExpenseStatus


class Expense(Base):
    """
    Expense model.

    `paid_by_lawyer_id` marks an expense the lawyer paid personally;
    otherwise the firm paid it. `advance_id` is the client expense advance
    the expense was charged against, if any.
    """
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    client_id = Column(Integer, nullable=True, index=True)
    matter_id = Column(Integer, nullable=True, index=True)
    paid_by_lawyer_id = Column(Integer, nullable=True, index=True)
    paid_by_firm = Column(Boolean, nullable=False, default=True)
    category_id = Column(Integer, nullable=True)

    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String(500), nullable=False)
    date = Column(Date, nullable=False)
    billable = Column(Boolean, nullable=False, default=True)
    markup_percent = Column(Numeric(6, 2), nullable=False, default=0)

    advance_id = Column(Integer, ForeignKey("advances.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(
        Enum(ExpenseStatus, values_callable=lambda e: [m.value for m in e], name="expense_status"),
        default=ExpenseStatus.PENDING,
        nullable=False
    )
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def amount(self):
        return from_minor_units(self.amount_minor, self.currency)

    def __repr__(self):
        return f"<Expense(id={self.id}, amount={self.amount_minor}, lawyer={self.paid_by_lawyer_id})>"
