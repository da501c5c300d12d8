"""
Advance Allocation database model.

One row per deduction against an advance.
"""

from sqlalchemy import Column, Integer, BigInteger, ForeignKey, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import AllocationSource


class AdvanceAllocation(Base):
    """
    Advance Allocation model.

    Immutable audit row: the allocations of an advance always sum to
    amount_minor - balance_remaining_minor.
    """
    __tablename__ = "advance_allocations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    advance_id = Column(Integer, ForeignKey("advances.id", ondelete="CASCADE"), nullable=False, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True, index=True)

    amount_minor = Column(BigInteger, nullable=False)
    source = Column(
        Enum(AllocationSource, values_callable=lambda e: [m.value for m in e], name="allocation_source"),
        nullable=False
    )

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    advance = relationship("Advance", back_populates="allocations")

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_allocations_amount_positive"),
    )

    def __repr__(self):
        return f"<AdvanceAllocation(id={self.id}, advance_id={self.advance_id}, amount={self.amount_minor})>"
