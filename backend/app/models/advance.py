"""
Advance (ledger entry) database model.

Records prepaid client funds, cash advanced to lawyers and received fee payments.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, Date, DateTime, Enum, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.core.money import from_minor_units
from backend.app.models.ledger_enums import EntryKind, EntryStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Advance(Base):
    """
    Advance model.

    Money is held in integer minor units of `currency`.
    `kind`, `client_id`, `matter_id`, `lawyer_id`, `amount_minor` and `currency`
    never change after creation; `balance_remaining_minor` only decreases.
    Fee payments carry a zero balance: they are received money, not a fund.
    """
    __tablename__ = "advances"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    kind = Column(Enum(EntryKind, values_callable=_enum_values, name="entry_kind"), nullable=False, index=True)

    # Scoping (master data lives outside the ledger)
    client_id = Column(Integer, nullable=True, index=True)
    matter_id = Column(Integer, nullable=True, index=True)
    lawyer_id = Column(Integer, nullable=True, index=True)

    # Financials
    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    balance_remaining_minor = Column(BigInteger, nullable=False)
    minimum_balance_alert_minor = Column(BigInteger, nullable=True)

    status = Column(
        Enum(EntryStatus, values_callable=_enum_values, name="entry_status"),
        default=EntryStatus.ACTIVE,
        nullable=False,
        index=True
    )

    # Descriptive fields
    date_received = Column(Date, nullable=False, index=True)
    payment_method = Column(String(50), nullable=True)
    reference_number = Column(String(100), nullable=True)
    fee_description = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    allocations = relationship(
        "AdvanceAllocation",
        back_populates="advance",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AdvanceAllocation.id",
    )

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_advances_amount_positive"),
        CheckConstraint(
            "balance_remaining_minor >= 0 AND balance_remaining_minor <= amount_minor",
            name="ck_advances_balance_range"
        ),
        Index("ix_advances_selector", "client_id", "matter_id", "kind", "status"),
    )

    @property
    def amount(self):
        return from_minor_units(self.amount_minor, self.currency)

    @property
    def balance_remaining(self):
        return from_minor_units(self.balance_remaining_minor, self.currency)

    @property
    def minimum_balance_alert(self):
        if self.minimum_balance_alert_minor is None:
            return None
        return from_minor_units(self.minimum_balance_alert_minor, self.currency)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def below_minimum(self) -> bool:
        if self.minimum_balance_alert_minor is None or self.status != EntryStatus.ACTIVE:
            return False
        return self.balance_remaining_minor < self.minimum_balance_alert_minor

    def __repr__(self):
        return f"<Advance(id={self.id}, kind='{self.kind.value}', balance={self.balance_remaining_minor}/{self.amount_minor})>"
