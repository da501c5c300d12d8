"""
Balance Aggregator (Domain Logic).

Answers "how much prepaid money is available" for a client, a client's
matter or a lawyer. READ-ONLY: nothing here adds, flushes or commits.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import LedgerValidationError
from backend.app.core.money import to_minor_units
from backend.app.models.advance import Advance
from backend.app.models.ledger_enums import EntryKind, EntryStatus, BALANCE_TRACKED_KINDS


@dataclass(frozen=True)
class BalanceSelector:
    """Which entries a balance covers: a client (optionally one matter) or a lawyer."""
    client_id: Optional[int] = None
    matter_id: Optional[int] = None
    lawyer_id: Optional[int] = None
    kind: Optional[EntryKind] = None

    def validate(self) -> None:
        if self.client_id is None and self.lawyer_id is None:
            raise LedgerValidationError("A balance needs a client_id or a lawyer_id")
        if self.matter_id is not None and self.client_id is None:
            raise LedgerValidationError("matter_id requires client_id")
        if self.kind is not None and self.kind.is_fee_payment:
            raise LedgerValidationError(f"{self.kind.value} does not track a balance")


@dataclass
class BalanceSummary:
    """Available minor units per currency plus how many entries matched."""
    selector: BalanceSelector
    balances_minor: Dict[str, int] = field(default_factory=dict)
    entry_count: int = 0

    def balance_for(self, currency: str) -> int:
        return self.balances_minor.get(currency, 0)


class BalanceAggregator:

    @staticmethod
    async def sum_balance(db: AsyncSession, selector: BalanceSelector) -> BalanceSummary:
        """
        Sum the remaining balance of matching entries.

        Only non-deleted, balance-tracked entries count; refunded entries are
        excluded because their remaining funds went back to the payer.
        A client selector without matter_id spans all of the client's matters.
        """
        selector.validate()

        conditions = [
            Advance.deleted_at.is_(None),
            Advance.kind.in_(BALANCE_TRACKED_KINDS),
            Advance.status != EntryStatus.REFUNDED,
        ]
        if selector.client_id is not None:
            conditions.append(Advance.client_id == selector.client_id)
        if selector.matter_id is not None:
            conditions.append(Advance.matter_id == selector.matter_id)
        if selector.lawyer_id is not None:
            conditions.append(Advance.lawyer_id == selector.lawyer_id)
        if selector.kind is not None:
            conditions.append(Advance.kind == selector.kind)

        result = await db.execute(
            select(
                Advance.currency,
                func.coalesce(func.sum(Advance.balance_remaining_minor), 0),
                func.count(Advance.id),
            ).where(*conditions).group_by(Advance.currency).order_by(Advance.currency)
        )

        summary = BalanceSummary(selector=selector)
        for currency, balance_minor, count in result.all():
            summary.balances_minor[currency] = int(balance_minor)
            summary.entry_count += count
        return summary

    @staticmethod
    async def get_client_retainer(db: AsyncSession, client_id: int, matter_id: Optional[int] = None) -> BalanceSummary:
        return await BalanceAggregator.sum_balance(
            db, BalanceSelector(client_id=client_id, matter_id=matter_id, kind=EntryKind.CLIENT_RETAINER)
        )

    @staticmethod
    async def get_client_expense_advance(db: AsyncSession, client_id: int, matter_id: Optional[int] = None) -> BalanceSummary:
        return await BalanceAggregator.sum_balance(
            db, BalanceSelector(client_id=client_id, matter_id=matter_id, kind=EntryKind.CLIENT_EXPENSE_ADVANCE)
        )

    @staticmethod
    async def get_lawyer_advance(db: AsyncSession, lawyer_id: int) -> BalanceSummary:
        return await BalanceAggregator.sum_balance(
            db, BalanceSelector(lawyer_id=lawyer_id, kind=EntryKind.LAWYER_ADVANCE)
        )

    @staticmethod
    async def ledger_totals(db: AsyncSession) -> Dict[str, Dict[str, int]]:
        """
        Original amounts received, per currency and kind group.

        Returns:
            {currency: {"retainers", "fee_payments", "all_fees",
                        "expense_advances", "lawyer_advances"}} in minor units
        """
        result = await db.execute(
            select(Advance.currency, Advance.kind, func.sum(Advance.amount_minor))
            .where(Advance.deleted_at.is_(None))
            .group_by(Advance.currency, Advance.kind)
        )

        totals: Dict[str, Dict[str, int]] = {}
        for currency, kind, amount_minor in result.all():
            bucket = totals.setdefault(currency, {
                "retainers": 0,
                "fee_payments": 0,
                "all_fees": 0,
                "expense_advances": 0,
                "lawyer_advances": 0,
            })
            amount_minor = int(amount_minor or 0)
            if kind is EntryKind.CLIENT_RETAINER:
                bucket["retainers"] += amount_minor
            elif kind is EntryKind.CLIENT_EXPENSE_ADVANCE:
                bucket["expense_advances"] += amount_minor
            elif kind is EntryKind.LAWYER_ADVANCE:
                bucket["lawyer_advances"] += amount_minor
            else:
                bucket["fee_payments"] += amount_minor

        for bucket in totals.values():
            bucket["all_fees"] = bucket["retainers"] + bucket["fee_payments"]
        return totals

    @staticmethod
    async def low_balance_entries(
        db: AsyncSession,
        lawyer_min_balance: Optional[Decimal] = None
    ) -> List[Advance]:
        """
        Active entries running low.

        An entry is low when its balance is under its own minimum_balance_alert;
        lawyer advances without one use the firm-wide lawyer minimum.
        """
        if lawyer_min_balance is None:
            lawyer_min_balance = settings.lawyer_advance_min_balance

        result = await db.execute(
            select(Advance).where(
                Advance.deleted_at.is_(None),
                Advance.kind.in_(BALANCE_TRACKED_KINDS),
                Advance.status == EntryStatus.ACTIVE,
            ).order_by(Advance.balance_remaining_minor.asc(), Advance.id.asc())
        )

        low = []
        for entry in result.scalars().all():
            if entry.minimum_balance_alert_minor is not None:
                threshold_minor = entry.minimum_balance_alert_minor
            elif entry.kind is EntryKind.LAWYER_ADVANCE:
                threshold_minor = to_minor_units(lawyer_min_balance, entry.currency)
            else:
                continue
            if entry.balance_remaining_minor < threshold_minor:
                low.append(entry)
        return low
